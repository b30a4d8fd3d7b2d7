from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging

from app.domain.entities.pool import PoolKey


logger = logging.getLogger(__name__)


class PeriodicSyncScheduler:
    """Runs `job` for every watched pool on a fixed interval.

    A pool that fails is logged and skipped; a tick that fires while the previous one is
    still running is skipped.
    """

    def __init__(
        self,
        *,
        job: Callable[[PoolKey], Awaitable[object]],
        pool_provider: Callable[[], Awaitable[list[PoolKey]]],
        interval_seconds: float,
        pool_delay_seconds: float = 0.0,
    ):
        self._job = job
        self._pool_provider = pool_provider
        self._interval_seconds = interval_seconds
        self._pool_delay_seconds = pool_delay_seconds
        self._running = False
        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        if self._interval_seconds <= 0:
            logger.info("sync_scheduler: disabled interval_seconds=%s", self._interval_seconds)
            return False
        if self.started:
            return False
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._loop(), name="sync-scheduler")
        logger.info("sync_scheduler: started interval_seconds=%s", self._interval_seconds)
        return True

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("sync_scheduler: stopped")

    async def run_once(self) -> int:
        if self._running:
            logger.info("sync_scheduler: skip reason=previous_run_active")
            return 0
        self._running = True
        synced = 0
        try:
            pools = await self._pool_provider()
            for index, pool in enumerate(pools):
                if self._stop.is_set():
                    break
                if index and self._pool_delay_seconds > 0:
                    await asyncio.sleep(self._pool_delay_seconds)
                try:
                    await self._job(pool)
                    synced += 1
                except Exception:
                    logger.exception(
                        "sync_scheduler: pool_failed chain=%s pool=%s",
                        pool.chain,
                        pool.pool_address,
                    )
            logger.info("sync_scheduler: run_done pools=%s synced=%s", len(pools), synced)
        finally:
            self._running = False
        return synced

    async def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                await self.run_once()
            except Exception:
                logger.exception("sync_scheduler: run_failed")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                continue
