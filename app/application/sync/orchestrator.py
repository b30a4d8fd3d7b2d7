from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
import logging
from typing import Any, Protocol

from app.application.dto.sync import FetchBatch
from app.application.ports.cache_store_port import SyncStatusStorePort
from app.application.ports.pool_state_port import BlockSourcePort
from app.application.sync.ttl_cache import BoundedTtlCache
from app.domain.entities.pool import PoolKey
from app.domain.entities.sync import (
    SYNC_STATE_CAUGHT_UP,
    SYNC_STATE_DEGRADED,
    SYNC_STATE_FRESH,
    SYNC_STATE_SYNCED,
    SyncOutcome,
)
from app.domain.exceptions import ProviderError, TransportError


logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncStream(Protocol):
    sync_type: str
    cache_seconds: float
    lookback_blocks: int

    async def fetch(self, *, chain: str, pool_address: str, from_block: int, to_block: int) -> FetchBatch:
        ...

    async def store(self, *, chain: str, pool_address: str, items: list[Any]) -> int:
        ...

    async def finalize(self, *, chain: str, pool_address: str) -> None:
        ...

    async def load(self, *, chain: str, pool_address: str) -> list[Any]:
        ...


class SyncOrchestrator:
    """Per (chain, pool, sync_type) freshness state machine.

    fresh: serve cache only. stale: one incremental fetch from the cursor. degraded:
    the fetch failed, the cursor is left untouched and callers keep serving the cache.
    """

    def __init__(
        self,
        *,
        status_store: SyncStatusStorePort,
        block_source: BlockSourcePort,
        streams: Iterable[SyncStream],
        cache: BoundedTtlCache,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._status_store = status_store
        self._block_source = block_source
        self._streams = {stream.sync_type: stream for stream in streams}
        self._cache = cache
        self._clock = clock
        self._inflight: dict[tuple[str, str, str, bool], asyncio.Task] = {}
        self._generations: dict[tuple[str, str, str], int] = {}

    @property
    def sync_types(self) -> list[str]:
        return list(self._streams)

    async def sync(
        self,
        *,
        chain: str,
        pool_address: str,
        sync_type: str,
        force: bool = False,
    ) -> SyncOutcome:
        # A forced cycle never joins a plain one, which may have found the status fresh.
        key = (chain, pool_address, sync_type, force)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._run_cycle(chain=chain, pool_address=pool_address, sync_type=sync_type, force=force)
            )
            self._inflight[key] = task
            task.add_done_callback(lambda _task, key=key: self._inflight.pop(key, None))
        else:
            logger.debug(
                "sync_orchestrator: joined_inflight chain=%s pool=%s sync_type=%s force=%s",
                chain,
                pool_address,
                sync_type,
                force,
            )
        return await asyncio.shield(task)

    async def read(self, *, chain: str, pool_address: str, sync_type: str) -> list[Any]:
        cache_key = (sync_type, chain, pool_address)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached
        generation = self._generations.get(cache_key, 0)
        items = await self._streams[sync_type].load(chain=chain, pool_address=pool_address)
        # A cycle that stored rows during the load has made these items stale.
        if self._generations.get(cache_key, 0) == generation:
            self._cache.set(cache_key, items)
        return items

    async def prewarm(self, pools: Iterable[PoolKey]) -> int:
        loaded = 0
        for pool in pools:
            for sync_type, stream in self._streams.items():
                cache_key = (sync_type, pool.chain, pool.pool_address)
                generation = self._generations.get(cache_key, 0)
                items = await stream.load(chain=pool.chain, pool_address=pool.pool_address)
                if self._generations.get(cache_key, 0) == generation:
                    loaded += self._cache.prewarm([(cache_key, items)])
        logger.info("sync_orchestrator: prewarmed entries=%s", loaded)
        return loaded

    async def _run_cycle(self, *, chain: str, pool_address: str, sync_type: str, force: bool) -> SyncOutcome:
        stream = self._streams[sync_type]
        now = self._clock()
        status = await asyncio.to_thread(
            self._status_store.get_status,
            chain=chain,
            pool_address=pool_address,
            sync_type=sync_type,
        )
        if not force and status is not None and status.is_fresh(now=now, threshold_seconds=stream.cache_seconds):
            return SyncOutcome(state=SYNC_STATE_FRESH)

        try:
            current_block = await self._block_source.get_block_number(chain=chain)
        except (TransportError, ProviderError) as exc:
            return self._degraded(chain, pool_address, sync_type, exc)

        last_block = status.last_block if status is not None else None
        if last_block is not None:
            start_block = last_block + 1
        else:
            start_block = max(0, current_block - stream.lookback_blocks)

        if start_block > current_block:
            await asyncio.to_thread(
                self._status_store.save_status,
                chain=chain,
                pool_address=pool_address,
                sync_type=sync_type,
                last_block=last_block,
                updated_at=now,
            )
            logger.info(
                "sync_orchestrator: caught_up chain=%s pool=%s sync_type=%s last_block=%s current_block=%s",
                chain,
                pool_address,
                sync_type,
                last_block,
                current_block,
            )
            return SyncOutcome(state=SYNC_STATE_CAUGHT_UP)

        try:
            batch = await stream.fetch(
                chain=chain,
                pool_address=pool_address,
                from_block=start_block,
                to_block=current_block,
            )
        except (TransportError, ProviderError) as exc:
            return self._degraded(chain, pool_address, sync_type, exc)

        stored = 0
        if batch.items:
            stored = await stream.store(chain=chain, pool_address=pool_address, items=batch.items)
            self._invalidate((sync_type, chain, pool_address))

        if batch.error:
            outcome = self._degraded(chain, pool_address, sync_type, batch.error)
            return SyncOutcome(state=outcome.state, fetched=len(batch.items), stored=stored, error=outcome.error)

        await asyncio.to_thread(
            self._status_store.save_status,
            chain=chain,
            pool_address=pool_address,
            sync_type=sync_type,
            last_block=current_block,
            updated_at=now,
        )
        await stream.finalize(chain=chain, pool_address=pool_address)
        if stored:
            self._invalidate((sync_type, chain, pool_address))
        logger.info(
            "sync_orchestrator: synced chain=%s pool=%s sync_type=%s from_block=%s to_block=%s fetched=%s stored=%s",
            chain,
            pool_address,
            sync_type,
            start_block,
            current_block,
            len(batch.items),
            stored,
        )
        return SyncOutcome(state=SYNC_STATE_SYNCED, fetched=len(batch.items), stored=stored)

    def _invalidate(self, cache_key: tuple[str, str, str]) -> None:
        self._generations[cache_key] = self._generations.get(cache_key, 0) + 1
        self._cache.invalidate(cache_key)

    def _degraded(self, chain: str, pool_address: str, sync_type: str, error: Exception | str) -> SyncOutcome:
        logger.warning(
            "sync_orchestrator: degraded chain=%s pool=%s sync_type=%s error=%s",
            chain,
            pool_address,
            sync_type,
            error,
        )
        return SyncOutcome(state=SYNC_STATE_DEGRADED, error=str(error))
