from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any


logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Fire-and-forget tasks: callers never wait on them and failures are only logged."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def submit(self, coro: Coroutine[Any, Any, Any], *, label: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=label)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background: task_failed label=%s error=%s",
                task.get_name(),
                exc,
                exc_info=exc,
            )
