from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
import logging
from typing import Any


logger = logging.getLogger(__name__)

Callback = Callable[[Any], None]
Poller = Callable[[str], Awaitable[list[Any]]]
StreamFactory = Callable[[str, Callable[[Any], None]], Awaitable[Callable[[], Awaitable[None]]]]
FeedClosed = Callable[[str], None]


class PubSubChannel:
    """Topic -> subscriber callbacks, fed by a push stream or, failing that, a poller.

    The feed for a topic is opened with its first subscriber and torn down when the last
    one leaves. A failing callback is logged and never affects the other subscribers.
    """

    def __init__(
        self,
        *,
        poller: Poller,
        poll_interval_seconds: float,
        stream_factory: StreamFactory | None = None,
        on_feed_closed: FeedClosed | None = None,
    ):
        self._poller = poller
        self._poll_interval_seconds = poll_interval_seconds
        self._stream_factory = stream_factory
        self._on_feed_closed = on_feed_closed
        self._subscribers: dict[str, list[Callback]] = {}
        self._pollers: dict[str, asyncio.Task] = {}
        self._stream_closers: dict[str, Callable[[], Awaitable[None]]] = {}

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    def is_polling(self, topic: str) -> bool:
        return topic in self._pollers

    async def subscribe(self, topic: str, callback: Callback) -> Callable[[], Awaitable[None]]:
        callbacks = self._subscribers.setdefault(topic, [])
        callbacks.append(callback)
        if len(callbacks) == 1:
            await self._open_feed(topic)

        async def _unsubscribe() -> None:
            await self.unsubscribe(topic, callback)

        return _unsubscribe

    async def unsubscribe(self, topic: str, callback: Callback) -> None:
        callbacks = self._subscribers.get(topic)
        if not callbacks:
            return
        if callback in callbacks:
            callbacks.remove(callback)
        if not callbacks:
            self._subscribers.pop(topic, None)
            await self._close_feed(topic)

    def publish(self, topic: str, message: Any) -> int:
        delivered = 0
        for callback in list(self._subscribers.get(topic, [])):
            try:
                callback(message)
                delivered += 1
            except Exception:
                logger.exception("pubsub: callback_failed topic=%s", topic)
        return delivered

    async def close(self) -> None:
        for topic in list(self._subscribers):
            self._subscribers.pop(topic, None)
            await self._close_feed(topic)
        for topic in list(self._pollers):
            await self._close_feed(topic)

    async def _open_feed(self, topic: str) -> None:
        if self._stream_factory is not None:
            try:
                closer = await self._stream_factory(topic, lambda message: self.publish(topic, message))
            except Exception as exc:
                logger.warning("pubsub: stream_failed topic=%s error=%s fallback=poll", topic, exc)
            else:
                self._stream_closers[topic] = closer
                logger.info("pubsub: stream_open topic=%s", topic)
                return
        self._pollers[topic] = asyncio.create_task(self._poll(topic), name=f"pubsub-poll:{topic}")
        logger.info("pubsub: poll_open topic=%s interval_seconds=%s", topic, self._poll_interval_seconds)

    async def _close_feed(self, topic: str) -> None:
        closer = self._stream_closers.pop(topic, None)
        if closer is not None:
            try:
                await closer()
            except Exception:
                logger.exception("pubsub: stream_close_failed topic=%s", topic)
        task = self._pollers.pop(topic, None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._on_feed_closed is not None:
            self._on_feed_closed(topic)
        logger.info("pubsub: feed_closed topic=%s", topic)

    async def _poll(self, topic: str) -> None:
        while True:
            try:
                messages = await self._poller(topic)
            except Exception as exc:
                logger.warning("pubsub: poll_failed topic=%s error=%s", topic, exc)
                messages = []
            for message in messages:
                self.publish(topic, message)
            await asyncio.sleep(self._poll_interval_seconds)
