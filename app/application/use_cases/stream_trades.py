from __future__ import annotations

from collections.abc import Awaitable, Callable
import logging

from app.application.dto.trades import GetCachedTradesInput
from app.application.sync.pubsub import PubSubChannel
from app.application.use_cases.get_cached_trades import GetCachedTradesUseCase
from app.domain.entities.trade import Trade
from app.domain.services.chains import get_chain_config
from app.domain.services.pool_identity import normalize_pool_address


logger = logging.getLogger(__name__)

TRADES_TOPIC_PREFIX = "trades"
POLL_WINDOW = 100


def trades_topic(chain: str, pool_address: str) -> str:
    return f"{TRADES_TOPIC_PREFIX}:{chain}:{pool_address}"


def parse_trades_topic(topic: str) -> tuple[str, str]:
    prefix, chain, pool_address = topic.split(":", 2)
    if prefix != TRADES_TOPIC_PREFIX:
        raise ValueError(f"Not a trades topic: {topic}")
    return chain, pool_address


class TradePoller:
    """Polls the trade cache for a topic and yields only trades not seen before."""

    def __init__(self, *, get_cached_trades: GetCachedTradesUseCase, window: int = POLL_WINDOW):
        self._get_cached_trades = get_cached_trades
        self._window = window
        self._seen: dict[str, set[str]] = {}

    async def __call__(self, topic: str) -> list[Trade]:
        chain, pool_address = parse_trades_topic(topic)
        trades = await self._get_cached_trades.execute(
            GetCachedTradesInput(chain=chain, pool_address=pool_address, limit=self._window)
        )
        seen = self._seen.get(topic)
        current = {trade.tx_hash for trade in trades}
        self._seen[topic] = current
        if seen is None:
            return []
        fresh = [trade for trade in trades if trade.tx_hash not in seen]
        return sorted(fresh, key=lambda trade: (trade.block_number, trade.timestamp))

    def forget(self, topic: str) -> None:
        self._seen.pop(topic, None)


class StreamTradesUseCase:
    def __init__(self, *, channel: PubSubChannel, get_cached_trades: GetCachedTradesUseCase):
        self._channel = channel
        self._get_cached_trades = get_cached_trades

    async def subscribe(
        self,
        *,
        chain: str,
        pool_address: str,
        callback: Callable[[Trade], None],
    ) -> tuple[list[Trade], Callable[[], Awaitable[None]]]:
        """Returns the current trades plus an unsubscribe coroutine for live updates."""
        chain = get_chain_config(chain).key
        pool_address = normalize_pool_address(pool_address)
        initial = await self._get_cached_trades.execute(
            GetCachedTradesInput(chain=chain, pool_address=pool_address, limit=POLL_WINDOW)
        )
        topic = trades_topic(chain, pool_address)
        unsubscribe = await self._channel.subscribe(topic, callback)
        logger.info(
            "stream_trades: subscribed topic=%s subscribers=%s",
            topic,
            self._channel.subscriber_count(topic),
        )
        return initial, unsubscribe
