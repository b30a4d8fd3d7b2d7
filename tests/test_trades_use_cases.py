from __future__ import annotations

from decimal import Decimal

import pytest

from app.application.dto.trades import GetCachedTradesInput
from app.application.sync.pubsub import PubSubChannel
from app.application.use_cases.get_cached_trades import GetCachedTradesUseCase
from app.application.use_cases.stream_trades import (
    StreamTradesUseCase,
    TradePoller,
    parse_trades_topic,
    trades_topic,
)
from app.domain.entities.trade import TRADE_BUY, Trade
from app.domain.exceptions import ClientInputError


POOL = "0x" + "aa" * 20


def _trade(block: int) -> Trade:
    return Trade(
        tx_hash=f"0x{block:x}",
        kind=TRADE_BUY,
        price=Decimal("1"),
        amount=Decimal("1"),
        volume_usd=Decimal("1"),
        block_number=block,
        timestamp=block,
    )


class FakeOrchestrator:
    def __init__(self, trades: list[Trade]):
        self.trades = trades
        self.synced = 0

    async def sync(self, *, chain, pool_address, sync_type, force=False):
        self.synced += 1

    async def read(self, *, chain, pool_address, sync_type):
        return list(self.trades)


async def test_cached_trades_sync_then_limit():
    orchestrator = FakeOrchestrator([_trade(block) for block in range(10, 0, -1)])

    trades = await GetCachedTradesUseCase(orchestrator=orchestrator).execute(
        GetCachedTradesInput(chain="base", pool_address=POOL, limit=3)
    )

    assert orchestrator.synced == 1
    assert [trade.block_number for trade in trades] == [10, 9, 8]


async def test_cached_trades_limit_bounds():
    use_case = GetCachedTradesUseCase(orchestrator=FakeOrchestrator([]))

    with pytest.raises(ClientInputError):
        await use_case.execute(GetCachedTradesInput(chain="base", pool_address=POOL, limit=0))


def test_topic_round_trip():
    assert parse_trades_topic(trades_topic("base", POOL)) == ("base", POOL)
    with pytest.raises(ValueError):
        parse_trades_topic(f"depth:base:{POOL}")


async def test_poller_emits_only_unseen_trades_oldest_first():
    orchestrator = FakeOrchestrator([_trade(2), _trade(1)])
    poller = TradePoller(get_cached_trades=GetCachedTradesUseCase(orchestrator=orchestrator))
    topic = trades_topic("base", POOL)

    assert await poller(topic) == []
    orchestrator.trades = [_trade(4), _trade(3), _trade(2), _trade(1)]
    fresh = await poller(topic)

    assert [trade.block_number for trade in fresh] == [3, 4]
    assert await poller(topic) == []


async def test_stream_subscribe_returns_snapshot_and_unsubscribe():
    get_cached = GetCachedTradesUseCase(orchestrator=FakeOrchestrator([_trade(1)]))
    channel = PubSubChannel(poller=TradePoller(get_cached_trades=get_cached), poll_interval_seconds=60)
    use_case = StreamTradesUseCase(channel=channel, get_cached_trades=get_cached)
    received: list = []

    initial, unsubscribe = await use_case.subscribe(chain="base", pool_address=POOL, callback=received.append)
    topic = trades_topic("base", POOL)

    assert [trade.block_number for trade in initial] == [1]
    assert channel.subscriber_count(topic) == 1
    channel.publish(topic, _trade(2))
    assert received == [_trade(2)]
    await unsubscribe()
    assert channel.subscriber_count(topic) == 0


async def test_poller_forgets_topic_after_feed_closes():
    orchestrator = FakeOrchestrator([_trade(1)])
    poller = TradePoller(get_cached_trades=GetCachedTradesUseCase(orchestrator=orchestrator))
    channel = PubSubChannel(poller=poller, poll_interval_seconds=60, on_feed_closed=poller.forget)
    topic = trades_topic("base", POOL)

    unsubscribe = await channel.subscribe(topic, lambda message: None)
    await poller(topic)
    await unsubscribe()

    # A later subscriber starts from a fresh baseline instead of replaying the backlog.
    orchestrator.trades = [_trade(2), _trade(1)]
    assert await poller(topic) == []
    orchestrator.trades = [_trade(3), _trade(2), _trade(1)]
    assert [trade.block_number for trade in await poller(topic)] == [3]
