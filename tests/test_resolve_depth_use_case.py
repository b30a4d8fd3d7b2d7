from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.application.dto.depth import ResolveDepthInput
from app.application.sync.background import BackgroundTaskRunner
from app.application.use_cases.get_quote_price import GetQuotePriceUseCase
from app.application.use_cases.resolve_depth import ResolveDepthUseCase
from app.domain.entities.depth import DepthLevel, LiquiditySnapshot, NoDepthData
from app.domain.entities.pool import Pool, PoolMarketInfo, TokenInfo
from app.domain.entities.pool_state import POOL_KIND_V2, PoolState, TokenBalances
from app.domain.exceptions import ClientInputError, MissingTokenPairError, TransportError


NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)
POOL = "0x" + "aa" * 20
WIDE_ID = "0x" + "bb" * 32
PEPE = TokenInfo(address="0x" + "01" * 20, symbol="PEPE", decimals=18)
WETH = TokenInfo(address="0x" + "02" * 20, symbol="WETH", decimals=18)


class FakePoolStore:
    def __init__(self, pool: Pool | None = None):
        self.pool = pool
        self.upserts: list[Pool] = []

    def get_pool(self, *, chain, pool_address):
        return self.pool

    def upsert_pool(self, *, pool):
        self.upserts.append(pool)
        self.pool = replace(pool, id=1)
        return self.pool


class FakeSnapshotStore:
    def __init__(self, snapshot: LiquiditySnapshot | None = None):
        self.snapshot = snapshot
        self.added: list[dict] = []

    def get_latest_snapshot(self, *, pool_id):
        return self.snapshot

    def add_snapshot(self, *, pool_id, curve, base_symbol, quote_symbol, keep):
        self.added.append({"pool_id": pool_id, "curve": curve, "base_symbol": base_symbol, "keep": keep})


class FakeStateReader:
    def __init__(self, state=None, balances=None):
        self.state = state
        self.balances = balances
        self.state_calls = 0
        self.balance_calls = 0

    async def read_pool_state(self, *, chain, pool_address, token0=None, token1=None):
        self.state_calls += 1
        if isinstance(self.state, Exception):
            raise self.state
        return self.state

    async def read_token_balances(self, *, chain, pool_address):
        self.balance_calls += 1
        return self.balances


class FakePoolInfo:
    def __init__(self, market: PoolMarketInfo | None = None):
        self.market = market
        self.calls = 0

    async def fetch_pool_info(self, *, chain, pool_address):
        self.calls += 1
        return self.market


class FakeQuoteStore:
    def get_quote_price(self, *, symbol):
        return None

    def save_quote_price(self, *, symbol, price_usd, updated_at):
        return None


class FakeQuoteSource:
    async def fetch_usd_price(self, *, symbol):
        return Decimal("2000")


def _use_case(*, pool_store=None, snapshot_store=None, state_reader=None, pool_info=None, background=None):
    return ResolveDepthUseCase(
        pool_store=pool_store or FakePoolStore(),
        snapshot_store=snapshot_store or FakeSnapshotStore(),
        state_reader=state_reader or FakeStateReader(),
        pool_info_source=pool_info or FakePoolInfo(),
        quote_prices=GetQuotePriceUseCase(store=FakeQuoteStore(), source=FakeQuoteSource(), ttl_seconds=60),
        background=background or BackgroundTaskRunner(),
        levels=10,
        step_bps=100,
        decay=15,
        snapshot_max_age_seconds=3600,
        snapshot_retention=5,
        clock=lambda: NOW,
    )


def _stored_pool() -> Pool:
    return Pool(id=9, chain="base", pool_address=POOL, dex="uniswap", base_token=PEPE, quote_token=WETH)


def _snapshot(*, age_seconds: float) -> LiquiditySnapshot:
    return LiquiditySnapshot(
        id=1,
        pool_id=9,
        current_price=0.02,
        bids=[DepthLevel(price=0.0198, liquidity=100.0)],
        asks=[DepthLevel(price=0.0202, liquidity=80.0)],
        base_symbol="PEPE",
        quote_symbol="WETH",
        created_at=NOW - timedelta(seconds=age_seconds),
    )


def _v2_state() -> PoolState:
    return PoolState(
        chain="base",
        pool_address=POOL,
        kind=POOL_KIND_V2,
        token0=PEPE,
        token1=WETH,
        reserve0=1_000_000 * 10**18,
        reserve1=10 * 10**18,
    )


async def test_cache_hit_makes_no_rpc_calls():
    state_reader = FakeStateReader(_v2_state())
    pool_info = FakePoolInfo()
    use_case = _use_case(
        pool_store=FakePoolStore(_stored_pool()),
        snapshot_store=FakeSnapshotStore(_snapshot(age_seconds=30)),
        state_reader=state_reader,
        pool_info=pool_info,
    )

    result = await use_case.execute(ResolveDepthInput(chain="base", pool_address=POOL.upper().replace("0X", "0x")))

    assert result.source == "cache"
    assert result.asks[0].liquidity == 80.0
    assert state_reader.state_calls == 0
    assert pool_info.calls == 0


async def test_wide_pool_id_without_tokens_fails_before_io():
    state_reader = FakeStateReader()
    pool_store = FakePoolStore()

    with pytest.raises(MissingTokenPairError):
        await _use_case(state_reader=state_reader, pool_store=pool_store).execute(
            ResolveDepthInput(chain="base", pool_address=WIDE_ID, token0=PEPE.address)
        )
    assert state_reader.state_calls == 0


@pytest.mark.parametrize(
    "command",
    [
        ResolveDepthInput(chain="base", pool_address="0x1234"),
        ResolveDepthInput(chain="solana", pool_address=POOL),
        ResolveDepthInput(chain="base", pool_address=POOL, levels=-1),
        ResolveDepthInput(chain="base", pool_address=POOL, price_hint=-2),
    ],
)
async def test_invalid_input_is_client_error(command):
    with pytest.raises(ClientInputError):
        await _use_case().execute(command)


async def test_expired_snapshot_goes_live_and_writes_back():
    pool_store = FakePoolStore(_stored_pool())
    snapshot_store = FakeSnapshotStore(_snapshot(age_seconds=7200))
    background = BackgroundTaskRunner()
    use_case = _use_case(
        pool_store=pool_store,
        snapshot_store=snapshot_store,
        state_reader=FakeStateReader(_v2_state()),
        background=background,
    )

    result = await use_case.execute(ResolveDepthInput(chain="base", pool_address=POOL))
    await background.drain()

    assert result.source == "rpc"
    assert result.base_symbol == "PEPE"
    assert result.current_price == pytest.approx(0.02)
    assert len(result.bids) == 10 and len(result.asks) == 10
    assert pool_store.upserts[0].dex == "uniswap_v2"
    assert snapshot_store.added[0]["pool_id"] == 1
    assert snapshot_store.added[0]["keep"] == 5


async def test_wide_pool_result_is_not_written_back():
    snapshot_store = FakeSnapshotStore()
    background = BackgroundTaskRunner()
    use_case = _use_case(
        snapshot_store=snapshot_store,
        state_reader=FakeStateReader(replace(_v2_state(), pool_address=WIDE_ID)),
        background=background,
    )

    result = await use_case.execute(
        ResolveDepthInput(chain="base", pool_address=WIDE_ID, token0=PEPE.address, token1=WETH.address)
    )

    assert result.source == "rpc"
    assert background.pending == 0
    assert snapshot_store.added == []


async def test_state_failure_falls_back_to_token_balances():
    state_reader = FakeStateReader(
        TransportError("rpc down"),
        balances=TokenBalances(token0=PEPE, token1=WETH, amount0=1000.0, amount1=2.0),
    )

    result = await _use_case(state_reader=state_reader).execute(
        ResolveDepthInput(chain="base", pool_address=POOL, price_hint=0.004)
    )

    assert result.source == "fallback"
    assert result.bids == [] and result.asks == []
    assert (result.reserves.base_amount, result.reserves.quote_amount) == (1000.0, 2.0)
    assert result.current_price == 0.004


async def test_market_reserves_are_the_last_fallback():
    market = PoolMarketInfo(
        pool=Pool(id=None, chain="base", pool_address=POOL, dex="uniswap", base_token=PEPE, quote_token=WETH),
        liquidity_base=5000.0,
        liquidity_quote=1.5,
    )

    result = await _use_case(pool_info=FakePoolInfo(market)).execute(ResolveDepthInput(chain="base", pool_address=POOL))

    assert result.source == "fallback"
    assert result.reserves.quote_symbol == "WETH"


async def test_no_source_returns_no_data():
    result = await _use_case().execute(ResolveDepthInput(chain="base", pool_address=POOL))

    assert isinstance(result, NoDepthData)


async def test_refresh_snapshot_skips_wide_pool_with_unknown_tokens():
    state_reader = FakeStateReader(_v2_state())

    assert not await _use_case(state_reader=state_reader).refresh_snapshot(chain="base", pool_address=WIDE_ID)
    assert state_reader.state_calls == 0
