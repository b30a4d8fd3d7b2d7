from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.application.dto.sync import SyncPoolInput
from app.application.use_cases.sync_pool import SyncPoolUseCase
from app.domain.entities.pool import Pool, PoolKey, PoolMarketInfo, TokenInfo
from app.domain.entities.sync import SYNC_STATE_DEGRADED, SYNC_STATE_SYNCED, SyncOutcome
from app.domain.exceptions import ProviderError, UnsupportedChainError


NOW = datetime(2025, 1, 1, tzinfo=timezone.utc)
POOL = "0x" + "aa" * 20
BASE = TokenInfo(address="0x" + "01" * 20, symbol="PEPE", decimals=9)
QUOTE = TokenInfo(address="0x" + "02" * 20, symbol="USDC", decimals=6)


class FakePoolStore:
    def __init__(self, existing: Pool | None = None, recent: list[PoolKey] | None = None):
        self.existing = existing
        self.recent = recent or []
        self.upserts: list[Pool] = []
        self.since = None

    def get_pool(self, *, chain, pool_address):
        return self.existing

    def upsert_pool(self, *, pool):
        self.upserts.append(pool)
        return replace(pool, id=1)

    def list_recent_pools(self, *, since):
        self.since = since
        return self.recent


class FakePoolInfo:
    def __init__(self, market: PoolMarketInfo | None | Exception):
        self.market = market

    async def fetch_pool_info(self, *, chain, pool_address):
        if isinstance(self.market, Exception):
            raise self.market
        return self.market


class FakeOrchestrator:
    sync_types = ["trades", "lp_positions"]

    def __init__(self, outcomes: dict[str, SyncOutcome] | None = None):
        self.outcomes = outcomes or {}
        self.calls: list[tuple[str, str, bool]] = []

    async def sync(self, *, chain, pool_address, sync_type, force=False):
        self.calls.append((pool_address, sync_type, force))
        return self.outcomes.get(sync_type, SyncOutcome(state=SYNC_STATE_SYNCED, fetched=2, stored=2))


class FakeResolveDepth:
    def __init__(self, refreshed: bool = True):
        self.refreshed = refreshed
        self.calls: list[str] = []

    async def refresh_snapshot(self, *, chain, pool_address):
        self.calls.append(pool_address)
        return self.refreshed


def _market() -> PoolMarketInfo:
    return PoolMarketInfo(
        pool=Pool(
            id=None,
            chain="base",
            pool_address=POOL,
            dex="uniswap",
            base_token=TokenInfo(address=BASE.address, symbol="PEPE"),
            quote_token=TokenInfo(address=QUOTE.address, symbol="USDC"),
            price_usd=Decimal("0.01"),
        ),
        liquidity_base=None,
        liquidity_quote=None,
    )


def _use_case(*, pool_store=None, pool_info=None, orchestrator=None, resolve_depth=None, **kwargs):
    return SyncPoolUseCase(
        pool_store=pool_store or FakePoolStore(),
        pool_info_source=pool_info or FakePoolInfo(_market()),
        orchestrator=orchestrator or FakeOrchestrator(),
        resolve_depth=resolve_depth or FakeResolveDepth(),
        clock=lambda: NOW,
        **kwargs,
    )


async def test_sync_runs_metadata_depth_and_every_stream():
    orchestrator = FakeOrchestrator()

    result = await _use_case(orchestrator=orchestrator).execute(
        SyncPoolInput(chain="Base", pool_address=POOL.upper().replace("0X", "0x"), force=True)
    )

    assert result.success
    assert result.count == 1 + 1 + 2 + 2
    assert orchestrator.calls == [(POOL, "trades", True), (POOL, "lp_positions", True)]


async def test_market_refresh_keeps_stored_decimals():
    existing = Pool(id=1, chain="base", pool_address=POOL, dex="uniswap", base_token=BASE, quote_token=QUOTE)
    pool_store = FakePoolStore(existing)

    await _use_case(pool_store=pool_store).execute(SyncPoolInput(chain="base", pool_address=POOL))

    stored = pool_store.upserts[0]
    assert stored.base_token.decimals == 9
    assert stored.quote_token.decimals == 6
    assert stored.price_usd == Decimal("0.01")


async def test_partial_failures_are_reported():
    orchestrator = FakeOrchestrator({"lp_positions": SyncOutcome(state=SYNC_STATE_DEGRADED, error="dune failed")})

    result = await _use_case(
        pool_info=FakePoolInfo(ProviderError("dexscreener: HTTP 404")),
        orchestrator=orchestrator,
    ).execute(SyncPoolInput(chain="base", pool_address=POOL))

    assert not result.success
    assert "pool_info" in result.error
    assert "lp_positions: dune failed" in result.error
    assert result.count == 1 + 2


async def test_unsupported_chain_is_rejected():
    with pytest.raises(UnsupportedChainError):
        await _use_case().execute(SyncPoolInput(chain="solana", pool_address=POOL))


async def test_targets_merge_watched_and_recent_pools():
    other = "0x" + "cc" * 20
    pool_store = FakePoolStore(
        recent=[PoolKey(chain="base", pool_address=POOL), PoolKey(chain="ethereum", pool_address=other)]
    )
    use_case = _use_case(
        pool_store=pool_store,
        watched_pools=[PoolKey(chain="base", pool_address=POOL.upper().replace("0X", "0x"))],
        recent_pools_seconds=3600,
    )

    targets = await use_case.list_targets()

    assert targets == [
        PoolKey(chain="base", pool_address=POOL),
        PoolKey(chain="ethereum", pool_address=other),
    ]
    assert pool_store.since == datetime(2024, 12, 31, 23, tzinfo=timezone.utc)


async def test_sync_all_counts_failed_pools():
    orchestrator = FakeOrchestrator({"trades": SyncOutcome(state=SYNC_STATE_DEGRADED, error="rpc down")})
    use_case = _use_case(
        orchestrator=orchestrator,
        watched_pools=[PoolKey(chain="base", pool_address=POOL), PoolKey(chain="solana", pool_address=POOL)],
    )

    result = await use_case.sync_all()

    assert not result.success
    assert result.error == "2 pool(s) failed"
