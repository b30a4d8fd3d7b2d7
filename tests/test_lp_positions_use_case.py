from __future__ import annotations

from decimal import Decimal

import pytest

from app.application.dto.lp_positions import GetLpPositionsInput
from app.application.use_cases.get_lp_positions import GetLpPositionsUseCase
from app.domain.entities.lp_position import LP_MINT, LpPosition, PositionStats
from app.domain.entities.pool import Pool, TokenInfo
from app.domain.exceptions import ClientInputError


POOL = "0x" + "aa" * 20
LIQUIDITY = 10**21


def _position(lower: int, upper: int) -> LpPosition:
    return LpPosition(
        owner="0x1",
        tick_lower=lower,
        tick_upper=upper,
        liquidity=LIQUIDITY,
        type=LP_MINT,
        tx_hash=f"0x{lower}{upper}",
        block_number=1,
        timestamp=1,
    )


class FakePoolStore:
    def __init__(self, pool: Pool | None):
        self.pool = pool

    def get_pool(self, *, chain, pool_address):
        return self.pool


class FakePositionStore:
    def __init__(self, positions: list[LpPosition]):
        self.positions = positions
        self.list_calls: list[dict] = []

    def list_positions(self, *, pool_id, limit, tick_lower=None, tick_upper=None):
        self.list_calls.append({"limit": limit, "tick_lower": tick_lower, "tick_upper": tick_upper})
        return self.positions[:limit]

    def get_position_stats(self, *, pool_id):
        return PositionStats(total=len(self.positions), mints=len(self.positions), burns=0, unique_lps=1)


class FakeOrchestrator:
    def __init__(self, history: list[LpPosition]):
        self.history = history
        self.synced: list[str] = []

    async def sync(self, *, chain, pool_address, sync_type, force=False):
        self.synced.append(sync_type)

    async def read(self, *, chain, pool_address, sync_type):
        return self.history


class FakeQuotePrices:
    async def price_usd(self, symbol):
        return 2.0


def _pool() -> Pool:
    return Pool(
        id=3,
        chain="base",
        pool_address=POOL,
        dex="uniswap",
        base_token=TokenInfo(address="0x" + "01" * 20, symbol="PEPE"),
        quote_token=TokenInfo(address="0x" + "02" * 20, symbol="WETH"),
        price_usd=Decimal("2"),
    )


def _use_case(pool: Pool | None, positions: list[LpPosition]) -> tuple[GetLpPositionsUseCase, FakePositionStore, FakeOrchestrator]:
    store = FakePositionStore(positions)
    orchestrator = FakeOrchestrator(positions)
    use_case = GetLpPositionsUseCase(
        pool_store=FakePoolStore(pool),
        position_store=store,
        orchestrator=orchestrator,
        quote_prices=FakeQuotePrices(),
    )
    return use_case, store, orchestrator


async def test_lists_positions_after_sync():
    use_case, store, orchestrator = _use_case(_pool(), [_position(-600, 600), _position(600, 1200)])

    result = await use_case.execute(
        GetLpPositionsInput(chain="base", pool_address=POOL, limit=1, tick_lower=-60, tick_upper=60)
    )

    assert orchestrator.synced == ["lp_positions"]
    assert len(result.positions) == 1
    assert result.stats.total == 2
    assert result.source == "database"
    assert result.depth is None
    assert store.list_calls == [{"limit": 1, "tick_lower": -60, "tick_upper": 60}]


async def test_unknown_pool_returns_empty_result():
    use_case, _store, _orchestrator = _use_case(None, [])

    result = await use_case.execute(GetLpPositionsInput(chain="base", pool_address=POOL))

    assert result.positions == []
    assert result.stats.total == 0
    assert result.source == "none"


async def test_current_tick_replays_depth_from_history():
    use_case, _store, _orchestrator = _use_case(_pool(), [_position(-600, 600)])

    result = await use_case.execute(GetLpPositionsInput(chain="base", pool_address=POOL, current_tick=0))

    assert result.depth is not None
    assert len(result.depth.bids) == 1
    assert len(result.depth.asks) == 1
    assert result.depth.current_price == 2.0


@pytest.mark.parametrize(
    "command",
    [
        GetLpPositionsInput(chain="base", pool_address=POOL, limit=0),
        GetLpPositionsInput(chain="base", pool_address=POOL, limit=5000),
        GetLpPositionsInput(chain="base", pool_address=POOL, tick_lower=60, tick_upper=-60),
        GetLpPositionsInput(chain="base", pool_address="not-an-address"),
    ],
)
async def test_invalid_input_is_rejected(command):
    use_case, _store, orchestrator = _use_case(_pool(), [])

    with pytest.raises(ClientInputError):
        await use_case.execute(command)
    assert orchestrator.synced == []
