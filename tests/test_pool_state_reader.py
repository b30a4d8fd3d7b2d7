from __future__ import annotations

from app.domain.entities.pool_state import POOL_KIND_V2, POOL_KIND_V3, POOL_KIND_V4, TickNet
from app.infrastructure.clients.pool_state_reader import (
    PoolStateReader,
    bitmap_word_range,
    initialized_ticks,
)


POOL = "0x" + "aa" * 20
WIDE_ID = "0x" + "bb" * 32
TOKEN0 = "0x" + "01" * 20
TOKEN1 = "0x" + "02" * 20
SYMBOLS = {TOKEN0: "PEPE", TOKEN1: "WETH"}


class FakeRpc:
    """Answers multicalls by function name."""

    def __init__(self, *, v3: bool = True, reserves=(10**24, 5 * 10**18)):
        self.v3 = v3
        self.reserves = reserves
        self.functions: list[str] = []

    async def multicall(self, *, chain, calls):
        return [self._answer(call) for call in calls]

    def _answer(self, call):
        self.functions.append(call.function)
        name = call.function
        if name == "token0":
            return (TOKEN0,)
        if name == "token1":
            return (TOKEN1,)
        if name == "decimals":
            return (18,)
        if name == "symbol":
            return (SYMBOLS[call.target],)
        if name in ("slot0", "tickSpacing", "liquidity") and not self.v3:
            return None
        if name == "slot0":
            return (2**96, 5)
        if name == "getSlot0":
            return (2**96, 5, 0, 3000)
        if name in ("liquidity", "getLiquidity"):
            return (10**20,)
        if name == "tickSpacing":
            return (60,)
        if name == "getReserves":
            return self.reserves
        if name in ("tickBitmap", "getTickBitmap"):
            word = call.args[-1]
            if word == 0:
                return (1 << 1,)
            if word == -1:
                return (1 << 255,)
            return (0,)
        if name in ("ticks", "getTickLiquidity"):
            tick = call.args[-1]
            return (10**20, 10**20 if tick < 0 else -(10**20))
        if name == "balanceOf":
            return (3 * 10**18,)
        raise AssertionError(f"unexpected call {name}")


def test_bitmap_word_range_and_initialized_ticks():
    assert bitmap_word_range(tick=5, tick_spacing=60, words=1) == [-1, 0, 1]
    assert bitmap_word_range(tick=-15400, tick_spacing=60, words=0) == [-2]
    assert initialized_ticks(word=0, bitmap=(1 << 1) | (1 << 3), tick_spacing=60) == [60, 180]
    assert initialized_ticks(word=-1, bitmap=1 << 255, tick_spacing=10) == [-10]


async def test_v3_pool_reads_price_and_nearby_ticks():
    state = await PoolStateReader(rpc=FakeRpc(), bitmap_words=1).read_pool_state(chain="base", pool_address=POOL)

    assert state.kind == POOL_KIND_V3
    assert (state.tick, state.liquidity, state.tick_spacing) == (5, 10**20, 60)
    assert state.token0.symbol == "PEPE"
    assert state.ticks == (TickNet(tick=-60, liquidity_net=10**20), TickNet(tick=60, liquidity_net=-(10**20)))


async def test_v2_pool_reads_reserves():
    state = await PoolStateReader(rpc=FakeRpc(v3=False)).read_pool_state(chain="base", pool_address=POOL)

    assert state.kind == POOL_KIND_V2
    assert state.reserve_amounts() == (1_000_000.0, 5.0)


async def test_v4_pool_needs_token_pair():
    reader = PoolStateReader(rpc=FakeRpc(), bitmap_words=1)

    assert await reader.read_pool_state(chain="base", pool_address=WIDE_ID) is None
    state = await reader.read_pool_state(chain="base", pool_address=WIDE_ID, token0=TOKEN1, token1=TOKEN0)

    assert state.kind == POOL_KIND_V4
    assert state.token0.address == TOKEN0
    assert state.tick_spacing == 60
    assert [item.tick for item in state.ticks] == [-60, 60]


async def test_v4_pool_on_chain_without_state_view():
    state = await PoolStateReader(rpc=FakeRpc()).read_pool_state(
        chain="optimism", pool_address=WIDE_ID, token0=TOKEN0, token1=TOKEN1
    )

    assert state is None


async def test_token_balances():
    balances = await PoolStateReader(rpc=FakeRpc()).read_token_balances(chain="base", pool_address=POOL)

    assert balances.token1.symbol == "WETH"
    assert (balances.amount0, balances.amount1) == (3.0, 3.0)
