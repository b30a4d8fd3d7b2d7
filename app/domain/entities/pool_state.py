from __future__ import annotations

from dataclasses import dataclass

from app.domain.entities.pool import TokenInfo


POOL_KIND_V2 = "v2"
POOL_KIND_V3 = "v3"
POOL_KIND_V4 = "v4"


@dataclass(frozen=True)
class TickNet:
    tick: int
    liquidity_net: int


@dataclass(frozen=True)
class PoolState:
    chain: str
    pool_address: str
    kind: str
    token0: TokenInfo
    token1: TokenInfo
    sqrt_price_x96: int | None = None
    tick: int | None = None
    liquidity: int | None = None
    tick_spacing: int | None = None
    ticks: tuple[TickNet, ...] = ()
    reserve0: int | None = None
    reserve1: int | None = None

    def reserve_amounts(self) -> tuple[float, float] | None:
        if self.reserve0 is None or self.reserve1 is None:
            return None
        return (
            self.reserve0 / 10**self.token0.decimals,
            self.reserve1 / 10**self.token1.decimals,
        )


@dataclass(frozen=True)
class TokenBalances:
    token0: TokenInfo
    token1: TokenInfo
    amount0: float
    amount1: float
