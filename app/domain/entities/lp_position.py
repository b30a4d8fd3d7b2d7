from __future__ import annotations

from dataclasses import dataclass


LP_MINT = "mint"
LP_BURN = "burn"


@dataclass(frozen=True)
class LpEvent:
    """Raw liquidity change as delivered by a source; the delta is still signed text."""

    owner: str
    tick_lower: int
    tick_upper: int
    liquidity_delta: str
    tx_hash: str
    block_number: int
    timestamp: int
    amount0: str = "0"
    amount1: str = "0"


@dataclass(frozen=True)
class LpPosition:
    owner: str
    tick_lower: int
    tick_upper: int
    liquidity: int
    type: str
    tx_hash: str
    block_number: int
    timestamp: int
    amount0: str = "0"
    amount1: str = "0"

    @property
    def key(self) -> tuple[str, int, int, str]:
        return (self.tx_hash.lower(), self.tick_lower, self.tick_upper, self.type)


@dataclass(frozen=True)
class PositionStats:
    total: int
    mints: int
    burns: int
    unique_lps: int


@dataclass(frozen=True)
class ReplayBatch:
    positions: list[LpPosition]
    errors: int
