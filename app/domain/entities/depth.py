from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


DEPTH_SOURCE_CACHE = "cache"
DEPTH_SOURCE_RPC = "rpc"
DEPTH_SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class DepthLevel:
    price: float
    liquidity: float


@dataclass(frozen=True)
class DepthCurve:
    current_price: float
    bids: list[DepthLevel] = field(default_factory=list)
    asks: list[DepthLevel] = field(default_factory=list)

    def has_levels(self) -> bool:
        return bool(self.bids) or bool(self.asks)


@dataclass(frozen=True)
class ReserveSummary:
    base_amount: float
    quote_amount: float
    base_symbol: str
    quote_symbol: str


@dataclass(frozen=True)
class LiquiditySnapshot:
    id: int | None
    pool_id: int
    current_price: float
    bids: list[DepthLevel]
    asks: list[DepthLevel]
    base_symbol: str | None
    quote_symbol: str | None
    created_at: datetime


@dataclass(frozen=True)
class DepthResult:
    source: str
    current_price: float
    bids: list[DepthLevel]
    asks: list[DepthLevel]
    base_symbol: str | None = None
    quote_symbol: str | None = None
    reserves: ReserveSummary | None = None


@dataclass(frozen=True)
class NoDepthData:
    reason: str
