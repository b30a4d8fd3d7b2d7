from __future__ import annotations

from dataclasses import dataclass

from app.domain.entities.depth import DepthCurve
from app.domain.entities.lp_position import LpPosition, PositionStats


@dataclass(frozen=True)
class GetLpPositionsInput:
    chain: str
    pool_address: str
    limit: int = 50
    tick_lower: int | None = None
    tick_upper: int | None = None
    current_tick: int | None = None
    price_usd: float | None = None
    levels: int | None = None


@dataclass(frozen=True)
class GetLpPositionsOutput:
    positions: list[LpPosition]
    stats: PositionStats
    source: str
    depth: DepthCurve | None = None
