from __future__ import annotations

from pydantic import BaseModel, Field

from app.api.schemas.liquidity_depth import DepthLevelResponse


class LpPositionResponse(BaseModel):
    owner: str
    tick_lower: int
    tick_upper: int
    liquidity: str = Field(..., description="Liquidity magnitude as an integer string.")
    type: str
    tx_hash: str
    block_number: int
    timestamp: int
    amount0: str
    amount1: str


class PositionStatsResponse(BaseModel):
    total: int
    mints: int
    burns: int
    unique_lps: int


class LpDepthResponse(BaseModel):
    current_price: float
    bids: list[DepthLevelResponse]
    asks: list[DepthLevelResponse]


class LpPositionsResponse(BaseModel):
    positions: list[LpPositionResponse]
    stats: PositionStatsResponse
    source: str
    depth: LpDepthResponse | None = None
