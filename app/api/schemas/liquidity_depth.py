from __future__ import annotations

from pydantic import BaseModel, Field


class DepthLevelResponse(BaseModel):
    price: float = Field(..., description="USD price of the level.")
    liquidity: float = Field(..., description="USD value available at the level.")


class ReserveSummaryResponse(BaseModel):
    base_amount: float
    quote_amount: float
    base_symbol: str
    quote_symbol: str


class LiquidityDepthResponse(BaseModel):
    source: str = Field(..., description="cache, rpc or fallback.")
    current_price: float
    base_symbol: str | None = None
    quote_symbol: str | None = None
    bids: list[DepthLevelResponse]
    asks: list[DepthLevelResponse]
    reserves: ReserveSummaryResponse | None = None
