from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_resolve_depth_use_case
from app.api.schemas.liquidity_depth import (
    DepthLevelResponse,
    LiquidityDepthResponse,
    ReserveSummaryResponse,
)
from app.application.dto.depth import ResolveDepthInput
from app.application.use_cases.resolve_depth import ResolveDepthUseCase
from app.domain.entities.depth import NoDepthData
from app.domain.exceptions import ClientInputError

router = APIRouter()


@router.get("/v1/liquidity-depth", response_model=LiquidityDepthResponse)
async def get_liquidity_depth(
    chain_id: str,
    pool_address: str,
    price_usd: float | None = None,
    levels: int | None = None,
    force_refresh: bool = False,
    token0: str | None = None,
    token1: str | None = None,
    use_case: ResolveDepthUseCase = Depends(get_resolve_depth_use_case),
):
    try:
        result = await use_case.execute(
            ResolveDepthInput(
                chain=chain_id,
                pool_address=pool_address,
                price_hint=price_usd,
                levels=levels,
                force_refresh=force_refresh,
                token0=token0,
                token1=token1,
            )
        )
    except ClientInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if isinstance(result, NoDepthData):
        raise HTTPException(status_code=404, detail=result.reason)

    reserves = None
    if result.reserves is not None:
        reserves = ReserveSummaryResponse(
            base_amount=result.reserves.base_amount,
            quote_amount=result.reserves.quote_amount,
            base_symbol=result.reserves.base_symbol,
            quote_symbol=result.reserves.quote_symbol,
        )
    return LiquidityDepthResponse(
        source=result.source,
        current_price=result.current_price,
        base_symbol=result.base_symbol,
        quote_symbol=result.quote_symbol,
        bids=[DepthLevelResponse(price=level.price, liquidity=level.liquidity) for level in result.bids],
        asks=[DepthLevelResponse(price=level.price, liquidity=level.liquidity) for level in result.asks],
        reserves=reserves,
    )
