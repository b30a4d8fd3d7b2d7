from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_lp_positions_use_case
from app.api.schemas.liquidity_depth import DepthLevelResponse
from app.api.schemas.lp_positions import (
    LpDepthResponse,
    LpPositionResponse,
    LpPositionsResponse,
    PositionStatsResponse,
)
from app.application.dto.lp_positions import GetLpPositionsInput
from app.application.use_cases.get_lp_positions import GetLpPositionsUseCase
from app.domain.exceptions import ClientInputError

router = APIRouter()


@router.get("/v1/lp-positions", response_model=LpPositionsResponse)
async def get_lp_positions(
    chain_id: str,
    pool_address: str,
    limit: int = 50,
    tick_lower: int | None = None,
    tick_upper: int | None = None,
    current_tick: int | None = None,
    price_usd: float | None = None,
    levels: int | None = None,
    use_case: GetLpPositionsUseCase = Depends(get_lp_positions_use_case),
):
    try:
        result = await use_case.execute(
            GetLpPositionsInput(
                chain=chain_id,
                pool_address=pool_address,
                limit=limit,
                tick_lower=tick_lower,
                tick_upper=tick_upper,
                current_tick=current_tick,
                price_usd=price_usd,
                levels=levels,
            )
        )
    except ClientInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    depth = None
    if result.depth is not None:
        depth = LpDepthResponse(
            current_price=result.depth.current_price,
            bids=[DepthLevelResponse(price=level.price, liquidity=level.liquidity) for level in result.depth.bids],
            asks=[DepthLevelResponse(price=level.price, liquidity=level.liquidity) for level in result.depth.asks],
        )
    return LpPositionsResponse(
        positions=[
            LpPositionResponse(
                owner=position.owner,
                tick_lower=position.tick_lower,
                tick_upper=position.tick_upper,
                liquidity=str(position.liquidity),
                type=position.type,
                tx_hash=position.tx_hash,
                block_number=position.block_number,
                timestamp=position.timestamp,
                amount0=position.amount0,
                amount1=position.amount1,
            )
            for position in result.positions
        ],
        stats=PositionStatsResponse(
            total=result.stats.total,
            mints=result.stats.mints,
            burns=result.stats.burns,
            unique_lps=result.stats.unique_lps,
        ),
        source=result.source,
        depth=depth,
    )
