from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from app.api.deps import get_cached_trades_use_case, get_stream_trades_use_case
from app.api.schemas.trades import TradeResponse, TradesResponse
from app.application.dto.trades import GetCachedTradesInput
from app.application.use_cases.get_cached_trades import GetCachedTradesUseCase
from app.application.use_cases.stream_trades import StreamTradesUseCase
from app.domain.entities.trade import Trade
from app.domain.exceptions import ClientInputError

router = APIRouter()
logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0


def _to_response(trade: Trade) -> TradeResponse:
    return TradeResponse(
        tx_hash=trade.tx_hash,
        kind=trade.kind,
        price=str(trade.price),
        amount=str(trade.amount),
        volume_usd=str(trade.volume_usd),
        block_number=trade.block_number,
        timestamp=trade.timestamp,
    )


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


@router.get("/v1/trades", response_model=TradesResponse)
async def get_trades(
    chain_id: str,
    pool_address: str,
    limit: int = 50,
    use_case: GetCachedTradesUseCase = Depends(get_cached_trades_use_case),
):
    try:
        trades = await use_case.execute(
            GetCachedTradesInput(chain=chain_id, pool_address=pool_address, limit=limit)
        )
    except ClientInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return TradesResponse(trades=[_to_response(trade) for trade in trades])


@router.get("/v1/trades/stream")
async def stream_trades(
    request: Request,
    chain_id: str,
    pool_address: str,
    use_case: StreamTradesUseCase = Depends(get_stream_trades_use_case),
):
    queue: asyncio.Queue[Trade] = asyncio.Queue()
    try:
        initial, unsubscribe = await use_case.subscribe(
            chain=chain_id,
            pool_address=pool_address,
            callback=queue.put_nowait,
        )
    except ClientInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    async def _events():
        try:
            yield _sse({"type": "snapshot", "trades": [_to_response(trade).model_dump() for trade in initial]})
            while not await request.is_disconnected():
                try:
                    trade = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keepalive\n\n"
                    continue
                yield _sse({"type": "trade", "trade": _to_response(trade).model_dump()})
        finally:
            await unsubscribe()
            logger.info("trades_stream: closed chain=%s pool=%s", chain_id, pool_address)

    return StreamingResponse(
        _events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
