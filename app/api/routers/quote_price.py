from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_quote_price_use_case
from app.api.schemas.quote_price import QuotePriceResponse
from app.application.dto.quote_price import GetQuotePriceInput
from app.application.use_cases.get_quote_price import GetQuotePriceUseCase
from app.domain.exceptions import ClientInputError

router = APIRouter()


@router.get("/v1/quote-price", response_model=QuotePriceResponse)
async def get_quote_price(
    symbol: str,
    use_case: GetQuotePriceUseCase = Depends(get_quote_price_use_case),
):
    try:
        result = await use_case.execute(GetQuotePriceInput(symbol=symbol))
    except ClientInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return QuotePriceResponse(symbol=result.symbol, price_usd=str(result.price_usd), source=result.source)
