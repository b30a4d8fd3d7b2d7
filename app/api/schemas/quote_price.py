from __future__ import annotations

from pydantic import BaseModel


class QuotePriceResponse(BaseModel):
    symbol: str
    price_usd: str
    source: str
