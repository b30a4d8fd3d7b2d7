from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class GetQuotePriceInput:
    symbol: str


@dataclass(frozen=True)
class GetQuotePriceOutput:
    symbol: str
    price_usd: Decimal
    source: str
