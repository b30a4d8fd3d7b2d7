from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


TRADE_BUY = "buy"
TRADE_SELL = "sell"


@dataclass(frozen=True)
class Trade:
    tx_hash: str
    kind: str
    price: Decimal
    amount: Decimal
    volume_usd: Decimal
    block_number: int
    timestamp: int
