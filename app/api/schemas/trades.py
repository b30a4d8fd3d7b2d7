from __future__ import annotations

from pydantic import BaseModel


class TradeResponse(BaseModel):
    tx_hash: str
    kind: str
    price: str
    amount: str
    volume_usd: str
    block_number: int
    timestamp: int


class TradesResponse(BaseModel):
    trades: list[TradeResponse]
