from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class TokenInfo:
    address: str
    symbol: str
    decimals: int = 18


@dataclass(frozen=True)
class PoolKey:
    chain: str
    pool_address: str


@dataclass(frozen=True)
class Pool:
    id: int | None
    chain: str
    pool_address: str
    dex: str | None
    base_token: TokenInfo
    quote_token: TokenInfo
    price_usd: Decimal | None = None
    liquidity_usd: Decimal | None = None
    volume_24h: Decimal | None = None
    updated_at: datetime | None = None

    @property
    def key(self) -> PoolKey:
        return PoolKey(chain=self.chain, pool_address=self.pool_address)


@dataclass(frozen=True)
class PoolMarketInfo:
    pool: Pool
    liquidity_base: float | None
    liquidity_quote: float | None


@dataclass(frozen=True)
class QuotePrice:
    symbol: str
    price_usd: Decimal
    updated_at: datetime
