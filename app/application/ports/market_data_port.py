from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from app.application.dto.sync import FetchBatch
from app.domain.entities.pool import Pool, PoolMarketInfo


class PoolInfoPort(Protocol):
    async def fetch_pool_info(self, *, chain: str, pool_address: str) -> PoolMarketInfo | None:
        ...


class TradeSourcePort(Protocol):
    async def fetch_trades(
        self,
        *,
        chain: str,
        pool_address: str,
        from_block: int,
        to_block: int,
        pool: Pool | None = None,
    ) -> FetchBatch:
        ...


class LpEventSourcePort(Protocol):
    def supports(self, *, chain: str) -> bool:
        ...

    async def fetch_lp_events(
        self,
        *,
        chain: str,
        pool_address: str,
        from_block: int,
        to_block: int,
    ) -> FetchBatch:
        ...


class QuotePriceSourcePort(Protocol):
    async def fetch_usd_price(self, *, symbol: str) -> Decimal | None:
        ...
