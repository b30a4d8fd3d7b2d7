from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Protocol

from app.domain.entities.depth import DepthCurve, LiquiditySnapshot
from app.domain.entities.lp_position import LpPosition, PositionStats
from app.domain.entities.pool import Pool, PoolKey, QuotePrice
from app.domain.entities.sync import SyncStatus
from app.domain.entities.trade import Trade


class PoolStorePort(Protocol):
    def get_pool(self, *, chain: str, pool_address: str) -> Pool | None:
        ...

    def upsert_pool(self, *, pool: Pool) -> Pool:
        ...

    def ensure_pool(self, *, chain: str, pool_address: str) -> Pool:
        ...

    def list_recent_pools(self, *, since: datetime) -> list[PoolKey]:
        ...


class SnapshotStorePort(Protocol):
    def get_latest_snapshot(self, *, pool_id: int) -> LiquiditySnapshot | None:
        ...

    def add_snapshot(
        self,
        *,
        pool_id: int,
        curve: DepthCurve,
        base_symbol: str | None,
        quote_symbol: str | None,
        keep: int,
    ) -> None:
        ...


class LpPositionStorePort(Protocol):
    def insert_positions(self, *, pool_id: int, positions: list[LpPosition]) -> int:
        ...

    def list_positions(
        self,
        *,
        pool_id: int,
        limit: int,
        tick_lower: int | None = None,
        tick_upper: int | None = None,
    ) -> list[LpPosition]:
        ...

    def get_position_stats(self, *, pool_id: int) -> PositionStats:
        ...


class TradeStorePort(Protocol):
    def insert_trades(self, *, chain: str, pool_address: str, trades: list[Trade]) -> int:
        ...

    def list_trades(self, *, chain: str, pool_address: str, limit: int) -> list[Trade]:
        ...

    def prune_trades(self, *, chain: str, pool_address: str, keep: int) -> int:
        ...


class SyncStatusStorePort(Protocol):
    def get_status(self, *, chain: str, pool_address: str, sync_type: str) -> SyncStatus | None:
        ...

    def save_status(
        self,
        *,
        chain: str,
        pool_address: str,
        sync_type: str,
        last_block: int | None,
        updated_at: datetime,
    ) -> None:
        ...


class QuotePriceStorePort(Protocol):
    def get_quote_price(self, *, symbol: str) -> QuotePrice | None:
        ...

    def save_quote_price(self, *, symbol: str, price_usd: Decimal, updated_at: datetime) -> None:
        ...
