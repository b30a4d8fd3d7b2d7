from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
import logging

from sqlalchemy import DateTime, bindparam, text

from app.application.ports.cache_store_port import SnapshotStorePort
from app.domain.entities.depth import DepthCurve, LiquiditySnapshot
from app.infrastructure.db.mappers.cache_mapper import as_utc, levels_to_json, map_row_to_snapshot


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SqlLiquiditySnapshotRepository(SnapshotStorePort):
    def __init__(self, engine, *, clock: Callable[[], datetime] = _utcnow):
        self._engine = engine
        self._clock = clock

    def get_latest_snapshot(self, *, pool_id: int) -> LiquiditySnapshot | None:
        sql = text(
            """
            SELECT id, pool_id, current_price, bids_json, asks_json,
                   base_symbol, quote_symbol, created_at
            FROM liquidity_snapshots
            WHERE pool_id = :pool_id
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """
        ).columns(created_at=DateTime(timezone=True))
        with self._engine.connect() as conn:
            row = conn.execute(sql, {"pool_id": pool_id}).mappings().first()
        return map_row_to_snapshot(row) if row is not None else None

    def add_snapshot(
        self,
        *,
        pool_id: int,
        curve: DepthCurve,
        base_symbol: str | None,
        quote_symbol: str | None,
        keep: int,
    ) -> None:
        insert_sql = text(
            """
            INSERT INTO liquidity_snapshots (
                pool_id, current_price, bids_json, asks_json,
                base_symbol, quote_symbol, created_at
            )
            VALUES (
                :pool_id, :current_price, :bids_json, :asks_json,
                :base_symbol, :quote_symbol, :created_at
            )
            """
        ).bindparams(bindparam("created_at", type_=DateTime(timezone=True)))
        prune_sql = text(
            """
            DELETE FROM liquidity_snapshots
            WHERE pool_id = :pool_id
              AND id NOT IN (
                SELECT id
                FROM liquidity_snapshots
                WHERE pool_id = :pool_id
                ORDER BY created_at DESC, id DESC
                LIMIT :keep
              )
            """
        )
        with self._engine.begin() as conn:
            conn.execute(
                insert_sql,
                {
                    "pool_id": pool_id,
                    "current_price": str(curve.current_price),
                    "bids_json": levels_to_json(curve.bids),
                    "asks_json": levels_to_json(curve.asks),
                    "base_symbol": base_symbol,
                    "quote_symbol": quote_symbol,
                    "created_at": as_utc(self._clock()),
                },
            )
            pruned = conn.execute(prune_sql, {"pool_id": pool_id, "keep": max(1, keep)}).rowcount or 0

        logger.info(
            "snapshot_repo: add_snapshot pool_id=%s bids=%s asks=%s pruned=%s",
            pool_id,
            len(curve.bids),
            len(curve.asks),
            pruned,
        )
