from __future__ import annotations

import logging

from sqlalchemy import text

from app.application.ports.cache_store_port import LpPositionStorePort
from app.domain.entities.lp_position import LP_BURN, LP_MINT, LpPosition, PositionStats
from app.infrastructure.db.mappers.cache_mapper import map_row_to_lp_position


logger = logging.getLogger(__name__)


class SqlLpPositionRepository(LpPositionStorePort):
    """LP history keyed by (tx_hash, tick_lower, tick_upper, type); re-ingesting is a no-op."""

    def __init__(self, engine):
        self._engine = engine

    def insert_positions(self, *, pool_id: int, positions: list[LpPosition]) -> int:
        if not positions:
            return 0
        sql = text(
            """
            INSERT INTO lp_positions (
                pool_id, owner, tick_lower, tick_upper, liquidity, type,
                tx_hash, block_number, timestamp, amount0, amount1
            )
            VALUES (
                :pool_id, :owner, :tick_lower, :tick_upper, :liquidity, :type,
                :tx_hash, :block_number, :timestamp, :amount0, :amount1
            )
            ON CONFLICT (tx_hash, tick_lower, tick_upper, type) DO NOTHING
            """
        )
        inserted = 0
        with self._engine.begin() as conn:
            for position in positions:
                result = conn.execute(
                    sql,
                    {
                        "pool_id": pool_id,
                        "owner": position.owner.lower(),
                        "tick_lower": position.tick_lower,
                        "tick_upper": position.tick_upper,
                        "liquidity": str(position.liquidity),
                        "type": position.type,
                        "tx_hash": position.tx_hash.lower(),
                        "block_number": position.block_number,
                        "timestamp": position.timestamp,
                        "amount0": position.amount0,
                        "amount1": position.amount1,
                    },
                )
                inserted += result.rowcount or 0

        logger.info(
            "lp_position_repo: insert pool_id=%s received=%s inserted=%s",
            pool_id,
            len(positions),
            inserted,
        )
        return inserted

    def list_positions(
        self,
        *,
        pool_id: int,
        limit: int,
        tick_lower: int | None = None,
        tick_upper: int | None = None,
    ) -> list[LpPosition]:
        filters = ["pool_id = :pool_id"]
        params: dict = {"pool_id": pool_id, "limit": limit}
        # a position overlaps [tick_lower, tick_upper) when its range is not fully outside
        if tick_lower is not None:
            filters.append("tick_upper > :tick_lower")
            params["tick_lower"] = tick_lower
        if tick_upper is not None:
            filters.append("tick_lower < :tick_upper")
            params["tick_upper"] = tick_upper

        sql = text(
            f"""
            SELECT owner, tick_lower, tick_upper, liquidity, type,
                   tx_hash, block_number, timestamp, amount0, amount1
            FROM lp_positions
            WHERE {" AND ".join(filters)}
            ORDER BY block_number DESC, id DESC
            LIMIT :limit
            """
        )
        with self._engine.connect() as conn:
            rows = conn.execute(sql, params).mappings().all()
        return [map_row_to_lp_position(row) for row in rows]

    def get_position_stats(self, *, pool_id: int) -> PositionStats:
        sql = text(
            """
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN type = :mint THEN 1 ELSE 0 END) AS mints,
                SUM(CASE WHEN type = :burn THEN 1 ELSE 0 END) AS burns,
                COUNT(DISTINCT owner) AS unique_lps
            FROM lp_positions
            WHERE pool_id = :pool_id
            """
        )
        with self._engine.connect() as conn:
            row = conn.execute(sql, {"pool_id": pool_id, "mint": LP_MINT, "burn": LP_BURN}).mappings().first()
        return PositionStats(
            total=int(row["total"] or 0),
            mints=int(row["mints"] or 0),
            burns=int(row["burns"] or 0),
            unique_lps=int(row["unique_lps"] or 0),
        )
