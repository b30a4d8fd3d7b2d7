from __future__ import annotations

import logging

from sqlalchemy import text

from app.application.ports.cache_store_port import TradeStorePort
from app.domain.entities.trade import Trade
from app.infrastructure.db.mappers.cache_mapper import map_row_to_trade


logger = logging.getLogger(__name__)


class SqlCachedTradeRepository(TradeStorePort):
    def __init__(self, engine):
        self._engine = engine

    def insert_trades(self, *, chain: str, pool_address: str, trades: list[Trade]) -> int:
        if not trades:
            return 0
        sql = text(
            """
            INSERT INTO cached_trades (
                chain, pool_address, tx_hash, kind, price, amount,
                volume_usd, block_number, timestamp
            )
            VALUES (
                :chain, :pool_address, :tx_hash, :kind, :price, :amount,
                :volume_usd, :block_number, :timestamp
            )
            ON CONFLICT (chain, pool_address, tx_hash) DO NOTHING
            """
        )
        inserted = 0
        with self._engine.begin() as conn:
            for trade in trades:
                result = conn.execute(
                    sql,
                    {
                        "chain": chain,
                        "pool_address": pool_address.lower(),
                        "tx_hash": trade.tx_hash.lower(),
                        "kind": trade.kind,
                        "price": str(trade.price),
                        "amount": str(trade.amount),
                        "volume_usd": str(trade.volume_usd),
                        "block_number": trade.block_number,
                        "timestamp": trade.timestamp,
                    },
                )
                inserted += result.rowcount or 0

        logger.info(
            "trade_repo: insert chain=%s pool=%s received=%s inserted=%s",
            chain,
            pool_address.lower(),
            len(trades),
            inserted,
        )
        return inserted

    def list_trades(self, *, chain: str, pool_address: str, limit: int) -> list[Trade]:
        sql = text(
            """
            SELECT tx_hash, kind, price, amount, volume_usd, block_number, timestamp
            FROM cached_trades
            WHERE chain = :chain
              AND pool_address = :pool_address
            ORDER BY block_number DESC, id DESC
            LIMIT :limit
            """
        )
        with self._engine.connect() as conn:
            rows = conn.execute(
                sql,
                {"chain": chain, "pool_address": pool_address.lower(), "limit": limit},
            ).mappings().all()
        return [map_row_to_trade(row) for row in rows]

    def prune_trades(self, *, chain: str, pool_address: str, keep: int) -> int:
        sql = text(
            """
            DELETE FROM cached_trades
            WHERE chain = :chain
              AND pool_address = :pool_address
              AND id NOT IN (
                SELECT id
                FROM cached_trades
                WHERE chain = :chain
                  AND pool_address = :pool_address
                ORDER BY block_number DESC, id DESC
                LIMIT :keep
              )
            """
        )
        with self._engine.begin() as conn:
            result = conn.execute(
                sql,
                {"chain": chain, "pool_address": pool_address.lower(), "keep": max(0, keep)},
            )
        return result.rowcount or 0
