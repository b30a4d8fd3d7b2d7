from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
import logging

from sqlalchemy import DateTime, bindparam, text

from app.application.ports.cache_store_port import PoolStorePort
from app.domain.entities.pool import Pool, PoolKey
from app.infrastructure.db.mappers.cache_mapper import map_row_to_pool, map_row_to_pool_key


logger = logging.getLogger(__name__)

UNKNOWN_DEX = "uniswap_v4"
UNKNOWN_SYMBOL = "Unknown"

_POOL_COLUMNS = """
    id, chain, pool_address, dex,
    base_token_address, base_token_symbol, base_token_decimals,
    quote_token_address, quote_token_symbol, quote_token_decimals,
    price_usd, liquidity_usd, volume_24h, updated_at
"""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _numeric(value) -> str | None:
    return str(value) if value is not None else None


class SqlPoolRepository(PoolStorePort):
    def __init__(self, engine, *, clock: Callable[[], datetime] = _utcnow):
        self._engine = engine
        self._clock = clock

    def get_pool(self, *, chain: str, pool_address: str) -> Pool | None:
        sql = text(
            f"""
            SELECT {_POOL_COLUMNS}
            FROM pools
            WHERE chain = :chain
              AND pool_address = :pool_address
            """
        ).columns(updated_at=DateTime(timezone=True))
        with self._engine.connect() as conn:
            row = conn.execute(sql, {"chain": chain, "pool_address": pool_address.lower()}).mappings().first()
        return map_row_to_pool(row) if row is not None else None

    def upsert_pool(self, *, pool: Pool) -> Pool:
        sql = text(
            """
            INSERT INTO pools (
                chain, pool_address, dex,
                base_token_address, base_token_symbol, base_token_decimals,
                quote_token_address, quote_token_symbol, quote_token_decimals,
                price_usd, liquidity_usd, volume_24h, created_at, updated_at
            )
            VALUES (
                :chain, :pool_address, :dex,
                :base_token_address, :base_token_symbol, :base_token_decimals,
                :quote_token_address, :quote_token_symbol, :quote_token_decimals,
                :price_usd, :liquidity_usd, :volume_24h, :now, :now
            )
            ON CONFLICT (chain, pool_address)
            DO UPDATE SET
                dex = COALESCE(EXCLUDED.dex, pools.dex),
                base_token_address = EXCLUDED.base_token_address,
                base_token_symbol = EXCLUDED.base_token_symbol,
                base_token_decimals = EXCLUDED.base_token_decimals,
                quote_token_address = EXCLUDED.quote_token_address,
                quote_token_symbol = EXCLUDED.quote_token_symbol,
                quote_token_decimals = EXCLUDED.quote_token_decimals,
                price_usd = COALESCE(EXCLUDED.price_usd, pools.price_usd),
                liquidity_usd = COALESCE(EXCLUDED.liquidity_usd, pools.liquidity_usd),
                volume_24h = COALESCE(EXCLUDED.volume_24h, pools.volume_24h),
                updated_at = EXCLUDED.updated_at
            """
        ).bindparams(bindparam("now", type_=DateTime(timezone=True)))
        params = {
            "chain": pool.chain,
            "pool_address": pool.pool_address.lower(),
            "dex": pool.dex,
            "base_token_address": pool.base_token.address.lower(),
            "base_token_symbol": pool.base_token.symbol,
            "base_token_decimals": pool.base_token.decimals,
            "quote_token_address": pool.quote_token.address.lower(),
            "quote_token_symbol": pool.quote_token.symbol,
            "quote_token_decimals": pool.quote_token.decimals,
            "price_usd": _numeric(pool.price_usd),
            "liquidity_usd": _numeric(pool.liquidity_usd),
            "volume_24h": _numeric(pool.volume_24h),
            "now": self._clock(),
        }
        with self._engine.begin() as conn:
            conn.execute(sql, params)

        logger.info("pool_repo: upsert_pool chain=%s pool=%s", pool.chain, pool.pool_address.lower())
        stored = self.get_pool(chain=pool.chain, pool_address=pool.pool_address)
        if stored is None:
            raise RuntimeError(f"Pool {pool.chain}:{pool.pool_address} missing after upsert.")
        return stored

    def ensure_pool(self, *, chain: str, pool_address: str) -> Pool:
        existing = self.get_pool(chain=chain, pool_address=pool_address)
        if existing is not None:
            return existing
        sql = text(
            """
            INSERT INTO pools (
                chain, pool_address, dex,
                base_token_address, base_token_symbol, base_token_decimals,
                quote_token_address, quote_token_symbol, quote_token_decimals,
                created_at, updated_at
            )
            VALUES (
                :chain, :pool_address, :dex,
                '', :symbol, 18,
                '', :symbol, 18,
                :now, :now
            )
            ON CONFLICT (chain, pool_address) DO NOTHING
            """
        ).bindparams(bindparam("now", type_=DateTime(timezone=True)))
        with self._engine.begin() as conn:
            conn.execute(
                sql,
                {
                    "chain": chain,
                    "pool_address": pool_address.lower(),
                    "dex": UNKNOWN_DEX,
                    "symbol": UNKNOWN_SYMBOL,
                    "now": self._clock(),
                },
            )
        logger.info("pool_repo: ensure_pool created chain=%s pool=%s", chain, pool_address.lower())
        stored = self.get_pool(chain=chain, pool_address=pool_address)
        if stored is None:
            raise RuntimeError(f"Pool {chain}:{pool_address} missing after insert.")
        return stored

    def list_recent_pools(self, *, since: datetime) -> list[PoolKey]:
        sql = text(
            """
            SELECT chain, pool_address
            FROM pools
            WHERE updated_at >= :since
            ORDER BY updated_at DESC
            """
        ).bindparams(bindparam("since", type_=DateTime(timezone=True)))
        with self._engine.connect() as conn:
            rows = conn.execute(sql, {"since": since}).mappings().all()
        return [map_row_to_pool_key(row) for row in rows]
