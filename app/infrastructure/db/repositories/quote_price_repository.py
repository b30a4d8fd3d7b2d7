from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, bindparam, text

from app.application.ports.cache_store_port import QuotePriceStorePort
from app.domain.entities.pool import QuotePrice
from app.infrastructure.db.mappers.cache_mapper import as_utc, map_row_to_quote_price


class SqlQuotePriceRepository(QuotePriceStorePort):
    def __init__(self, engine):
        self._engine = engine

    def get_quote_price(self, *, symbol: str) -> QuotePrice | None:
        sql = text(
            """
            SELECT symbol, price_usd, updated_at
            FROM quote_prices
            WHERE symbol = :symbol
            """
        ).columns(updated_at=DateTime(timezone=True))
        with self._engine.connect() as conn:
            row = conn.execute(sql, {"symbol": symbol.upper()}).mappings().first()
        return map_row_to_quote_price(row) if row is not None else None

    def save_quote_price(self, *, symbol: str, price_usd: Decimal, updated_at: datetime) -> None:
        sql = text(
            """
            INSERT INTO quote_prices (symbol, price_usd, updated_at)
            VALUES (:symbol, :price_usd, :updated_at)
            ON CONFLICT (symbol)
            DO UPDATE SET
                price_usd = EXCLUDED.price_usd,
                updated_at = EXCLUDED.updated_at
            """
        ).bindparams(bindparam("updated_at", type_=DateTime(timezone=True)))
        with self._engine.begin() as conn:
            conn.execute(
                sql,
                {"symbol": symbol.upper(), "price_usd": str(price_usd), "updated_at": as_utc(updated_at)},
            )
