from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, Numeric, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.db import Base


class PoolModel(Base):
    __tablename__ = "pools"
    __table_args__ = (UniqueConstraint("chain", "pool_address", name="uq_pools_chain_address"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain: Mapped[str] = mapped_column(Text, nullable=False)
    pool_address: Mapped[str] = mapped_column(Text, nullable=False)
    dex: Mapped[str | None] = mapped_column(Text, nullable=True)
    base_token_address: Mapped[str] = mapped_column(Text, nullable=False)
    base_token_symbol: Mapped[str] = mapped_column(Text, nullable=False)
    base_token_decimals: Mapped[int] = mapped_column(Integer, nullable=False, default=18)
    quote_token_address: Mapped[str] = mapped_column(Text, nullable=False)
    quote_token_symbol: Mapped[str] = mapped_column(Text, nullable=False)
    quote_token_decimals: Mapped[int] = mapped_column(Integer, nullable=False, default=18)
    price_usd: Mapped[float | None] = mapped_column(Numeric(38, 18), nullable=True)
    liquidity_usd: Mapped[float | None] = mapped_column(Numeric(38, 6), nullable=True)
    volume_24h: Mapped[float | None] = mapped_column(Numeric(38, 6), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LiquiditySnapshotModel(Base):
    __tablename__ = "liquidity_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pool_id: Mapped[int] = mapped_column(Integer, ForeignKey("pools.id", ondelete="CASCADE"), nullable=False, index=True)
    current_price: Mapped[float] = mapped_column(Numeric(38, 18), nullable=False)
    bids_json: Mapped[str] = mapped_column(Text, nullable=False)
    asks_json: Mapped[str] = mapped_column(Text, nullable=False)
    base_symbol: Mapped[str | None] = mapped_column(Text, nullable=True)
    quote_symbol: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LpPositionModel(Base):
    __tablename__ = "lp_positions"
    __table_args__ = (
        UniqueConstraint("tx_hash", "tick_lower", "tick_upper", "type", name="uq_lp_positions_tx_range_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pool_id: Mapped[int] = mapped_column(Integer, ForeignKey("pools.id", ondelete="CASCADE"), nullable=False, index=True)
    owner: Mapped[str] = mapped_column(Text, nullable=False)
    tick_lower: Mapped[int] = mapped_column(Integer, nullable=False)
    tick_upper: Mapped[int] = mapped_column(Integer, nullable=False)
    liquidity: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    tx_hash: Mapped[str] = mapped_column(Text, nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount0: Mapped[str] = mapped_column(Text, nullable=False, default="0")
    amount1: Mapped[str] = mapped_column(Text, nullable=False, default="0")


class QuotePriceModel(Base):
    __tablename__ = "quote_prices"

    symbol: Mapped[str] = mapped_column(Text, primary_key=True)
    price_usd: Mapped[float] = mapped_column(Numeric(38, 18), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SyncStatusModel(Base):
    __tablename__ = "sync_status"
    __table_args__ = (
        UniqueConstraint("chain", "pool_address", "sync_type", name="uq_sync_status_chain_pool_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain: Mapped[str] = mapped_column(Text, nullable=False)
    pool_address: Mapped[str] = mapped_column(Text, nullable=False)
    sync_type: Mapped[str] = mapped_column(Text, nullable=False)
    last_block: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CachedTradeModel(Base):
    __tablename__ = "cached_trades"
    __table_args__ = (
        UniqueConstraint("chain", "pool_address", "tx_hash", name="uq_cached_trades_chain_pool_tx"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chain: Mapped[str] = mapped_column(Text, nullable=False)
    pool_address: Mapped[str] = mapped_column(Text, nullable=False)
    tx_hash: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[float] = mapped_column(Numeric(38, 18), nullable=False)
    amount: Mapped[float] = mapped_column(Numeric(38, 18), nullable=False)
    volume_usd: Mapped[float] = mapped_column(Numeric(38, 6), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
