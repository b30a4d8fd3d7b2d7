from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from decimal import Decimal
import json
from typing import Any

from app.domain.entities.depth import DepthLevel, LiquiditySnapshot
from app.domain.entities.lp_position import LpPosition
from app.domain.entities.pool import Pool, PoolKey, QuotePrice, TokenInfo
from app.domain.entities.sync import SyncStatus
from app.domain.entities.trade import Trade


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _decimal(value: Any) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def levels_to_json(levels: list[DepthLevel]) -> str:
    return json.dumps([{"price": level.price, "liquidity": level.liquidity} for level in levels])


def levels_from_json(value: str | None) -> list[DepthLevel]:
    if not value:
        return []
    return [DepthLevel(price=float(item["price"]), liquidity=float(item["liquidity"])) for item in json.loads(value)]


def map_row_to_pool(row: Mapping[str, Any]) -> Pool:
    return Pool(
        id=int(row["id"]),
        chain=row["chain"],
        pool_address=row["pool_address"],
        dex=row["dex"],
        base_token=TokenInfo(
            address=row["base_token_address"],
            symbol=row["base_token_symbol"],
            decimals=int(row["base_token_decimals"]),
        ),
        quote_token=TokenInfo(
            address=row["quote_token_address"],
            symbol=row["quote_token_symbol"],
            decimals=int(row["quote_token_decimals"]),
        ),
        price_usd=_decimal(row["price_usd"]),
        liquidity_usd=_decimal(row["liquidity_usd"]),
        volume_24h=_decimal(row["volume_24h"]),
        updated_at=as_utc(row["updated_at"]),
    )


def map_row_to_pool_key(row: Mapping[str, Any]) -> PoolKey:
    return PoolKey(chain=row["chain"], pool_address=row["pool_address"])


def map_row_to_snapshot(row: Mapping[str, Any]) -> LiquiditySnapshot:
    return LiquiditySnapshot(
        id=int(row["id"]),
        pool_id=int(row["pool_id"]),
        current_price=float(row["current_price"]),
        bids=levels_from_json(row["bids_json"]),
        asks=levels_from_json(row["asks_json"]),
        base_symbol=row["base_symbol"],
        quote_symbol=row["quote_symbol"],
        created_at=as_utc(row["created_at"]),
    )


def map_row_to_lp_position(row: Mapping[str, Any]) -> LpPosition:
    return LpPosition(
        owner=row["owner"],
        tick_lower=int(row["tick_lower"]),
        tick_upper=int(row["tick_upper"]),
        liquidity=int(row["liquidity"]),
        type=row["type"],
        tx_hash=row["tx_hash"],
        block_number=int(row["block_number"]),
        timestamp=int(row["timestamp"]),
        amount0=row["amount0"],
        amount1=row["amount1"],
    )


def map_row_to_trade(row: Mapping[str, Any]) -> Trade:
    return Trade(
        tx_hash=row["tx_hash"],
        kind=row["kind"],
        price=Decimal(str(row["price"])),
        amount=Decimal(str(row["amount"])),
        volume_usd=Decimal(str(row["volume_usd"])),
        block_number=int(row["block_number"]),
        timestamp=int(row["timestamp"]),
    )


def map_row_to_sync_status(row: Mapping[str, Any]) -> SyncStatus:
    return SyncStatus(
        chain=row["chain"],
        pool_address=row["pool_address"],
        sync_type=row["sync_type"],
        last_block=int(row["last_block"]) if row["last_block"] is not None else None,
        updated_at=as_utc(row["updated_at"]),
    )


def map_row_to_quote_price(row: Mapping[str, Any]) -> QuotePrice:
    return QuotePrice(
        symbol=row["symbol"],
        price_usd=Decimal(str(row["price_usd"])),
        updated_at=as_utc(row["updated_at"]),
    )
