from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
import logging

from app.application.dto.sync import FetchBatch
from app.domain.entities.pool import Pool
from app.domain.entities.trade import TRADE_BUY, TRADE_SELL, Trade
from app.domain.services.chains import get_chain_config
from app.infrastructure.clients.http_gateway import HttpJsonGateway


logger = logging.getLogger(__name__)


def _decimal(value) -> Decimal:
    try:
        return Decimal(str(value)) if value not in (None, "") else Decimal("0")
    except InvalidOperation:
        return Decimal("0")


def _timestamp(value) -> int:
    if not value:
        return 0
    return int(datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp())


def map_trade(attributes: dict) -> Trade:
    is_buy = attributes.get("kind") == TRADE_BUY
    return Trade(
        tx_hash=str(attributes["tx_hash"]).lower(),
        kind=TRADE_BUY if is_buy else TRADE_SELL,
        price=_decimal(attributes.get("price_to_in_usd" if is_buy else "price_from_in_usd")),
        amount=_decimal(attributes.get("to_token_amount" if is_buy else "from_token_amount")),
        volume_usd=_decimal(attributes.get("volume_in_usd")),
        block_number=int(attributes.get("block_number") or 0),
        timestamp=_timestamp(attributes.get("block_timestamp")),
    )


class GeckoTerminalClient:
    def __init__(self, *, gateway: HttpJsonGateway, api_base: str):
        self._gateway = gateway
        self._api_base = api_base.rstrip("/")

    async def fetch_trades(
        self,
        *,
        chain: str,
        pool_address: str,
        from_block: int,
        to_block: int,
        pool: Pool | None = None,
    ) -> FetchBatch:
        network = get_chain_config(chain).geckoterminal_network
        payload = await self._gateway.get_json(
            f"{self._api_base}/networks/{network}/pools/{pool_address}/trades",
            params={"trade_volume_in_usd_greater_than": 0},
            headers={"Accept": "application/json"},
        )
        trades: list[Trade] = []
        skipped = 0
        for row in (payload or {}).get("data") or []:
            attributes = row.get("attributes") or {}
            try:
                trade = map_trade(attributes)
            except (KeyError, TypeError, ValueError):
                skipped += 1
                continue
            # The feed lags the chain head; rows below from_block may be late-indexed and are
            # deduplicated on insert.
            if trade.block_number <= to_block:
                trades.append(trade)
        logger.info(
            "geckoterminal_client: fetched_trades network=%s pool=%s kept=%s skipped=%s to_block=%s",
            network,
            pool_address,
            len(trades),
            skipped,
            to_block,
        )
        return FetchBatch(items=trades)
