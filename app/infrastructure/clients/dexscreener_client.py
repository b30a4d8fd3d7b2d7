from __future__ import annotations

from decimal import Decimal, InvalidOperation
import logging

from app.domain.entities.pool import Pool, PoolMarketInfo, TokenInfo
from app.infrastructure.clients.http_gateway import HttpJsonGateway


logger = logging.getLogger(__name__)


def _decimal(value) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _float(value) -> float | None:
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _token(payload: dict | None) -> TokenInfo:
    payload = payload or {}
    return TokenInfo(
        address=str(payload.get("address") or "").lower(),
        symbol=str(payload.get("symbol") or "Unknown"),
    )


class DexScreenerClient:
    def __init__(self, *, gateway: HttpJsonGateway, api_base: str):
        self._gateway = gateway
        self._api_base = api_base.rstrip("/")

    async def fetch_pool_info(self, *, chain: str, pool_address: str) -> PoolMarketInfo | None:
        payload = await self._gateway.get_json(f"{self._api_base}/pairs/{chain}/{pool_address}")
        pairs = (payload or {}).get("pairs") or []
        if not pairs and payload and payload.get("pair"):
            pairs = [payload["pair"]]
        if not pairs:
            logger.info("dexscreener_client: pair_not_found chain=%s pool=%s", chain, pool_address)
            return None

        pair = pairs[0]
        liquidity = pair.get("liquidity") or {}
        volume = pair.get("volume") or {}
        pool = Pool(
            id=None,
            chain=chain,
            pool_address=pool_address.lower(),
            dex=pair.get("dexId"),
            base_token=_token(pair.get("baseToken")),
            quote_token=_token(pair.get("quoteToken")),
            price_usd=_decimal(pair.get("priceUsd")),
            liquidity_usd=_decimal(liquidity.get("usd")),
            volume_24h=_decimal(volume.get("h24")),
        )
        return PoolMarketInfo(
            pool=pool,
            liquidity_base=_float(liquidity.get("base")),
            liquidity_quote=_float(liquidity.get("quote")),
        )
