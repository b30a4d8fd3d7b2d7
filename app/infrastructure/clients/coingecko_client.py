from __future__ import annotations

from decimal import Decimal, InvalidOperation
import logging

from app.domain.exceptions import ProviderError
from app.domain.services.quote_tokens import coingecko_id
from app.infrastructure.clients.http_gateway import HttpJsonGateway


logger = logging.getLogger(__name__)


class CoingeckoQuotePriceClient:
    def __init__(self, *, gateway: HttpJsonGateway, api_base: str):
        self._gateway = gateway
        self._api_base = api_base.rstrip("/")

    async def fetch_usd_price(self, *, symbol: str) -> Decimal | None:
        coin_id = coingecko_id(symbol)
        if not coin_id:
            logger.info("coingecko_client: unknown_symbol symbol=%s", symbol)
            return None

        payload = await self._gateway.get_json(
            f"{self._api_base}/simple/price",
            params={"ids": coin_id, "vs_currencies": "usd"},
        )
        entry = (payload or {}).get(coin_id) or {}
        if "usd" not in entry:
            raise ProviderError(f"Coingecko price not found for {symbol} ({coin_id}).")
        try:
            return Decimal(str(entry["usd"]))
        except InvalidOperation as exc:
            raise ProviderError(f"Invalid Coingecko price for {symbol}: {entry['usd']!r}") from exc
