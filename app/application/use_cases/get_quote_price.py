from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
import logging

from app.application.dto.quote_price import GetQuotePriceInput, GetQuotePriceOutput
from app.application.ports.cache_store_port import QuotePriceStorePort
from app.application.ports.market_data_port import QuotePriceSourcePort
from app.domain.exceptions import ClientInputError, ProviderError, TransportError
from app.domain.services.quote_tokens import fallback_price, is_stablecoin, normalize_symbol


logger = logging.getLogger(__name__)

QUOTE_SOURCE_STABLE = "stable"
QUOTE_SOURCE_DATABASE = "database"
QUOTE_SOURCE_PROVIDER = "coingecko"
QUOTE_SOURCE_STALE = "stale"
QUOTE_SOURCE_FALLBACK = "fallback"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GetQuotePriceUseCase:
    def __init__(
        self,
        *,
        store: QuotePriceStorePort,
        source: QuotePriceSourcePort,
        ttl_seconds: float,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._source = source
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._inflight: dict[str, asyncio.Task] = {}

    async def execute(self, command: GetQuotePriceInput) -> GetQuotePriceOutput:
        symbol = normalize_symbol(command.symbol)
        if not symbol:
            raise ClientInputError("symbol is required.")
        if is_stablecoin(symbol):
            return GetQuotePriceOutput(symbol=symbol, price_usd=Decimal("1"), source=QUOTE_SOURCE_STABLE)

        task = self._inflight.get(symbol)
        if task is None:
            task = asyncio.create_task(self._resolve(symbol))
            self._inflight[symbol] = task
            task.add_done_callback(lambda _task, symbol=symbol: self._inflight.pop(symbol, None))
        return await asyncio.shield(task)

    async def price_usd(self, symbol: str) -> float:
        result = await self.execute(GetQuotePriceInput(symbol=symbol))
        return float(result.price_usd)

    async def _resolve(self, symbol: str) -> GetQuotePriceOutput:
        now = self._clock()
        cached = await asyncio.to_thread(self._store.get_quote_price, symbol=symbol)
        if cached is not None and (now - cached.updated_at).total_seconds() < self._ttl_seconds:
            return GetQuotePriceOutput(symbol=symbol, price_usd=cached.price_usd, source=QUOTE_SOURCE_DATABASE)

        try:
            price = await self._source.fetch_usd_price(symbol=symbol)
        except (TransportError, ProviderError) as exc:
            logger.warning("quote_price: provider_failed symbol=%s error=%s", symbol, exc)
            price = None

        if price is not None and price > 0:
            await asyncio.to_thread(self._store.save_quote_price, symbol=symbol, price_usd=price, updated_at=now)
            return GetQuotePriceOutput(symbol=symbol, price_usd=price, source=QUOTE_SOURCE_PROVIDER)

        if cached is not None:
            return GetQuotePriceOutput(symbol=symbol, price_usd=cached.price_usd, source=QUOTE_SOURCE_STALE)

        logger.info("quote_price: fallback symbol=%s", symbol)
        return GetQuotePriceOutput(symbol=symbol, price_usd=fallback_price(symbol), source=QUOTE_SOURCE_FALLBACK)
