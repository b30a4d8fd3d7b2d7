from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
import logging

from app.application.dto.depth import ResolveDepthInput
from app.application.ports.cache_store_port import PoolStorePort, SnapshotStorePort
from app.application.ports.market_data_port import PoolInfoPort
from app.application.ports.pool_state_port import PoolStateReaderPort
from app.application.sync.background import BackgroundTaskRunner
from app.application.use_cases.get_quote_price import GetQuotePriceUseCase
from app.domain.entities.depth import (
    DEPTH_SOURCE_CACHE,
    DEPTH_SOURCE_FALLBACK,
    DEPTH_SOURCE_RPC,
    DepthCurve,
    DepthResult,
    NoDepthData,
    ReserveSummary,
)
from app.domain.entities.pool import Pool, PoolMarketInfo, TokenInfo
from app.domain.entities.pool_state import POOL_KIND_V2, PoolState
from app.domain.exceptions import (
    ClientInputError,
    MissingTokenPairError,
    ProviderError,
    TransportError,
)
from app.domain.services.chains import get_chain_config
from app.domain.services.depth_synthesizer import synthesize_depth
from app.domain.services.pool_identity import (
    is_token0_base,
    is_wide_pool_id,
    normalize_pool_address,
    normalize_token_address,
)
from app.domain.services.quote_tokens import is_stablecoin
from app.domain.services.tick_depth import build_tick_depth
from app.domain.services.univ3_math import Q96, sqrt_price_x96_to_price


logger = logging.getLogger(__name__)

MAX_LEVELS = 1000


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _LiveDepth:
    state: PoolState
    market: PoolMarketInfo | None
    curve: DepthCurve
    base_token: TokenInfo
    quote_token: TokenInfo


class ResolveDepthUseCase:
    """cache -> live RPC state -> reserve-only summary -> no data."""

    def __init__(
        self,
        *,
        pool_store: PoolStorePort,
        snapshot_store: SnapshotStorePort,
        state_reader: PoolStateReaderPort,
        pool_info_source: PoolInfoPort,
        quote_prices: GetQuotePriceUseCase,
        background: BackgroundTaskRunner,
        levels: int,
        step_bps: float,
        decay: float,
        snapshot_max_age_seconds: float,
        snapshot_retention: int,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._pool_store = pool_store
        self._snapshot_store = snapshot_store
        self._state_reader = state_reader
        self._pool_info_source = pool_info_source
        self._quote_prices = quote_prices
        self._background = background
        self._levels = levels
        self._step_bps = step_bps
        self._decay = decay
        self._snapshot_max_age_seconds = snapshot_max_age_seconds
        self._snapshot_retention = snapshot_retention
        self._clock = clock

    async def execute(self, command: ResolveDepthInput) -> DepthResult | NoDepthData:
        chain = get_chain_config(command.chain).key
        pool_address = normalize_pool_address(command.pool_address)
        wide = is_wide_pool_id(pool_address)
        token0 = token1 = None
        if wide:
            if not command.token0 or not command.token1:
                raise MissingTokenPairError("token0 and token1 are required for 32-byte pool ids.")
            token0 = normalize_token_address(command.token0, field_name="token0")
            token1 = normalize_token_address(command.token1, field_name="token1")
        levels = self._levels if command.levels is None else command.levels
        if levels < 0 or levels > MAX_LEVELS:
            raise ClientInputError(f"levels must be between 0 and {MAX_LEVELS}.")
        if command.price_hint is not None and command.price_hint < 0:
            raise ClientInputError("price_usd must be >= 0.")
        price_hint = command.price_hint or None

        if not command.force_refresh or wide:
            cached = await self._read_cached(chain=chain, pool_address=pool_address)
            if cached is not None:
                return cached

        market = await self._fetch_market_info(chain=chain, pool_address=pool_address)
        live = await self._compute_live(
            chain=chain,
            pool_address=pool_address,
            token0=token0,
            token1=token1,
            price_hint=price_hint,
            market=market,
            levels=levels,
        )
        if live is not None:
            if not wide:
                self._background.submit(
                    self._write_back(chain=chain, pool_address=pool_address, live=live),
                    label=f"depth-write-back:{chain}:{pool_address}",
                )
            return DepthResult(
                source=DEPTH_SOURCE_RPC,
                current_price=live.curve.current_price,
                bids=live.curve.bids,
                asks=live.curve.asks,
                base_symbol=live.base_token.symbol,
                quote_symbol=live.quote_token.symbol,
            )

        fallback = await self._reserve_fallback(
            chain=chain,
            pool_address=pool_address,
            wide=wide,
            market=market,
            price_hint=price_hint,
        )
        if fallback is not None:
            return fallback

        logger.info("resolve_depth: no_data chain=%s pool=%s", chain, pool_address)
        return NoDepthData(reason="No liquidity data available for this pool.")

    async def refresh_snapshot(self, *, chain: str, pool_address: str) -> bool:
        """Recomputes depth from live state and stores it; used by the pool sync job."""
        chain = get_chain_config(chain).key
        pool_address = normalize_pool_address(pool_address)
        token0 = token1 = None
        if is_wide_pool_id(pool_address):
            pool = await asyncio.to_thread(self._pool_store.get_pool, chain=chain, pool_address=pool_address)
            if pool is None or not pool.base_token.address or not pool.quote_token.address:
                logger.info("resolve_depth: refresh_skipped chain=%s pool=%s reason=unknown_tokens", chain, pool_address)
                return False
            token0, token1 = sorted([pool.base_token.address.lower(), pool.quote_token.address.lower()])

        market = await self._fetch_market_info(chain=chain, pool_address=pool_address)
        live = await self._compute_live(
            chain=chain,
            pool_address=pool_address,
            token0=token0,
            token1=token1,
            price_hint=None,
            market=market,
            levels=self._levels,
        )
        if live is None:
            return False
        await self._write_back(chain=chain, pool_address=pool_address, live=live)
        return True

    async def _read_cached(self, *, chain: str, pool_address: str) -> DepthResult | None:
        pool = await asyncio.to_thread(self._pool_store.get_pool, chain=chain, pool_address=pool_address)
        if pool is None or pool.id is None:
            return None
        snapshot = await asyncio.to_thread(self._snapshot_store.get_latest_snapshot, pool_id=pool.id)
        if snapshot is None or not (snapshot.bids or snapshot.asks):
            return None
        if self._snapshot_max_age_seconds > 0:
            age = (self._clock() - snapshot.created_at).total_seconds()
            if age > self._snapshot_max_age_seconds:
                logger.info(
                    "resolve_depth: snapshot_expired chain=%s pool=%s age_seconds=%.0f",
                    chain,
                    pool_address,
                    age,
                )
                return None
        return DepthResult(
            source=DEPTH_SOURCE_CACHE,
            current_price=snapshot.current_price,
            bids=snapshot.bids,
            asks=snapshot.asks,
            base_symbol=snapshot.base_symbol,
            quote_symbol=snapshot.quote_symbol,
        )

    async def _fetch_market_info(self, *, chain: str, pool_address: str) -> PoolMarketInfo | None:
        try:
            return await self._pool_info_source.fetch_pool_info(chain=chain, pool_address=pool_address)
        except (TransportError, ProviderError) as exc:
            logger.warning("resolve_depth: pool_info_failed chain=%s pool=%s error=%s", chain, pool_address, exc)
            return None

    async def _compute_live(
        self,
        *,
        chain: str,
        pool_address: str,
        token0: str | None,
        token1: str | None,
        price_hint: float | None,
        market: PoolMarketInfo | None,
        levels: int,
    ) -> _LiveDepth | None:
        try:
            state = await self._state_reader.read_pool_state(
                chain=chain,
                pool_address=pool_address,
                token0=token0,
                token1=token1,
            )
        except (TransportError, ProviderError) as exc:
            logger.warning("resolve_depth: state_failed chain=%s pool=%s error=%s", chain, pool_address, exc)
            return None
        if state is None:
            return None

        token0_is_base = self._token0_is_base(state, market)
        base_token, quote_token = (state.token0, state.token1) if token0_is_base else (state.token1, state.token0)
        quote_usd = await self._quote_usd(quote_token.symbol)
        try:
            curve = self._depth_from_state(
                state=state,
                token0_is_base=token0_is_base,
                price_hint=price_hint,
                market=market,
                quote_usd=quote_usd,
                levels=levels,
            )
        except ValueError as exc:
            logger.warning("resolve_depth: synthesis_failed chain=%s pool=%s error=%s", chain, pool_address, exc)
            return None
        if curve is None or not curve.has_levels():
            return None
        return _LiveDepth(state=state, market=market, curve=curve, base_token=base_token, quote_token=quote_token)

    def _token0_is_base(self, state: PoolState, market: PoolMarketInfo | None) -> bool:
        if market is not None:
            base_address = market.pool.base_token.address.lower()
            if base_address == state.token0.address.lower():
                return True
            if base_address == state.token1.address.lower():
                return False
        return is_token0_base(state.token0, state.token1)

    async def _quote_usd(self, symbol: str) -> float:
        if is_stablecoin(symbol):
            return 1.0
        try:
            return await self._quote_prices.price_usd(symbol)
        except ClientInputError:
            return 0.0

    def _depth_from_state(
        self,
        *,
        state: PoolState,
        token0_is_base: bool,
        price_hint: float | None,
        market: PoolMarketInfo | None,
        quote_usd: float,
        levels: int,
    ) -> DepthCurve | None:
        market_price = float(market.pool.price_usd) if market and market.pool.price_usd else None
        market_liquidity = float(market.pool.liquidity_usd) if market and market.pool.liquidity_usd else None

        if state.kind == POOL_KIND_V2:
            amounts = state.reserve_amounts()
            if amounts is None:
                return None
            base_amount, quote_amount = amounts if token0_is_base else (amounts[1], amounts[0])
            price_usd = price_hint or market_price
            if price_usd is None and base_amount > 0:
                price_usd = quote_amount / base_amount * quote_usd
            if not price_usd:
                return None
            # constant-product pools hold equal value on both sides
            quote_value = quote_amount * quote_usd if quote_usd > 0 else base_amount * price_usd
            total = market_liquidity or base_amount * price_usd + quote_value
            return synthesize_depth(
                total_liquidity_usd=total,
                reserve_base=base_amount,
                reserve_quote_usd=quote_value,
                price_usd=price_usd,
                levels=levels,
                step_bps=self._step_bps,
                decay=self._decay,
            )

        if not state.sqrt_price_x96 or state.tick is None:
            return None
        dec0 = state.token0.decimals
        dec1 = state.token1.decimals
        ratio = float(sqrt_price_x96_to_price(state.sqrt_price_x96, dec0, dec1))
        price_usd = price_hint or market_price
        if price_usd is None:
            in_quote = ratio if token0_is_base else (1 / ratio if ratio > 0 else 0.0)
            price_usd = in_quote * quote_usd
        if not price_usd or price_usd <= 0:
            return None
        if token0_is_base:
            quote_price_usd = price_usd / ratio if ratio > 0 else quote_usd
        else:
            quote_price_usd = price_usd * ratio

        curve = build_tick_depth(
            current_tick=state.tick,
            active_liquidity=state.liquidity or 0,
            tick_nets={item.tick: item.liquidity_net for item in state.ticks},
            price_usd=price_usd,
            quote_price_usd=quote_price_usd,
            token0_decimals=dec0,
            token1_decimals=dec1,
            token0_is_base=token0_is_base,
            levels=levels,
        )
        if curve.has_levels() or not state.liquidity:
            return curve

        sqrt_price = float(Decimal(state.sqrt_price_x96) / Q96)
        virtual0 = state.liquidity / sqrt_price / 10**dec0
        virtual1 = state.liquidity * sqrt_price / 10**dec1
        base_amount, quote_amount = (virtual0, virtual1) if token0_is_base else (virtual1, virtual0)
        quote_value = quote_amount * quote_price_usd
        return synthesize_depth(
            total_liquidity_usd=market_liquidity or base_amount * price_usd + quote_value,
            reserve_base=base_amount,
            reserve_quote_usd=quote_value,
            price_usd=price_usd,
            levels=levels,
            step_bps=self._step_bps,
            decay=self._decay,
        )

    async def _reserve_fallback(
        self,
        *,
        chain: str,
        pool_address: str,
        wide: bool,
        market: PoolMarketInfo | None,
        price_hint: float | None,
    ) -> DepthResult | None:
        price = price_hint or (float(market.pool.price_usd) if market and market.pool.price_usd else 0.0)
        if not wide:
            try:
                balances = await self._state_reader.read_token_balances(chain=chain, pool_address=pool_address)
            except (TransportError, ProviderError) as exc:
                logger.warning("resolve_depth: balances_failed chain=%s pool=%s error=%s", chain, pool_address, exc)
                balances = None
            if balances is not None:
                token0_is_base = is_token0_base(balances.token0, balances.token1)
                if market is not None:
                    token0_is_base = market.pool.base_token.address.lower() != balances.token1.address.lower()
                if token0_is_base:
                    base, quote, base_amount, quote_amount = (
                        balances.token0, balances.token1, balances.amount0, balances.amount1
                    )
                else:
                    base, quote, base_amount, quote_amount = (
                        balances.token1, balances.token0, balances.amount1, balances.amount0
                    )
                if base_amount > 0 or quote_amount > 0:
                    return self._fallback_result(
                        price=price,
                        reserves=ReserveSummary(
                            base_amount=base_amount,
                            quote_amount=quote_amount,
                            base_symbol=base.symbol,
                            quote_symbol=quote.symbol,
                        ),
                    )

        if market is not None and (market.liquidity_base or market.liquidity_quote):
            return self._fallback_result(
                price=price,
                reserves=ReserveSummary(
                    base_amount=market.liquidity_base or 0.0,
                    quote_amount=market.liquidity_quote or 0.0,
                    base_symbol=market.pool.base_token.symbol,
                    quote_symbol=market.pool.quote_token.symbol,
                ),
            )
        return None

    def _fallback_result(self, *, price: float, reserves: ReserveSummary) -> DepthResult:
        return DepthResult(
            source=DEPTH_SOURCE_FALLBACK,
            current_price=price,
            bids=[],
            asks=[],
            base_symbol=reserves.base_symbol,
            quote_symbol=reserves.quote_symbol,
            reserves=reserves,
        )

    async def _write_back(self, *, chain: str, pool_address: str, live: _LiveDepth) -> None:
        if live.market is not None:
            pool = Pool(
                id=None,
                chain=chain,
                pool_address=pool_address,
                dex=live.market.pool.dex,
                base_token=live.base_token,
                quote_token=live.quote_token,
                price_usd=Decimal(str(live.curve.current_price)),
                liquidity_usd=live.market.pool.liquidity_usd,
                volume_24h=live.market.pool.volume_24h,
            )
        else:
            pool = Pool(
                id=None,
                chain=chain,
                pool_address=pool_address,
                dex=f"uniswap_{live.state.kind}",
                base_token=live.base_token,
                quote_token=live.quote_token,
                price_usd=Decimal(str(live.curve.current_price)),
            )
        stored = await asyncio.to_thread(self._pool_store.upsert_pool, pool=pool)
        await asyncio.to_thread(
            self._snapshot_store.add_snapshot,
            pool_id=stored.id,
            curve=live.curve,
            base_symbol=live.base_token.symbol,
            quote_symbol=live.quote_token.symbol,
            keep=self._snapshot_retention,
        )
        logger.info(
            "resolve_depth: snapshot_stored chain=%s pool=%s bids=%s asks=%s",
            chain,
            pool_address,
            len(live.curve.bids),
            len(live.curve.asks),
        )
