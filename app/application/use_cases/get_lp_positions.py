from __future__ import annotations

import asyncio
import logging

from app.application.dto.lp_positions import GetLpPositionsInput, GetLpPositionsOutput
from app.application.ports.cache_store_port import LpPositionStorePort, PoolStorePort
from app.application.sync.orchestrator import SyncOrchestrator
from app.application.use_cases.get_quote_price import GetQuotePriceUseCase
from app.domain.entities.lp_position import PositionStats
from app.domain.entities.sync import SYNC_TYPE_LP_POSITIONS
from app.domain.exceptions import ClientInputError
from app.domain.services.chains import get_chain_config
from app.domain.services.pool_identity import normalize_pool_address
from app.domain.services.position_replay import overlaps_range, replay_depth
from app.domain.services.quote_tokens import is_stablecoin


logger = logging.getLogger(__name__)

LP_SOURCE_DATABASE = "database"
LP_SOURCE_NONE = "none"
MAX_POSITIONS_LIMIT = 1000
DEFAULT_REPLAY_LEVELS = 50


class GetLpPositionsUseCase:
    def __init__(
        self,
        *,
        pool_store: PoolStorePort,
        position_store: LpPositionStorePort,
        orchestrator: SyncOrchestrator,
        quote_prices: GetQuotePriceUseCase,
    ):
        self._pool_store = pool_store
        self._position_store = position_store
        self._orchestrator = orchestrator
        self._quote_prices = quote_prices

    async def execute(self, command: GetLpPositionsInput) -> GetLpPositionsOutput:
        chain = get_chain_config(command.chain).key
        pool_address = normalize_pool_address(command.pool_address)
        if command.limit <= 0 or command.limit > MAX_POSITIONS_LIMIT:
            raise ClientInputError(f"limit must be between 1 and {MAX_POSITIONS_LIMIT}.")
        if (
            command.tick_lower is not None
            and command.tick_upper is not None
            and command.tick_lower >= command.tick_upper
        ):
            raise ClientInputError("tick_lower must be lower than tick_upper.")

        await self._orchestrator.sync(chain=chain, pool_address=pool_address, sync_type=SYNC_TYPE_LP_POSITIONS)

        pool = await asyncio.to_thread(self._pool_store.get_pool, chain=chain, pool_address=pool_address)
        if pool is None or pool.id is None:
            return GetLpPositionsOutput(
                positions=[],
                stats=PositionStats(total=0, mints=0, burns=0, unique_lps=0),
                source=LP_SOURCE_NONE,
            )

        positions = await asyncio.to_thread(
            self._position_store.list_positions,
            pool_id=pool.id,
            limit=command.limit,
            tick_lower=command.tick_lower,
            tick_upper=command.tick_upper,
        )
        stats = await asyncio.to_thread(self._position_store.get_position_stats, pool_id=pool.id)

        depth = None
        price_usd = command.price_usd or (float(pool.price_usd) if pool.price_usd else None)
        if command.current_tick is not None and price_usd:
            history = await self._orchestrator.read(
                chain=chain,
                pool_address=pool_address,
                sync_type=SYNC_TYPE_LP_POSITIONS,
            )
            in_range = [
                position
                for position in history
                if overlaps_range(position, tick_lower=command.tick_lower, tick_upper=command.tick_upper)
            ]
            depth = await self._replay(pool=pool, positions=in_range, command=command, price_usd=price_usd)

        return GetLpPositionsOutput(
            positions=positions,
            stats=stats,
            source=LP_SOURCE_DATABASE if stats.total else LP_SOURCE_NONE,
            depth=depth,
        )

    async def _replay(self, *, pool, positions, command: GetLpPositionsInput, price_usd: float):
        if not positions:
            return None
        quote_symbol = pool.quote_token.symbol
        if is_stablecoin(quote_symbol):
            quote_usd = 1.0
        else:
            quote_usd = await self._quote_prices.price_usd(quote_symbol)
        # pool rows store tokens already oriented; token0 is the lower address
        token0_is_base = pool.base_token.address.lower() < pool.quote_token.address.lower()
        base_decimals = pool.base_token.decimals
        quote_decimals = pool.quote_token.decimals
        try:
            return replay_depth(
                positions,
                current_tick=command.current_tick,
                price_usd=price_usd,
                quote_price_usd=quote_usd,
                token0_decimals=base_decimals if token0_is_base else quote_decimals,
                token1_decimals=quote_decimals if token0_is_base else base_decimals,
                token0_is_base=token0_is_base,
                levels=command.levels or DEFAULT_REPLAY_LEVELS,
            )
        except ValueError as exc:
            logger.warning(
                "lp_positions: replay_failed chain=%s pool=%s error=%s",
                pool.chain,
                pool.pool_address,
                exc,
            )
            return None
