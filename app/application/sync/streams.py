from __future__ import annotations

import asyncio
import logging

from app.application.dto.sync import FetchBatch
from app.application.ports.cache_store_port import LpPositionStorePort, PoolStorePort, TradeStorePort
from app.application.ports.market_data_port import LpEventSourcePort, TradeSourcePort
from app.domain.entities.lp_position import LpEvent, LpPosition
from app.domain.entities.sync import SYNC_TYPE_LP_POSITIONS, SYNC_TYPE_TRADES
from app.domain.entities.trade import Trade
from app.domain.exceptions import ProviderError, TransportError
from app.domain.services.pool_identity import is_wide_pool_id
from app.domain.services.position_replay import replay_events


logger = logging.getLogger(__name__)


class TradeSyncStream:
    """Trades per pool: GeckoTerminal for pool addresses, PoolManager swap logs for wide ids."""

    sync_type = SYNC_TYPE_TRADES

    def __init__(
        self,
        *,
        trade_store: TradeStorePort,
        pool_store: PoolStorePort,
        pair_source: TradeSourcePort,
        swap_source: TradeSourcePort,
        cache_seconds: float,
        lookback_blocks: int,
        retention_cap: int,
    ):
        self._trade_store = trade_store
        self._pool_store = pool_store
        self._pair_source = pair_source
        self._swap_source = swap_source
        self.cache_seconds = cache_seconds
        self.lookback_blocks = lookback_blocks
        self._retention_cap = retention_cap

    async def fetch(self, *, chain: str, pool_address: str, from_block: int, to_block: int) -> FetchBatch:
        if is_wide_pool_id(pool_address):
            pool = await asyncio.to_thread(self._pool_store.get_pool, chain=chain, pool_address=pool_address)
            return await self._swap_source.fetch_trades(
                chain=chain,
                pool_address=pool_address,
                from_block=from_block,
                to_block=to_block,
                pool=pool,
            )
        return await self._pair_source.fetch_trades(
            chain=chain,
            pool_address=pool_address,
            from_block=from_block,
            to_block=to_block,
        )

    async def store(self, *, chain: str, pool_address: str, items: list[Trade]) -> int:
        return await asyncio.to_thread(
            self._trade_store.insert_trades,
            chain=chain,
            pool_address=pool_address,
            trades=items,
        )

    async def finalize(self, *, chain: str, pool_address: str) -> None:
        removed = await asyncio.to_thread(
            self._trade_store.prune_trades,
            chain=chain,
            pool_address=pool_address,
            keep=self._retention_cap,
        )
        if removed:
            logger.info(
                "trade_sync: pruned chain=%s pool=%s removed=%s keep=%s",
                chain,
                pool_address,
                removed,
                self._retention_cap,
            )

    async def load(self, *, chain: str, pool_address: str) -> list[Trade]:
        return await asyncio.to_thread(
            self._trade_store.list_trades,
            chain=chain,
            pool_address=pool_address,
            limit=self._retention_cap,
        )


class LpPositionSyncStream:
    """LP mint/burn history: Dune when configured for the chain, on-chain logs otherwise."""

    sync_type = SYNC_TYPE_LP_POSITIONS

    def __init__(
        self,
        *,
        position_store: LpPositionStorePort,
        pool_store: PoolStorePort,
        dune_source: LpEventSourcePort | None,
        log_source: LpEventSourcePort,
        cache_seconds: float,
        lookback_blocks: int,
    ):
        self._position_store = position_store
        self._pool_store = pool_store
        self._dune_source = dune_source
        self._log_source = log_source
        self.cache_seconds = cache_seconds
        self.lookback_blocks = lookback_blocks

    async def fetch(self, *, chain: str, pool_address: str, from_block: int, to_block: int) -> FetchBatch:
        if self._dune_source is not None and self._dune_source.supports(chain=chain):
            try:
                return await self._dune_source.fetch_lp_events(
                    chain=chain,
                    pool_address=pool_address,
                    from_block=from_block,
                    to_block=to_block,
                )
            except (TransportError, ProviderError) as exc:
                logger.warning(
                    "lp_sync: dune_failed chain=%s pool=%s error=%s fallback=logs",
                    chain,
                    pool_address,
                    exc,
                )
        return await self._log_source.fetch_lp_events(
            chain=chain,
            pool_address=pool_address,
            from_block=from_block,
            to_block=to_block,
        )

    async def store(self, *, chain: str, pool_address: str, items: list[LpEvent]) -> int:
        batch = replay_events(items)
        if batch.errors:
            logger.warning(
                "lp_sync: parse_errors chain=%s pool=%s errors=%s parsed=%s",
                chain,
                pool_address,
                batch.errors,
                len(batch.positions),
            )
        if not batch.positions:
            return 0
        pool = await asyncio.to_thread(self._pool_store.ensure_pool, chain=chain, pool_address=pool_address)
        return await asyncio.to_thread(
            self._position_store.insert_positions,
            pool_id=pool.id,
            positions=batch.positions,
        )

    async def finalize(self, *, chain: str, pool_address: str) -> None:
        return None

    async def load(self, *, chain: str, pool_address: str) -> list[LpPosition]:
        pool = await asyncio.to_thread(self._pool_store.get_pool, chain=chain, pool_address=pool_address)
        if pool is None or pool.id is None:
            return []
        # Depth replay needs every stored event, not a recent window.
        stats = await asyncio.to_thread(self._position_store.get_position_stats, pool_id=pool.id)
        if not stats.total:
            return []
        return await asyncio.to_thread(
            self._position_store.list_positions,
            pool_id=pool.id,
            limit=stats.total,
        )
