from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
import logging

from app.application.dto.sync import SyncPoolInput, SyncPoolOutput
from app.application.ports.cache_store_port import PoolStorePort
from app.application.ports.market_data_port import PoolInfoPort
from app.application.sync.orchestrator import SyncOrchestrator
from app.application.use_cases.resolve_depth import ResolveDepthUseCase
from app.domain.entities.pool import Pool, PoolKey, TokenInfo
from app.domain.exceptions import ClientInputError, ProviderError, TransportError
from app.domain.services.chains import get_chain_config
from app.domain.services.pool_identity import normalize_pool_address


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _keep_decimals(token: TokenInfo, existing: Pool) -> TokenInfo:
    for known in (existing.base_token, existing.quote_token):
        if known.address and known.address.lower() == token.address.lower():
            return replace(token, decimals=known.decimals)
    return token


class SyncPoolUseCase:
    """Metadata, depth snapshot and every sync stream for one pool."""

    def __init__(
        self,
        *,
        pool_store: PoolStorePort,
        pool_info_source: PoolInfoPort,
        orchestrator: SyncOrchestrator,
        resolve_depth: ResolveDepthUseCase,
        watched_pools: Iterable[PoolKey] = (),
        recent_pools_seconds: float = 0,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._pool_store = pool_store
        self._pool_info_source = pool_info_source
        self._orchestrator = orchestrator
        self._resolve_depth = resolve_depth
        self._watched_pools = list(watched_pools)
        self._recent_pools_seconds = recent_pools_seconds
        self._clock = clock

    async def execute(self, command: SyncPoolInput) -> SyncPoolOutput:
        chain = get_chain_config(command.chain).key
        pool_address = normalize_pool_address(command.pool_address)
        errors: list[str] = []
        count = 0

        if await self._sync_pool_info(chain=chain, pool_address=pool_address, errors=errors):
            count += 1

        try:
            if await self._resolve_depth.refresh_snapshot(chain=chain, pool_address=pool_address):
                count += 1
        except (TransportError, ProviderError) as exc:
            errors.append(f"depth: {exc}")

        for sync_type in self._orchestrator.sync_types:
            outcome = await self._orchestrator.sync(
                chain=chain,
                pool_address=pool_address,
                sync_type=sync_type,
                force=command.force,
            )
            count += outcome.stored
            if outcome.failed:
                errors.append(f"{sync_type}: {outcome.error}")

        logger.info(
            "sync_pool: done chain=%s pool=%s count=%s errors=%s",
            chain,
            pool_address,
            count,
            len(errors),
        )
        return SyncPoolOutput(success=not errors, count=count, error="; ".join(errors) or None)

    async def sync_key(self, pool: PoolKey) -> SyncPoolOutput:
        return await self.execute(SyncPoolInput(chain=pool.chain, pool_address=pool.pool_address))

    async def list_targets(self) -> list[PoolKey]:
        targets: dict[tuple[str, str], PoolKey] = {}
        for pool in self._watched_pools:
            targets[(pool.chain, pool.pool_address.lower())] = PoolKey(
                chain=pool.chain,
                pool_address=pool.pool_address.lower(),
            )
        if self._recent_pools_seconds > 0:
            since = self._clock() - timedelta(seconds=self._recent_pools_seconds)
            recent = await asyncio.to_thread(self._pool_store.list_recent_pools, since=since)
            for pool in recent:
                targets.setdefault((pool.chain, pool.pool_address), pool)
        return list(targets.values())

    async def sync_all(self) -> SyncPoolOutput:
        count = 0
        failed = 0
        for pool in await self.list_targets():
            try:
                result = await self.sync_key(pool)
            except ClientInputError as exc:
                logger.warning("sync_pool: invalid_target chain=%s pool=%s error=%s", pool.chain, pool.pool_address, exc)
                failed += 1
                continue
            count += result.count
            if not result.success:
                failed += 1
        return SyncPoolOutput(
            success=failed == 0,
            count=count,
            error=f"{failed} pool(s) failed" if failed else None,
        )

    async def _sync_pool_info(self, *, chain: str, pool_address: str, errors: list[str]) -> bool:
        try:
            market = await self._pool_info_source.fetch_pool_info(chain=chain, pool_address=pool_address)
        except (TransportError, ProviderError) as exc:
            logger.warning("sync_pool: pool_info_failed chain=%s pool=%s error=%s", chain, pool_address, exc)
            errors.append(f"pool_info: {exc}")
            return False
        if market is None:
            return False
        pool = market.pool
        existing = await asyncio.to_thread(self._pool_store.get_pool, chain=chain, pool_address=pool_address)
        if existing is not None:
            # the market feed carries no decimals; keep what an RPC read already stored
            pool = replace(
                pool,
                base_token=_keep_decimals(pool.base_token, existing),
                quote_token=_keep_decimals(pool.quote_token, existing),
            )
        await asyncio.to_thread(self._pool_store.upsert_pool, pool=pool)
        return True
