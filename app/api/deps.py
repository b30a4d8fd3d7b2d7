from __future__ import annotations

from functools import lru_cache
import logging

from fastapi import HTTPException

from app.application.sync.background import BackgroundTaskRunner
from app.application.sync.orchestrator import SyncOrchestrator
from app.application.sync.pubsub import PubSubChannel
from app.application.sync.scheduler import PeriodicSyncScheduler
from app.application.sync.streams import LpPositionSyncStream, TradeSyncStream
from app.application.sync.ttl_cache import BoundedTtlCache
from app.application.use_cases.get_cached_trades import GetCachedTradesUseCase
from app.application.use_cases.get_lp_positions import GetLpPositionsUseCase
from app.application.use_cases.get_quote_price import GetQuotePriceUseCase
from app.application.use_cases.resolve_depth import ResolveDepthUseCase
from app.application.use_cases.stream_trades import StreamTradesUseCase, TradePoller
from app.application.use_cases.sync_pool import SyncPoolUseCase
from app.core.db import get_engine
from app.domain.entities.pool import PoolKey
from app.domain.exceptions import ClientInputError
from app.domain.services.chains import get_chain_config
from app.domain.services.pool_identity import normalize_pool_address
from app.infrastructure.clients.coingecko_client import CoingeckoQuotePriceClient
from app.infrastructure.clients.dexscreener_client import DexScreenerClient
from app.infrastructure.clients.dune_client import DuneClient, DuneClientSettings
from app.infrastructure.clients.evm_log_reader import EvmLogReader
from app.infrastructure.clients.evm_rpc_client import EvmRpcClient, EvmRpcClientSettings
from app.infrastructure.clients.geckoterminal_client import GeckoTerminalClient
from app.infrastructure.clients.http_gateway import HttpJsonGateway, RetryPolicy
from app.infrastructure.clients.pool_state_reader import PoolStateReader
from app.infrastructure.db.repositories.cached_trade_repository import SqlCachedTradeRepository
from app.infrastructure.db.repositories.liquidity_snapshot_repository import (
    SqlLiquiditySnapshotRepository,
)
from app.infrastructure.db.repositories.lp_position_repository import SqlLpPositionRepository
from app.infrastructure.db.repositories.pool_repository import SqlPoolRepository
from app.infrastructure.db.repositories.quote_price_repository import SqlQuotePriceRepository
from app.infrastructure.db.repositories.sync_status_repository import SqlSyncStatusRepository
from app.shared.config import get_settings


logger = logging.getLogger(__name__)


def _get_db_engine():
    settings = get_settings()
    if not settings.postgres_dsn:
        raise HTTPException(status_code=500, detail="POSTGRES_DSN is required.")
    return get_engine(settings.postgres_dsn)


def _retry_policy() -> RetryPolicy:
    settings = get_settings()
    return RetryPolicy(
        max_attempts=settings.http_max_attempts,
        backoff_seconds=settings.http_backoff_seconds,
    )


def _watched_pools() -> list[PoolKey]:
    pools: list[PoolKey] = []
    for item in get_settings().sync_watched_pools:
        try:
            pools.append(
                PoolKey(
                    chain=get_chain_config(item["chain"]).key,
                    pool_address=normalize_pool_address(item["pool_address"]),
                )
            )
        except (KeyError, TypeError, ClientInputError) as exc:
            logger.warning("deps: watched_pool_skipped entry=%s error=%s", item, exc)
    return pools


@lru_cache(maxsize=1)
def get_rpc_client() -> EvmRpcClient:
    settings = get_settings()
    return EvmRpcClient(
        EvmRpcClientSettings(
            rpc_urls=settings.rpc_urls,
            timeout_seconds=settings.rpc_timeout_seconds,
            log_timeout_seconds=settings.rpc_log_timeout_seconds,
            max_attempts=settings.http_max_attempts,
            backoff_seconds=settings.http_backoff_seconds,
        )
    )


@lru_cache(maxsize=1)
def _get_pool_state_reader() -> PoolStateReader:
    return PoolStateReader(rpc=get_rpc_client(), bitmap_words=get_settings().rpc_bitmap_words)


@lru_cache(maxsize=1)
def _get_log_reader() -> EvmLogReader:
    return EvmLogReader(rpc=get_rpc_client())


@lru_cache(maxsize=1)
def _get_dexscreener_client() -> DexScreenerClient:
    settings = get_settings()
    return DexScreenerClient(
        gateway=HttpJsonGateway(
            name="dexscreener",
            timeout_seconds=settings.dexscreener_timeout_seconds,
            policy=_retry_policy(),
        ),
        api_base=settings.dexscreener_api_base,
    )


@lru_cache(maxsize=1)
def _get_geckoterminal_client() -> GeckoTerminalClient:
    settings = get_settings()
    return GeckoTerminalClient(
        gateway=HttpJsonGateway(
            name="geckoterminal",
            timeout_seconds=settings.geckoterminal_timeout_seconds,
            policy=_retry_policy(),
            headers={"Accept": "application/json"},
        ),
        api_base=settings.geckoterminal_api_base,
    )


@lru_cache(maxsize=1)
def _get_coingecko_client() -> CoingeckoQuotePriceClient:
    settings = get_settings()
    return CoingeckoQuotePriceClient(
        gateway=HttpJsonGateway(
            name="coingecko",
            timeout_seconds=settings.coingecko_timeout_seconds,
            policy=_retry_policy(),
        ),
        api_base=settings.coingecko_api_base,
    )


@lru_cache(maxsize=1)
def _get_dune_client() -> DuneClient | None:
    settings = get_settings()
    if not settings.dune_api_key:
        logger.warning("deps: dune_disabled reason=missing_api_key fallback=evm_logs")
        return None
    return DuneClient(
        DuneClientSettings(
            api_base=settings.dune_api_base,
            api_key=settings.dune_api_key,
            query_ids=settings.dune_query_ids,
            poll_interval_seconds=settings.dune_poll_interval_seconds,
            max_wait_seconds=settings.dune_max_wait_seconds,
        ),
        gateway=HttpJsonGateway(
            name="dune",
            timeout_seconds=settings.dune_timeout_seconds,
            policy=_retry_policy(),
        ),
    )


@lru_cache(maxsize=1)
def get_background_runner() -> BackgroundTaskRunner:
    return BackgroundTaskRunner()


@lru_cache(maxsize=1)
def get_quote_price_use_case() -> GetQuotePriceUseCase:
    return GetQuotePriceUseCase(
        store=SqlQuotePriceRepository(_get_db_engine()),
        source=_get_coingecko_client(),
        ttl_seconds=get_settings().quote_price_ttl_seconds,
    )


@lru_cache(maxsize=1)
def get_sync_orchestrator() -> SyncOrchestrator:
    settings = get_settings()
    engine = _get_db_engine()
    pool_store = SqlPoolRepository(engine)
    log_reader = _get_log_reader()
    return SyncOrchestrator(
        status_store=SqlSyncStatusRepository(engine),
        block_source=get_rpc_client(),
        streams=[
            TradeSyncStream(
                trade_store=SqlCachedTradeRepository(engine),
                pool_store=pool_store,
                pair_source=_get_geckoterminal_client(),
                swap_source=log_reader,
                cache_seconds=settings.trades_cache_seconds,
                lookback_blocks=settings.trades_lookback_blocks,
                retention_cap=settings.trade_retention_cap,
            ),
            LpPositionSyncStream(
                position_store=SqlLpPositionRepository(engine),
                pool_store=pool_store,
                dune_source=_get_dune_client(),
                log_source=log_reader,
                cache_seconds=settings.lp_positions_cache_seconds,
                lookback_blocks=settings.lp_lookback_blocks,
            ),
        ],
        cache=BoundedTtlCache(
            max_entries=settings.memory_cache_max_entries,
            ttl_seconds=settings.memory_cache_ttl_seconds,
        ),
    )


@lru_cache(maxsize=1)
def get_resolve_depth_use_case() -> ResolveDepthUseCase:
    settings = get_settings()
    engine = _get_db_engine()
    return ResolveDepthUseCase(
        pool_store=SqlPoolRepository(engine),
        snapshot_store=SqlLiquiditySnapshotRepository(engine),
        state_reader=_get_pool_state_reader(),
        pool_info_source=_get_dexscreener_client(),
        quote_prices=get_quote_price_use_case(),
        background=get_background_runner(),
        levels=settings.depth_levels,
        step_bps=settings.depth_step_bps,
        decay=settings.depth_decay,
        snapshot_max_age_seconds=settings.snapshot_max_age_seconds,
        snapshot_retention=settings.snapshot_retention,
    )


def get_cached_trades_use_case() -> GetCachedTradesUseCase:
    return GetCachedTradesUseCase(orchestrator=get_sync_orchestrator())


def get_lp_positions_use_case() -> GetLpPositionsUseCase:
    engine = _get_db_engine()
    return GetLpPositionsUseCase(
        pool_store=SqlPoolRepository(engine),
        position_store=SqlLpPositionRepository(engine),
        orchestrator=get_sync_orchestrator(),
        quote_prices=get_quote_price_use_case(),
    )


@lru_cache(maxsize=1)
def get_sync_pool_use_case() -> SyncPoolUseCase:
    settings = get_settings()
    return SyncPoolUseCase(
        pool_store=SqlPoolRepository(_get_db_engine()),
        pool_info_source=_get_dexscreener_client(),
        orchestrator=get_sync_orchestrator(),
        resolve_depth=get_resolve_depth_use_case(),
        watched_pools=_watched_pools(),
        recent_pools_seconds=settings.sync_recent_pools_seconds,
    )


@lru_cache(maxsize=1)
def get_pubsub_channel() -> PubSubChannel:
    poller = TradePoller(get_cached_trades=get_cached_trades_use_case())
    return PubSubChannel(
        poller=poller,
        poll_interval_seconds=get_settings().stream_poll_seconds,
        on_feed_closed=poller.forget,
    )


def get_stream_trades_use_case() -> StreamTradesUseCase:
    return StreamTradesUseCase(
        channel=get_pubsub_channel(),
        get_cached_trades=get_cached_trades_use_case(),
    )


@lru_cache(maxsize=1)
def get_sync_scheduler() -> PeriodicSyncScheduler:
    settings = get_settings()
    sync_pool = get_sync_pool_use_case()
    return PeriodicSyncScheduler(
        job=sync_pool.sync_key,
        pool_provider=sync_pool.list_targets,
        interval_seconds=settings.sync_interval_seconds,
        pool_delay_seconds=settings.sync_pool_delay_seconds,
    )


def get_sync_api_key() -> str:
    return get_settings().sync_api_key
