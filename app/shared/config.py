from __future__ import annotations

import json
import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


DEFAULT_RPC_URLS = {
    "ethereum": [
        "https://eth.llamarpc.com",
        "https://rpc.ankr.com/eth",
        "https://ethereum.publicnode.com",
    ],
    "base": [
        "https://base-rpc.publicnode.com",
        "https://mainnet.base.org",
        "https://rpc.ankr.com/base",
    ],
    "bsc": [
        "https://bsc-dataseed1.binance.org",
        "https://bsc-dataseed2.binance.org",
        "https://rpc.ankr.com/bsc",
    ],
    "arbitrum": [
        "https://arb1.arbitrum.io/rpc",
        "https://rpc.ankr.com/arbitrum",
    ],
    "polygon": [
        "https://polygon-rpc.com",
        "https://rpc.ankr.com/polygon",
    ],
}


def _env(name: str, default: str | None = None) -> str | None:
    return os.getenv(name, default)


def _json(name: str, default=None):
    value = _env(name)
    if not value:
        return {} if default is None else default
    return json.loads(value)


@dataclass(frozen=True)
class Settings:
    postgres_dsn: str
    log_level: str
    rpc_urls: dict
    rpc_timeout_seconds: float
    rpc_log_timeout_seconds: float
    rpc_bitmap_words: int
    http_max_attempts: int
    http_backoff_seconds: float
    dexscreener_api_base: str
    dexscreener_timeout_seconds: float
    geckoterminal_api_base: str
    geckoterminal_timeout_seconds: float
    coingecko_api_base: str
    coingecko_timeout_seconds: float
    quote_price_ttl_seconds: float
    dune_api_base: str
    dune_api_key: str
    dune_query_ids: dict
    dune_poll_interval_seconds: float
    dune_max_wait_seconds: float
    dune_timeout_seconds: float
    depth_levels: int
    depth_step_bps: float
    depth_decay: float
    snapshot_max_age_seconds: float
    snapshot_retention: int
    trades_cache_seconds: float
    lp_positions_cache_seconds: float
    trade_retention_cap: int
    trades_lookback_blocks: int
    lp_lookback_blocks: int
    sync_watched_pools: list
    sync_interval_seconds: float
    sync_pool_delay_seconds: float
    sync_recent_pools_seconds: float
    sync_api_key: str
    memory_cache_ttl_seconds: float
    memory_cache_max_entries: int
    stream_poll_seconds: float


def get_settings() -> Settings:
    rpc_urls = dict(DEFAULT_RPC_URLS)
    rpc_urls.update(_json("RPC_URLS"))
    return Settings(
        postgres_dsn=_env("POSTGRES_DSN", ""),
        log_level=_env("LOG_LEVEL", "INFO"),
        rpc_urls=rpc_urls,
        rpc_timeout_seconds=float(_env("RPC_TIMEOUT_SECONDS", "10")),
        rpc_log_timeout_seconds=float(_env("RPC_LOG_TIMEOUT_SECONDS", "30")),
        rpc_bitmap_words=int(_env("RPC_BITMAP_WORDS", "4")),
        http_max_attempts=int(_env("HTTP_MAX_ATTEMPTS", "3")),
        http_backoff_seconds=float(_env("HTTP_BACKOFF_SECONDS", "5")),
        dexscreener_api_base=_env("DEXSCREENER_API_BASE", "https://api.dexscreener.com/latest/dex"),
        dexscreener_timeout_seconds=float(_env("DEXSCREENER_TIMEOUT_SECONDS", "10")),
        geckoterminal_api_base=_env("GECKOTERMINAL_API_BASE", "https://api.geckoterminal.com/api/v2"),
        geckoterminal_timeout_seconds=float(_env("GECKOTERMINAL_TIMEOUT_SECONDS", "10")),
        coingecko_api_base=_env("COINGECKO_API_BASE", "https://api.coingecko.com/api/v3"),
        coingecko_timeout_seconds=float(_env("COINGECKO_TIMEOUT_SECONDS", "5")),
        quote_price_ttl_seconds=float(_env("QUOTE_PRICE_TTL_SECONDS", "300")),
        dune_api_base=_env("DUNE_API_BASE", "https://api.dune.com/api/v1"),
        dune_api_key=_env("DUNE_API_KEY", ""),
        dune_query_ids=_json("DUNE_QUERY_IDS", {"base": 6514713}),
        dune_poll_interval_seconds=float(_env("DUNE_POLL_INTERVAL_SECONDS", "5")),
        dune_max_wait_seconds=float(_env("DUNE_MAX_WAIT_SECONDS", "300")),
        dune_timeout_seconds=float(_env("DUNE_TIMEOUT_SECONDS", "60")),
        depth_levels=int(_env("DEPTH_LEVELS", "50")),
        depth_step_bps=float(_env("DEPTH_STEP_BPS", "100")),
        depth_decay=float(_env("DEPTH_DECAY", "15")),
        snapshot_max_age_seconds=float(_env("SNAPSHOT_MAX_AGE_SECONDS", "120")),
        snapshot_retention=int(_env("SNAPSHOT_RETENTION", "100")),
        trades_cache_seconds=float(_env("TRADES_CACHE_SECONDS", "10")),
        lp_positions_cache_seconds=float(_env("LP_POSITIONS_CACHE_SECONDS", "7200")),
        trade_retention_cap=int(_env("TRADE_RETENTION_CAP", "500")),
        trades_lookback_blocks=int(_env("TRADES_LOOKBACK_BLOCKS", "10000")),
        lp_lookback_blocks=int(_env("LP_LOOKBACK_BLOCKS", "100000")),
        sync_watched_pools=_json("SYNC_WATCHED_POOLS", []),
        sync_interval_seconds=float(_env("SYNC_INTERVAL_SECONDS", "60")),
        sync_pool_delay_seconds=float(_env("SYNC_POOL_DELAY_SECONDS", "1")),
        sync_recent_pools_seconds=float(_env("SYNC_RECENT_POOLS_SECONDS", "3600")),
        sync_api_key=_env("SYNC_API_KEY", ""),
        memory_cache_ttl_seconds=float(_env("MEMORY_CACHE_TTL_SECONDS", "300")),
        memory_cache_max_entries=int(_env("MEMORY_CACHE_MAX_ENTRIES", "512")),
        stream_poll_seconds=float(_env("STREAM_POLL_SECONDS", "3")),
    )
