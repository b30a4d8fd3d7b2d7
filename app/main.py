from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.deps import (
    get_background_runner,
    get_pubsub_channel,
    get_rpc_client,
    get_sync_orchestrator,
    get_sync_pool_use_case,
    get_sync_scheduler,
)
from app.api.routers.liquidity_depth import router as liquidity_depth_router
from app.api.routers.lp_positions import router as lp_positions_router
from app.api.routers.quote_price import router as quote_price_router
from app.api.routers.sync import router as sync_router
from app.api.routers.trades import router as trades_router
from app.core.db import get_engine, init_schema
from app.shared.config import get_settings


logger = logging.getLogger(__name__)


async def _prewarm() -> None:
    targets = await get_sync_pool_use_case().list_targets()
    await get_sync_orchestrator().prewarm(targets)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    scheduler = None
    if settings.postgres_dsn:
        await asyncio.to_thread(init_schema, get_engine(settings.postgres_dsn))
        get_background_runner().submit(_prewarm(), label="cache-prewarm")
        scheduler = get_sync_scheduler()
        if scheduler.start():
            logger.info("main: scheduler_started interval_seconds=%s", settings.sync_interval_seconds)
    else:
        logger.warning("main: cache_disabled reason=missing_postgres_dsn")

    yield

    if scheduler is not None:
        await scheduler.stop()
        await get_pubsub_channel().close()
    await get_background_runner().close()
    await get_rpc_client().close()
    logger.info("main: shutdown_complete")


app = FastAPI(title="LP Depth API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(liquidity_depth_router)
app.include_router(trades_router)
app.include_router(lp_positions_router)
app.include_router(sync_router)
app.include_router(quote_price_router)
