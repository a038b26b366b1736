"""ASGI entry point for the marketplace settlement engine.

    uvicorn src.main:app --port 8000

Startup order: database reachable → Redis publisher → service container →
background jobs. Shutdown runs it backwards so no job fires against a closed pool.
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from config.settings import settings
from src.container import build_container
from src.mk_bidding.api.router import router as bidding_router
from src.mk_common.database import async_session_factory, engine
from src.mk_common.redis_client import close_redis, get_redis
from src.mk_coupon.api.router import router as coupon_router
from src.mk_gateway.middleware.error_handler import register_error_handlers
from src.mk_gateway.middleware.request_log import RequestLogMiddleware
from src.mk_inventory.api.router import router as inventory_router
from src.mk_jobs.marketplace_jobs import register_marketplace_jobs
from src.mk_jobs.scheduler import JobScheduler
from src.mk_listing.api.router import router as listing_router
from src.mk_order.api.router import router as order_router

API_PREFIX = "/api/v1"
VERSION = "0.1.0"

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("mk.app")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    publisher = await get_redis()

    container = build_container(publisher=publisher)
    app.state.container = container

    scheduler = JobScheduler()
    app.state.scheduler = scheduler
    if settings.SCHEDULER_ENABLED:
        register_marketplace_jobs(scheduler, container, async_session_factory)
        await scheduler.start()
    else:
        logger.info("Background jobs disabled (SCHEDULER_ENABLED=false)")
    logger.info("%s %s ready", settings.APP_NAME, VERSION)
    try:
        yield
    finally:
        await scheduler.stop()
        await close_redis()
        await engine.dispose()
        logger.info("%s stopped", settings.APP_NAME)


def create_app() -> FastAPI:
    application = FastAPI(title=settings.APP_NAME, version=VERSION, lifespan=lifespan)
    application.add_middleware(RequestLogMiddleware)
    register_error_handlers(application)

    for router in (listing_router, bidding_router, inventory_router, coupon_router, order_router):
        application.include_router(router, prefix=API_PREFIX)

    @application.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": VERSION}

    return application


app = create_app()
