"""
FastAPI server: boss raid HTTP API and live trade feed.

Routes under /api: bosses, trades, game, damage, holders, populate-trader,
raid. Domain errors map to {"error": message} with the error's status code.
The lifespan builds one ReconciliationEngine per process and, when
FEED_ENABLED is set, runs the PumpPortal feed in the background.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from backend_bossraid import __version__
from backend_bossraid.api_server.routers import bosses, damage, game, holders, populate_trader, raid, trades
from backend_bossraid.api_server.solana_rpc import SolanaRpcClient
from backend_bossraid.bossraid_logging import get_logger
from backend_bossraid.config.env import mask_rpc_url
from backend_bossraid.config.settings import Settings, get_settings
from backend_bossraid.core.exceptions import BossRaidError
from backend_bossraid.database import Database, get_database
from backend_bossraid.ingestion import FeedConfig, PumpPortalFeed
from backend_bossraid.raid_engine import RaidContext, ReconciliationEngine

logger = get_logger(__name__)

FEED_SHUTDOWN_TIMEOUT_SEC = 10.0


# -----------------------------------------------------------------------------
# Lifespan: engine + optional background feed
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the current boss; start the feed if enabled; drain writes on shutdown."""
    settings: Settings = app.state.settings
    engine: ReconciliationEngine = app.state.engine
    await engine.load_current_boss()

    feed_task: asyncio.Task[None] | None = None
    if settings.feed_enabled:
        feed = PumpPortalFeed(FeedConfig.from_settings(settings), engine.handle_message, engine.context)
        app.state.feed = feed
        feed_task = asyncio.create_task(feed.run())
        logger.info("api_feed_started", url=settings.feed_ws_url, mint=settings.token_mint)

    yield

    feed = app.state.feed
    if feed is not None:
        await feed.stop()
    if feed_task is not None:
        try:
            await asyncio.wait_for(feed_task, timeout=FEED_SHUTDOWN_TIMEOUT_SEC)
        except asyncio.TimeoutError:
            logger.warning("api_feed_shutdown_timeout", timeout_sec=FEED_SHUTDOWN_TIMEOUT_SEC)
            feed_task.cancel()
    await engine.shutdown()
    logger.info("api_stopped")


# -----------------------------------------------------------------------------
# Error mapping
# -----------------------------------------------------------------------------


async def _boss_raid_error_handler(request: Request, exc: BossRaidError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("api_error", path=request.url.path, error=exc.message, status=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    types = {e.get("type") for e in errors}
    if "json_invalid" in types:
        message = "Invalid JSON in request body"
    elif "missing" in types:
        message = "Missing required fields"
    else:
        first = errors[0] if errors else {}
        loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"Invalid value for {loc}: {first.get('msg', 'invalid')}" if loc else "Invalid request"
    logger.info("api_request_invalid", path=request.url.path, error=message)
    return JSONResponse(status_code=400, content={"error": message})


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("api_unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    db: Database | None = None,
    rpc: SolanaRpcClient | None = None,
) -> FastAPI:
    """Build the ASGI app. Tests pass their own settings / store / RPC client."""
    settings = settings or get_settings()
    db = db or get_database(settings)
    app = FastAPI(
        title="Backend BossRaid API",
        description="Boss raid game state driven by live token trades.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = db
    app.state.engine = ReconciliationEngine(db, settings, RaidContext.from_settings(settings))
    app.state.rpc = rpc or SolanaRpcClient(settings.solana_rpc_url)
    app.state.feed = None

    app.add_exception_handler(BossRaidError, _boss_raid_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    for module in (bosses, trades, game, damage, holders, populate_trader, raid):
        app.include_router(module.router, prefix="/api")

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__}

    logger.info(
        "api_app_created",
        storage=settings.storage_backend,
        rpc=mask_rpc_url(settings.solana_rpc_url),
        feed_enabled=settings.feed_enabled,
    )
    return app
