"""
Main entrypoint: FastAPI server with the live PumpPortal trade feed.

The feed runs as a task inside the server's lifespan, so one process owns the
websocket, the reconciliation engine and the HTTP API. On SIGINT/SIGTERM the
server stops the feed and drains pending store writes before exiting.

Env: TOKEN_MINT, PUMPPORTAL_WS_URL, STORAGE_BACKEND, DATA_FILE / DATABASE_URL,
BOSS_RAID_API_KEY, API_HOST, API_PORT, LOG_LEVEL, etc.

API-only (no feed): uvicorn backend_bossraid.api_server.app:app --host 0.0.0.0 --port 8000
"""

import dataclasses
import os

# Configure structured JSON logging before other imports that may log
from backend_bossraid.bossraid_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Run the API server in the main thread with the trade feed enabled."""
    from backend_bossraid.config.settings import get_settings

    settings = dataclasses.replace(get_settings(), feed_enabled=True)
    logger.info(
        "main_config_loaded",
        mint=settings.token_mint,
        storage=settings.storage_backend,
        feed_url=settings.feed_ws_url,
    )

    from backend_bossraid.api_server.server import create_app
    import uvicorn

    app = create_app(settings)
    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
