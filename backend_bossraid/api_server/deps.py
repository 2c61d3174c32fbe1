"""Request dependencies: app-scoped settings, store, engine and RPC client."""

from __future__ import annotations

from fastapi import Request

from backend_bossraid.api_server.solana_rpc import SolanaRpcClient
from backend_bossraid.config.settings import Settings
from backend_bossraid.database import Database
from backend_bossraid.ingestion import PumpPortalFeed
from backend_bossraid.raid_engine import ReconciliationEngine


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Database:
    """Dependency: the app-scoped Database (one backend per process)."""
    return request.app.state.db


def get_engine(request: Request) -> ReconciliationEngine:
    return request.app.state.engine


def get_feed(request: Request) -> PumpPortalFeed | None:
    return getattr(request.app.state, "feed", None)


def get_rpc(request: Request) -> SolanaRpcClient:
    return request.app.state.rpc
