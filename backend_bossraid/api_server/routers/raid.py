"""
FastAPI router: server-authoritative raid endpoints.

POST /api/raid/submit settles one trade against the stored boss and returns
the resulting state. GET /api/raid/state exposes the live engine snapshot.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from backend_bossraid.api_server.deps import get_engine, get_feed
from backend_bossraid.api_server.middleware import require_write_access
from backend_bossraid.bossraid_logging import bind_trade, get_logger
from backend_bossraid.core.exceptions import ValidationError
from backend_bossraid.ingestion import PumpPortalFeed
from backend_bossraid.raid_engine import ReconciliationEngine

logger = get_logger(__name__)

router = APIRouter(prefix="/raid", tags=["raid"])


@router.post("/submit", dependencies=[Depends(require_write_access)])
async def submit_trade(
    message: dict[str, Any] = Body(...),
    engine: ReconciliationEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Body uses the feed message shape: {signature, mint, solAmount, txType, tokenAmount, traderPublicKey?}."""
    reason = engine.filter.validate(message)
    if reason is not None:
        raise ValidationError(f"Invalid trade: {reason}")
    event = engine.filter.parse(message)

    result = await engine.submit_trade(event)
    bind_trade(logger, event.signature, result.boss.id if result.boss else None).info(
        "raid_trade_submitted",
        duplicate=result.duplicate,
        applied=result.applied,
    )
    return {
        "success": True,
        "duplicate": result.duplicate,
        "applied": result.applied,
        "outcome": result.outcome.to_dict() if result.outcome else None,
        "boss": result.boss.to_dict() if result.boss else None,
    }


@router.get("/state")
def raid_state(
    engine: ReconciliationEngine = Depends(get_engine),
    feed: PumpPortalFeed | None = Depends(get_feed),
) -> dict[str, Any]:
    state = engine.snapshot()
    state["feedConnected"] = bool(feed and feed.connected)
    return state
