"""FastAPI router: GET /api/game (session, stats), POST /api/game (updateSession, reset)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from backend_bossraid.api_server.deps import get_db, get_engine
from backend_bossraid.api_server.middleware import require_write_access
from backend_bossraid.api_server.schemas import GameActionRequest
from backend_bossraid.core.exceptions import ValidationError
from backend_bossraid.database import Database
from backend_bossraid.raid_engine import ReconciliationEngine

router = APIRouter(prefix="/game", tags=["game"])


@router.get("")
def get_game(
    action: str | None = Query(None, description="session | stats"),
    db: Database = Depends(get_db),
) -> dict[str, Any]:
    if action == "session":
        return {"session": db.get_or_create_session().to_dict()}
    if action == "stats":
        return {"stats": db.get_game_stats()}
    raise ValidationError("Invalid action")


@router.post("", dependencies=[Depends(require_write_access)])
async def post_game(
    body: GameActionRequest,
    db: Database = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_engine),
) -> dict[str, Any]:
    if body.action == "updateSession" and body.session_id:
        updated = await run_in_threadpool(
            db.update_session,
            body.session_id,
            body.damage_dealt,
            body.heal_applied,
            body.new_boss_id,
        )
        return {"success": True, "updated": updated}

    if body.action == "reset":
        await engine.reset()
        await run_in_threadpool(db.reset_all)
        await engine.load_current_boss()
        return {"success": True}

    raise ValidationError("Invalid action or parameters")
