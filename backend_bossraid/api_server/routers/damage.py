"""FastAPI router: GET /api/damage: ranked net damage per trader for one boss."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from backend_bossraid.api_server.deps import get_db
from backend_bossraid.core.exceptions import ValidationError
from backend_bossraid.database import Database

router = APIRouter(prefix="/damage", tags=["damage"])


@router.get("")
def get_damage_leaderboard(
    boss_id: int | None = Query(None, alias="bossId"),
    limit: int = Query(50, ge=0, le=1000),
    db: Database = Depends(get_db),
) -> dict[str, Any]:
    if boss_id is None:
        raise ValidationError("bossId is required")
    return {"dealers": db.get_damage_leaderboard(boss_id, limit)}
