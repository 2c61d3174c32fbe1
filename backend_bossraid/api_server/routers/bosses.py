"""
FastAPI router: GET /api/bosses, POST /api/bosses (updateHealth).

Reads are public. updateHealth is a guarded, validated health write; the
server-authoritative trade path is POST /api/raid/submit.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from backend_bossraid.api_server.deps import get_db
from backend_bossraid.api_server.middleware import require_write_access
from backend_bossraid.api_server.schemas import UpdateHealthRequest
from backend_bossraid.bossraid_logging import bind_trade, get_logger
from backend_bossraid.core.exceptions import BossNotFoundError, ValidationError
from backend_bossraid.database import Database
from backend_bossraid.database.models import TX_SELL

logger = get_logger(__name__)

router = APIRouter(prefix="/bosses", tags=["bosses"])


@router.get("")
def get_bosses(
    action: str | None = Query(None, description="current | all"),
    id: int | None = Query(None, description="Boss id"),
    db: Database = Depends(get_db),
) -> dict[str, Any]:
    if action == "current":
        boss = db.get_current_boss()
        return {"boss": boss.to_dict() if boss else None}
    if action == "all":
        return {"bosses": [b.to_dict() for b in db.get_all_bosses()]}
    if id is not None:
        boss = db.get_boss_by_id(id)
        return {"boss": boss.to_dict() if boss else None}
    raise ValidationError("Invalid action")


@router.post("", dependencies=[Depends(require_write_access)])
def post_bosses(body: UpdateHealthRequest, db: Database = Depends(get_db)) -> dict[str, Any]:
    if body.action != "updateHealth" or not body.boss_id or body.current_health is None:
        raise ValidationError("Invalid action or parameters")

    boss = db.get_boss_by_id(body.boss_id)
    if boss is None:
        raise BossNotFoundError(body.boss_id)

    health = body.current_health
    if boss.is_defeated and health > boss.current_health and (body.tx_type or "").lower() == TX_SELL:
        raise ValidationError("Boss is already defeated and cannot be healed")
    if not body.signature:
        raise ValidationError("Trade signature required")

    should_be_defeated = health <= 0 or body.is_defeated
    db.update_boss_health(boss.id, health, should_be_defeated)
    bind_trade(logger, body.signature, boss.id).info(
        "boss_health_updated",
        tx_type=body.tx_type,
        new_health=health,
        defeated=should_be_defeated,
    )
    return {"success": True, "bossDefeated": should_be_defeated}
