"""FastAPI router: GET /api/trades (history per boss), POST /api/trades (idempotent insert)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from backend_bossraid.api_server.deps import get_db
from backend_bossraid.api_server.middleware import require_write_access
from backend_bossraid.api_server.schemas import TradeCreateRequest
from backend_bossraid.core.exceptions import ValidationError
from backend_bossraid.database import Database, Trade

router = APIRouter(prefix="/trades", tags=["trades"])


@router.get("")
def get_trades(
    boss_id: int | None = Query(None, alias="bossId"),
    limit: int = Query(50, ge=0, le=1000),
    db: Database = Depends(get_db),
) -> dict[str, Any]:
    if boss_id is None:
        raise ValidationError("bossId is required")
    return {"trades": [t.to_dict() for t in db.get_trades_for_boss(boss_id, limit)]}


@router.post("", dependencies=[Depends(require_write_access)])
def post_trade(body: TradeCreateRequest, db: Database = Depends(get_db)) -> dict[str, Any]:
    trade = Trade(
        boss_id=body.boss_id,
        signature=body.signature,
        mint=body.mint,
        sol_amount=body.sol_amount,
        token_amount=body.token_amount,
        tx_type=body.tx_type,
        damage_dealt=body.damage_dealt,
        heal_applied=body.heal_applied,
        timestamp=body.timestamp,
        trader_address=body.trader_address,
    )
    inserted = db.save_trade(trade)
    return {"success": True, "inserted": inserted}
