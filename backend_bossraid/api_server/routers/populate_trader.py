"""
FastAPI router: GET /api/populate-trader: backfill a trade's trader address from the chain.

The route writes to the store, so it sits behind the same write guard as the
POST endpoints even though it is a GET.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from starlette.concurrency import run_in_threadpool

from backend_bossraid.api_server.deps import get_db, get_rpc
from backend_bossraid.api_server.middleware import require_write_access
from backend_bossraid.api_server.solana_rpc import SolanaRpcClient
from backend_bossraid.bossraid_logging import bind_trade, get_logger
from backend_bossraid.core.exceptions import TradeNotFoundError, TransactionNotFoundError, ValidationError
from backend_bossraid.database import Database

logger = get_logger(__name__)

router = APIRouter(prefix="/populate-trader", tags=["trades"])


def _fee_payer(tx: dict[str, Any] | None) -> str | None:
    """First account key of the transaction message (the signer / fee payer)."""
    if not tx:
        return None
    keys = ((tx.get("transaction") or {}).get("message") or {}).get("accountKeys") or []
    if not keys:
        return None
    first = keys[0]
    if isinstance(first, dict):
        return first.get("pubkey")
    return str(first)


@router.get("", dependencies=[Depends(require_write_access)])
async def populate_trader(
    signature: str | None = Query(None),
    db: Database = Depends(get_db),
    rpc: SolanaRpcClient = Depends(get_rpc),
) -> dict[str, Any]:
    if not signature:
        raise ValidationError("signature is required")

    trade = await run_in_threadpool(db.get_trade, signature)
    if trade is None:
        raise TradeNotFoundError(signature)
    if trade.trader_address:
        return {"success": True, "message": "Already has trader_address"}

    trader = _fee_payer(await rpc.get_transaction(signature))
    if trader is None:
        raise TransactionNotFoundError(signature)

    await run_in_threadpool(db.set_trader_address, signature, trader)
    bind_trade(logger, signature, trade.boss_id).info("trader_address_populated", trader=trader)
    return {"success": True, "traderAddress": trader}
