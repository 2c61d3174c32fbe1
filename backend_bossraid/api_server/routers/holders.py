"""
FastAPI router: GET /api/holders: token holder ranking from the chain.

getTokenLargestAccounts for the configured mint, then one jsonParsed
getAccountInfo per token account to find its owner. Balances are summed per
owner, ranked, and given a share of the listed total.
"""

from __future__ import annotations

import asyncio
from typing import Any

from fastapi import APIRouter, Depends, Query
from backend_bossraid.api_server.deps import get_rpc, get_settings_dep
from backend_bossraid.api_server.solana_rpc import SolanaRpcClient
from backend_bossraid.bossraid_logging import get_logger
from backend_bossraid.config.settings import Settings
from backend_bossraid.core.exceptions import MintNotFoundError, RpcError, RpcRateLimitedError, ValidationError
from backend_bossraid.utils.formatting import format_address, format_token_amount, is_valid_wallet

logger = get_logger(__name__)

router = APIRouter(prefix="/holders", tags=["holders"])

DEFAULT_DECIMALS = 9
OWNER_LOOKUP_DELAY_SEC = 0.1


def _mint_decimals(mint_info: dict[str, Any] | None) -> int:
    try:
        return int(mint_info["data"]["parsed"]["info"]["decimals"])  # type: ignore[index]
    except (KeyError, TypeError, ValueError):
        return DEFAULT_DECIMALS


def _owner_of(account_info: dict[str, Any] | None) -> str | None:
    try:
        return str(account_info["data"]["parsed"]["info"]["owner"])  # type: ignore[index]
    except (KeyError, TypeError):
        return None


async def fetch_holders(
    rpc: SolanaRpcClient,
    mint: str,
    limit: int,
    *,
    lookup_delay: float = OWNER_LOOKUP_DELAY_SEC,
) -> list[dict[str, Any]]:
    """Ranked holders of mint (raw amounts summed per owner wallet)."""
    mint_info = await rpc.get_parsed_account_info(mint)
    if mint_info is None:
        raise MintNotFoundError(mint)
    decimals = _mint_decimals(mint_info)

    balances: dict[str, float] = {}
    largest = await rpc.get_token_largest_accounts(mint)
    logger.info("holders_largest_accounts", mint=mint, count=len(largest))
    for i, account in enumerate(largest):
        ui_amount = account.get("uiAmount") or 0
        if ui_amount <= 0:
            continue
        if i > 0 and lookup_delay > 0:
            await asyncio.sleep(lookup_delay)
        try:
            owner = _owner_of(await rpc.get_parsed_account_info(account["address"]))
        except RpcRateLimitedError:
            raise
        except RpcError as e:
            logger.warning("holders_owner_lookup_failed", account=str(account.get("address")), error=e.message)
            continue
        if owner is None:
            continue
        balances[owner] = balances.get(owner, 0.0) + ui_amount * (10**decimals)

    ranked = sorted(balances.items(), key=lambda kv: kv[1], reverse=True)[: max(0, limit)]
    total = sum(amount for _, amount in ranked)
    return [
        {
            "address": address,
            "shortAddress": format_address(address),
            "rank": rank,
            "amount": amount,
            "formattedAmount": format_token_amount(amount, decimals),
            "percentage": (amount / total) * 100 if total > 0 else 0,
        }
        for rank, (address, amount) in enumerate(ranked, start=1)
    ]


@router.get("")
async def get_holders(
    limit: int = Query(50, ge=0, le=1000),
    settings: Settings = Depends(get_settings_dep),
    rpc: SolanaRpcClient = Depends(get_rpc),
) -> dict[str, Any]:
    mint = settings.token_mint
    if not mint:
        raise ValidationError("Mint address is required. Set TOKEN_MINT")
    if not is_valid_wallet(mint):
        raise ValidationError("Invalid mint address format")

    holders = await fetch_holders(rpc, mint, limit)
    if not holders:
        logger.info("holders_empty", mint=mint)
        return {
            "holders": [],
            "error": "No holders found. The token may have no holders yet, or the RPC is rate limiting (429).",
        }
    return {"holders": holders}
