"""
Minimal async Solana JSON-RPC client (httpx) for the holders and
populate-trader endpoints. Retries HTTP 429 with exponential backoff.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from backend_bossraid.bossraid_logging import get_logger
from backend_bossraid.config.env import mask_rpc_url
from backend_bossraid.core.exceptions import RpcError, RpcRateLimitedError

logger = get_logger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF = 0.5
REQUEST_TIMEOUT = 15.0


class SolanaRpcClient:
    """JSON-RPC over HTTP. Pass transport=httpx.MockTransport(...) in tests."""

    def __init__(
        self,
        rpc_url: str,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        max_retries: int = MAX_RETRIES,
        retry_backoff: float = RETRY_BACKOFF,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.rpc_url = rpc_url
        self._transport = transport
        self._max_retries = max(1, max_retries)
        self._retry_backoff = retry_backoff
        self._timeout = timeout
        self._next_id = 0

    async def _post_with_retry(self, client: httpx.AsyncClient, body: dict[str, Any]) -> httpx.Response:
        for attempt in range(self._max_retries):
            try:
                r = await client.post(self.rpc_url, json=body)
            except httpx.HTTPError as e:
                logger.warning("rpc_request_failed", method=body["method"], error=str(e))
                raise RpcError(f"RPC request failed: {e}") from e
            if r.status_code != 429:
                return r
            if attempt < self._max_retries - 1:
                delay = self._retry_backoff * (2**attempt)
                logger.info("rpc_rate_limited_retry", method=body["method"], attempt=attempt + 1, delay_sec=delay)
                await asyncio.sleep(delay)
        raise RpcRateLimitedError(
            "RPC rate limit reached. Retry in a few seconds or configure a private RPC via SOLANA_RPC_URL."
        )

    async def call(self, method: str, params: list[Any]) -> Any:
        """Return the JSON-RPC result; raises RpcError on transport or RPC errors."""
        self._next_id += 1
        body = {"jsonrpc": "2.0", "id": self._next_id, "method": method, "params": params}
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            r = await self._post_with_retry(client, body)
        if r.status_code >= 400:
            logger.warning("rpc_http_error", method=method, status=r.status_code, url=mask_rpc_url(self.rpc_url))
            raise RpcError(f"RPC HTTP {r.status_code} for {method}")
        data = r.json()
        if data.get("error"):
            err = data["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            if isinstance(err, dict) and err.get("code") == 429:
                raise RpcRateLimitedError(f"RPC rate limit: {message}")
            raise RpcError(f"RPC error for {method}: {message}")
        return data.get("result")

    # --- typed helpers ---

    async def get_parsed_account_info(self, address: str) -> dict[str, Any] | None:
        result = await self.call("getAccountInfo", [address, {"encoding": "jsonParsed", "commitment": "confirmed"}])
        return (result or {}).get("value")

    async def get_token_largest_accounts(self, mint: str) -> list[dict[str, Any]]:
        result = await self.call("getTokenLargestAccounts", [mint, {"commitment": "confirmed"}])
        return list((result or {}).get("value") or [])

    async def get_transaction(self, signature: str) -> dict[str, Any] | None:
        return await self.call(
            "getTransaction",
            [signature, {"encoding": "json", "maxSupportedTransactionVersion": 0, "commitment": "confirmed"}],
        )
