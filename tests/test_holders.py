"""
Tests for the holder ranking (GET /api/holders) and the Solana RPC client.

RPC traffic goes through httpx.MockTransport; no network.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from backend_bossraid.api_server.routers.holders import fetch_holders
from backend_bossraid.api_server.server import create_app
from backend_bossraid.api_server.solana_rpc import SolanaRpcClient
from backend_bossraid.core.exceptions import MintNotFoundError, RpcError, RpcRateLimitedError

from conftest import OWNER_WALLET, TEST_MINT, TRADER_A

LARGEST = [
    {"address": "acct-1", "uiAmount": 100.0},
    {"address": "acct-2", "uiAmount": 50.0},
    {"address": "acct-3", "uiAmount": 0.0},
    {"address": "acct-4", "uiAmount": 25.0},
]
OWNERS = {"acct-1": TRADER_A, "acct-2": OWNER_WALLET, "acct-4": TRADER_A}


def _parsed(info: dict) -> dict:
    return {"value": {"data": {"parsed": {"info": info}}}}


def chain_handler(request: httpx.Request) -> httpx.Response:
    body = json.loads(request.content)
    method, params = body["method"], body["params"]
    if method == "getAccountInfo" and params[0] == TEST_MINT:
        result = _parsed({"decimals": 6})
    elif method == "getAccountInfo" and params[0] in OWNERS:
        result = _parsed({"owner": OWNERS[params[0]]})
    elif method == "getTokenLargestAccounts":
        result = {"value": LARGEST}
    else:
        result = {"value": None}
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


def _rpc(handler=chain_handler, **kw) -> SolanaRpcClient:
    return SolanaRpcClient("http://rpc.test", transport=httpx.MockTransport(handler), **kw)


def test_fetch_holders_sums_per_owner():
    """Token accounts are grouped by owner, ranked and given a share of the total."""
    holders = asyncio.run(fetch_holders(_rpc(), TEST_MINT, 10, lookup_delay=0))
    assert [h["address"] for h in holders] == [TRADER_A, OWNER_WALLET]
    top, second = holders
    assert top["rank"] == 1
    assert top["amount"] == pytest.approx(125 * 10**6)
    assert top["formattedAmount"] == "125.00"
    assert top["percentage"] == pytest.approx(125 / 175 * 100)
    assert second["percentage"] == pytest.approx(50 / 175 * 100)
    assert top["shortAddress"] == TRADER_A[:4] + "..." + TRADER_A[-4:]


def test_fetch_holders_limit():
    holders = asyncio.run(fetch_holders(_rpc(), TEST_MINT, 1, lookup_delay=0))
    assert len(holders) == 1


def test_fetch_holders_unknown_mint():
    with pytest.raises(MintNotFoundError):
        asyncio.run(fetch_holders(_rpc(), OWNER_WALLET, 10, lookup_delay=0))


def test_rpc_retries_429_then_fails():
    """HTTP 429 is retried max_retries times before RpcRateLimitedError."""
    calls = []

    def limited(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429)

    with pytest.raises(RpcRateLimitedError):
        asyncio.run(_rpc(limited, max_retries=3, retry_backoff=0).call("getHealth", []))
    assert len(calls) == 3


def test_rpc_recovers_after_429():
    responses = [httpx.Response(429), httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "ok"})]

    def flaky(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    assert asyncio.run(_rpc(flaky, retry_backoff=0).call("getHealth", [])) == "ok"


def test_rpc_error_payload():
    def failing(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "bad params"}})

    with pytest.raises(RpcError, match="bad params"):
        asyncio.run(_rpc(failing).call("getAccountInfo", ["x"]))


def test_holders_endpoint(settings, json_db):
    app = create_app(settings, json_db, _rpc())
    with TestClient(app) as client:
        r = client.get("/api/holders", params={"limit": 5})
    assert r.status_code == 200
    holders = r.json()["holders"]
    assert [h["rank"] for h in holders] == [1, 2]


def test_holders_endpoint_rate_limited(settings, json_db):
    app = create_app(settings, json_db, _rpc(lambda request: httpx.Response(429), retry_backoff=0))
    with TestClient(app) as client:
        r = client.get("/api/holders")
    assert r.status_code == 429
    assert "rate limit" in r.json()["error"]


def test_holders_endpoint_invalid_mint(settings, json_db):
    settings.token_mint = "not-a-mint"
    app = create_app(settings, json_db, _rpc())
    with TestClient(app) as client:
        r = client.get("/api/holders")
    assert r.status_code == 400
    assert r.json() == {"error": "Invalid mint address format"}
