"""
Environment variable loading for BossRaid.

- TOKEN_MINT: the single pump.fun token mint whose trades drive the raid
- PUMPPORTAL_WS_URL: trade feed WebSocket endpoint
- SOLANA_RPC_URL: RPC endpoint for holders / trader backfill
- HELIUS_API_KEY: Helius API key (fallback for RPC URL)
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root: config is backend_bossraid/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_TOKEN_MINT = "FbAKcBJCeZgJskA2qdhtZumrtnC1R43W3JVWKthnpump"
DEFAULT_PUMPPORTAL_WS_URL = "wss://pumpportal.fun/api/data"
MAINNET_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_MAINNET_URL_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={key}"


def load_bossraid_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides real env."""
    load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    """Stripped env value, or default when unset/blank."""
    raw = (os.getenv(name) or "").strip()
    return raw or default


def env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def get_solana_rpc_url() -> str:
    """
    Resolve Solana RPC URL from env.
    Order: SOLANA_RPC_URL > HELIUS_API_KEY > public mainnet.
    """
    load_bossraid_env()
    url = env_str("SOLANA_RPC_URL")
    if url:
        return url
    key = env_str("HELIUS_API_KEY")
    if key:
        return HELIUS_MAINNET_URL_TEMPLATE.format(key=key)
    return MAINNET_RPC_URL


def mask_rpc_url(url: str) -> str:
    """Hide API key query params before logging an RPC URL."""
    if "api-key=" in url:
        return url.split("api-key=")[0] + "api-key=***"
    return url


def get_default_data_file() -> Path:
    """Flat-file store location: <root>/data/game-data.json."""
    return _ROOT / "data" / "game-data.json"


def get_boss_seed_file() -> Path:
    """Bundled boss registration seed."""
    return _BACKEND_DIR / "data" / "bosses.json"
