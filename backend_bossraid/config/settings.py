"""
Application settings and environment configuration.

Responsibilities:
- Load configuration from environment variables and .env files.
- Validate settings and provide defaults for optional ones.
- Expose typed settings (token mint, feed URL, storage, raid tuning, API
  security) for use across ingestion, raid engine, storage and API server.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from pathlib import Path

from backend_bossraid.config.env import (
    DEFAULT_PUMPPORTAL_WS_URL,
    DEFAULT_TOKEN_MINT,
    env_bool,
    env_float,
    env_int,
    env_str,
    get_default_data_file,
    get_solana_rpc_url,
    load_bossraid_env,
)

STORAGE_JSON = "json"
STORAGE_SQL = "sql"

DEFAULT_ALLOWED_ORIGINS = ("http://localhost:3000", "http://localhost:3001")
DEFAULT_SQLITE_URL = "sqlite:///bossraid.db"


@dataclass
class Settings:
    """Typed view of the process environment. Build with get_settings()."""

    token_mint: str = DEFAULT_TOKEN_MINT
    feed_ws_url: str = DEFAULT_PUMPPORTAL_WS_URL
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"

    # API security
    api_key: str = ""
    allowed_origins: tuple[str, ...] = DEFAULT_ALLOWED_ORIGINS
    min_user_agent_length: int = 10

    # Storage
    storage_backend: str = STORAGE_JSON
    data_file: Path = field(default_factory=get_default_data_file)
    database_url: str = DEFAULT_SQLITE_URL
    trade_retention: int = 1000

    # Reconciliation
    damage_scaling_constant: float = 200.0
    max_sol_per_trade: float = 1000.0
    rate_limit_max: int = 10
    rate_limit_window_sec: float = 1.0
    dedup_max_size: int = 1000
    dedup_retain: int = 500
    request_concurrency: int = 3
    animation_reset_sec: float = 1.5
    next_boss_delay_sec: float = 4.0

    # Feed connection
    feed_enabled: bool = False
    connect_timeout_sec: float = 10.0
    reconnect_max_attempts: int = 5
    reconnect_base_delay_sec: float = 1.0
    watchdog_interval_sec: float = 30.0

    # Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    def __post_init__(self) -> None:
        if self.storage_backend not in (STORAGE_JSON, STORAGE_SQL):
            raise ValueError(f"STORAGE_BACKEND must be 'json' or 'sql', got {self.storage_backend!r}")
        if self.damage_scaling_constant < 0:
            raise ValueError("DAMAGE_SCALING_CONSTANT must be non-negative")
        if self.max_sol_per_trade <= 0:
            raise ValueError("MAX_SOL_PER_TRADE must be positive")
        if self.rate_limit_max < 1 or self.rate_limit_window_sec <= 0:
            raise ValueError("rate limit must allow at least one message per positive window")
        if not (0 < self.dedup_retain <= self.dedup_max_size):
            raise ValueError("DEDUP_RETAIN must be between 1 and DEDUP_MAX_SIZE")
        if self.request_concurrency < 1:
            raise ValueError("REQUEST_CONCURRENCY must be at least 1")
        self.data_file = Path(self.data_file)


def _parse_origins(raw: str) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(o.strip() for o in raw.split(",") if o.strip())


def load_settings() -> Settings:
    """Build Settings from the current environment (no caching)."""
    load_bossraid_env()
    database_url = env_str("BOSSRAID_DB_URL") or env_str("DATABASE_URL")
    storage = env_str("STORAGE_BACKEND").lower()
    if not storage:
        # A configured database wins over the flat file unless told otherwise
        storage = STORAGE_SQL if database_url else STORAGE_JSON
    data_file = env_str("DATA_FILE")
    return Settings(
        token_mint=env_str("TOKEN_MINT", DEFAULT_TOKEN_MINT),
        feed_ws_url=env_str("PUMPPORTAL_WS_URL", DEFAULT_PUMPPORTAL_WS_URL),
        solana_rpc_url=get_solana_rpc_url(),
        api_key=env_str("BOSS_RAID_API_KEY"),
        allowed_origins=_parse_origins(env_str("ALLOWED_ORIGINS")),
        storage_backend=storage,
        data_file=Path(data_file) if data_file else get_default_data_file(),
        database_url=database_url or DEFAULT_SQLITE_URL,
        trade_retention=env_int("TRADE_RETENTION", 1000),
        damage_scaling_constant=env_float("DAMAGE_SCALING_CONSTANT", 200.0),
        max_sol_per_trade=env_float("MAX_SOL_PER_TRADE", 1000.0),
        rate_limit_max=env_int("RATE_LIMIT_MAX", 10),
        rate_limit_window_sec=env_float("RATE_LIMIT_WINDOW_SEC", 1.0),
        dedup_max_size=env_int("DEDUP_MAX_SIZE", 1000),
        dedup_retain=env_int("DEDUP_RETAIN", 500),
        request_concurrency=env_int("REQUEST_CONCURRENCY", 3),
        animation_reset_sec=env_float("ANIMATION_RESET_SEC", 1.5),
        next_boss_delay_sec=env_float("NEXT_BOSS_DELAY_SEC", 4.0),
        feed_enabled=env_bool("FEED_ENABLED", False),
        connect_timeout_sec=env_float("FEED_CONNECT_TIMEOUT_SEC", 10.0),
        reconnect_max_attempts=env_int("RECONNECT_MAX_ATTEMPTS", 5),
        reconnect_base_delay_sec=env_float("RECONNECT_BASE_DELAY_SEC", 1.0),
        watchdog_interval_sec=env_float("WATCHDOG_INTERVAL_SEC", 30.0),
        api_host=env_str("API_HOST", "0.0.0.0"),
        api_port=env_int("API_PORT", 8000),
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the process-wide settings. Cached after the first call; tests call
    get_settings.cache_clear() after changing the environment.
    """
    return load_settings()
