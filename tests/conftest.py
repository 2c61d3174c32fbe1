"""
Pytest fixtures for BossRaid tests. Each test gets a fresh store in tmp_path
(flat JSON file or SQLite) seeded with a small boss roster.
"""

from __future__ import annotations

import pytest

from backend_bossraid.config.settings import STORAGE_JSON, STORAGE_SQL, Settings
from backend_bossraid.database import BossRegistration, Database
from backend_bossraid.database.json_backend import JSONFileBackend
from backend_bossraid.database.sql_backend import SQLBackend

TEST_MINT = "FbAKcBJCeZgJskA2qdhtZumrtnC1R43W3JVWKthnpump"
TEST_API_KEY = "test-api-key"
OWNER_WALLET = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
TRADER_A = "7F1WzVNQ1Qpurqxxdyv3UrFQR3uoNepULVW9A4bAJ5nZ"
TRADER_B = "4Nd1mBQtrMJVYVfKf2PJy9NZUZdTAsp7D4xWLs4gDB4T"

SEED_BOSSES = [
    {
        "id": "quant-kid",
        "name": "Quant Kid",
        "hpMax": 1000,
        "buyWeight": 0.65,
        "sellWeight": 0.35,
        "buyDmg": 4.5,
        "sellHeal": 20,
        "ownerWallet": OWNER_WALLET,
    },
    {
        "id": "cooker-flips",
        "name": "Cooker Flips",
        "hpMax": 2000,
        "buyWeight": 0.6,
        "sellWeight": 0.4,
        "buyDmg": 6,
        "sellHeal": 25,
    },
]


def trade_message(signature: str, sol_amount: float = 1.0, tx_type: str = "buy", **extra):
    """Feed-shaped trade message for the configured test mint."""
    msg = {
        "signature": signature,
        "mint": TEST_MINT,
        "solAmount": sol_amount,
        "txType": tx_type,
        "tokenAmount": 1000.0,
    }
    msg.update(extra)
    return msg


def seed(db: Database) -> Database:
    for entry in SEED_BOSSES:
        db.register_boss(BossRegistration.from_dict(entry))
    return db


@pytest.fixture
def settings(tmp_path):
    """Settings pointed at tmp_path with short timers and a known API key."""
    return Settings(
        token_mint=TEST_MINT,
        api_key=TEST_API_KEY,
        storage_backend=STORAGE_JSON,
        data_file=tmp_path / "game-data.json",
        database_url=f"sqlite:///{tmp_path / 'bossraid.db'}",
        animation_reset_sec=0.01,
        next_boss_delay_sec=0.01,
    )


@pytest.fixture(params=[STORAGE_JSON, STORAGE_SQL])
def store(request, settings):
    """Empty Database on each backend."""
    if request.param == STORAGE_SQL:
        backend = SQLBackend(settings.database_url)
    else:
        backend = JSONFileBackend(settings.data_file)
    db = Database(backend)
    db.ensure_schema()
    yield db
    if isinstance(backend, SQLBackend):
        backend.dispose()


@pytest.fixture
def seeded_store(store):
    """Database on each backend with the two test bosses registered."""
    return seed(store)


@pytest.fixture
def json_db(settings):
    """Seeded flat-file Database (single backend, for engine and API tests)."""
    db = Database(JSONFileBackend(settings.data_file))
    db.ensure_schema()
    return seed(db)
