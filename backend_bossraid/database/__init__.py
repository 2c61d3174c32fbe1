"""Game store: bosses, trades and the session behind one Database facade."""

from backend_bossraid.database.database import (
    Database,
    GameStoreBackend,
    SettlementResult,
    build_backend,
    get_database,
)
from backend_bossraid.database.models import (
    Boss,
    BossRegistration,
    BossSprites,
    GameSession,
    Trade,
    TraderDamage,
)

__all__ = [
    "Boss",
    "BossRegistration",
    "BossSprites",
    "Database",
    "GameSession",
    "GameStoreBackend",
    "SettlementResult",
    "Trade",
    "TraderDamage",
    "build_backend",
    "get_database",
]
