"""
Database abstraction layer for bosses, trade history, and the game session.

Two backends implement the same interface: a flat JSON document (single file,
process-local lock) and SQL via SQLAlchemy (SQLite locally, PostgreSQL in
production). The raid engine and the API server only talk to the Database
facade; which backend sits behind it is a configuration choice.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from backend_bossraid.bossraid_logging import bind_trade, get_logger
from backend_bossraid.core.exceptions import InvalidHealthError
from backend_bossraid.database.models import (
    TX_BUY,
    TX_SELL,
    Boss,
    BossRegistration,
    GameSession,
    Trade,
    TraderDamage,
)
from backend_bossraid.utils.formatting import format_address, format_damage

if TYPE_CHECKING:
    from backend_bossraid.config.settings import Settings
    from backend_bossraid.raid_engine.models import TradeOutcome

logger = get_logger(__name__)

SESSION_ID = 1

# resolve(stored_boss) -> outcome; build(outcome) -> trade record to insert
OutcomeResolver = Callable[[Boss], "TradeOutcome"]
TradeBuilder = Callable[["TradeOutcome"], Trade]


@dataclass
class SettlementResult:
    """What an atomic trade settlement did to the store."""

    boss: Boss | None
    """Stored boss after the settlement (authoritative)."""
    outcome: "TradeOutcome | None"
    """Outcome recomputed against the stored boss; None for duplicates."""
    duplicate: bool = False
    """Signature was already settled; nothing changed."""

    @property
    def applied(self) -> bool:
        return not self.duplicate and self.outcome is not None and self.outcome.applied


def validate_health(boss: Boss, health: float) -> None:
    """Reject health outside [0, max_health]."""
    if health < 0 or health > boss.max_health:
        raise InvalidHealthError(health, boss.max_health)


def log_health_audit(boss: Boss, new_health: float, defeated: bool) -> None:
    """One audit record per boss health write."""
    logger.info(
        "boss_health_audit",
        boss_id=boss.id,
        boss_name=boss.name,
        old_health=boss.current_health,
        new_health=new_health,
        is_defeated=defeated,
        change=new_health - boss.current_health,
    )


def boss_from_registration(reg: BossRegistration) -> Boss:
    """Fresh boss at full health; id assigned by the backend."""
    return Boss(
        id=0,
        boss_id=reg.boss_id,
        name=reg.name,
        max_health=reg.hp_max,
        current_health=reg.hp_max,
        buy_weight=reg.buy_weight,
        sell_weight=reg.sell_weight,
        damage_per_buy=reg.buy_dmg,
        heal_per_sell=reg.sell_heal,
        sprites=reg.sprites,
        is_defeated=False,
        owner_wallet=reg.owner_wallet,
    )


# -----------------------------------------------------------------------------
# Abstract backend
# -----------------------------------------------------------------------------


class GameStoreBackend(ABC):
    """Abstract interface for persistence; implement for a JSON file or SQL."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables / the data file if they do not exist."""
        ...

    # --- Bosses ---

    @abstractmethod
    def list_bosses(self) -> list[Boss]:
        """All bosses ordered by ascending id."""
        ...

    @abstractmethod
    def get_boss(self, boss_id: int) -> Boss | None:
        ...

    @abstractmethod
    def get_boss_by_slug(self, slug: str) -> Boss | None:
        ...

    @abstractmethod
    def upsert_boss(self, boss: Boss, *, preserve_id: bool = False) -> Boss:
        """
        Insert or update a boss keyed by slug. Updates keep id and created_at;
        inserts get the next id unless preserve_id is set (migrations).
        """
        ...

    @abstractmethod
    def write_boss_health(
        self,
        boss_id: int,
        health: float,
        defeated: bool,
        *,
        expected_version: int | None = None,
    ) -> Boss:
        """
        Set current health and defeat flag; bump version; stamp defeated_at once.
        Raises BossNotFoundError, InvalidHealthError, StaleBossVersionError.
        """
        ...

    # --- Trades ---

    @abstractmethod
    def insert_trade(self, trade: Trade) -> bool:
        """Insert a trade. Returns False (no-op) when the signature already exists."""
        ...

    @abstractmethod
    def get_trade(self, signature: str) -> Trade | None:
        ...

    @abstractmethod
    def list_trades(self, boss_id: int | None = None, *, limit: int | None = None) -> list[Trade]:
        """Trades newest first (by timestamp), optionally for one boss."""
        ...

    @abstractmethod
    def set_trader_address(self, signature: str, trader_address: str) -> bool:
        """Backfill trader address. Returns False if the trade is unknown."""
        ...

    @abstractmethod
    def trader_damage(self, boss_id: int) -> list[TraderDamage]:
        """Damage/heal totals per trader address for one boss (trades without address skipped)."""
        ...

    # --- Session ---

    @abstractmethod
    def get_session(self) -> GameSession:
        """Return the singleton session, creating it on first access."""
        ...

    @abstractmethod
    def add_session_totals(
        self,
        session_id: int,
        damage: float,
        heal: float,
        new_boss_id: int | None = None,
    ) -> bool:
        """Additive update; returns False when session_id does not match."""
        ...

    # --- Whole-store ---

    @abstractmethod
    def reset_all(self) -> None:
        """Full health / not defeated for every boss; zeroed session pointing at the first boss."""
        ...

    @abstractmethod
    def settle_trade(
        self,
        boss_id: int,
        signature: str,
        resolve: OutcomeResolver,
        build_trade: TradeBuilder,
    ) -> SettlementResult:
        """
        Atomically: skip if signature known; re-read boss under lock; resolve
        outcome against the stored boss; write health, insert trade and add
        session totals in one unit. Ignored outcomes change nothing.
        """
        ...


# -----------------------------------------------------------------------------
# Database facade: single entrypoint; backend is swappable.
# -----------------------------------------------------------------------------


class Database:
    """
    Game store facade: bosses, trades, session, leaderboard, stats.

    Uses a GameStoreBackend (JSON file or SQL); callers never touch the backend.
    """

    def __init__(self, backend: GameStoreBackend) -> None:
        self._backend = backend

    @property
    def backend(self) -> GameStoreBackend:
        return self._backend

    def ensure_schema(self) -> None:
        self._backend.ensure_schema()

    # --- Bosses ---

    def get_all_bosses(self) -> list[Boss]:
        return self._backend.list_bosses()

    def get_boss_by_id(self, boss_id: int) -> Boss | None:
        return self._backend.get_boss(boss_id)

    def get_boss_by_slug(self, slug: str) -> Boss | None:
        return self._backend.get_boss_by_slug(slug)

    def get_current_boss(self) -> Boss | None:
        """First non-defeated boss by ascending id, or None when all are down."""
        for boss in self._backend.list_bosses():
            if not boss.is_defeated:
                return boss
        return None

    def register_boss(self, reg: BossRegistration) -> Boss:
        """Register (or refresh) a boss from seed data. Always resets it to full health."""
        boss = self._backend.upsert_boss(boss_from_registration(reg))
        logger.info("boss_registered", boss_id=boss.id, slug=boss.boss_id, max_health=boss.max_health)
        return boss

    def upsert_boss(self, boss: Boss, *, preserve_id: bool = False) -> Boss:
        return self._backend.upsert_boss(boss, preserve_id=preserve_id)

    def update_boss_health(self, boss_id: int, health: float, defeated: bool = False) -> Boss:
        """Validated health write (no trade record, no session change)."""
        return self._backend.write_boss_health(boss_id, health, defeated)

    # --- Trades ---

    def save_trade(self, trade: Trade) -> bool:
        """Idempotent on signature. Returns True when a new row was inserted."""
        inserted = self._backend.insert_trade(trade)
        if not inserted:
            bind_trade(logger, trade.signature, trade.boss_id).debug("trade_duplicate_skipped")
        return inserted

    def get_trade(self, signature: str) -> Trade | None:
        return self._backend.get_trade(signature)

    def get_trades_for_boss(self, boss_id: int, limit: int = 50) -> list[Trade]:
        return self._backend.list_trades(boss_id, limit=max(0, limit))

    def set_trader_address(self, signature: str, trader_address: str) -> bool:
        return self._backend.set_trader_address(signature, trader_address)

    # --- Session ---

    def get_or_create_session(self) -> GameSession:
        return self._backend.get_session()

    def update_session(
        self,
        session_id: int,
        damage_dealt: float = 0.0,
        heal_applied: float = 0.0,
        new_boss_id: int | None = None,
    ) -> bool:
        if damage_dealt < 0 or heal_applied < 0:
            # Totals are monotonically non-decreasing
            raise ValueError("session deltas must be non-negative")
        return self._backend.add_session_totals(session_id, damage_dealt, heal_applied, new_boss_id)

    # --- Reconciliation ---

    def settle_trade(
        self,
        boss_id: int,
        signature: str,
        resolve: OutcomeResolver,
        build_trade: TradeBuilder,
    ) -> SettlementResult:
        result = self._backend.settle_trade(boss_id, signature, resolve, build_trade)
        log = bind_trade(logger, signature, boss_id)
        if result.duplicate:
            log.info("trade_settle_duplicate")
        elif result.applied and result.outcome is not None:
            log.info(
                "trade_settled",
                kind=result.outcome.kind.value,
                new_health=result.outcome.new_health,
                defeated=result.outcome.defeated,
            )
        return result

    def reset_all(self) -> None:
        self._backend.reset_all()
        logger.info("game_reset")

    # --- Read models ---

    def get_game_stats(self) -> dict[str, Any]:
        """Counts and sums over stored trades plus defeated boss count."""
        trades = self._backend.list_trades()
        buys = [t for t in trades if t.tx_type == TX_BUY]
        sells = [t for t in trades if t.tx_type == TX_SELL]
        return {
            "totalBuyTrades": len(buys),
            "totalSellTrades": len(sells),
            "totalSolFromBuys": sum(t.sol_amount for t in buys),
            "totalSolFromSells": sum(t.sol_amount for t in sells),
            "totalDamageDealt": sum(t.damage_dealt or 0.0 for t in trades),
            "totalHealApplied": sum(t.heal_applied or 0.0 for t in trades),
            "bossesDefeated": sum(1 for b in self._backend.list_bosses() if b.is_defeated),
        }

    def get_damage_leaderboard(self, boss_id: int, limit: int = 50) -> list[dict[str, Any]]:
        """
        Ranked net damage (damage - heal) per trader for a boss. Only traders
        with a known address and positive net damage are listed.
        """
        rows = [r for r in self._backend.trader_damage(boss_id) if r.address and r.net_damage > 0]
        rows.sort(key=lambda r: r.net_damage, reverse=True)
        out: list[dict[str, Any]] = []
        for rank, r in enumerate(rows[: max(0, limit)], start=1):
            out.append(
                {
                    "address": r.address,
                    "shortAddress": format_address(r.address),
                    "rank": rank,
                    "totalDamage": r.total_damage,
                    "totalHeal": r.total_heal,
                    "netDamage": r.net_damage,
                    "formattedNetDamage": format_damage(r.net_damage),
                    "buyCount": r.buy_count,
                    "sellCount": r.sell_count,
                }
            )
        return out


def build_backend(settings: "Settings") -> GameStoreBackend:
    """Pick the backend named by settings.storage_backend."""
    from backend_bossraid.config.settings import STORAGE_SQL

    if settings.storage_backend == STORAGE_SQL:
        from backend_bossraid.database.sql_backend import SQLBackend

        return SQLBackend(settings.database_url)
    from backend_bossraid.database.json_backend import JSONFileBackend

    return JSONFileBackend(settings.data_file, trade_retention=settings.trade_retention)


def get_database(settings: "Settings | None" = None, *, path: str | Path | None = None) -> Database:
    """
    Return a ready Database.

    path: shortcut for a flat-file store at that location (scripts, tests).
    Otherwise the backend comes from settings (default: get_settings()).
    """
    if path is not None:
        from backend_bossraid.database.json_backend import JSONFileBackend

        backend: GameStoreBackend = JSONFileBackend(Path(path))
    else:
        if settings is None:
            from backend_bossraid.config.settings import get_settings

            settings = get_settings()
        backend = build_backend(settings)
    db = Database(backend)
    db.ensure_schema()
    return db
