"""
Flat-file game store: one JSON document {bosses, trades, gameSession}.

Every operation is load -> mutate -> atomic write (temp file + rename) under a
process-local lock, so settle_trade is atomic for a single server process.
Only the newest trade_retention trades are kept.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from backend_bossraid.bossraid_logging import get_logger
from backend_bossraid.core.exceptions import (
    BossNotFoundError,
    PersistenceError,
    StaleBossVersionError,
)
from backend_bossraid.database.database import (
    SESSION_ID,
    GameStoreBackend,
    OutcomeResolver,
    SettlementResult,
    TradeBuilder,
    log_health_audit,
    validate_health,
)
from backend_bossraid.database.models import (
    TX_BUY,
    TX_SELL,
    Boss,
    GameSession,
    Trade,
    TraderDamage,
    parse_iso,
    utc_now_iso,
)

logger = get_logger(__name__)

DEFAULT_TRADE_RETENTION = 1000


def _empty_document() -> dict[str, Any]:
    return {"bosses": [], "trades": [], "gameSession": None}


def _trade_sort_key(t: dict[str, Any]) -> float:
    dt = parse_iso(t.get("timestamp"))
    return dt.timestamp() if dt else 0.0


class JSONFileBackend(GameStoreBackend):
    """Single-file JSON store. Safe for one process; not for multiple writers."""

    def __init__(self, path: str | Path, *, trade_retention: int = DEFAULT_TRADE_RETENTION) -> None:
        self._path = Path(path)
        self._retention = trade_retention
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    # --- file I/O ---

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return _empty_document()
        try:
            with self._path.open("r", encoding="utf-8") as f:
                doc = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("json_store_read_failed", path=str(self._path), error=str(e))
            raise PersistenceError(f"Cannot read data file {self._path}: {e}") from e
        if not isinstance(doc, dict):
            raise PersistenceError(f"Data file {self._path} is not a JSON object")
        doc.setdefault("bosses", [])
        doc.setdefault("trades", [])
        doc.setdefault("gameSession", None)
        return doc

    def _save(self, doc: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".game-data-", suffix=".json", dir=str(self._path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2)
            os.replace(tmp, self._path)
        except OSError as e:
            logger.error("json_store_write_failed", path=str(self._path), error=str(e))
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise PersistenceError(f"Cannot write data file {self._path}: {e}") from e

    def ensure_schema(self) -> None:
        with self._lock:
            if not self._path.exists():
                self._save(_empty_document())
                logger.info("json_store_created", path=str(self._path))

    # --- helpers on a loaded document ---

    @staticmethod
    def _find_boss(doc: dict[str, Any], boss_id: int) -> dict[str, Any] | None:
        for b in doc["bosses"]:
            if int(b["id"]) == boss_id:
                return b
        return None

    @staticmethod
    def _find_trade(doc: dict[str, Any], signature: str) -> dict[str, Any] | None:
        for t in doc["trades"]:
            if t.get("signature") == signature:
                return t
        return None

    def _session(self, doc: dict[str, Any]) -> GameSession:
        raw = doc.get("gameSession")
        if raw:
            return GameSession.from_dict(raw)
        first = min((int(b["id"]) for b in doc["bosses"]), default=1)
        session = GameSession(id=SESSION_ID, current_boss_id=first)
        doc["gameSession"] = session.to_dict()
        return session

    def _append_trade(self, doc: dict[str, Any], trade: Trade) -> None:
        now = utc_now_iso()
        trade.id = max((int(t.get("id") or 0) for t in doc["trades"]), default=0) + 1
        trade.created_at = trade.created_at or now
        doc["trades"].append(trade.to_dict())
        if len(doc["trades"]) > self._retention:
            dropped = len(doc["trades"]) - self._retention
            doc["trades"] = doc["trades"][dropped:]
            logger.debug("json_store_trades_trimmed", dropped=dropped, kept=self._retention)

    def _write_health(
        self,
        doc: dict[str, Any],
        raw: dict[str, Any],
        health: float,
        defeated: bool,
    ) -> Boss:
        boss = Boss.from_dict(raw)
        validate_health(boss, health)
        log_health_audit(boss, health, defeated)
        now = utc_now_iso()
        raw["currentHealth"] = health
        raw["isDefeated"] = defeated
        if defeated and not raw.get("defeatedAt"):
            raw["defeatedAt"] = now
        raw["version"] = boss.version + 1
        raw["updatedAt"] = now
        return Boss.from_dict(raw)

    def _add_totals(
        self,
        doc: dict[str, Any],
        damage: float,
        heal: float,
        new_boss_id: int | None,
    ) -> None:
        session = self._session(doc)
        session.total_damage_dealt += damage
        session.total_heal_applied += heal
        if new_boss_id is not None:
            session.current_boss_id = new_boss_id
        session.last_activity = utc_now_iso()
        doc["gameSession"] = session.to_dict()

    # --- Bosses ---

    def list_bosses(self) -> list[Boss]:
        with self._lock:
            doc = self._load()
        return sorted((Boss.from_dict(b) for b in doc["bosses"]), key=lambda b: b.id)

    def get_boss(self, boss_id: int) -> Boss | None:
        with self._lock:
            raw = self._find_boss(self._load(), boss_id)
        return Boss.from_dict(raw) if raw else None

    def get_boss_by_slug(self, slug: str) -> Boss | None:
        with self._lock:
            doc = self._load()
        for b in doc["bosses"]:
            if b.get("bossId") == slug:
                return Boss.from_dict(b)
        return None

    def upsert_boss(self, boss: Boss, *, preserve_id: bool = False) -> Boss:
        with self._lock:
            doc = self._load()
            now = utc_now_iso()
            existing_idx = next(
                (i for i, b in enumerate(doc["bosses"]) if b.get("bossId") == boss.boss_id),
                None,
            )
            if existing_idx is not None:
                current = Boss.from_dict(doc["bosses"][existing_idx])
                saved = boss.copy(
                    id=current.id,
                    created_at=current.created_at,
                    version=max(boss.version, current.version + 1),
                    updated_at=now,
                )
                doc["bosses"][existing_idx] = saved.to_dict()
            else:
                if preserve_id and boss.id:
                    new_id = boss.id
                else:
                    new_id = max((int(b["id"]) for b in doc["bosses"]), default=0) + 1
                saved = boss.copy(id=new_id, created_at=boss.created_at or now, updated_at=now)
                doc["bosses"].append(saved.to_dict())
            self._save(doc)
        return saved

    def write_boss_health(
        self,
        boss_id: int,
        health: float,
        defeated: bool,
        *,
        expected_version: int | None = None,
    ) -> Boss:
        with self._lock:
            doc = self._load()
            raw = self._find_boss(doc, boss_id)
            if raw is None:
                raise BossNotFoundError(boss_id)
            actual = int(raw.get("version") or 0)
            if expected_version is not None and actual != expected_version:
                raise StaleBossVersionError(boss_id, expected_version, actual)
            boss = self._write_health(doc, raw, health, defeated)
            self._save(doc)
        return boss

    # --- Trades ---

    def insert_trade(self, trade: Trade) -> bool:
        with self._lock:
            doc = self._load()
            if self._find_trade(doc, trade.signature) is not None:
                return False
            self._append_trade(doc, trade)
            self._save(doc)
        return True

    def get_trade(self, signature: str) -> Trade | None:
        with self._lock:
            raw = self._find_trade(self._load(), signature)
        return Trade.from_dict(raw) if raw else None

    def list_trades(self, boss_id: int | None = None, *, limit: int | None = None) -> list[Trade]:
        with self._lock:
            doc = self._load()
        rows = [t for t in doc["trades"] if boss_id is None or int(t["bossId"]) == boss_id]
        rows.sort(key=_trade_sort_key, reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return [Trade.from_dict(t) for t in rows]

    def set_trader_address(self, signature: str, trader_address: str) -> bool:
        with self._lock:
            doc = self._load()
            raw = self._find_trade(doc, signature)
            if raw is None:
                return False
            raw["traderAddress"] = trader_address
            self._save(doc)
        return True

    def trader_damage(self, boss_id: int) -> list[TraderDamage]:
        totals: dict[str, TraderDamage] = {}
        for t in self.list_trades(boss_id):
            if not t.trader_address:
                continue
            row = totals.setdefault(t.trader_address, TraderDamage(address=t.trader_address))
            row.total_damage += t.damage_dealt or 0.0
            row.total_heal += t.heal_applied or 0.0
            if t.tx_type == TX_BUY:
                row.buy_count += 1
            elif t.tx_type == TX_SELL:
                row.sell_count += 1
        return list(totals.values())

    # --- Session ---

    def get_session(self) -> GameSession:
        with self._lock:
            doc = self._load()
            created = not doc.get("gameSession")
            session = self._session(doc)
            if created:
                self._save(doc)
        return session

    def add_session_totals(
        self,
        session_id: int,
        damage: float,
        heal: float,
        new_boss_id: int | None = None,
    ) -> bool:
        with self._lock:
            doc = self._load()
            if self._session(doc).id != session_id:
                return False
            self._add_totals(doc, damage, heal, new_boss_id)
            self._save(doc)
        return True

    # --- Whole-store ---

    def reset_all(self) -> None:
        with self._lock:
            doc = self._load()
            now = utc_now_iso()
            for raw in doc["bosses"]:
                raw["currentHealth"] = raw["maxHealth"]
                raw["isDefeated"] = False
                raw["defeatedAt"] = None
                raw["version"] = int(raw.get("version") or 0) + 1
                raw["updatedAt"] = now
            first = min((int(b["id"]) for b in doc["bosses"]), default=1)
            doc["gameSession"] = GameSession(id=SESSION_ID, current_boss_id=first).to_dict()
            self._save(doc)

    def settle_trade(
        self,
        boss_id: int,
        signature: str,
        resolve: OutcomeResolver,
        build_trade: TradeBuilder,
    ) -> SettlementResult:
        with self._lock:
            doc = self._load()
            raw = self._find_boss(doc, boss_id)
            if raw is None:
                raise BossNotFoundError(boss_id)
            stored = Boss.from_dict(raw)
            if self._find_trade(doc, signature) is not None:
                return SettlementResult(boss=stored, outcome=None, duplicate=True)

            outcome = resolve(stored)
            if not outcome.applied:
                return SettlementResult(boss=stored, outcome=outcome)

            boss = self._write_health(doc, raw, outcome.new_health, outcome.defeated)
            self._append_trade(doc, build_trade(outcome))
            next_boss_id = None
            if outcome.defeated:
                alive = sorted(int(b["id"]) for b in doc["bosses"] if not b.get("isDefeated"))
                next_boss_id = alive[0] if alive else None
            self._add_totals(doc, outcome.damage, outcome.heal, next_boss_id)
            self._save(doc)
        return SettlementResult(boss=boss, outcome=outcome)
