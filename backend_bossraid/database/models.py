"""
Domain models for database entities.

Bosses, applied trades, and the singleton game session. Used by every store
backend; no ORM coupling so backends stay swappable. to_dict()/from_dict()
use the camelCase keys of the JSON API and the flat-file document.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

TX_BUY = "buy"
TX_SELL = "sell"
TX_CREATE = "create"

SPRITE_STATES = ("idle", "hitting", "healing", "dead")


def utc_now_iso() -> str:
    """Current UTC time as ISO 8601 with millisecond precision and Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp (Z or offset); None for empty/invalid input."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class BossSprites:
    """Asset paths for the four visual states."""

    idle: str = ""
    hitting: str = ""
    healing: str = ""
    dead: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"idle": self.idle, "hitting": self.hitting, "healing": self.healing, "dead": self.dead}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "BossSprites":
        data = data or {}
        return cls(**{k: str(data.get(k) or "") for k in SPRITE_STATES})


@dataclass
class Boss:
    """Stored boss: health, weights, sprites, defeat state."""

    id: int
    boss_id: str
    """Stable slug, e.g. 'quant-kid'."""
    name: str
    max_health: float
    current_health: float
    buy_weight: float
    sell_weight: float
    damage_per_buy: float = 0.0
    heal_per_sell: float = 0.0
    sprites: BossSprites = field(default_factory=BossSprites)
    is_defeated: bool = False
    defeated_at: str | None = None
    owner_wallet: str | None = None
    """Trades signed by this wallet defeat the boss instantly."""
    version: int = 0
    """Incremented on every health write; used for optimistic concurrency."""
    created_at: str | None = None
    updated_at: str | None = None

    def copy(self, **changes: Any) -> "Boss":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bossId": self.boss_id,
            "name": self.name,
            "maxHealth": self.max_health,
            "currentHealth": self.current_health,
            "damagePerBuy": self.damage_per_buy,
            "healPerSell": self.heal_per_sell,
            "buyWeight": self.buy_weight,
            "sellWeight": self.sell_weight,
            "sprites": self.sprites.to_dict(),
            "isDefeated": self.is_defeated,
            "defeatedAt": self.defeated_at,
            "ownerWallet": self.owner_wallet,
            "version": self.version,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Boss":
        return cls(
            id=int(data["id"]),
            boss_id=str(data["bossId"]),
            name=str(data.get("name") or data["bossId"]),
            max_health=float(data["maxHealth"]),
            current_health=float(data["currentHealth"]),
            buy_weight=float(data.get("buyWeight") or 0.0),
            sell_weight=float(data.get("sellWeight") or 0.0),
            damage_per_buy=float(data.get("damagePerBuy") or 0.0),
            heal_per_sell=float(data.get("healPerSell") or 0.0),
            sprites=BossSprites.from_dict(data.get("sprites")),
            is_defeated=bool(data.get("isDefeated", False)),
            defeated_at=data.get("defeatedAt"),
            owner_wallet=data.get("ownerWallet") or None,
            version=int(data.get("version") or 0),
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class BossRegistration:
    """Static seed entry used to register (or refresh) a boss."""

    boss_id: str
    name: str
    hp_max: float
    buy_weight: float
    sell_weight: float
    buy_dmg: float = 0.0
    sell_heal: float = 0.0
    sprites: BossSprites = field(default_factory=BossSprites)
    owner_wallet: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BossRegistration":
        """Seed format: {id, name, hpMax, buyWeight, sellWeight, buyDmg, sellHeal, sprites, ownerWallet?}."""
        hp_max = float(data["hpMax"])
        if hp_max <= 0:
            raise ValueError(f"hpMax must be positive for boss {data.get('id')!r}")
        return cls(
            boss_id=str(data["id"]).strip(),
            name=str(data["name"]).strip(),
            hp_max=hp_max,
            buy_weight=float(data["buyWeight"]),
            sell_weight=float(data["sellWeight"]),
            buy_dmg=float(data.get("buyDmg") or 0.0),
            sell_heal=float(data.get("sellHeal") or 0.0),
            sprites=BossSprites.from_dict(data.get("sprites")),
            owner_wallet=(data.get("ownerWallet") or "").strip() or None,
        )


@dataclass
class Trade:
    """Single applied trade; one row per signature."""

    boss_id: int
    signature: str
    mint: str
    sol_amount: float
    token_amount: float
    tx_type: str
    damage_dealt: float = 0.0
    heal_applied: float = 0.0
    timestamp: str = field(default_factory=utc_now_iso)
    trader_address: str | None = None
    id: int | None = None
    created_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bossId": self.boss_id,
            "signature": self.signature,
            "mint": self.mint,
            "solAmount": self.sol_amount,
            "tokenAmount": self.token_amount,
            "txType": self.tx_type,
            "damageDealt": self.damage_dealt,
            "healApplied": self.heal_applied,
            "timestamp": self.timestamp,
            "traderAddress": self.trader_address,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Trade":
        return cls(
            id=data.get("id"),
            boss_id=int(data["bossId"]),
            signature=str(data["signature"]),
            mint=str(data.get("mint") or ""),
            sol_amount=float(data.get("solAmount") or 0.0),
            token_amount=float(data.get("tokenAmount") or 0.0),
            tx_type=str(data.get("txType") or "").lower(),
            damage_dealt=float(data.get("damageDealt") or 0.0),
            heal_applied=float(data.get("healApplied") or 0.0),
            timestamp=data.get("timestamp") or utc_now_iso(),
            trader_address=data.get("traderAddress") or None,
            created_at=data.get("createdAt"),
        )


@dataclass
class GameSession:
    """Singleton running totals across all bosses."""

    id: int = 1
    current_boss_id: int = 1
    total_damage_dealt: float = 0.0
    total_heal_applied: float = 0.0
    session_start: str = field(default_factory=utc_now_iso)
    last_activity: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "currentBossId": self.current_boss_id,
            "totalDamageDealt": self.total_damage_dealt,
            "totalHealApplied": self.total_heal_applied,
            "sessionStart": self.session_start,
            "lastActivity": self.last_activity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameSession":
        return cls(
            id=int(data.get("id") or 1),
            current_boss_id=int(data.get("currentBossId") or 1),
            total_damage_dealt=float(data.get("totalDamageDealt") or 0.0),
            total_heal_applied=float(data.get("totalHealApplied") or 0.0),
            session_start=data.get("sessionStart") or utc_now_iso(),
            last_activity=data.get("lastActivity") or utc_now_iso(),
        )


@dataclass
class TraderDamage:
    """Per-trader aggregate for the damage leaderboard."""

    address: str
    total_damage: float = 0.0
    total_heal: float = 0.0
    buy_count: int = 0
    sell_count: int = 0

    @property
    def net_damage(self) -> float:
        return self.total_damage - self.total_heal
