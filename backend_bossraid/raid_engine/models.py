"""
Data models for the raid engine.

TradeEvent is a validated inbound trade; TradeOutcome is what reconciling it
against a boss snapshot produces; RaidEvent is the UI signal emitted to
listeners after the in-memory snapshot changes.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from backend_bossraid.database.models import TX_BUY, TX_CREATE, TX_SELL, Boss, Trade, utc_now_iso


class OutcomeKind(str, enum.Enum):
    DAMAGE = "damage"
    HEAL = "heal"
    INSTANT_KILL = "instant_kill"
    IGNORED = "ignored"


class AnimationState(str, enum.Enum):
    IDLE = "idle"
    HITTING = "hitting"
    HEALING = "healing"
    DEAD = "dead"


@dataclass(frozen=True)
class TradeEvent:
    """A trade that passed ingestion validation."""

    signature: str
    mint: str
    sol_amount: float
    tx_type: str
    token_amount: float = 0.0
    trader: str | None = None
    """Signing wallet (traderPublicKey), when the feed provides it."""
    received_at: str = field(default_factory=utc_now_iso)

    @property
    def is_buy(self) -> bool:
        return self.tx_type in (TX_BUY, TX_CREATE)

    @property
    def is_sell(self) -> bool:
        return self.tx_type == TX_SELL

    def to_trade(self, boss_id: int, damage: float = 0.0, heal: float = 0.0) -> Trade:
        """Trade record as persisted after reconciliation ('create' is stored as a buy)."""
        return Trade(
            boss_id=boss_id,
            signature=self.signature,
            mint=self.mint,
            sol_amount=self.sol_amount,
            token_amount=self.token_amount,
            tx_type=TX_BUY if self.is_buy else TX_SELL,
            damage_dealt=damage,
            heal_applied=heal,
            timestamp=self.received_at,
            trader_address=self.trader,
        )


@dataclass(frozen=True)
class TradeOutcome:
    """Result of applying one trade to one boss snapshot."""

    kind: OutcomeKind
    boss_id: int
    old_health: float
    new_health: float
    damage: float = 0.0
    heal: float = 0.0
    defeated: bool = False
    reason: str | None = None
    """Why the trade was ignored (IGNORED only)."""

    @property
    def applied(self) -> bool:
        return self.kind is not OutcomeKind.IGNORED

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "bossId": self.boss_id,
            "oldHealth": self.old_health,
            "newHealth": self.new_health,
            "damage": self.damage,
            "heal": self.heal,
            "defeated": self.defeated,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class RaidEvent:
    """UI signal: the snapshot changed (trade applied, boss defeated, new boss, animation reset)."""

    kind: str
    boss: Boss | None
    state: AnimationState
    outcome: TradeOutcome | None = None
    signature: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "boss": self.boss.to_dict() if self.boss else None,
            "state": self.state.value,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "signature": self.signature,
        }
