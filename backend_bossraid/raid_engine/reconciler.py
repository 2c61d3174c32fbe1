"""
Trade reconciliation: pure health math.

compute_outcome() turns one validated trade plus one boss snapshot into the
new health, the damage/heal delta and the defeat flag. No I/O and no
rounding; both the live engine (optimistic snapshot) and the stores (atomic
settlement) call it, so the client snapshot and the stored result agree.

Rules, in priority order:
  1. boss already defeated          -> ignored
  2. trader == boss.owner_wallet    -> instant kill (health 0, defeated)
  3. buy / create                   -> damage = sol * k * buy_weight, floor at 0
  4. sell on a live boss (health>0) -> heal = sol * k * sell_weight, cap at max
  5. anything else                  -> ignored
"""

from __future__ import annotations

from backend_bossraid.database.models import Boss
from backend_bossraid.raid_engine.models import OutcomeKind, TradeEvent, TradeOutcome

DEFAULT_SCALING_CONSTANT = 200.0


def _ignored(boss: Boss, reason: str) -> TradeOutcome:
    return TradeOutcome(
        kind=OutcomeKind.IGNORED,
        boss_id=boss.id,
        old_health=boss.current_health,
        new_health=boss.current_health,
        defeated=boss.is_defeated,
        reason=reason,
    )


def is_instant_kill(boss: Boss, trade: TradeEvent) -> bool:
    owner = (boss.owner_wallet or "").strip()
    return bool(owner) and (trade.trader or "").strip() == owner


def buy_damage(sol_amount: float, buy_weight: float, scaling_constant: float = DEFAULT_SCALING_CONSTANT) -> float:
    return sol_amount * scaling_constant * buy_weight


def sell_heal(sol_amount: float, sell_weight: float, scaling_constant: float = DEFAULT_SCALING_CONSTANT) -> float:
    return sol_amount * scaling_constant * sell_weight


def compute_outcome(
    boss: Boss,
    trade: TradeEvent,
    scaling_constant: float = DEFAULT_SCALING_CONSTANT,
) -> TradeOutcome:
    """Apply one trade to a boss snapshot. Never mutates boss."""
    old = boss.current_health
    if boss.is_defeated:
        return _ignored(boss, "boss_defeated")

    if is_instant_kill(boss, trade):
        return TradeOutcome(
            kind=OutcomeKind.INSTANT_KILL,
            boss_id=boss.id,
            old_health=old,
            new_health=0.0,
            damage=old,
            defeated=True,
        )

    if trade.is_buy:
        damage = buy_damage(trade.sol_amount, boss.buy_weight, scaling_constant)
        new_health = max(0.0, old - damage)
        return TradeOutcome(
            kind=OutcomeKind.DAMAGE,
            boss_id=boss.id,
            old_health=old,
            new_health=new_health,
            damage=damage,
            defeated=new_health <= 0,
        )

    if trade.is_sell:
        if old <= 0:
            return _ignored(boss, "boss_at_zero_health")
        heal = sell_heal(trade.sol_amount, boss.sell_weight, scaling_constant)
        return TradeOutcome(
            kind=OutcomeKind.HEAL,
            boss_id=boss.id,
            old_health=old,
            new_health=min(boss.max_health, old + heal),
            heal=heal,
        )

    return _ignored(boss, f"unsupported_tx_type:{trade.tx_type}")


def apply_outcome(boss: Boss, outcome: TradeOutcome, *, now: str | None = None) -> Boss:
    """Return a new snapshot with the outcome applied (identity for ignored outcomes)."""
    if not outcome.applied:
        return boss
    defeated_at = boss.defeated_at
    if outcome.defeated and not defeated_at:
        defeated_at = now
    return boss.copy(
        current_health=outcome.new_health,
        is_defeated=outcome.defeated,
        defeated_at=defeated_at,
    )
