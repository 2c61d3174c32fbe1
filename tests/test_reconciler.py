"""
Tests for the pure health math in raid_engine.reconciler.

Scaling constant 200 throughout: damage = sol * 200 * buyWeight,
heal = sol * 200 * sellWeight.
"""

from __future__ import annotations

import pytest

from backend_bossraid.database.models import Boss
from backend_bossraid.raid_engine.models import OutcomeKind, TradeEvent
from backend_bossraid.raid_engine.reconciler import apply_outcome, compute_outcome

from conftest import OWNER_WALLET, TEST_MINT, TRADER_A


def _boss(current: float = 1000.0, **kw) -> Boss:
    fields = dict(
        id=1,
        boss_id="quant-kid",
        name="Quant Kid",
        max_health=1000.0,
        current_health=current,
        buy_weight=0.65,
        sell_weight=0.35,
        owner_wallet=OWNER_WALLET,
    )
    fields.update(kw)
    return Boss(**fields)


def _trade(sol: float = 1.0, tx_type: str = "buy", trader: str | None = TRADER_A) -> TradeEvent:
    return TradeEvent(signature="sig", mint=TEST_MINT, sol_amount=sol, tx_type=tx_type, trader=trader)


def test_buy_damages_boss():
    """1 SOL buy at weight 0.65 deals 130: 1000 -> 870, still alive."""
    out = compute_outcome(_boss(), _trade(1.0))
    assert out.kind is OutcomeKind.DAMAGE
    assert out.damage == pytest.approx(130.0)
    assert out.new_health == pytest.approx(870.0)
    assert out.defeated is False
    assert out.applied is True


def test_overkill_floors_at_zero_and_defeats():
    """Boss at 50 takes 130: health is exactly 0 and defeated."""
    out = compute_outcome(_boss(50.0), _trade(1.0))
    assert out.new_health == 0.0
    assert out.defeated is True
    assert out.damage == pytest.approx(130.0)


def test_exact_kill_defeats():
    """Damage equal to remaining health defeats the boss."""
    out = compute_outcome(_boss(130.0), _trade(1.0))
    assert out.new_health == pytest.approx(0.0)
    assert out.defeated is True


def test_sell_heals_and_caps_at_max():
    """Heal = sol*200*0.35 and never exceeds max health."""
    out = compute_outcome(_boss(500.0), _trade(1.0, "sell"))
    assert out.kind is OutcomeKind.HEAL
    assert out.heal == pytest.approx(70.0)
    assert out.new_health == pytest.approx(570.0)

    capped = compute_outcome(_boss(990.0), _trade(1.0, "sell"))
    assert capped.new_health == 1000.0
    assert capped.new_health >= capped.old_health


def test_sell_on_defeated_boss_is_ignored():
    """Defeated bosses cannot be healed."""
    out = compute_outcome(_boss(0.0, is_defeated=True), _trade(5.0, "sell"))
    assert out.kind is OutcomeKind.IGNORED
    assert out.applied is False
    assert out.new_health == 0.0


def test_sell_on_zero_health_is_ignored():
    """A live boss record at 0 health is not healed either."""
    out = compute_outcome(_boss(0.0), _trade(5.0, "sell"))
    assert out.kind is OutcomeKind.IGNORED
    assert out.reason == "boss_at_zero_health"


def test_buy_on_defeated_boss_is_ignored():
    out = compute_outcome(_boss(0.0, is_defeated=True), _trade(1.0))
    assert out.applied is False
    assert out.reason == "boss_defeated"


@pytest.mark.parametrize("tx_type,sol", [("buy", 0.001), ("sell", 999.0)])
def test_owner_wallet_instant_kill(tx_type, sol):
    """A trade signed by the boss owner wallet defeats it regardless of type or size."""
    out = compute_outcome(_boss(800.0), _trade(sol, tx_type, trader=OWNER_WALLET))
    assert out.kind is OutcomeKind.INSTANT_KILL
    assert out.new_health == 0.0
    assert out.defeated is True
    assert out.damage == 800.0


def test_no_owner_wallet_means_no_instant_kill():
    out = compute_outcome(_boss(owner_wallet=None), _trade(1.0, trader=OWNER_WALLET))
    assert out.kind is OutcomeKind.DAMAGE


def test_scaling_constant_is_configurable():
    out = compute_outcome(_boss(), _trade(1.0), scaling_constant=100.0)
    assert out.damage == pytest.approx(65.0)


def test_compute_outcome_does_not_mutate():
    boss = _boss()
    compute_outcome(boss, _trade(1.0))
    assert boss.current_health == 1000.0


def test_apply_outcome_sets_defeat_timestamp_once():
    """apply_outcome returns a new snapshot; defeatedAt is set on the defeating trade."""
    boss = _boss(50.0)
    out = compute_outcome(boss, _trade(1.0))
    after = apply_outcome(boss, out, now="2026-01-01T00:00:00+00:00")
    assert after is not boss
    assert after.current_health == 0.0
    assert after.is_defeated is True
    assert after.defeated_at == "2026-01-01T00:00:00+00:00"


def test_apply_outcome_ignored_is_identity():
    boss = _boss(0.0, is_defeated=True)
    out = compute_outcome(boss, _trade(1.0, "sell"))
    assert apply_outcome(boss, out) is boss
