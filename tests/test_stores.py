"""
Tests for the game store: every test runs against the flat JSON file and SQLite
backends through the Database facade.
"""

from __future__ import annotations

import json

import pytest

from backend_bossraid.core.exceptions import BossNotFoundError, InvalidHealthError, StaleBossVersionError
from backend_bossraid.database import BossRegistration, Database, Trade
from backend_bossraid.database.json_backend import JSONFileBackend
from backend_bossraid.raid_engine.models import TradeEvent
from backend_bossraid.raid_engine.reconciler import compute_outcome

from conftest import OWNER_WALLET, TEST_MINT, TRADER_A, TRADER_B


def _trade(boss_id: int, signature: str, tx_type: str = "buy", **kw) -> Trade:
    fields = dict(
        boss_id=boss_id,
        signature=signature,
        mint=TEST_MINT,
        sol_amount=1.0,
        token_amount=1000.0,
        tx_type=tx_type,
    )
    fields.update(kw)
    return Trade(**fields)


def _settle(db: Database, boss_id: int, signature: str, sol: float = 1.0, tx_type: str = "buy", trader=None):
    event = TradeEvent(signature=signature, mint=TEST_MINT, sol_amount=sol, tx_type=tx_type, trader=trader)
    return db.settle_trade(
        boss_id,
        signature,
        lambda stored: compute_outcome(stored, event),
        lambda outcome: event.to_trade(boss_id, outcome.damage, outcome.heal),
    )


# --- Bosses ---


def test_register_assigns_ids_in_order(seeded_store):
    bosses = seeded_store.get_all_bosses()
    assert [b.boss_id for b in bosses] == ["quant-kid", "cooker-flips"]
    assert bosses[0].id < bosses[1].id
    assert bosses[0].current_health == bosses[0].max_health == 1000.0
    assert bosses[0].owner_wallet == OWNER_WALLET
    assert seeded_store.get_boss_by_slug("cooker-flips").name == "Cooker Flips"
    assert seeded_store.get_boss_by_id(9999) is None


def test_reregister_resets_health_and_keeps_id(seeded_store):
    """Registering an existing slug refreshes it at full health under the same id."""
    boss = seeded_store.get_current_boss()
    seeded_store.update_boss_health(boss.id, 10.0)
    again = seeded_store.register_boss(
        BossRegistration.from_dict({"id": "quant-kid", "name": "Quant Kid", "hpMax": 1200, "buyWeight": 0.6, "sellWeight": 0.3})
    )
    assert again.id == boss.id
    assert again.current_health == 1200.0
    assert again.version > boss.version
    assert len(seeded_store.get_all_bosses()) == 2


def test_current_boss_is_first_alive(seeded_store):
    first, second = seeded_store.get_all_bosses()
    assert seeded_store.get_current_boss().id == first.id
    seeded_store.update_boss_health(first.id, 0.0, True)
    assert seeded_store.get_current_boss().id == second.id
    seeded_store.update_boss_health(second.id, 0.0, True)
    assert seeded_store.get_current_boss() is None


def test_health_bounds_enforced(seeded_store):
    """Health writes outside [0, maxHealth] are rejected and change nothing."""
    boss = seeded_store.get_current_boss()
    with pytest.raises(InvalidHealthError):
        seeded_store.update_boss_health(boss.id, -1.0)
    with pytest.raises(InvalidHealthError):
        seeded_store.update_boss_health(boss.id, 1000.5)
    assert seeded_store.get_boss_by_id(boss.id).current_health == 1000.0


def test_health_write_unknown_boss(seeded_store):
    with pytest.raises(BossNotFoundError):
        seeded_store.update_boss_health(9999, 1.0)


def test_versioned_write_rejects_stale_version(seeded_store):
    boss = seeded_store.get_current_boss()
    written = seeded_store.backend.write_boss_health(boss.id, 900.0, False, expected_version=boss.version)
    assert written.version == boss.version + 1
    with pytest.raises(StaleBossVersionError):
        seeded_store.backend.write_boss_health(boss.id, 800.0, False, expected_version=boss.version)
    assert seeded_store.get_boss_by_id(boss.id).current_health == 900.0


def test_defeat_sets_defeated_at(seeded_store):
    boss = seeded_store.get_current_boss()
    seeded_store.update_boss_health(boss.id, 0.0, True)
    stored = seeded_store.get_boss_by_id(boss.id)
    assert stored.is_defeated is True
    assert stored.defeated_at


# --- Trades ---


def test_save_trade_is_idempotent(seeded_store):
    """The same signature twice leaves exactly one record."""
    boss = seeded_store.get_current_boss()
    assert seeded_store.save_trade(_trade(boss.id, "sig-1")) is True
    assert seeded_store.save_trade(_trade(boss.id, "sig-1", sol_amount=99.0)) is False
    trades = seeded_store.get_trades_for_boss(boss.id)
    assert len(trades) == 1
    assert trades[0].sol_amount == 1.0


def test_trades_newest_first_with_limit(seeded_store):
    boss = seeded_store.get_current_boss()
    for i in range(5):
        seeded_store.save_trade(_trade(boss.id, f"sig-{i}", timestamp=f"2026-01-01T00:00:0{i}+00:00"))
    trades = seeded_store.get_trades_for_boss(boss.id, limit=3)
    assert [t.signature for t in trades] == ["sig-4", "sig-3", "sig-2"]
    assert seeded_store.get_trades_for_boss(boss.id + 1) == []


def test_set_trader_address(seeded_store):
    boss = seeded_store.get_current_boss()
    seeded_store.save_trade(_trade(boss.id, "sig-1"))
    assert seeded_store.set_trader_address("sig-1", TRADER_A) is True
    assert seeded_store.get_trade("sig-1").trader_address == TRADER_A
    assert seeded_store.set_trader_address("missing", TRADER_A) is False


# --- Session ---


def test_session_created_and_updated(seeded_store):
    session = seeded_store.get_or_create_session()
    assert session.id == 1
    assert session.current_boss_id == seeded_store.get_current_boss().id
    assert seeded_store.update_session(session.id, 130.0, 20.0) is True
    assert seeded_store.update_session(session.id, 10.0, 0.0, new_boss_id=2) is True
    after = seeded_store.get_or_create_session()
    assert after.total_damage_dealt == pytest.approx(140.0)
    assert after.total_heal_applied == pytest.approx(20.0)
    assert after.current_boss_id == 2


def test_session_rejects_negative_and_unknown(seeded_store):
    with pytest.raises(ValueError):
        seeded_store.update_session(1, -5.0)
    assert seeded_store.update_session(42, 1.0) is False


# --- Settlement ---


def test_settle_applies_damage_atomically(seeded_store):
    """One settlement writes health, the trade record and session totals together."""
    boss = seeded_store.get_current_boss()
    result = _settle(seeded_store, boss.id, "sig-1", 1.0)
    assert result.applied is True
    assert result.boss.current_health == pytest.approx(870.0)
    assert result.boss.version == boss.version + 1
    trade = seeded_store.get_trade("sig-1")
    assert trade.damage_dealt == pytest.approx(130.0)
    assert seeded_store.get_or_create_session().total_damage_dealt == pytest.approx(130.0)


def test_settle_duplicate_is_noop(seeded_store):
    boss = seeded_store.get_current_boss()
    _settle(seeded_store, boss.id, "sig-1", 1.0)
    again = _settle(seeded_store, boss.id, "sig-1", 1.0)
    assert again.duplicate is True
    assert again.applied is False
    assert seeded_store.get_boss_by_id(boss.id).current_health == pytest.approx(870.0)
    assert len(seeded_store.get_trades_for_boss(boss.id)) == 1


def test_settle_recomputes_against_stored_health(seeded_store):
    """Two trades settle sequentially against stored state; none is lost."""
    boss = seeded_store.get_current_boss()
    _settle(seeded_store, boss.id, "sig-1", 1.0)
    _settle(seeded_store, boss.id, "sig-2", 1.0)
    assert seeded_store.get_boss_by_id(boss.id).current_health == pytest.approx(740.0)


def test_settle_defeat_moves_session_to_next_boss(seeded_store):
    first, second = seeded_store.get_all_bosses()
    result = _settle(seeded_store, first.id, "kill", 0.01, trader=OWNER_WALLET)
    assert result.outcome.defeated is True
    assert result.boss.current_health == 0.0
    assert result.boss.is_defeated is True
    assert seeded_store.get_or_create_session().current_boss_id == second.id
    assert seeded_store.get_current_boss().id == second.id


def test_settle_ignored_outcome_is_not_persisted(seeded_store):
    boss = seeded_store.get_current_boss()
    seeded_store.update_boss_health(boss.id, 0.0, True)
    result = _settle(seeded_store, boss.id, "late-sell", 1.0, "sell")
    assert result.applied is False
    assert seeded_store.get_trade("late-sell") is None
    assert seeded_store.get_boss_by_id(boss.id).current_health == 0.0


def test_settle_unknown_boss(seeded_store):
    with pytest.raises(BossNotFoundError):
        _settle(seeded_store, 9999, "sig")


# --- Read models and reset ---


def test_stats_and_leaderboard(seeded_store):
    boss = seeded_store.get_current_boss()
    _settle(seeded_store, boss.id, "a1", 1.0, trader=TRADER_A)
    _settle(seeded_store, boss.id, "a2", 1.0, trader=TRADER_A)
    _settle(seeded_store, boss.id, "b1", 0.5, trader=TRADER_B)
    _settle(seeded_store, boss.id, "b2", 2.0, "sell", trader=TRADER_B)
    _settle(seeded_store, boss.id, "anon", 1.0)

    stats = seeded_store.get_game_stats()
    assert stats["totalBuyTrades"] == 4
    assert stats["totalSellTrades"] == 1
    assert stats["totalSolFromBuys"] == pytest.approx(3.5)
    assert stats["totalSolFromSells"] == pytest.approx(2.0)
    assert stats["bossesDefeated"] == 0

    board = seeded_store.get_damage_leaderboard(boss.id)
    # TRADER_B: 65 damage - 140 heal is negative and left out
    assert [row["address"] for row in board] == [TRADER_A]
    top = board[0]
    assert top["rank"] == 1
    assert top["netDamage"] == pytest.approx(260.0)
    assert top["buyCount"] == 2
    assert top["sellCount"] == 0
    assert top["shortAddress"] == TRADER_A[:4] + "..." + TRADER_A[-4:]
    assert top["formattedNetDamage"] == "260.00"


def test_reset_restores_bosses_and_session(seeded_store):
    first, second = seeded_store.get_all_bosses()
    _settle(seeded_store, first.id, "kill", 0.01, trader=OWNER_WALLET)
    seeded_store.reset_all()
    bosses = seeded_store.get_all_bosses()
    assert all(not b.is_defeated and b.current_health == b.max_health for b in bosses)
    assert all(b.defeated_at is None for b in bosses)
    session = seeded_store.get_or_create_session()
    assert session.current_boss_id == first.id
    assert session.total_damage_dealt == 0.0


# --- Flat-file specifics ---


def test_json_trade_retention(tmp_path):
    """The flat file keeps only the newest trade_retention trades."""
    db = Database(JSONFileBackend(tmp_path / "game.json", trade_retention=3))
    db.ensure_schema()
    for i in range(5):
        db.save_trade(_trade(1, f"sig-{i}"))
    doc = json.loads((tmp_path / "game.json").read_text())
    assert [t["signature"] for t in doc["trades"]] == ["sig-2", "sig-3", "sig-4"]
    assert set(doc) == {"bosses", "trades", "gameSession"}


def test_json_corrupt_file_raises(tmp_path):
    from backend_bossraid.core.exceptions import PersistenceError

    path = tmp_path / "game.json"
    path.write_text("{not json")
    with pytest.raises(PersistenceError):
        Database(JSONFileBackend(path)).get_all_bosses()
