"""Tests for the operational scripts: boss registration and JSON -> SQL migration."""

from __future__ import annotations

import pytest

from backend_bossraid.config.env import get_boss_seed_file
from backend_bossraid.database import Database
from backend_bossraid.database.json_backend import JSONFileBackend
from backend_bossraid.database.sql_backend import SQLBackend
from backend_bossraid.tools import migrate_json_to_sql
from backend_bossraid.tools.register_bosses import load_seed, register_all

from conftest import OWNER_WALLET, TRADER_A, seed


def test_bundled_seed_registers_ten_bosses(store):
    entries = load_seed(get_boss_seed_file())
    ok, failed = register_all(store, entries)
    assert (ok, failed) == (10, 0)
    bosses = store.get_all_bosses()
    assert bosses[0].boss_id == "quant-kid"
    assert bosses[0].max_health == 1000
    assert bosses[-1].boss_id == "toly-wizard"
    assert bosses[-1].max_health == 500000
    assert all(b.sprites.idle and b.sprites.dead for b in bosses)
    # health pools grow along the raid order
    assert [b.max_health for b in bosses] == sorted(b.max_health for b in bosses)


def test_register_skips_bad_entries(store):
    entries = [
        {"id": "ok", "name": "Ok", "hpMax": 10, "buyWeight": 0.5, "sellWeight": 0.5},
        {"id": "no-hp", "name": "No HP", "buyWeight": 0.5, "sellWeight": 0.5},
        {"id": "neg", "name": "Neg", "hpMax": -1, "buyWeight": 0.5, "sellWeight": 0.5},
    ]
    assert register_all(store, entries) == (1, 2)
    assert [b.boss_id for b in store.get_all_bosses()] == ["ok"]


def test_migrate_json_to_sql_keeps_ids(tmp_path):
    """Bosses, trades and the session land in SQL with their original ids."""
    data_file = tmp_path / "game-data.json"
    source = seed(Database(JSONFileBackend(data_file)))
    first = source.get_current_boss()
    source.update_boss_health(first.id, 0.0, True)
    source.update_session(1, 1000.0, 0.0, new_boss_id=2)
    from backend_bossraid.database import Trade

    source.save_trade(
        Trade(
            boss_id=first.id,
            signature="sig-1",
            mint="mint",
            sol_amount=0.01,
            token_amount=1.0,
            tx_type="buy",
            damage_dealt=1000.0,
            trader_address=OWNER_WALLET,
        )
    )
    source.save_trade(
        Trade(boss_id=2, signature="sig-2", mint="mint", sol_amount=1.0, token_amount=1.0, tx_type="sell", trader_address=TRADER_A)
    )

    url = f"sqlite:///{tmp_path / 'migrated.db'}"
    rc = migrate_json_to_sql.main(["--data-file", str(data_file), "--database-url", url])
    assert rc == 0

    backend = SQLBackend(url)
    target = Database(backend)
    try:
        assert [(b.id, b.boss_id) for b in target.get_all_bosses()] == [(1, "quant-kid"), (2, "cooker-flips")]
        assert target.get_boss_by_id(1).is_defeated is True
        assert target.get_current_boss().id == 2
        session = target.get_or_create_session()
        assert session.current_boss_id == 2
        assert session.total_damage_dealt == pytest.approx(1000.0)
        assert target.get_trade("sig-1").trader_address == OWNER_WALLET
        assert target.get_trade("sig-2").id == source.get_trade("sig-2").id

        # Running again replaces rather than duplicates
        assert migrate_json_to_sql.main(["--data-file", str(data_file), "--database-url", url]) == 0
        assert len(target.get_trades_for_boss(1)) == 1
    finally:
        backend.dispose()


def test_migrate_missing_file(tmp_path):
    rc = migrate_json_to_sql.main(["--data-file", str(tmp_path / "nope.json"), "--database-url", "sqlite://"])
    assert rc == 1
