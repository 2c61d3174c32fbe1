"""
Register (or refresh) bosses from seed data.

Reads backend_bossraid/data/bosses.json (or --file) and upserts each boss by
slug into the configured store. Re-registering resets a boss to full health.

Usage:
    python -m backend_bossraid.tools.register_bosses [--file seed.json]
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from backend_bossraid.bossraid_logging import get_logger
from backend_bossraid.config.env import get_boss_seed_file
from backend_bossraid.core.exceptions import BossRaidError
from backend_bossraid.database import BossRegistration, Database, get_database

logger = get_logger(__name__)


def load_seed(path: Path) -> list[dict[str, Any]]:
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of bosses")
    return data


def register_all(db: Database, entries: list[dict[str, Any]]) -> tuple[int, int]:
    """Register every entry; one bad entry does not stop the rest. Returns (ok, failed)."""
    ok = failed = 0
    for entry in entries:
        try:
            boss = db.register_boss(BossRegistration.from_dict(entry))
        except (KeyError, ValueError, TypeError, BossRaidError) as e:
            failed += 1
            logger.error("boss_register_failed", boss=entry.get("name") or entry.get("id"), error=str(e))
            continue
        ok += 1
        print(f"[register_bosses] {boss.name} ({boss.boss_id}) id={boss.id} HP {boss.current_health:g}/{boss.max_health:g}")
    return ok, failed


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Register bosses from seed data")
    parser.add_argument("--file", type=Path, default=get_boss_seed_file(), help="Seed JSON file")
    args = parser.parse_args(argv)

    if not args.file.exists():
        print(f"[register_bosses] ERROR: {args.file} not found")
        return 1
    entries = load_seed(args.file)
    db = get_database()
    ok, failed = register_all(db, entries)
    print(f"[register_bosses] done: success={ok} errors={failed}")
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
