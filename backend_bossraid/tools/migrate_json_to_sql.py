"""
Copy a flat-file game store (game-data.json) into a SQL database.

Replaces every boss, trade and the game session in the target, keeping ids,
then resets the PostgreSQL id sequences. Run once when moving a deployment
from STORAGE_BACKEND=json to sql.

Usage:
    python -m backend_bossraid.tools.migrate_json_to_sql [--data-file PATH] [--database-url URL]
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from backend_bossraid.bossraid_logging import get_logger
from backend_bossraid.config.settings import get_settings
from backend_bossraid.core.exceptions import PersistenceError
from backend_bossraid.database.models import Boss, GameSession, Trade
from backend_bossraid.database.sql_backend import SQLBackend

logger = get_logger(__name__)


def read_document(path: Path) -> tuple[list[Boss], list[Trade], GameSession | None]:
    with path.open("r", encoding="utf-8") as f:
        doc: dict[str, Any] = json.load(f)
    bosses = [Boss.from_dict(b) for b in doc.get("bosses") or []]
    trades = [Trade.from_dict(t) for t in doc.get("trades") or []]
    raw_session = doc.get("gameSession")
    return bosses, trades, GameSession.from_dict(raw_session) if raw_session else None


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Migrate the JSON game store into SQL")
    parser.add_argument("--data-file", type=Path, default=settings.data_file)
    parser.add_argument("--database-url", default=settings.database_url)
    args = parser.parse_args(argv)

    if not args.data_file.exists():
        print(f"[migrate] ERROR: {args.data_file} not found")
        return 1
    try:
        bosses, trades, session = read_document(args.data_file)
    except (OSError, ValueError, KeyError) as e:
        print(f"[migrate] ERROR: cannot read {args.data_file}: {e}")
        return 1
    print(f"[migrate] loaded bosses={len(bosses)} trades={len(trades)} session={'yes' if session else 'no'}")

    backend = SQLBackend(args.database_url)
    try:
        backend.ensure_schema()
        backend.replace_all(bosses, trades, session)
    except PersistenceError as e:
        logger.error("migration_failed", error=str(e))
        print(f"[migrate] ERROR: {e}")
        return 1
    finally:
        backend.dispose()

    print("[migrate] done")
    return 0


if __name__ == "__main__":
    sys.exit(main())
