"""
Create game store tables (SQL) or the data file (JSON) if missing.

Safe to run repeatedly.

Usage:
    python -m backend_bossraid.tools.init_db [--database-url URL]
"""

from __future__ import annotations

import argparse
import sys

from backend_bossraid.config.settings import STORAGE_SQL, get_settings
from backend_bossraid.database import Database
from backend_bossraid.database.sql_backend import SQLBackend
from backend_bossraid.database.database import build_backend


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Initialize the game store")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy URL (overrides env)")
    args = parser.parse_args(argv)

    settings = get_settings()
    if args.database_url:
        backend = SQLBackend(args.database_url)
    else:
        backend = build_backend(settings)
    Database(backend).ensure_schema()
    target = args.database_url or (settings.database_url if settings.storage_backend == STORAGE_SQL else settings.data_file)
    print(f"[init_db] ready: {target}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
