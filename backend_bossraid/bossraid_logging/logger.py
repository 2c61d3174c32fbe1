"""
structlog setup for BossRaid: one JSON line per event.

Every record carries event_type, level, timestamp and the module's logger
name. Chain identifiers (signatures, wallets, mints, token accounts) are
shortened by a processor, so call sites pass full values. Code that logs several events for
one trade binds its context once:

    log = bind_trade(logger, event.signature, boss.id)
    log.info("trade_applied", kind="damage", new_health=870.0)

Must not import anything from backend_bossraid; config and every package
log through this module.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

SHORTENED_FIELDS = ("signature", "trader", "owner_wallet", "mint", "account")
SHORT_ID_LENGTH = 16


def short_sig(value: str | None) -> str:
    """First 16 characters of a signature or wallet, with an ellipsis when cut."""
    s = value or ""
    return s[:SHORT_ID_LENGTH] + "..." if len(s) > SHORT_ID_LENGTH else s


def shorten_chain_ids(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    for key in SHORTENED_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str):
            event_dict[key] = short_sig(value)
    return event_dict


def stamp_event(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """ISO timestamp, and structlog's 'event' renamed to event_type."""
    event_dict.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    return event_dict


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure structlog for the process. Defaults come from LOG_LEVEL
    (INFO) and LOG_FORMAT (json; anything else renders for a console).
    """
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    fmt = (fmt or os.getenv("LOG_FORMAT", "json")).strip().lower()
    if fmt == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            shorten_chain_ids,
            stamp_event,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name, logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_logging()


def get_logger(name: str) -> structlog.BoundLogger:
    """Module logger; every record it writes carries logger=name."""
    return structlog.get_logger(name).bind(logger=name)


def bind_trade(
    logger: structlog.BoundLogger,
    signature: str,
    boss_id: int | None = None,
    **fields: Any,
) -> structlog.BoundLogger:
    """Logger carrying one trade's signature (and boss, when known)."""
    context: dict[str, Any] = {"signature": signature, **fields}
    if boss_id is not None:
        context["boss_id"] = boss_id
    return logger.bind(**context)
