"""
Structured logging for Backend BossRaid.

get_logger() per module; bind_trade() for events that belong to one trade.
"""

from backend_bossraid.bossraid_logging.logger import bind_trade, configure_logging, get_logger, short_sig

__all__ = ["bind_trade", "configure_logging", "get_logger", "short_sig"]
