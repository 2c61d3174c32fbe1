"""
Raid engine: trade ingestion filter, dedup cache, pure reconciliation,
request queue, and the engine that ties them to a boss snapshot.
"""

from backend_bossraid.raid_engine.context import RaidContext
from backend_bossraid.raid_engine.dedup import DedupCache
from backend_bossraid.raid_engine.engine import ReconciliationEngine
from backend_bossraid.raid_engine.filter import (
    FilterDecision,
    SlidingWindowRateLimiter,
    TradeIngestionFilter,
)
from backend_bossraid.raid_engine.models import (
    AnimationState,
    OutcomeKind,
    RaidEvent,
    TradeEvent,
    TradeOutcome,
)
from backend_bossraid.raid_engine.reconciler import compute_outcome
from backend_bossraid.raid_engine.request_queue import RequestQueue

__all__ = [
    "AnimationState",
    "DedupCache",
    "FilterDecision",
    "OutcomeKind",
    "RaidContext",
    "RaidEvent",
    "ReconciliationEngine",
    "RequestQueue",
    "SlidingWindowRateLimiter",
    "TradeEvent",
    "TradeIngestionFilter",
    "TradeOutcome",
    "compute_outcome",
]
