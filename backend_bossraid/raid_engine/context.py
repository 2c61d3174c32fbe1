"""
Per-engine mutable state: rate limiter, dedup cache, request queue and the
feed reconnect counter. One RaidContext per engine; nothing is module-global.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from backend_bossraid.config.settings import Settings
from backend_bossraid.raid_engine.dedup import DedupCache
from backend_bossraid.raid_engine.filter import SlidingWindowRateLimiter
from backend_bossraid.raid_engine.request_queue import RequestQueue


@dataclass
class RaidContext:
    limiter: SlidingWindowRateLimiter = field(default_factory=SlidingWindowRateLimiter)
    dedup: DedupCache = field(default_factory=DedupCache)
    queue: RequestQueue = field(default_factory=RequestQueue)
    reconnect_attempts: int = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> "RaidContext":
        return cls(
            limiter=SlidingWindowRateLimiter(
                settings.rate_limit_max,
                settings.rate_limit_window_sec,
                clock=clock,
            ),
            dedup=DedupCache(settings.dedup_max_size, settings.dedup_retain),
            queue=RequestQueue(settings.request_concurrency),
        )

    def reset(self) -> None:
        """Clean slate: empty window, empty dedup set, zero reconnect attempts."""
        self.limiter.reset()
        self.dedup.reset()
        self.queue.reset()
        self.reconnect_attempts = 0
