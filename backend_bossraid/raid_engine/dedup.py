"""Bounded memory of already-processed transaction signatures."""

from __future__ import annotations

from collections import deque

from backend_bossraid.bossraid_logging import get_logger

logger = get_logger(__name__)


class DedupCache:
    """
    Set of recently seen signatures with batch eviction: once more than
    max_size are recorded, only the retain most recent survive.
    """

    def __init__(self, max_size: int = 1000, retain: int = 500) -> None:
        if not (0 < retain <= max_size):
            raise ValueError("retain must be between 1 and max_size")
        self.max_size = max_size
        self.retain = retain
        self._seen: set[str] = set()
        self._order: deque[str] = deque()

    def seen(self, signature: str) -> bool:
        return signature in self._seen

    def record(self, signature: str) -> None:
        if signature in self._seen:
            return
        self._seen.add(signature)
        self._order.append(signature)
        if len(self._order) > self.max_size:
            evicted = len(self._order) - self.retain
            for _ in range(evicted):
                self._seen.discard(self._order.popleft())
            logger.debug("dedup_cache_evicted", evicted=evicted, kept=len(self._order))

    def check_and_record(self, signature: str) -> bool:
        """Return True if the signature is new (and remember it), False for a replay."""
        if self.seen(signature):
            return False
        self.record(signature)
        return True

    def __len__(self) -> int:
        return len(self._seen)

    def __contains__(self, signature: object) -> bool:
        return signature in self._seen

    def reset(self) -> None:
        self._seen.clear()
        self._order.clear()
