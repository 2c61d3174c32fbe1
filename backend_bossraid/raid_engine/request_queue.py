"""
Bounded-concurrency queue for persistence work.

At most `concurrency` operations run at once; the rest wait on the semaphore
in arrival order. A failing operation is logged and never blocks the others.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from backend_bossraid.bossraid_logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


class RequestQueue:
    """asyncio.Semaphore-gated runner for store writes."""

    def __init__(self, concurrency: int = 3) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency
        self._semaphore: asyncio.Semaphore | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._active = 0
        self._entered = 0

    def _sem(self) -> asyncio.Semaphore:
        # Created lazily so the queue can be built outside a running loop
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.concurrency)
        return self._semaphore

    @property
    def active(self) -> int:
        """Operations currently holding a slot."""
        return self._active

    @property
    def pending(self) -> int:
        """Submitted operations not finished yet (running or waiting)."""
        return len(self._tasks)

    async def enqueue(self, op: Operation[T]) -> T:
        """Run op once a slot is free and return its result; errors propagate to the caller."""
        self._entered += 1
        try:
            async with self._sem():
                self._active += 1
                try:
                    return await op()
                finally:
                    self._active -= 1
        finally:
            self._entered -= 1

    def submit(self, op: Operation[Any], *, label: str = "request") -> asyncio.Task[Any]:
        """Schedule op without waiting. Failures are logged per operation."""
        task = asyncio.ensure_future(self.enqueue(op))
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                logger.warning("queued_request_cancelled", label=label)
                return
            exc = t.exception()
            if exc is not None:
                logger.error(
                    "queued_request_failed",
                    label=label,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )

        task.add_done_callback(_done)
        return task

    async def drain(self) -> None:
        """Wait for every submitted operation to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def reset(self) -> None:
        """Forget the semaphore so the next use binds to the running loop. A no-op while work is in flight."""
        if self._tasks or self._entered:
            logger.warning("request_queue_reset_skipped", pending=len(self._tasks), active=self._active)
            return
        self._semaphore = None
