"""
Trade ingestion filter: validation and flood guard for inbound feed messages.

A message reaches game logic only if it carries a signature and the tracked
mint, a SOL amount in (0, max_sol), and a buy/sell direction, and the
sliding-window rate limiter has not tripped. Every message that reaches the
filter is counted by the limiter, valid or not.
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable

from backend_bossraid.bossraid_logging import get_logger
from backend_bossraid.database.models import TX_BUY, TX_SELL
from backend_bossraid.raid_engine.models import TradeEvent

logger = get_logger(__name__)

ACCEPTED_TX_TYPES = (TX_BUY, TX_SELL)
SOL_AMOUNT_KEYS = ("solAmount", "sol_amount", "amount")

REJECT_MISSING_SIGNATURE = "missing_signature"
REJECT_MISSING_MINT = "missing_mint"
REJECT_BAD_AMOUNT = "invalid_sol_amount"
REJECT_AMOUNT_TOO_LARGE = "sol_amount_too_large"
REJECT_BAD_TX_TYPE = "invalid_tx_type"
REJECT_WRONG_MINT = "mint_mismatch"
REJECT_RATE_LIMITED = "rate_limited"


class SlidingWindowRateLimiter:
    """Rejects once more than max_events timestamps fall inside the trailing window."""

    def __init__(
        self,
        max_events: int = 10,
        window_sec: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_events = max_events
        self.window_sec = window_sec
        self._clock = clock
        self._stamps: deque[float] = deque()

    def hit(self) -> bool:
        """Record one event now. Returns True when the limit is exceeded."""
        now = self._clock()
        self._stamps.append(now)
        cutoff = now - self.window_sec
        while self._stamps and self._stamps[0] < cutoff:
            self._stamps.popleft()
        return len(self._stamps) > self.max_events

    def __len__(self) -> int:
        return len(self._stamps)

    def reset(self) -> None:
        self._stamps.clear()


@dataclass(frozen=True)
class FilterDecision:
    accepted: bool
    event: TradeEvent | None = None
    reason: str | None = None


def _sol_amount(message: dict[str, Any]) -> Any:
    for key in SOL_AMOUNT_KEYS:
        value = message.get(key)
        if value:
            return value
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class TradeIngestionFilter:
    """Validates feed messages for a single tracked mint."""

    def __init__(
        self,
        mint: str,
        limiter: SlidingWindowRateLimiter,
        *,
        max_sol: float = 1000.0,
    ) -> None:
        self.mint = mint
        self.max_sol = max_sol
        self.limiter = limiter

    def validate(self, message: dict[str, Any]) -> str | None:
        """Return a rejection reason, or None when the message is a valid trade."""
        if not message.get("signature"):
            return REJECT_MISSING_SIGNATURE
        if not message.get("mint"):
            return REJECT_MISSING_MINT
        amount = _sol_amount(message)
        if not _is_number(amount) or amount <= 0:
            return REJECT_BAD_AMOUNT
        if amount >= self.max_sol:
            return REJECT_AMOUNT_TOO_LARGE
        tx_type = message.get("txType")
        if not isinstance(tx_type, str) or tx_type.lower() not in ACCEPTED_TX_TYPES:
            return REJECT_BAD_TX_TYPE
        if message["mint"] != self.mint:
            return REJECT_WRONG_MINT
        return None

    def check(self, message: dict[str, Any]) -> FilterDecision:
        limited = self.limiter.hit()
        reason = self.validate(message)
        if reason is None and limited:
            reason = REJECT_RATE_LIMITED
        if reason is not None:
            logger.debug("trade_rejected", reason=reason, signature=str(message.get("signature") or ""))
            return FilterDecision(accepted=False, reason=reason)

        return FilterDecision(accepted=True, event=self.parse(message))

    def parse(self, message: dict[str, Any]) -> TradeEvent:
        """Build a TradeEvent from a message that passed validate()."""
        token_amount = message.get("tokenAmount")
        return TradeEvent(
            signature=str(message["signature"]),
            mint=str(message["mint"]),
            sol_amount=float(_sol_amount(message)),
            tx_type=message["txType"].lower(),
            token_amount=float(token_amount) if _is_number(token_amount) else 0.0,
            trader=message.get("traderPublicKey") or message.get("trader") or None,
        )
