"""
Reconciliation engine: turns validated trades into boss health changes.

Pipeline per feed message:
    filter (validate, rate limit) -> dedup -> compute outcome against the
    in-memory boss snapshot -> update snapshot and emit a RaidEvent ->
    queue one atomic store settlement -> on defeat, load the next boss later.

The snapshot is optimistic. Each settlement recomputes the outcome against
the stored boss; once no settlement is pending for a boss the snapshot is
replaced with the stored state, so a second writer can never leave the
engine drifting.
"""

from __future__ import annotations

import asyncio
import json
from collections import deque
from typing import Any, Callable

from backend_bossraid.bossraid_logging import bind_trade, get_logger, short_sig
from backend_bossraid.config.settings import Settings
from backend_bossraid.core.exceptions import NoActiveBossError
from backend_bossraid.database import Boss, Database, SettlementResult
from backend_bossraid.database.models import utc_now_iso
from backend_bossraid.raid_engine.context import RaidContext
from backend_bossraid.raid_engine.filter import TradeIngestionFilter
from backend_bossraid.raid_engine.models import (
    AnimationState,
    OutcomeKind,
    RaidEvent,
    TradeEvent,
    TradeOutcome,
)
from backend_bossraid.raid_engine.reconciler import apply_outcome, compute_outcome

logger = get_logger(__name__)

RECENT_TRADES = 10

Listener = Callable[[RaidEvent], None]


def _state_for(outcome: TradeOutcome) -> AnimationState:
    if outcome.defeated:
        return AnimationState.DEAD
    if outcome.kind is OutcomeKind.HEAL:
        return AnimationState.HEALING
    return AnimationState.HITTING


class ReconciliationEngine:
    """One engine per feed connection; owns the boss snapshot and animation state."""

    def __init__(
        self,
        db: Database,
        settings: Settings,
        context: RaidContext | None = None,
    ) -> None:
        self.db = db
        self.settings = settings
        self.context = context or RaidContext.from_settings(settings)
        self.filter = TradeIngestionFilter(
            settings.token_mint,
            self.context.limiter,
            max_sol=settings.max_sol_per_trade,
        )
        self.boss: Boss | None = None
        self.state = AnimationState.IDLE
        self.recent: deque[dict[str, Any]] = deque(maxlen=RECENT_TRADES)
        self._listeners: list[Listener] = []
        self._pending: dict[int, int] = {}
        self._reset_handle: asyncio.TimerHandle | None = None
        self._next_boss_task: asyncio.Task[Any] | None = None

    # --- listeners ---

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a UI listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, kind: str, outcome: TradeOutcome | None = None, signature: str | None = None) -> None:
        event = RaidEvent(kind=kind, boss=self.boss, state=self.state, outcome=outcome, signature=signature)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.exception("raid_listener_failed", kind=kind, error=str(e))

    # --- boss loading ---

    async def load_current_boss(self) -> Boss | None:
        """Fetch the first non-defeated boss into the snapshot (None: all defeated)."""
        loop = asyncio.get_running_loop()
        boss = await loop.run_in_executor(None, self.db.get_current_boss)
        self.boss = boss
        self.state = AnimationState.IDLE
        if boss is None:
            logger.info("raid_no_active_boss")
            self._emit("no_boss")
        else:
            logger.info("raid_boss_loaded", boss_id=boss.id, name=boss.name, health=boss.current_health)
            self._emit("boss_loaded")
        return boss

    def _schedule_next_boss(self) -> None:
        if self._next_boss_task is not None and not self._next_boss_task.done():
            return
        self._next_boss_task = asyncio.ensure_future(self._next_boss_after_delay())

    async def _next_boss_after_delay(self) -> None:
        await asyncio.sleep(self.settings.next_boss_delay_sec)
        # The defeat must be stored before the store can hand out the next boss
        await self.context.queue.drain()
        await self.load_current_boss()

    # --- animation ---

    def _schedule_animation_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
        loop = asyncio.get_running_loop()
        self._reset_handle = loop.call_later(self.settings.animation_reset_sec, self._reset_animation)

    def _reset_animation(self) -> None:
        self._reset_handle = None
        if self.boss is not None and self.boss.is_defeated:
            self.state = AnimationState.DEAD
        else:
            self.state = AnimationState.IDLE
        self._emit("animation_reset")

    # --- ingestion ---

    def handle_message(self, raw: str | bytes | dict[str, Any]) -> TradeOutcome | None:
        """
        Process one feed message. Returns the optimistic outcome, or None when
        the message was rejected, replayed, or there is no live boss.
        Must run inside the event loop (persistence and timers are scheduled on it).
        """
        if isinstance(raw, (str, bytes)):
            try:
                message = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.warning("feed_message_unparseable", error=str(e))
                return None
        else:
            message = raw
        if not isinstance(message, dict):
            return None
        if not (message.get("signature") and message.get("mint")):
            # Subscription acks and other non-trade frames
            logger.debug("feed_message_ignored", keys=sorted(message)[:8])
            return None

        decision = self.filter.check(message)
        if not decision.accepted or decision.event is None:
            return None
        event = decision.event
        if not self.context.dedup.check_and_record(event.signature):
            bind_trade(logger, event.signature).debug("trade_replay_skipped")
            return None
        return self.apply_trade(event)

    def apply_trade(self, event: TradeEvent) -> TradeOutcome | None:
        """Apply a validated, deduplicated trade to the snapshot and queue its settlement."""
        boss = self.boss
        if boss is None or boss.is_defeated:
            bind_trade(logger, event.signature).debug("trade_dropped_no_boss")
            return None

        log = bind_trade(logger, event.signature, boss.id)
        outcome = compute_outcome(boss, event, self.settings.damage_scaling_constant)
        if not outcome.applied:
            log.debug("trade_ignored", reason=outcome.reason)
            return outcome

        self.boss = apply_outcome(boss, outcome, now=utc_now_iso())
        self.state = _state_for(outcome)
        self.recent.appendleft({**event.to_trade(boss.id, outcome.damage, outcome.heal).to_dict(), "kind": outcome.kind.value})
        log.info(
            "trade_applied",
            kind=outcome.kind.value,
            sol_amount=event.sol_amount,
            old_health=outcome.old_health,
            new_health=outcome.new_health,
        )
        self._emit("trade_applied", outcome, event.signature)
        self._persist(event, boss.id)
        self._schedule_animation_reset()
        if outcome.defeated:
            log.info("boss_defeated", name=boss.name)
            self._emit("boss_defeated", outcome, event.signature)
            self._schedule_next_boss()
        return outcome

    # --- persistence ---

    def _track(self, boss_id: int) -> None:
        self._pending[boss_id] = self._pending.get(boss_id, 0) + 1

    def _untrack(self, boss_id: int) -> None:
        left = self._pending.get(boss_id, 0) - 1
        if left > 0:
            self._pending[boss_id] = left
        else:
            self._pending.pop(boss_id, None)

    def _settle_call(self, boss_id: int, event: TradeEvent) -> Callable[[], SettlementResult]:
        k = self.settings.damage_scaling_constant

        def resolve(stored: Boss) -> TradeOutcome:
            return compute_outcome(stored, event, k)

        def build(outcome: TradeOutcome):
            return event.to_trade(boss_id, outcome.damage, outcome.heal)

        return lambda: self.db.settle_trade(boss_id, event.signature, resolve, build)

    async def _settle(self, boss_id: int, event: TradeEvent) -> SettlementResult:
        """Run one settlement. The caller counted it as pending when it was queued."""
        try:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, self._settle_call(boss_id, event))
        finally:
            self._untrack(boss_id)
        self._sync_snapshot(result)
        return result

    def _persist(self, event: TradeEvent, boss_id: int) -> None:
        # Pending from queue time until settled; _sync_snapshot waits for zero
        self._track(boss_id)
        self.context.queue.submit(
            lambda: self._settle(boss_id, event),
            label=f"settle:{short_sig(event.signature)}",
        )

    def _sync_snapshot(self, result: SettlementResult) -> None:
        """Adopt the stored boss once nothing else is in flight for it."""
        stored = result.boss
        current = self.boss
        if stored is None or current is None or current.id != stored.id:
            return
        if self._pending.get(stored.id, 0) > 0:
            return
        drifted = (
            stored.current_health != current.current_health or stored.is_defeated != current.is_defeated
        )
        self.boss = stored
        if not drifted:
            return
        logger.warning(
            "snapshot_corrected",
            boss_id=stored.id,
            snapshot_health=current.current_health,
            stored_health=stored.current_health,
            stored_version=stored.version,
        )
        if stored.is_defeated:
            self.state = AnimationState.DEAD
            self._schedule_next_boss()
        elif current.is_defeated:
            self.state = AnimationState.IDLE
        self._emit("snapshot_corrected")

    async def submit_trade(self, event: TradeEvent) -> SettlementResult:
        """
        Server-authoritative path: settle one trade against the stored boss and
        return the resulting state. The snapshot follows the stored result.
        """
        loop = asyncio.get_running_loop()
        boss = await loop.run_in_executor(None, self.db.get_current_boss)
        if boss is None:
            raise NoActiveBossError()
        if self.boss is None or self.boss.id != boss.id:
            # Another writer moved the raid on; follow the store
            await self.load_current_boss()
        self.context.dedup.record(event.signature)
        self._track(boss.id)
        started = False

        async def settle() -> SettlementResult:
            nonlocal started
            started = True
            return await self._settle(boss.id, event)

        try:
            result = await self.context.queue.enqueue(settle)
        except asyncio.CancelledError:
            if not started:
                self._untrack(boss.id)
            raise
        if result.applied and result.outcome is not None:
            self.recent.appendleft(
                {**event.to_trade(boss.id, result.outcome.damage, result.outcome.heal).to_dict(), "kind": result.outcome.kind.value}
            )
            self.state = _state_for(result.outcome)
            self._emit("trade_applied", result.outcome, event.signature)
            self._schedule_animation_reset()
            if result.outcome.defeated:
                self._emit("boss_defeated", result.outcome, event.signature)
                self._schedule_next_boss()
        return result

    # --- state / lifecycle ---

    def snapshot(self) -> dict[str, Any]:
        return {
            "boss": self.boss.to_dict() if self.boss else None,
            "state": self.state.value,
            "pendingWrites": self.context.queue.pending,
            "recentTrades": list(self.recent),
        }

    async def shutdown(self) -> None:
        """Stop timers; let in-flight settlements finish."""
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        if self._next_boss_task is not None and not self._next_boss_task.done():
            self._next_boss_task.cancel()
        await self.context.queue.drain()
        logger.info("raid_engine_stopped")

    async def reset(self) -> None:
        """
        Drop the snapshot and per-engine state (after a game reset).

        New trades are dropped from the first line on; queued settlements run
        to completion before the context is cleared.
        """
        self.boss = None
        self.state = AnimationState.IDLE
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None
        if self._next_boss_task is not None and not self._next_boss_task.done():
            self._next_boss_task.cancel()
        await self.context.queue.drain()
        self.context.reset()
        self.recent.clear()
        self._pending.clear()
        logger.info("raid_engine_reset")
