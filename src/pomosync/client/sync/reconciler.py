"""Applies inbound SyncEvents to the local timer.

This module provides:
- RemoteActionReconciler: maps each event type to the matching
  TimerStateMachine transition

Rules:
    - events from this session (same origin) are dropped
    - events already applied (same event id) are dropped
    - a transition is applied through the machine, never by writing fields,
      so local invariants are re-checked
    - while applying, ``applying_remote`` is set; the session uses it (and
      the result's remote flag) to avoid re-broadcasting
    - when the event does not match local state (missed events, races) the
      payload is adopted wholesale, unless it is older than the local state
    - a stop or reset older than the last local transition is dropped

Remote transitions never record time entries: the session where the
transition originated records it.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from datetime import datetime, timedelta

from pomosync.client.timer.machine import TimerStateMachine, TransitionResult
from pomosync.core.events import SyncEvent, TimerSnapshot
from pomosync.core.types import SyncEventType, TimerMode, TimerStatus

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = 256


class RemoteActionReconciler:
    """Applies events from other sessions of the same user.

    Usage:
        reconciler = RemoteActionReconciler(machine, session_id, reply=channel.send)
        channel.set_callbacks(on_event=reconciler.apply)
    """

    def __init__(
        self,
        machine: TimerStateMachine,
        session_id: str,
        on_applied: Callable[[TransitionResult, SyncEvent], None] | None = None,
        reply: Callable[[SyncEvent], object] | None = None,
        history: int = DEFAULT_HISTORY,
    ) -> None:
        """Initialize the reconciler.

        Args:
            machine: Local state machine.
            session_id: Origin tag of this session.
            on_applied: Called after a remote transition was applied.
            reply: Sends an event back (answers to requestSync).
            history: Number of event ids remembered for deduplication.
        """
        self._machine = machine
        self._session_id = session_id
        self._on_applied = on_applied
        self._reply = reply
        self._seen: deque[str] = deque(maxlen=history)
        self._seen_set: set[str] = set()
        self._applying = False

        self._handlers: dict[SyncEventType, Callable[[SyncEvent], TransitionResult | None]] = {
            SyncEventType.START: self._on_start,
            SyncEventType.PAUSE: self._on_pause,
            SyncEventType.RESUME: self._on_resume,
            SyncEventType.STOP: self._on_stop,
            SyncEventType.RESET: self._on_reset,
            SyncEventType.TICK: self._on_phase_change,
            SyncEventType.SKIP: self._on_phase_change,
            SyncEventType.REQUEST_SYNC: self._on_request_sync,
            SyncEventType.SYNC: self._on_sync,
        }

    @property
    def applying_remote(self) -> bool:
        """True while a remote event is being applied."""
        return self._applying

    def apply(self, event: SyncEvent) -> TransitionResult | None:
        """Apply one inbound event.

        Args:
            event: Event received from the channel.

        Returns:
            The transition result, or None if the event was dropped or
            needed no transition.
        """
        if event.origin and event.origin == self._session_id:
            logger.debug("Dropping own %s event", event.type.value)
            return None
        if event.event_id in self._seen_set:
            logger.debug("Dropping duplicate %s event %s", event.type.value, event.event_id)
            return None
        self._remember(event.event_id)

        handler = self._handlers.get(event.type)
        if handler is None:
            return None

        self._applying = True
        try:
            result = handler(event)
        finally:
            self._applying = False

        if result and self._on_applied:
            self._on_applied(result, event)
        return result

    def _remember(self, event_id: str) -> None:
        if len(self._seen) == self._seen.maxlen:
            self._seen_set.discard(self._seen[0])
        self._seen.append(event_id)
        self._seen_set.add(event_id)

    # === Handlers ===

    def _on_start(self, event: SyncEvent) -> TransitionResult:
        p = event.payload
        m = self._machine
        status = m.status

        if status == TimerStatus.IDLE:
            if (p.mode or TimerMode.WORK) != TimerMode.WORK or (p.current_repetition or 1) != 1:
                return self._adopt(event)
            self._apply_settings(p)
            return m.start(
                at=event.timestamp,
                phase_started_at=p.work_start_time or _started_at(p, event.timestamp),
            )

        if not self._same_phase(p):
            # Last start wins
            return self._adopt(event)
        if status == TimerStatus.PAUSED:
            return m.resume(at=event.timestamp, elapsed_ms=p.elapsed_ms)
        return TransitionResult(SyncEventType.START, False)

    def _on_pause(self, event: SyncEvent) -> TransitionResult:
        if not self._same_phase(event.payload):
            return self._adopt(event)
        return self._machine.pause(at=event.timestamp, elapsed_ms=event.payload.elapsed_ms)

    def _on_resume(self, event: SyncEvent) -> TransitionResult:
        if not self._same_phase(event.payload):
            return self._adopt(event)
        return self._machine.resume(at=event.timestamp, elapsed_ms=event.payload.elapsed_ms)

    def _on_stop(self, event: SyncEvent) -> TransitionResult:
        if self._is_stale(event):
            return TransitionResult(SyncEventType.STOP, False)
        return self._machine.stop(at=event.timestamp, record=False)

    def _on_reset(self, event: SyncEvent) -> TransitionResult:
        if self._is_stale(event):
            return TransitionResult(SyncEventType.RESET, False)
        return self._machine.reset(at=event.timestamp, record=False)

    def _on_phase_change(self, event: SyncEvent) -> TransitionResult:
        """Follow a peer into its next phase.

        If ending the local phase leads to the peer's phase, switch locally
        (same decision table, same effects minus recording). Otherwise the
        sessions have diverged and the payload is adopted.
        """
        p = event.payload
        m = self._machine
        state = m.state

        if (state.status, state.mode, state.current_repetition) == (
            p.status, p.mode, p.current_repetition
        ) and self._same_phase(p):
            return TransitionResult(event.type, False)

        if state.status != TimerStatus.IDLE:
            decision = m.engine.decide(state)
            if decision.finished:
                predicted = (TimerStatus.IDLE, TimerMode.WORK, 1)
            else:
                predicted = (TimerStatus.RUNNING, decision.next_mode, decision.next_repetition)
            if predicted == (p.status, p.mode, p.current_repetition):
                started_at = p.work_start_time or _started_at(p, event.timestamp)
                return m.switch_to_next(
                    at=event.timestamp, record=False, phase_started_at=started_at
                )

        return self._adopt(event)

    def _on_request_sync(self, event: SyncEvent) -> None:
        m = self._machine
        if self._reply is None or m.updated_at is None:
            return None
        logger.debug("Answering requestSync from %s", event.origin)
        at = m.now()
        self._reply(SyncEvent.create(
            SyncEventType.SYNC,
            payload=m.snapshot(at),
            origin=self._session_id,
            timestamp=at,
        ))
        return None

    def _on_sync(self, event: SyncEvent) -> TransitionResult:
        p = event.payload
        local = self._machine.updated_at
        if p.updated_at is None or (local is not None and p.updated_at <= local):
            logger.debug("Ignoring sync snapshot not newer than local state")
            return TransitionResult(SyncEventType.SYNC, False)
        return self._machine.sync_from(p, at=event.timestamp)

    # === Helpers ===

    def _is_stale(self, event: SyncEvent) -> bool:
        """Check if the event predates the last local transition."""
        local = self._machine.updated_at
        if local is not None and event.timestamp < local:
            logger.debug("Ignoring stale %s event", event.type.value)
            return True
        return False

    def _adopt(self, event: SyncEvent) -> TransitionResult:
        """Take over the payload unless it is older than the local state."""
        if self._is_stale(event):
            return TransitionResult(event.type, False)
        return self._machine.sync_from(event.payload, at=event.timestamp)

    def _same_phase(self, p: TimerSnapshot) -> bool:
        """Check if the payload describes the local phase instance."""
        state = self._machine.state
        if state.status == TimerStatus.IDLE or p.status == TimerStatus.IDLE:
            return state.status == p.status
        if p.mode != state.mode or p.current_repetition != state.current_repetition:
            return False
        if state.mode == TimerMode.WORK and p.work_start_time is not None:
            return p.work_start_time == state.work_start_time
        return True

    def _apply_settings(self, p: TimerSnapshot) -> None:
        """Copy settings and attribution of a starting peer (local is idle)."""
        m = self._machine
        if p.work_duration_min is not None:
            m.set_work_duration(p.work_duration_min)
        if p.break_duration_min is not None:
            m.set_break_duration(p.break_duration_min)
        if p.repetitions is not None:
            m.set_repetitions(p.repetitions)
        if p.infinite_mode is not None:
            m.set_infinite_mode(p.infinite_mode)
        m.set_project_id(p.project_id)
        m.set_task_id(p.task_id)
        if p.notes is not None:
            m.set_notes(p.notes)
        if p.tags is not None:
            m.set_tags(p.tags)


def _started_at(p: TimerSnapshot, at: datetime) -> datetime:
    return at - timedelta(milliseconds=p.elapsed_ms or 0)
