"""Timer state machine.

This module provides:
- TransitionResult: outcome of a transition (falsy when rejected)
- TimerStateMachine: the single owner of a session's TimerState

States:
    idle ──start──► running ◄──resume── paused
                       │ ──pause──────────►│
                       ├─ phase end / skip ─► running (next phase) or idle
                       └─ stop/reset ──────► idle

Mode (work/break) is orthogonal to status. Every mutation goes through a
method of this class, which re-checks the invariants afterwards:

1. exactly one status holds
2. 0 <= elapsed <= phase duration (unless infinite work)
3. 1 <= current_repetition <= repetitions
4. work_start_time is set iff a work phase is active (running or paused)
5. a work phase produces at most one time entry

Illegal transitions are silent no-ops: duplicate or late events from other
devices are expected, so they are logged at debug level and return a
rejected result. Each phase instance gets a new, increasing phase id;
completion and recording are gated on it, so replayed ticks or duplicate
events cannot end the same phase twice.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta

from pomosync.client.timer.clock import ElapsedClock, utcnow
from pomosync.client.timer.effects import Effect, Notify, RecordTimeEntry
from pomosync.client.timer.phases import (
    PHASE_NOTIFICATIONS,
    PhaseAction,
    PhaseTransitionEngine,
)
from pomosync.client.timer.state import (
    InvariantViolation,
    TimeEntrySpec,
    TimerPreset,
    TimerState,
    valid_break_duration,
    valid_repetitions,
    valid_work_duration,
)
from pomosync.core.events import TimerSnapshot
from pomosync.core.types import SyncEventType, TimerMode, TimerStatus

logger = logging.getLogger(__name__)

# Work spans shorter than this are not recorded
MIN_ENTRY_DURATION_MS = 1000


@dataclass
class TransitionResult:
    """Outcome of a transition.

    Attributes:
        action: Event type describing the transition.
        applied: False if the transition was rejected (no-op).
        effects: Side effects to execute after the transition.
    """

    action: SyncEventType
    applied: bool
    effects: list[Effect] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.applied


class TimerStateMachine:
    """Owns one session's TimerState and its transitions.

    Usage:
        machine = TimerStateMachine()
        machine.set_project_id("proj-1")
        machine.start()
        ...
        result = machine.tick()
        if result:
            runner.run(result.effects)
    """

    def __init__(
        self,
        state: TimerState | None = None,
        clock: Callable[[], datetime] = utcnow,
        engine: PhaseTransitionEngine | None = None,
    ) -> None:
        """Initialize the machine.

        Args:
            state: Initial state; live fields are reset so the machine
                always starts idle.
            clock: Source of the current time.
            engine: Phase decision table.
        """
        self._state = replace(state, tags=list(state.tags)) if state else TimerState()
        self._now = clock
        self._engine = engine or PhaseTransitionEngine()
        self._elapsed = ElapsedClock()

        self._phase_id = 0
        self._completed_phase_id = 0
        self._recorded_phase_id = 0
        self._updated_at: datetime | None = None

        self._to_idle()
        self._check_invariants()

    # === Read access ===

    @property
    def state(self) -> TimerState:
        """Copy of the current state, sampled now."""
        self._sample(self._now())
        return replace(self._state, tags=list(self._state.tags))

    @property
    def status(self) -> TimerStatus:
        """Current run status."""
        return self._state.status

    @property
    def phase_id(self) -> int:
        """Id of the current phase instance."""
        return self._phase_id

    @property
    def engine(self) -> PhaseTransitionEngine:
        """Decision table used at phase boundaries."""
        return self._engine

    @property
    def updated_at(self) -> datetime | None:
        """When the last transition was applied (None if never)."""
        return self._updated_at

    def now(self) -> datetime:
        """Current time according to the machine's clock."""
        return self._now()

    def snapshot(self, at: datetime | None = None) -> TimerSnapshot:
        """Full wire snapshot of the state.

        Args:
            at: Sampling instant (default now).
        """
        self._sample(at or self._now())
        s = self._state
        return TimerSnapshot(
            status=s.status,
            mode=s.mode,
            work_duration_min=s.work_duration_min,
            break_duration_min=s.break_duration_min,
            repetitions=s.repetitions,
            current_repetition=s.current_repetition,
            elapsed_ms=s.elapsed_ms,
            work_start_time=s.work_start_time,
            project_id=s.project_id,
            task_id=s.task_id,
            notes=s.notes,
            tags=list(s.tags),
            infinite_mode=s.infinite_mode,
            updated_at=self._updated_at,
        )

    # === Settings (idle only) ===

    def set_work_duration(self, minutes: int) -> bool:
        """Set the work phase length; only while idle."""
        if not self._editable("work duration") or not valid_work_duration(minutes):
            return False
        self._state.work_duration_min = minutes
        return True

    def set_break_duration(self, minutes: int) -> bool:
        """Set the break length (0 disables breaks); only while idle."""
        if not self._editable("break duration") or not valid_break_duration(minutes):
            return False
        self._state.break_duration_min = minutes
        return True

    def set_repetitions(self, count: int) -> bool:
        """Set the number of work cycles; only while idle."""
        if not self._editable("repetitions") or not valid_repetitions(count):
            return False
        self._state.repetitions = count
        return True

    def set_infinite_mode(self, enabled: bool) -> bool:
        """Enable work phases without fixed duration; only while idle."""
        if not self._editable("infinite mode"):
            return False
        self._state.infinite_mode = bool(enabled)
        return True

    def apply_preset(self, preset: TimerPreset) -> bool:
        """Apply a preset's three values at once; only while idle."""
        if not self._editable("preset") or not preset.is_valid():
            return False
        self._state.work_duration_min = preset.work_duration_min
        self._state.break_duration_min = preset.break_duration_min
        self._state.repetitions = preset.repetitions
        return True

    # === Attribution (any time) ===

    def set_project_id(self, project_id: str | None) -> bool:
        """Set the project the next time entry is attributed to."""
        self._state.project_id = project_id or None
        return True

    def set_task_id(self, task_id: str | None) -> bool:
        """Set the task the next time entry is attributed to."""
        self._state.task_id = task_id or None
        return True

    def set_notes(self, notes: str) -> bool:
        """Set the notes of the next time entry."""
        self._state.notes = notes or ""
        return True

    def set_tags(self, tags: list[str]) -> bool:
        """Set the tags of the next time entry."""
        self._state.tags = [str(t) for t in tags]
        return True

    # === Transitions ===

    def start(
        self,
        project_id: str | None = None,
        task_id: str | None = None,
        at: datetime | None = None,
        phase_started_at: datetime | None = None,
    ) -> TransitionResult:
        """Start a fresh session from idle, or continue a paused one.

        Args:
            project_id: Overrides the selected project if given.
            task_id: Overrides the selected task if given.
            at: Instant of the action (default now).
            phase_started_at: Start of the work phase if it began earlier
                than ``at`` (adopting a peer's start).
        """
        at = at or self._now()
        s = self._state

        if s.status == TimerStatus.PAUSED:
            self._elapsed.resume(at)
            s.status = TimerStatus.RUNNING
            self._touch(at)
            return TransitionResult(SyncEventType.START, True)

        if s.status != TimerStatus.IDLE:
            return self._reject(SyncEventType.START)

        if project_id:
            s.project_id = project_id
        if task_id:
            s.task_id = task_id
        s.mode = TimerMode.WORK
        s.status = TimerStatus.RUNNING
        self._begin_phase(phase_started_at or at)
        self._touch(at)
        logger.debug("Timer started (phase %d)", self._phase_id)
        return TransitionResult(SyncEventType.START, True)

    def pause(
        self,
        at: datetime | None = None,
        elapsed_ms: int | None = None,
    ) -> TransitionResult:
        """Freeze the running phase.

        Args:
            at: Instant of the action (default now).
            elapsed_ms: Freeze at this value instead of the local one.
        """
        if self._state.status != TimerStatus.RUNNING:
            return self._reject(SyncEventType.PAUSE)
        at = at or self._now()
        if elapsed_ms is not None:
            elapsed_ms = self._clamp_elapsed(elapsed_ms)
        self._elapsed.pause(at, elapsed_ms)
        self._state.status = TimerStatus.PAUSED
        self._touch(at)
        return TransitionResult(SyncEventType.PAUSE, True)

    def resume(
        self,
        at: datetime | None = None,
        elapsed_ms: int | None = None,
    ) -> TransitionResult:
        """Continue a paused phase from its frozen elapsed value.

        Args:
            at: Instant of the action (default now).
            elapsed_ms: Continue from this value instead of the frozen one.
        """
        if self._state.status != TimerStatus.PAUSED:
            return self._reject(SyncEventType.RESUME)
        at = at or self._now()
        if elapsed_ms is not None:
            elapsed_ms = self._clamp_elapsed(elapsed_ms)
        self._elapsed.resume(at, elapsed_ms)
        self._state.status = TimerStatus.RUNNING
        self._touch(at)
        return TransitionResult(SyncEventType.RESUME, True)

    def stop(self, at: datetime | None = None, record: bool = True) -> TransitionResult:
        """End the session and return to idle.

        A work phase with a project produces a time entry.

        Args:
            at: Instant of the action (default now).
            record: False to skip the time entry (remote-applied stop).
        """
        if self._state.status == TimerStatus.IDLE:
            return self._reject(SyncEventType.STOP)
        at = at or self._now()
        self._sample(at)
        effects: list[Effect] = self._entry_effects(at) if record else []
        self._to_idle()
        self._touch(at)
        logger.debug("Timer stopped")
        return TransitionResult(SyncEventType.STOP, True, effects)

    def reset(self, at: datetime | None = None, record: bool = True) -> TransitionResult:
        """Stop and also clear project, task, notes and tags."""
        s = self._state
        has_attribution = bool(s.project_id or s.task_id or s.notes or s.tags)
        if s.status == TimerStatus.IDLE and not has_attribution:
            return self._reject(SyncEventType.RESET)
        at = at or self._now()
        self._sample(at)
        effects: list[Effect] = []
        if s.status != TimerStatus.IDLE and record:
            effects = self._entry_effects(at)
        self._to_idle()
        s.project_id = None
        s.task_id = None
        s.notes = ""
        s.tags = []
        self._touch(at)
        return TransitionResult(SyncEventType.RESET, True, effects)

    def tick(self, at: datetime | None = None) -> TransitionResult:
        """Sample the clock and end the phase if its duration is reached.

        Returns:
            Applied result if a phase boundary was crossed, else rejected.
        """
        if self._state.status != TimerStatus.RUNNING:
            return TransitionResult(SyncEventType.TICK, False)
        at = at or self._now()
        duration = self._state.phase_duration_ms
        raw = self._elapsed.elapsed_ms(at)
        if duration is None or raw < duration or self._elapsed.reference is None:
            self._sample(at)
            return TransitionResult(SyncEventType.TICK, False)

        # The phase ended at reference + duration; the next one starts there
        # too, so a late sample does not shift the schedule.
        ended_at = self._elapsed.reference + timedelta(milliseconds=duration)
        return self.complete_phase(self._phase_id, at=at, ended_at=ended_at)

    def switch_to_next(
        self,
        at: datetime | None = None,
        record: bool = True,
        phase_started_at: datetime | None = None,
    ) -> TransitionResult:
        """End the current phase now (user skip).

        Args:
            at: Instant of the action (default now).
            record: False to skip the time entry (remote-applied skip).
            phase_started_at: Start of the next phase if it began earlier.
        """
        if self._state.status == TimerStatus.IDLE:
            return self._reject(SyncEventType.SKIP)
        at = at or self._now()
        return self.complete_phase(
            self._phase_id,
            at=at,
            ended_at=at,
            next_started_at=phase_started_at,
            record=record,
            action=SyncEventType.SKIP,
        )

    def complete_phase(
        self,
        phase_id: int,
        at: datetime | None = None,
        ended_at: datetime | None = None,
        next_started_at: datetime | None = None,
        record: bool = True,
        action: SyncEventType = SyncEventType.TICK,
    ) -> TransitionResult:
        """End phase ``phase_id`` and move to the next one.

        Idempotent: a phase that is not current or already completed is
        ignored.

        Args:
            phase_id: Phase instance being completed.
            at: Instant of the action (default now).
            ended_at: When the phase ended (default ``at``).
            next_started_at: When the next phase starts (default ``ended_at``).
            record: False to skip the time entry.
            action: Event type reported in the result.
        """
        if (
            self._state.status == TimerStatus.IDLE
            or phase_id != self._phase_id
            or phase_id <= self._completed_phase_id
        ):
            return self._reject(action)

        at = at or self._now()
        ended_at = ended_at or at
        self._completed_phase_id = phase_id
        self._sample(ended_at)

        s = self._state
        decision = self._engine.decide(s)
        effects: list[Effect] = []
        if decision.record_entry and record:
            effects.extend(self._entry_effects(ended_at))
        if decision.notification is not None:
            text = PHASE_NOTIFICATIONS[decision.notification]
            effects.append(Notify(decision.notification, text.title, text.body, text.persistent))

        if decision.action == PhaseAction.FINISH:
            self._to_idle()
            logger.info("All %d sessions completed", s.repetitions)
        else:
            s.mode = decision.next_mode
            s.current_repetition = decision.next_repetition
            s.status = TimerStatus.RUNNING
            self._begin_phase(next_started_at or ended_at)
            logger.info(
                "Phase %d: %s %d/%d",
                self._phase_id, s.mode.value, s.current_repetition, s.repetitions,
            )

        self._touch(at)
        return TransitionResult(action, True, effects)

    def sync_from(self, snapshot: TimerSnapshot, at: datetime | None = None) -> TransitionResult:
        """Converge to a peer's full state.

        Values are validated and clamped rather than trusted. No time entry
        or notification is produced: the peer that owned the abandoned
        phase records it.

        Args:
            snapshot: Peer state, sampled at ``at``.
            at: Instant the snapshot was taken (default now).
        """
        at = at or self._now()
        s = self._state
        previous = (s.status == TimerStatus.IDLE, s.mode, s.current_repetition, s.work_start_time)

        if valid_work_duration(snapshot.work_duration_min):
            s.work_duration_min = snapshot.work_duration_min
        if valid_break_duration(snapshot.break_duration_min):
            s.break_duration_min = snapshot.break_duration_min
        if valid_repetitions(snapshot.repetitions):
            s.repetitions = snapshot.repetitions
        s.project_id = snapshot.project_id or None
        s.task_id = snapshot.task_id or None
        if snapshot.notes is not None:
            s.notes = snapshot.notes
        if snapshot.tags is not None:
            s.tags = list(snapshot.tags)
        if snapshot.infinite_mode is not None:
            s.infinite_mode = snapshot.infinite_mode

        status = snapshot.status or s.status
        if status == TimerStatus.IDLE:
            infinite = s.infinite_mode
            self._to_idle()
            s.infinite_mode = infinite
        else:
            s.mode = snapshot.mode or s.mode
            s.current_repetition = min(
                max(snapshot.current_repetition or 1, 1), s.repetitions
            )
            elapsed = self._clamp_elapsed(snapshot.elapsed_ms or 0)
            if s.mode == TimerMode.WORK:
                s.work_start_time = snapshot.work_start_time or (
                    at - timedelta(milliseconds=elapsed)
                )
            else:
                s.work_start_time = None

            current = (False, s.mode, s.current_repetition, s.work_start_time)
            if current != previous:
                self._phase_id += 1

            s.status = status
            if status == TimerStatus.RUNNING:
                self._elapsed.start(at, elapsed)
            else:
                self._elapsed.pause(at, elapsed)

        self._touch(at, updated_at=snapshot.updated_at or at)
        logger.debug("Adopted remote state: %s/%s", s.status.value, s.mode.value)
        return TransitionResult(SyncEventType.SYNC, True)

    # === Internals ===

    def _editable(self, what: str) -> bool:
        if self._state.status != TimerStatus.IDLE:
            logger.debug("Ignoring %s change while %s", what, self._state.status.value)
            return False
        return True

    def _reject(self, action: SyncEventType) -> TransitionResult:
        logger.debug(
            "Ignoring %s while %s/%s",
            action.value, self._state.status.value, self._state.mode.value,
        )
        return TransitionResult(action, False)

    def _begin_phase(self, started_at: datetime) -> None:
        """Open a new phase instance starting at ``started_at``."""
        self._phase_id += 1
        self._elapsed.start(started_at)
        if self._state.mode == TimerMode.WORK:
            self._state.work_start_time = started_at
        else:
            self._state.work_start_time = None

    def _to_idle(self) -> None:
        """Reset live fields to idle defaults (settings and attribution kept)."""
        s = self._state
        s.status = TimerStatus.IDLE
        s.mode = TimerMode.WORK
        s.elapsed_ms = 0
        s.current_repetition = 1
        s.work_start_time = None
        s.infinite_mode = False
        self._elapsed.reset()
        self._completed_phase_id = self._phase_id

    def _clamp_elapsed(self, elapsed_ms: int) -> int:
        elapsed_ms = max(0, elapsed_ms)
        duration = self._state.phase_duration_ms
        if duration is not None:
            elapsed_ms = min(elapsed_ms, duration)
        return elapsed_ms

    def _sample(self, at: datetime) -> None:
        self._state.elapsed_ms = self._clamp_elapsed(self._elapsed.elapsed_ms(at))

    def _touch(self, at: datetime, updated_at: datetime | None = None) -> None:
        self._sample(at)
        self._updated_at = updated_at or at
        self._check_invariants()

    def _entry_effects(self, ended_at: datetime) -> list[Effect]:
        """Build the time-entry effect for the current work phase, at most once."""
        s = self._state
        if s.mode != TimerMode.WORK or s.work_start_time is None:
            return []
        if not s.project_id:
            logger.debug("No project selected, skipping time entry")
            return []
        if self._recorded_phase_id >= self._phase_id:
            return []
        if s.elapsed_ms < MIN_ENTRY_DURATION_MS:
            logger.debug("Work span too short (%d ms), skipping time entry", s.elapsed_ms)
            return []

        self._recorded_phase_id = self._phase_id
        entry = TimeEntrySpec(
            project=s.project_id,
            task=s.task_id,
            start_time=s.work_start_time,
            end_time=ended_at,
            duration_ms=s.elapsed_ms,
            notes=s.notes or f"Work session {s.current_repetition}/{s.repetitions}",
            tags=tuple(s.tags),
            entry_key=s.work_start_time.isoformat(),
        )
        return [RecordTimeEntry(entry, self._phase_id)]

    def _check_invariants(self) -> None:
        s = self._state
        if s.elapsed_ms < 0:
            raise InvariantViolation(f"negative elapsed: {s.elapsed_ms}")
        duration = s.phase_duration_ms
        if duration is not None and s.elapsed_ms > duration:
            raise InvariantViolation(f"elapsed {s.elapsed_ms} exceeds phase {duration}")
        if not 1 <= s.current_repetition <= s.repetitions:
            raise InvariantViolation(
                f"repetition {s.current_repetition} outside 1..{s.repetitions}"
            )
        work_active = s.status != TimerStatus.IDLE and s.mode == TimerMode.WORK
        if work_active != (s.work_start_time is not None):
            raise InvariantViolation("work_start_time out of sync with work phase")
