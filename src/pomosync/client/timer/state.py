"""Timer state and the records derived from it.

This module provides:
- TimerState: the per-session timer fields
- TimerPreset: named work/break/repetition settings
- TimeEntrySpec: what gets recorded when a work phase ends
- TimerError, InvariantViolation: exception classes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pomosync.core.config import (
    DEFAULT_BREAK_DURATION_MIN,
    DEFAULT_REPETITIONS,
    DEFAULT_WORK_DURATION_MIN,
)
from pomosync.core.types import TimerMode, TimerStatus

MS_PER_MINUTE = 60_000

# Keys of the durable subset that survives a restart
DURABLE_FIELDS = (
    "work_duration_min",
    "break_duration_min",
    "repetitions",
    "project_id",
    "task_id",
    "notes",
    "tags",
)


class TimerError(Exception):
    """Base exception for timer errors."""


class InvariantViolation(TimerError):
    """A timer invariant failed after a transition (internal bug)."""


def valid_work_duration(minutes: Any) -> bool:
    """Work phases last at least one minute."""
    return isinstance(minutes, int) and not isinstance(minutes, bool) and minutes >= 1


def valid_break_duration(minutes: Any) -> bool:
    """Breaks may be 0 (no break between work phases)."""
    return isinstance(minutes, int) and not isinstance(minutes, bool) and minutes >= 0


def valid_repetitions(count: Any) -> bool:
    """At least one work cycle."""
    return isinstance(count, int) and not isinstance(count, bool) and count >= 1


@dataclass
class TimerState:
    """Timer fields held once per session.

    Attributes:
        status: Run status (idle, running, paused).
        mode: Current phase kind (work, break).
        work_duration_min: Work phase length in minutes.
        break_duration_min: Break length in minutes (0 = no breaks).
        repetitions: Planned work cycles.
        current_repetition: 1-indexed cycle counter.
        elapsed_ms: Logical time spent in the current phase.
        work_start_time: Start of the current work phase (None outside one).
        project_id: Project attribution; gates time-entry creation.
        task_id: Task attribution.
        notes: Free text for the time entry.
        tags: Tag ids for the time entry.
        infinite_mode: Work phases have no fixed duration.
    """

    status: TimerStatus = TimerStatus.IDLE
    mode: TimerMode = TimerMode.WORK
    work_duration_min: int = DEFAULT_WORK_DURATION_MIN
    break_duration_min: int = DEFAULT_BREAK_DURATION_MIN
    repetitions: int = DEFAULT_REPETITIONS
    current_repetition: int = 1
    elapsed_ms: int = 0
    work_start_time: datetime | None = None
    project_id: str | None = None
    task_id: str | None = None
    notes: str = ""
    tags: list[str] = field(default_factory=list)
    infinite_mode: bool = False

    @property
    def is_idle(self) -> bool:
        """Check if no phase is active."""
        return self.status == TimerStatus.IDLE

    @property
    def is_on_break(self) -> bool:
        """Check if a break is counting down."""
        return self.mode == TimerMode.BREAK and self.status == TimerStatus.RUNNING

    @property
    def legacy_status(self) -> str:
        """Status with "break" meaning "running in break mode"."""
        if self.is_on_break:
            return "break"
        return self.status.value

    @property
    def is_unbounded(self) -> bool:
        """Check if the current phase has no fixed duration."""
        return self.infinite_mode and self.mode == TimerMode.WORK

    @property
    def phase_duration_ms(self) -> int | None:
        """Length of the current phase, or None when unbounded."""
        if self.is_unbounded:
            return None
        minutes = (
            self.work_duration_min if self.mode == TimerMode.WORK
            else self.break_duration_min
        )
        return minutes * MS_PER_MINUTE

    @property
    def remaining_ms(self) -> int | None:
        """Time left in the current phase, or None when unbounded."""
        duration = self.phase_duration_ms
        if duration is None:
            return None
        return max(0, duration - self.elapsed_ms)

    @property
    def progress(self) -> float:
        """Completion of the current phase in percent (0 when unbounded)."""
        duration = self.phase_duration_ms
        if not duration:
            return 0.0
        return min(100.0, self.elapsed_ms / duration * 100)

    def durable(self) -> dict[str, Any]:
        """Durable subset persisted across restarts.

        Live fields (status, elapsed, work start) are session-transient.
        """
        return {
            "work_duration_min": self.work_duration_min,
            "break_duration_min": self.break_duration_min,
            "repetitions": self.repetitions,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "notes": self.notes,
            "tags": list(self.tags),
        }

    @classmethod
    def from_durable(cls, data: dict[str, Any]) -> TimerState:
        """Restore an idle state from a persisted durable subset.

        Invalid or missing values fall back to defaults.
        """
        state = cls()
        if valid_work_duration(data.get("work_duration_min")):
            state.work_duration_min = data["work_duration_min"]
        if valid_break_duration(data.get("break_duration_min")):
            state.break_duration_min = data["break_duration_min"]
        if valid_repetitions(data.get("repetitions")):
            state.repetitions = data["repetitions"]
        if isinstance(data.get("project_id"), str):
            state.project_id = data["project_id"]
        if isinstance(data.get("task_id"), str):
            state.task_id = data["task_id"]
        if isinstance(data.get("notes"), str):
            state.notes = data["notes"]
        if isinstance(data.get("tags"), list):
            state.tags = [str(t) for t in data["tags"]]
        return state


@dataclass(frozen=True)
class TimerPreset:
    """Named timer settings."""

    name: str
    work_duration_min: int
    break_duration_min: int
    repetitions: int = 1

    def is_valid(self) -> bool:
        """Check all three values are in range."""
        return (
            valid_work_duration(self.work_duration_min)
            and valid_break_duration(self.break_duration_min)
            and valid_repetitions(self.repetitions)
        )


@dataclass(frozen=True)
class TimeEntrySpec:
    """A completed work phase, ready to be recorded.

    Attributes:
        project: Project id.
        task: Task id, if any.
        start_time: When the work phase began.
        end_time: When it ended.
        duration_ms: Logical work time (pauses excluded).
        notes: Entry notes.
        tags: Entry tag ids.
        entry_key: Identifies the work-phase instance across devices.
    """

    project: str
    task: str | None
    start_time: datetime
    end_time: datetime
    duration_ms: int
    notes: str
    tags: tuple[str, ...] = ()
    entry_key: str = ""

    def to_request(self) -> dict[str, Any]:
        """Convert to the time-entry API request body."""
        body: dict[str, Any] = {
            "project": self.project,
            "startTime": self.start_time.isoformat(),
            "endTime": self.end_time.isoformat(),
            "duration": self.duration_ms,
            "notes": self.notes,
            "tags": list(self.tags),
            "isRunning": False,
        }
        if self.task:
            body["task"] = self.task
        if self.entry_key:
            body["entryKey"] = self.entry_key
        return body
