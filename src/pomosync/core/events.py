"""SyncEvent wire format.

This module provides:
- TimerSnapshot: the timer fields carried in an event payload
- SyncEvent: one timer action as exchanged over the real-time channel
- parse_timestamp / format_timestamp: ISO 8601 helpers

Wire shape (JSON text frame):
    {
        "type": "start",
        "payload": {"status": "running", "mode": "work", "elapsedMs": 0, ...},
        "timestamp": "2024-05-01T09:00:00+00:00",
        "origin": "3f2c...",
        "eventId": "9a41..."
    }

Payload keys are camelCase. Snapshots produced by a session always carry
every key, so a missing key and a null value mean the same thing.
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pomosync.core.types import SyncEventType, TimerMode, TimerStatus

# Legacy status value: "break" meant "running in break mode"
LEGACY_BREAK_STATUS = "break"


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Args:
        value: ISO string (a trailing "Z" is accepted) or None.

    Returns:
        Aware datetime, or None if value is empty.

    Raises:
        ValueError: If the string is not a valid timestamp.
    """
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 (None passes through)."""
    if value is None:
        return None
    return value.isoformat()


def _optional_int(value: Any) -> int | None:
    if value is None:
        return None
    return int(value)


@dataclass
class TimerSnapshot:
    """Timer fields carried by a SyncEvent.

    Every attribute is optional so that a partial payload still parses.

    Attributes:
        status: Run status.
        mode: Work or break.
        work_duration_min: Work phase length in minutes.
        break_duration_min: Break phase length in minutes.
        repetitions: Planned work cycles.
        current_repetition: 1-indexed cycle counter.
        elapsed_ms: Logical elapsed time of the current phase.
        work_start_time: When the current work phase began.
        project_id: Project attribution.
        task_id: Task attribution.
        notes: Free text attached to the time entry.
        tags: Tag ids attached to the time entry.
        infinite_mode: Work phase without fixed duration.
        updated_at: When the sender last applied a transition.
    """

    status: TimerStatus | None = None
    mode: TimerMode | None = None
    work_duration_min: int | None = None
    break_duration_min: int | None = None
    repetitions: int | None = None
    current_repetition: int | None = None
    elapsed_ms: int | None = None
    work_start_time: datetime | None = None
    project_id: str | None = None
    task_id: str | None = None
    notes: str | None = None
    tags: list[str] | None = None
    infinite_mode: bool | None = None
    updated_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        """Convert to the camelCase JSON payload."""
        return {
            "status": self.status.value if self.status else None,
            "mode": self.mode.value if self.mode else None,
            "workDurationMin": self.work_duration_min,
            "breakDurationMin": self.break_duration_min,
            "repetitions": self.repetitions,
            "currentRepetition": self.current_repetition,
            "elapsedMs": self.elapsed_ms,
            "workStartTime": format_timestamp(self.work_start_time),
            "projectId": self.project_id,
            "taskId": self.task_id,
            "notes": self.notes,
            "tags": list(self.tags) if self.tags is not None else None,
            "infiniteMode": self.infinite_mode,
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> TimerSnapshot:
        """Create from a camelCase payload.

        Raises:
            ValueError: If a field has an invalid value.
        """
        status_str = data.get("status")
        mode_str = data.get("mode")
        status = None
        mode = TimerMode(mode_str) if mode_str else None
        if status_str == LEGACY_BREAK_STATUS:
            status = TimerStatus.RUNNING
            mode = TimerMode.BREAK
        elif status_str:
            status = TimerStatus(status_str)

        tags = data.get("tags")
        infinite = data.get("infiniteMode")
        return cls(
            status=status,
            mode=mode,
            work_duration_min=_optional_int(data.get("workDurationMin")),
            break_duration_min=_optional_int(data.get("breakDurationMin")),
            repetitions=_optional_int(data.get("repetitions")),
            current_repetition=_optional_int(data.get("currentRepetition")),
            elapsed_ms=_optional_int(data.get("elapsedMs")),
            work_start_time=parse_timestamp(data.get("workStartTime")),
            project_id=data.get("projectId"),
            task_id=data.get("taskId"),
            notes=data.get("notes"),
            tags=[str(t) for t in tags] if tags is not None else None,
            infinite_mode=bool(infinite) if infinite is not None else None,
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass(frozen=True)
class SyncEvent:
    """A timer action broadcast to all sessions of one user.

    Attributes:
        type: Action name.
        payload: Sender's timer state after the action.
        timestamp: When the sender applied the action.
        origin: Session id of the sender (used to drop echoes).
        event_id: Unique id of this event (used to drop duplicates).
    """

    type: SyncEventType
    payload: TimerSnapshot
    timestamp: datetime
    origin: str | None = None
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def create(
        cls,
        event_type: SyncEventType,
        payload: TimerSnapshot | None = None,
        origin: str | None = None,
        timestamp: datetime | None = None,
    ) -> SyncEvent:
        """Create a new event stamped with the current time."""
        return cls(
            type=event_type,
            payload=payload or TimerSnapshot(),
            timestamp=timestamp or datetime.now(UTC),
            origin=origin,
        )

    def to_message(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "type": self.type.value,
            "payload": self.payload.to_payload(),
            "timestamp": format_timestamp(self.timestamp),
            "origin": self.origin,
            "eventId": self.event_id,
        }

    def to_json(self) -> str:
        """Serialize to a JSON text frame."""
        return json.dumps(self.to_message())

    @classmethod
    def from_message(cls, data: dict[str, Any]) -> SyncEvent:
        """Create from a decoded message.

        Raises:
            ValueError: If type or timestamp is missing or invalid.
        """
        type_str = data.get("type")
        if not type_str:
            raise ValueError("SyncEvent without type")
        event_type = SyncEventType(type_str)

        timestamp = parse_timestamp(data.get("timestamp"))
        if timestamp is None:
            raise ValueError("SyncEvent without timestamp")

        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise ValueError("SyncEvent payload must be an object")

        return cls(
            type=event_type,
            payload=TimerSnapshot.from_payload(payload),
            timestamp=timestamp,
            origin=data.get("origin"),
            event_id=data.get("eventId") or uuid.uuid4().hex,
        )

    @classmethod
    def from_json(cls, message: str) -> SyncEvent:
        """Parse a JSON text frame.

        Raises:
            ValueError: If the frame is not a valid SyncEvent.
        """
        try:
            data = json.loads(message)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValueError("SyncEvent must be a JSON object")
        try:
            return cls.from_message(data)
        except TypeError as e:
            # Wrongly typed field, e.g. "elapsedMs": [1] or "timestamp": 5
            raise ValueError(f"Invalid SyncEvent field: {e}") from e
