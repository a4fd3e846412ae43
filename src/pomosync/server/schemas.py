"""Pydantic schemas for API request/response models.

Field names are camelCase on the wire, snake_case in Python.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pomosync.server.models import TimeEntry


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# === Time-entry schemas ===


class TimeEntryCreateRequest(_CamelModel):
    """Request body for time-entry creation."""

    project: str = Field(min_length=1)
    task: str | None = None
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    duration: int = Field(ge=0, description="Logical duration in milliseconds")
    notes: str = ""
    tags: list[str] = Field(default_factory=list)
    is_running: bool = Field(default=False, alias="isRunning")
    entry_key: str | None = Field(default=None, alias="entryKey", max_length=64)

    @model_validator(mode="after")
    def _check_span(self) -> TimeEntryCreateRequest:
        if self.end_time < self.start_time:
            raise ValueError("endTime must not be before startTime")
        return self


class TimeEntryResponse(_CamelModel):
    """Time entry in responses."""

    id: int
    project: str
    task: str | None
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    duration: int
    notes: str
    tags: list[str]
    is_running: bool = Field(alias="isRunning")
    entry_key: str | None = Field(alias="entryKey")
    created_at: str = Field(alias="createdAt")


# === Health schema ===


class HealthResponse(BaseModel):
    """Health check response."""

    status: str


# === Converters ===


def _iso(value: datetime) -> str:
    # SQLite returns naive datetimes
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def time_entry_to_response(entry: TimeEntry) -> TimeEntryResponse:
    """Convert TimeEntry model to response schema."""
    return TimeEntryResponse(
        id=entry.id,
        project=entry.project,
        task=entry.task,
        start_time=_iso(entry.start_time),
        end_time=_iso(entry.end_time),
        duration=entry.duration,
        notes=entry.notes,
        tags=list(entry.tags or []),
        is_running=entry.is_running,
        entry_key=entry.entry_key,
        created_at=_iso(entry.created_at),
    )
