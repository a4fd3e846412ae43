"""Core module - Shared config, enums and wire format."""

from pomosync.core.config import (
    DEFAULT_BREAK_DURATION_MIN,
    DEFAULT_REPETITIONS,
    DEFAULT_TICK_INTERVAL,
    DEFAULT_WORK_DURATION_MIN,
    ServerConfig,
)
from pomosync.core.events import (
    SyncEvent,
    TimerSnapshot,
    format_timestamp,
    parse_timestamp,
)
from pomosync.core.types import (
    NotificationKind,
    SyncEventType,
    TimerMode,
    TimerStatus,
)

__all__ = [
    # Config
    "DEFAULT_BREAK_DURATION_MIN",
    "DEFAULT_REPETITIONS",
    "DEFAULT_TICK_INTERVAL",
    "DEFAULT_WORK_DURATION_MIN",
    "ServerConfig",
    # Events
    "SyncEvent",
    "TimerSnapshot",
    "format_timestamp",
    "parse_timestamp",
    # Types
    "NotificationKind",
    "SyncEventType",
    "TimerMode",
    "TimerStatus",
]
