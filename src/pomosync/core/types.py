"""Shared types for pomosync.

This module defines enums used by both client and server.
"""

from __future__ import annotations

from enum import Enum


class TimerStatus(str, Enum):
    """Run status of a timer.

    Orthogonal to TimerMode: a break in progress is RUNNING in BREAK mode.
    """

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"


class TimerMode(str, Enum):
    """Kind of phase the timer is in."""

    WORK = "work"
    BREAK = "break"


class SyncEventType(str, Enum):
    """Timer actions exchanged between sessions of the same user.

    One type per transition, plus the resync handshake
    (REQUEST_SYNC asks peers for their state, SYNC answers it).
    """

    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    STOP = "stop"
    RESET = "reset"
    SKIP = "skip"
    TICK = "tick"
    REQUEST_SYNC = "requestSync"
    SYNC = "sync"


class NotificationKind(str, Enum):
    """Phase boundary cues."""

    WORK = "work"
    BREAK = "break"
    COMPLETE = "complete"
    TIME_ENTRY = "timeEntry"
