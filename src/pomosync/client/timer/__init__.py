"""Timer engine: state, phase decisions, transitions and their effects."""

from pomosync.client.timer.clock import ClockTicker, ElapsedClock, utcnow
from pomosync.client.timer.effects import EffectRunner, Notify, RecordTimeEntry
from pomosync.client.timer.machine import (
    MIN_ENTRY_DURATION_MS,
    TimerStateMachine,
    TransitionResult,
)
from pomosync.client.timer.phases import PhaseAction, PhaseDecision, PhaseTransitionEngine
from pomosync.client.timer.state import (
    InvariantViolation,
    TimeEntrySpec,
    TimerError,
    TimerPreset,
    TimerState,
)

__all__ = [
    "MIN_ENTRY_DURATION_MS",
    "ClockTicker",
    "EffectRunner",
    "ElapsedClock",
    "InvariantViolation",
    "Notify",
    "PhaseAction",
    "PhaseDecision",
    "PhaseTransitionEngine",
    "RecordTimeEntry",
    "TimeEntrySpec",
    "TimerError",
    "TimerPreset",
    "TimerState",
    "TimerStateMachine",
    "TransitionResult",
    "utcnow",
]
