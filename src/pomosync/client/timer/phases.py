"""Phase transition decisions.

This module provides:
- PhaseAction, PhaseDecision: outcome of a completed phase
- PhaseTransitionEngine: the decision table applied at each phase boundary

Decision table:
    | Mode  | Condition                      | Action        | Cue      |
    |-------|--------------------------------|---------------|----------|
    | work  | last repetition                | FINISH        | complete |
    | work  | no break, more repetitions     | CONTINUE_WORK | -        |
    | work  | break > 0, more repetitions    | START_BREAK   | break    |
    | break | more repetitions               | START_WORK    | work     |
    | break | last repetition                | FINISH        | complete |

Every action leaving a work phase records a time entry. No break follows
the last work phase. The engine is pure: it reads a TimerState and never mutates it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto

from pomosync.client.timer.state import TimerState
from pomosync.core.types import NotificationKind, TimerMode


class PhaseAction(Enum):
    """What happens when a phase ends."""

    CONTINUE_WORK = auto()
    START_BREAK = auto()
    START_WORK = auto()
    FINISH = auto()


@dataclass(frozen=True)
class NotificationText:
    """Title/body shown for a cue."""

    title: str
    body: str
    persistent: bool = False


PHASE_NOTIFICATIONS: dict[NotificationKind, NotificationText] = {
    NotificationKind.BREAK: NotificationText(
        "Break Time", "Work session completed! Time for a break."
    ),
    NotificationKind.WORK: NotificationText(
        "Work Time", "Break completed! Back to work."
    ),
    NotificationKind.COMPLETE: NotificationText(
        "All Sessions Completed",
        "Great job! You've completed all your work sessions.",
        persistent=True,
    ),
}


@dataclass(frozen=True)
class PhaseDecision:
    """Outcome of ending the current phase.

    Attributes:
        action: Transition to perform.
        record_entry: Whether the ending phase produces a time entry.
        next_mode: Mode after the transition.
        next_repetition: Repetition counter after the transition.
        notification: Cue to emit, if any.
    """

    action: PhaseAction
    record_entry: bool
    next_mode: TimerMode
    next_repetition: int
    notification: NotificationKind | None = None

    @property
    def finished(self) -> bool:
        """Check if the whole session ends."""
        return self.action == PhaseAction.FINISH


class PhaseTransitionEngine:
    """Applies the decision table to a timer state."""

    def decide(self, state: TimerState) -> PhaseDecision:
        """Decide what ending the current phase leads to.

        Args:
            state: Timer state at the phase boundary.

        Returns:
            The decision for that state.
        """
        has_more = state.current_repetition < state.repetitions

        if state.mode == TimerMode.WORK:
            if not has_more:
                return PhaseDecision(
                    action=PhaseAction.FINISH,
                    record_entry=True,
                    next_mode=TimerMode.WORK,
                    next_repetition=1,
                    notification=NotificationKind.COMPLETE,
                )
            if state.break_duration_min > 0:
                return PhaseDecision(
                    action=PhaseAction.START_BREAK,
                    record_entry=True,
                    next_mode=TimerMode.BREAK,
                    next_repetition=state.current_repetition,
                    notification=NotificationKind.BREAK,
                )
            return PhaseDecision(
                action=PhaseAction.CONTINUE_WORK,
                record_entry=True,
                next_mode=TimerMode.WORK,
                next_repetition=state.current_repetition + 1,
            )

        if has_more:
            return PhaseDecision(
                action=PhaseAction.START_WORK,
                record_entry=False,
                next_mode=TimerMode.WORK,
                next_repetition=state.current_repetition + 1,
                notification=NotificationKind.WORK,
            )
        return PhaseDecision(
            action=PhaseAction.FINISH,
            record_entry=False,
            next_mode=TimerMode.WORK,
            next_repetition=1,
            notification=NotificationKind.COMPLETE,
        )
