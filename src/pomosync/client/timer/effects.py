"""Side effects produced by timer transitions.

Transitions are pure state changes that return a list of effects; the
EffectRunner executes them right after, off the critical path:

    result = machine.tick()          # state already advanced
    runner.run(result.effects)       # recording/notifying happen async

A failing effect is logged and dropped. It never rolls back or blocks a
transition.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from pomosync.client.timer.state import MS_PER_MINUTE, TimeEntrySpec
from pomosync.core.types import NotificationKind

logger = logging.getLogger(__name__)


class RecorderProtocol(Protocol):
    """Persists a completed work phase."""

    async def record(self, entry: TimeEntrySpec) -> Any:
        """Record a time entry and return the stored record."""
        ...


class NotifierProtocol(Protocol):
    """Plays a cue and/or shows a system notification."""

    def notify(
        self,
        kind: NotificationKind,
        title: str,
        body: str,
        persistent: bool = False,
    ) -> None:
        """Deliver a notification (must not raise on delivery failure)."""
        ...


@dataclass(frozen=True)
class RecordTimeEntry:
    """Record a finished work phase.

    Attributes:
        entry: What to record.
        phase_id: Local phase instance that produced it.
    """

    entry: TimeEntrySpec
    phase_id: int


@dataclass(frozen=True)
class Notify:
    """Emit a phase-boundary cue."""

    kind: NotificationKind
    title: str
    body: str
    persistent: bool = False


Effect = RecordTimeEntry | Notify


class EffectRunner:
    """Executes effects as asyncio tasks.

    Recording runs on the event loop (the recorder is async); notifications
    run in the default executor because native notifiers block.
    """

    def __init__(
        self,
        recorder: RecorderProtocol | None = None,
        notifier: NotifierProtocol | None = None,
        on_recorded: Callable[[TimeEntrySpec, Any], None] | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            recorder: Time-entry recorder (None disables recording).
            notifier: Notification dispatcher (None disables cues).
            on_recorded: Called after an entry was stored.
        """
        self._recorder = recorder
        self._notifier = notifier
        self._on_recorded = on_recorded
        self._pending: dict[asyncio.Task[None], Effect] = {}

    @property
    def pending_count(self) -> int:
        """Number of effects still in flight."""
        return len(self._pending)

    def run(self, effects: Iterable[Effect], *, record: bool = True) -> None:
        """Schedule effects.

        Args:
            effects: Effects returned by a transition.
            record: False to skip RecordTimeEntry (remote-applied transitions).
        """
        for effect in effects:
            if isinstance(effect, RecordTimeEntry):
                if not record:
                    logger.debug("Skipping remote time entry for phase %d", effect.phase_id)
                    continue
                if self._recorder is None:
                    logger.debug("No recorder configured, time entry dropped")
                    continue
                self._spawn(self._record(effect), effect)
            elif isinstance(effect, Notify):
                if self._notifier is None:
                    continue
                self._spawn(self._notify(effect), effect)

    def cancel_notifications(self) -> int:
        """Cancel notifications that have not been delivered yet.

        Returns:
            Number of cancelled notifications.
        """
        cancelled = 0
        for task, effect in list(self._pending.items()):
            if isinstance(effect, Notify) and not task.done():
                task.cancel()
                cancelled += 1
        if cancelled:
            logger.debug("Cancelled %d pending notifications", cancelled)
        return cancelled

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for in-flight effects (used on shutdown).

        Args:
            timeout: Maximum seconds to wait.
        """
        tasks = list(self._pending)
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning("%d effects still pending at shutdown", len(pending))

    def _spawn(self, coro: Coroutine[Any, Any, None], effect: Effect) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No event loop, dropping effect %s", type(effect).__name__)
            return
        task = loop.create_task(coro)
        self._pending[task] = effect
        task.add_done_callback(self._forget)

    def _forget(self, task: asyncio.Task[None]) -> None:
        self._pending.pop(task, None)

    async def _record(self, effect: RecordTimeEntry) -> None:
        """Record a time entry; failures are logged, not raised."""
        assert self._recorder is not None
        entry = effect.entry
        try:
            stored = await self._recorder.record(entry)
        except Exception as e:
            logger.warning(
                "Failed to record time entry for project %s (phase %d): %s",
                entry.project, effect.phase_id, e,
            )
            return

        minutes = entry.duration_ms // MS_PER_MINUTE
        logger.info("Time entry recorded: project=%s, %d min", entry.project, minutes)

        if self._on_recorded:
            try:
                self._on_recorded(entry, stored)
            except Exception:
                logger.exception("on_recorded callback failed")

        self.run([
            Notify(
                kind=NotificationKind.TIME_ENTRY,
                title="Time Entry Created",
                body=f"Time entry of {minutes} minutes has been recorded",
            )
        ])

    async def _notify(self, effect: Notify) -> None:
        """Deliver a notification in the executor."""
        assert self._notifier is not None
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None,
                self._notifier.notify,
                effect.kind,
                effect.title,
                effect.body,
                effect.persistent,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("Notification %s failed: %s", effect.kind.value, e)
