"""One user session: the timer machine wired to its collaborators.

This module provides:
- TimerSession: owns the TimerStateMachine and routes every transition

Architecture:
    user action ─┐                       ┌─► EffectRunner (record, notify)
    ClockTicker ─┼─► TimerStateMachine ──┼─► ClockTicker on/off
    SyncChannel ─┘   (via reconciler)    ├─► SyncChannel broadcast (local only)
                                         └─► SnapshotStore (durable subset)

All calls happen on one event loop, so transitions never interleave.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable

from pomosync.client.snapshot import SnapshotStore
from pomosync.client.sync.channel import SyncChannel
from pomosync.client.sync.reconciler import RemoteActionReconciler
from pomosync.client.timer.clock import ClockTicker
from pomosync.client.timer.effects import EffectRunner
from pomosync.client.timer.machine import TimerStateMachine, TransitionResult
from pomosync.client.timer.state import TimerPreset, TimerState
from pomosync.core.config import DEFAULT_TICK_INTERVAL
from pomosync.core.events import SyncEvent
from pomosync.core.types import SyncEventType, TimerStatus

logger = logging.getLogger(__name__)

# Actions that cancel notifications not yet delivered
_CANCELLING = (SyncEventType.STOP, SyncEventType.RESET)


class TimerSession:
    """Timer of one signed-in session.

    Usage:
        session = TimerSession(machine, channel=channel, runner=runner)
        await session.start()
        session.start_timer()
        ...
        await session.close()
    """

    def __init__(
        self,
        machine: TimerStateMachine | None = None,
        channel: SyncChannel | None = None,
        runner: EffectRunner | None = None,
        store: SnapshotStore | None = None,
        session_id: str | None = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        on_change: Callable[[TimerState], None] | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            machine: Timer state machine (restored from ``store`` if omitted).
            channel: Real-time channel (None = offline session).
            runner: Effect runner (None = effects are dropped).
            store: Local persistence of the durable settings.
            session_id: Origin tag for outgoing events.
            tick_interval: Seconds between clock samples.
            on_change: Called with the new state after every applied transition.
        """
        if machine is None:
            machine = TimerStateMachine(store.load() if store else None)
        self._machine = machine
        self._channel = channel
        self._runner = runner or EffectRunner()
        self._store = store
        self._session_id = session_id or uuid.uuid4().hex
        self._on_change = on_change
        self._ticker = ClockTicker(self._on_tick, interval=tick_interval)
        self._reconciler = RemoteActionReconciler(
            machine,
            self._session_id,
            on_applied=self._on_remote_applied,
            reply=self._send,
        )

    @property
    def session_id(self) -> str:
        """Origin tag of this session."""
        return self._session_id

    @property
    def machine(self) -> TimerStateMachine:
        """The session's state machine."""
        return self._machine

    @property
    def state(self) -> TimerState:
        """Current timer state."""
        return self._machine.state

    @property
    def ticker(self) -> ClockTicker:
        """Clock sampler."""
        return self._ticker

    @property
    def reconciler(self) -> RemoteActionReconciler:
        """Applier of remote events."""
        return self._reconciler

    # === Lifecycle ===

    async def start(self) -> None:
        """Connect the channel and resume sampling if needed."""
        if self._channel is not None:
            self._channel.set_callbacks(
                on_event=self.handle_remote_event,
                on_connected=self._on_connected,
                on_disconnected=self._on_disconnected,
            )
            await self._channel.start()
        self._update_ticker()
        logger.info("Timer session %s started", self._session_id[:8])

    async def close(self) -> None:
        """Tear down sampling and the channel, then flush effects."""
        await self._ticker.aclose()
        if self._channel is not None:
            await self._channel.stop()
        await self._runner.drain()
        self._persist()
        logger.info("Timer session %s closed", self._session_id[:8])

    # === User actions ===

    def start_timer(
        self,
        project_id: str | None = None,
        task_id: str | None = None,
    ) -> TransitionResult:
        """Start from idle or continue from paused."""
        return self._dispatch(self._machine.start(project_id, task_id))

    def pause(self) -> TransitionResult:
        """Pause the running phase."""
        return self._dispatch(self._machine.pause())

    def resume(self) -> TransitionResult:
        """Resume the paused phase."""
        return self._dispatch(self._machine.resume())

    def stop(self) -> TransitionResult:
        """Stop and record the current work span."""
        return self._dispatch(self._machine.stop())

    def reset(self) -> TransitionResult:
        """Stop and clear the attribution."""
        result = self._dispatch(self._machine.reset())
        if result:
            self._persist()
        return result

    def skip_to_next(self) -> TransitionResult:
        """End the current phase now."""
        return self._dispatch(self._machine.switch_to_next())

    # === Settings ===

    def set_work_duration(self, minutes: int) -> bool:
        return self._setting(self._machine.set_work_duration(minutes))

    def set_break_duration(self, minutes: int) -> bool:
        return self._setting(self._machine.set_break_duration(minutes))

    def set_repetitions(self, count: int) -> bool:
        return self._setting(self._machine.set_repetitions(count))

    def set_infinite_mode(self, enabled: bool) -> bool:
        return self._setting(self._machine.set_infinite_mode(enabled))

    def apply_preset(self, preset: TimerPreset) -> bool:
        return self._setting(self._machine.apply_preset(preset))

    def set_project_id(self, project_id: str | None) -> bool:
        return self._setting(self._machine.set_project_id(project_id))

    def set_task_id(self, task_id: str | None) -> bool:
        return self._setting(self._machine.set_task_id(task_id))

    def set_notes(self, notes: str) -> bool:
        return self._setting(self._machine.set_notes(notes))

    def set_tags(self, tags: list[str]) -> bool:
        return self._setting(self._machine.set_tags(tags))

    # === Remote events ===

    def handle_remote_event(self, event: SyncEvent) -> TransitionResult | None:
        """Apply an event received from another session."""
        return self._reconciler.apply(event)

    def _on_remote_applied(self, result: TransitionResult, event: SyncEvent) -> None:
        logger.debug("Applied remote %s from %s", event.type.value, event.origin)
        self._after_transition(result, remote=True)

    def _on_connected(self) -> None:
        """Ask peers for their state instead of replaying a backlog."""
        self._send(self._event(SyncEventType.REQUEST_SYNC))

    def _on_disconnected(self) -> None:
        logger.info("Sync unavailable, timer continues locally")

    # === Internals ===

    def _on_tick(self) -> None:
        result = self._machine.tick()
        if result:
            self._after_transition(result)

    def _dispatch(self, result: TransitionResult) -> TransitionResult:
        if result:
            self._after_transition(result)
        if self._channel is not None and self._channel.offline:
            # Probe now rather than at the offline interval
            self._channel.reconnect()
        return result

    def _after_transition(self, result: TransitionResult, remote: bool = False) -> None:
        if result.action in _CANCELLING:
            self._runner.cancel_notifications()
        self._runner.run(result.effects, record=not remote)
        self._update_ticker()

        if not remote and not self._reconciler.applying_remote:
            self._send(self._event(result.action))

        if self._on_change:
            try:
                self._on_change(self._machine.state)
            except Exception:
                logger.exception("on_change callback failed")

    def _event(self, event_type: SyncEventType) -> SyncEvent:
        """Event carrying the current snapshot, stamped with the machine clock."""
        at = self._machine.now()
        return SyncEvent.create(
            event_type,
            payload=self._machine.snapshot(at),
            origin=self._session_id,
            timestamp=at,
        )

    def _send(self, event: SyncEvent) -> None:
        if self._channel is not None:
            self._channel.send(event)

    def _setting(self, applied: bool) -> bool:
        if applied:
            self._persist()
        return applied

    def _update_ticker(self) -> None:
        """Sample only while a phase is running."""
        if self._machine.status == TimerStatus.RUNNING:
            self._ticker.start()
        else:
            self._ticker.stop()

    def _persist(self) -> None:
        if self._store is None:
            return
        try:
            self._store.save(self._machine.state)
        except OSError as e:
            logger.warning("Failed to save timer settings: %s", e)
