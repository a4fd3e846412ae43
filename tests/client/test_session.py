"""Tests for TimerSession wiring."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from pomosync.client.session import TimerSession
from pomosync.client.snapshot import SnapshotStore
from pomosync.client.timer.effects import EffectRunner
from pomosync.client.timer.machine import TimerStateMachine
from pomosync.core.events import SyncEvent
from pomosync.core.types import NotificationKind, SyncEventType, TimerMode, TimerStatus
from tests.conftest import FakeClock

# Large enough that the ticker never fires during a test
NO_TICKS = 3600.0


class FakeChannel:
    """In-memory stand-in for SyncChannel."""

    def __init__(self) -> None:
        self.sent: list[SyncEvent] = []
        self.peers: list[TimerSession] = []
        self.started = False
        self.stopped = False
        self.offline = False
        self.reconnects = 0
        self.on_event = None
        self.on_connected = None
        self.on_disconnected = None

    def set_callbacks(self, on_event=None, on_connected=None, on_disconnected=None) -> None:
        self.on_event = on_event
        self.on_connected = on_connected
        self.on_disconnected = on_disconnected

    async def start(self) -> None:
        self.started = True

    async def stop(self) -> None:
        self.stopped = True

    def reconnect(self) -> None:
        self.reconnects += 1

    def send(self, event: SyncEvent) -> bool:
        self.sent.append(event)
        for peer in self.peers:
            peer.handle_remote_event(event)
        return True

    def types(self) -> list[SyncEventType]:
        return [e.type for e in self.sent]


def make_session(
    clock: FakeClock,
    channel: FakeChannel | None = None,
    store: SnapshotStore | None = None,
    project: str | None = "proj-1",
) -> tuple[TimerSession, MagicMock, MagicMock]:
    recorder = MagicMock()
    recorder.record = AsyncMock(return_value=None)
    notifier = MagicMock()
    machine = TimerStateMachine(clock=clock)
    machine.set_project_id(project)
    session = TimerSession(
        machine,
        channel=channel,
        runner=EffectRunner(recorder, notifier),
        store=store,
        tick_interval=NO_TICKS,
    )
    return session, recorder, notifier


class TestLocalActions:
    """Tests for user actions on a session."""

    @pytest.mark.asyncio
    async def test_start_broadcasts_and_samples(self, clock: FakeClock) -> None:
        """A local start is broadcast and turns the ticker on."""
        channel = FakeChannel()
        session, _, _ = make_session(clock, channel)
        await session.start()
        assert channel.started

        assert session.start_timer()
        assert session.ticker.running
        [event] = channel.sent
        assert event.type == SyncEventType.START
        assert event.origin == session.session_id
        assert event.timestamp == clock.now
        assert event.payload.status == TimerStatus.RUNNING

        await session.close()
        assert channel.stopped
        assert not session.ticker.running

    @pytest.mark.asyncio
    async def test_pause_stops_sampling(self, clock: FakeClock) -> None:
        """The ticker only runs while a phase is running."""
        session, _, _ = make_session(clock)
        session.start_timer()
        session.pause()
        assert not session.ticker.running
        session.resume()
        assert session.ticker.running
        await session.close()

    @pytest.mark.asyncio
    async def test_rejected_action_not_broadcast(self, clock: FakeClock) -> None:
        """No-op transitions send nothing."""
        channel = FakeChannel()
        session, _, _ = make_session(clock, channel)
        assert not session.pause()
        assert not session.stop()
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_stop_records_entry(self, clock: FakeClock) -> None:
        """Stopping a work phase records it once."""
        channel = FakeChannel()
        session, recorder, _ = make_session(clock, channel)
        session.start_timer()
        clock.advance(minutes=12)
        session.stop()
        session.stop()
        await session.close()

        recorder.record.assert_awaited_once()
        entry = recorder.record.await_args.args[0]
        assert entry.duration_ms == 12 * 60_000
        assert channel.types() == [SyncEventType.START, SyncEventType.STOP]

    @pytest.mark.asyncio
    async def test_tick_completes_phase(self, clock: FakeClock) -> None:
        """A sample past the phase end broadcasts a tick and records."""
        channel = FakeChannel()
        session, recorder, notifier = make_session(clock, channel)
        session.start_timer()
        clock.advance(minutes=10)
        session._on_tick()
        assert channel.types() == [SyncEventType.START]

        clock.advance(minutes=15)
        session._on_tick()
        assert channel.types() == [SyncEventType.START, SyncEventType.TICK]
        assert session.state.mode == TimerMode.BREAK

        await session.close()
        recorder.record.assert_awaited_once()
        kinds = [c.args[0] for c in notifier.notify.call_args_list]
        assert NotificationKind.BREAK in kinds

    @pytest.mark.asyncio
    async def test_on_change_called(self, clock: FakeClock) -> None:
        """Observers see the state after each transition."""
        on_change = MagicMock()
        machine = TimerStateMachine(clock=clock)
        session = TimerSession(machine, tick_interval=NO_TICKS, on_change=on_change)
        session.start_timer()
        on_change.assert_called_once()
        assert on_change.call_args.args[0].status == TimerStatus.RUNNING
        await session.close()


class TestPersistence:
    """Tests for saving the durable subset."""

    def test_settings_persisted(self, clock: FakeClock, tmp_path: Path) -> None:
        """Accepted setting changes are written to the store."""
        store = SnapshotStore(tmp_path / "timer.json")
        session, _, _ = make_session(clock, store=store)
        assert session.set_work_duration(45)
        assert session.set_tags(["t1"])
        assert not session.set_repetitions(0)

        restored = store.load()
        assert restored.work_duration_min == 45
        assert restored.tags == ["t1"]
        assert restored.repetitions == 4

    def test_restores_from_store(self, tmp_path: Path) -> None:
        """A session without a machine starts from the stored settings."""
        store = SnapshotStore(tmp_path / "timer.json")
        first = TimerSession(store=store, tick_interval=NO_TICKS)
        first.set_break_duration(0)
        first.set_project_id("proj-2")

        second = TimerSession(store=store, tick_interval=NO_TICKS)
        assert second.state.break_duration_min == 0
        assert second.state.project_id == "proj-2"
        assert second.state.status == TimerStatus.IDLE

    @pytest.mark.asyncio
    async def test_reset_persists_cleared_attribution(
        self, clock: FakeClock, tmp_path: Path
    ) -> None:
        """After reset the store no longer holds the project."""
        store = SnapshotStore(tmp_path / "timer.json")
        session, _, _ = make_session(clock, store=store)
        session.set_notes("n")
        session.reset()
        assert store.load().project_id is None
        assert store.load().notes == ""


class TestRemoteEvents:
    """Tests for sessions linked through a channel."""

    def link(self, clock: FakeClock) -> tuple[TimerSession, TimerSession, FakeChannel, FakeChannel, MagicMock]:
        channel_a = FakeChannel()
        channel_b = FakeChannel()
        a, recorder_a, _ = make_session(clock, channel_a)
        b, recorder_b, _ = make_session(clock, channel_b, project=None)
        channel_a.peers.append(b)
        channel_b.peers.append(a)
        return a, b, channel_a, channel_b, recorder_b

    @pytest.mark.asyncio
    async def test_remote_start_not_rebroadcast(self, clock: FakeClock) -> None:
        """A follower applies the start without echoing it."""
        a, b, channel_a, channel_b, _ = self.link(clock)
        a.start_timer()
        assert b.state.status == TimerStatus.RUNNING
        assert b.state.work_start_time == a.state.work_start_time
        assert b.ticker.running
        assert channel_a.types() == [SyncEventType.START]
        assert channel_b.sent == []
        await a.close()
        await b.close()

    @pytest.mark.asyncio
    async def test_remote_stop_not_recorded(self, clock: FakeClock) -> None:
        """Only the stopping session records the entry."""
        a, b, _, _, recorder_b = self.link(clock)
        a.start_timer()
        clock.advance(minutes=5)
        a.stop()
        assert b.state.status == TimerStatus.IDLE
        assert not b.ticker.running
        await a.close()
        await b.close()
        recorder_b.record.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_connect_requests_sync(self, clock: FakeClock) -> None:
        """A (re)connected session asks for state and adopts the answer."""
        a, b, channel_a, channel_b, _ = self.link(clock)
        a.start_timer()

        # b misses the pause
        channel_a.peers.clear()
        clock.advance(minutes=3)
        a.pause()
        assert b.state.status == TimerStatus.RUNNING
        channel_a.peers.append(b)

        await b.start()
        channel_b.on_connected()
        assert channel_b.types() == [SyncEventType.REQUEST_SYNC]
        state = b.state
        assert state.status == TimerStatus.PAUSED
        assert state.elapsed_ms == 3 * 60_000
        await a.close()
        await b.close()

    @pytest.mark.asyncio
    async def test_user_action_reconnects_offline_channel(self, clock: FakeClock) -> None:
        """A channel that ran out of fast retries is woken by user activity."""
        channel = FakeChannel()
        session, _, _ = make_session(clock, channel)
        await session.start()

        channel.offline = True
        session.start_timer()
        assert channel.reconnects == 1

        channel.offline = False
        session.pause()
        assert channel.reconnects == 1
        await session.close()
