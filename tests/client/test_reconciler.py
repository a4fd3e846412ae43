"""Tests for RemoteActionReconciler."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock

from pomosync.client.sync.reconciler import RemoteActionReconciler
from pomosync.client.timer.effects import Notify, RecordTimeEntry
from pomosync.client.timer.machine import TimerStateMachine
from pomosync.core.events import SyncEvent, TimerSnapshot
from pomosync.core.types import NotificationKind, SyncEventType, TimerMode, TimerStatus
from tests.conftest import FakeClock


def make_pair(clock: FakeClock) -> tuple[TimerStateMachine, TimerStateMachine]:
    a = TimerStateMachine(clock=clock)
    a.set_project_id("proj-1")
    b = TimerStateMachine(clock=clock)
    return a, b


def send(source: TimerStateMachine, event_type: SyncEventType, origin: str = "a") -> SyncEvent:
    at = source.now()
    return SyncEvent.create(event_type, payload=source.snapshot(at), origin=origin, timestamp=at)


class TestFiltering:
    """Tests for origin and duplicate filtering."""

    def test_own_events_dropped(self, clock: FakeClock) -> None:
        """Events carrying this session's origin are ignored."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        assert rb.apply(send(a, SyncEventType.START, origin="b")) is None
        assert b.status == TimerStatus.IDLE

    def test_duplicate_event_dropped(self, clock: FakeClock) -> None:
        """The same event id is applied once."""
        a, b = make_pair(clock)
        on_applied = MagicMock()
        rb = RemoteActionReconciler(b, "b", on_applied=on_applied)
        a.start()
        event = send(a, SyncEventType.START)
        assert rb.apply(event)
        assert rb.apply(event) is None
        on_applied.assert_called_once()

    def test_history_is_bounded(self, clock: FakeClock) -> None:
        """Old event ids are forgotten."""
        _, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b", history=2)
        events = [SyncEvent.create(SyncEventType.STOP, origin="a") for _ in range(3)]
        for event in events:
            rb.apply(event)
        assert len(rb._seen_set) == 2
        assert events[0].event_id not in rb._seen_set


class TestStart:
    """Tests for start events."""

    def test_idle_session_follows_start(self, clock: FakeClock) -> None:
        """An idle peer converges to running with the same work start."""
        a, b = make_pair(clock)
        a.set_work_duration(50)
        rb = RemoteActionReconciler(b, "b")
        a.start(task_id="t-1")
        result = rb.apply(send(a, SyncEventType.START))

        assert result.action == SyncEventType.START
        assert result.effects == []
        state = b.state
        assert state.status == TimerStatus.RUNNING
        assert state.mode == TimerMode.WORK
        assert state.work_start_time == a.state.work_start_time
        assert state.work_duration_min == 50
        assert state.project_id == "proj-1"
        assert state.task_id == "t-1"

        clock.advance(minutes=7)
        assert b.state.elapsed_ms == a.state.elapsed_ms

    def test_late_start_keeps_peer_schedule(self, clock: FakeClock) -> None:
        """A delayed start event is applied at the peer's start instant."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        event = send(a, SyncEventType.START)
        clock.advance(seconds=3)
        rb.apply(event)
        assert b.state.elapsed_ms == 3000

    def test_later_start_wins(self, clock: FakeClock) -> None:
        """Two racing starts converge to the later one."""
        a, b = make_pair(clock)
        ra = RemoteActionReconciler(a, "a")
        rb = RemoteActionReconciler(b, "b")
        a.start()
        start_a = send(a, SyncEventType.START, origin="a")
        clock.advance(seconds=1)
        b.start()
        start_b = send(b, SyncEventType.START, origin="b")

        assert not rb.apply(start_a)
        assert ra.apply(start_b)
        assert a.state.work_start_time == b.state.work_start_time
        assert b.state.work_start_time == start_b.payload.work_start_time

    def test_start_resumes_paused_peer(self, clock: FakeClock) -> None:
        """A start from paused continues the same phase."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))
        clock.advance(minutes=1)
        a.pause()
        rb.apply(send(a, SyncEventType.PAUSE))
        clock.advance(minutes=1)
        a.start()
        result = rb.apply(send(a, SyncEventType.START))
        assert result.action == SyncEventType.RESUME
        assert b.status == TimerStatus.RUNNING
        assert b.state.elapsed_ms == 60_000


class TestPauseResume:
    """Tests for pause and resume events."""

    def test_pause_uses_peer_elapsed(self, clock: FakeClock) -> None:
        """The frozen value comes from the sender."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))
        clock.advance(minutes=5)
        a.pause()
        event = send(a, SyncEventType.PAUSE)
        clock.advance(seconds=2)
        assert rb.apply(event)
        state = b.state
        assert state.status == TimerStatus.PAUSED
        assert state.elapsed_ms == 5 * 60_000

    def test_pause_for_unknown_phase_adopts(self, clock: FakeClock) -> None:
        """A session that missed the start takes over the paused state."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        clock.advance(minutes=2)
        a.pause()
        result = rb.apply(send(a, SyncEventType.PAUSE))
        assert result.action == SyncEventType.SYNC
        state = b.state
        assert state.status == TimerStatus.PAUSED
        assert state.elapsed_ms == 120_000
        assert state.work_start_time == a.state.work_start_time

    def test_duplicate_resume_is_noop(self, clock: FakeClock) -> None:
        """A second resume with a new id is rejected by the machine."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))
        a.pause()
        rb.apply(send(a, SyncEventType.PAUSE))
        a.resume()
        assert rb.apply(send(a, SyncEventType.RESUME))
        assert not rb.apply(send(a, SyncEventType.RESUME))


class TestStopReset:
    """Tests for stop and reset events."""

    def test_stop_applied_once_without_recording(self, clock: FakeClock) -> None:
        """Repeated stops never produce a time entry on the receiver."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))
        clock.advance(minutes=10)
        a.stop()
        event = send(a, SyncEventType.STOP)

        first = rb.apply(event)
        assert first
        assert first.effects == []
        assert b.status == TimerStatus.IDLE
        assert rb.apply(event) is None
        assert not rb.apply(send(a, SyncEventType.STOP))

    def test_reset_clears_attribution(self, clock: FakeClock) -> None:
        """Reset clears the followed project."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))
        a.reset()
        assert rb.apply(send(a, SyncEventType.RESET))
        assert b.state.project_id is None
        assert b.status == TimerStatus.IDLE

    def test_late_stop_after_newer_start_ignored(self, clock: FakeClock) -> None:
        """A stop delivered after the peer's next start does not end the new session."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))

        clock.advance(minutes=1)
        a.stop()
        delayed_stop = send(a, SyncEventType.STOP)
        clock.advance(seconds=5)
        a.start()
        assert rb.apply(send(a, SyncEventType.START))

        assert not rb.apply(delayed_stop)
        assert b.status == a.status == TimerStatus.RUNNING
        assert b.state.work_start_time == a.state.work_start_time

    def test_late_reset_after_newer_start_ignored(self, clock: FakeClock) -> None:
        """The same holds for reset: attribution and status survive."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))

        clock.advance(minutes=1)
        a.reset()
        delayed_reset = send(a, SyncEventType.RESET)
        clock.advance(seconds=5)
        a.set_project_id("proj-2")
        a.start()
        assert rb.apply(send(a, SyncEventType.START))

        assert not rb.apply(delayed_reset)
        assert b.status == TimerStatus.RUNNING
        assert b.state.project_id == "proj-2"


class TestPhaseChanges:
    """Tests for tick and skip events."""

    def test_follows_peer_into_break(self, clock: FakeClock) -> None:
        """A peer's completion switches the local phase without recording."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))
        clock.advance(minutes=25)
        assert a.tick()
        result = rb.apply(send(a, SyncEventType.TICK))

        assert result
        assert not [e for e in result.effects if isinstance(e, RecordTimeEntry)]
        assert [e.kind for e in result.effects if isinstance(e, Notify)] == [
            NotificationKind.BREAK
        ]
        assert b.state.mode == TimerMode.BREAK

    def test_already_switched_is_noop(self, clock: FakeClock) -> None:
        """A session that completed the phase itself ignores the tick."""
        a, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))
        clock.advance(minutes=25)
        a.tick()
        b.tick()
        phase = b.phase_id
        assert not rb.apply(send(a, SyncEventType.TICK))
        assert b.phase_id == phase

    def test_skip_aligns_next_work_start(self, clock: FakeClock) -> None:
        """The next work phase starts at the sender's instant."""
        a, b = make_pair(clock)
        a.set_break_duration(0)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))
        clock.advance(minutes=3)
        a.switch_to_next()
        event = send(a, SyncEventType.SKIP)
        clock.advance(seconds=1)
        assert rb.apply(event)
        state = b.state
        assert state.current_repetition == 2
        assert state.work_start_time == a.state.work_start_time

    def test_diverged_phase_adopts(self, clock: FakeClock) -> None:
        """A tick that does not follow from local state is adopted."""
        a, b = make_pair(clock)
        a.set_break_duration(0)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        for _ in range(2):
            clock.advance(minutes=25)
            a.tick()
        result = rb.apply(send(a, SyncEventType.TICK))
        assert result.action == SyncEventType.SYNC
        assert b.state.current_repetition == 3


class TestResync:
    """Tests for the requestSync / sync handshake."""

    def test_reconnected_session_converges(self, clock: FakeClock) -> None:
        """A session that missed pause/resume takes the peer's elapsed."""
        a, b = make_pair(clock)
        replies: list[SyncEvent] = []
        ra = RemoteActionReconciler(a, "a", reply=replies.append)
        rb = RemoteActionReconciler(b, "b")
        a.start()
        rb.apply(send(a, SyncEventType.START))

        # b is offline from here on
        clock.advance(minutes=10)
        a.pause()
        clock.advance(minutes=2)
        a.resume()
        clock.advance(minutes=3)
        assert b.state.elapsed_ms == 15 * 60_000

        ra.apply(SyncEvent.create(SyncEventType.REQUEST_SYNC, origin="b", timestamp=clock.now))
        [reply] = replies
        assert reply.type == SyncEventType.SYNC
        assert reply.origin == "a"
        assert reply.payload.updated_at == a.updated_at

        assert rb.apply(reply)
        assert b.state.elapsed_ms == a.state.elapsed_ms == 13 * 60_000
        assert b.status == TimerStatus.RUNNING
        assert b.updated_at == a.updated_at

    def test_no_reply_without_state(self, clock: FakeClock) -> None:
        """A session that never transitioned does not answer."""
        _, b = make_pair(clock)
        reply = MagicMock()
        rb = RemoteActionReconciler(b, "b", reply=reply)
        rb.apply(SyncEvent.create(SyncEventType.REQUEST_SYNC, origin="a"))
        reply.assert_not_called()

    def test_reply_sent_while_applying(self, clock: FakeClock) -> None:
        """The remote flag is set during handling."""
        a, _ = make_pair(clock)
        a.start()
        flags: list[bool] = []
        ra = RemoteActionReconciler(a, "a", reply=lambda e: flags.append(ra.applying_remote))
        ra.apply(SyncEvent.create(SyncEventType.REQUEST_SYNC, origin="b"))
        assert flags == [True]
        assert not ra.applying_remote

    def test_stale_snapshot_ignored(self, clock: FakeClock) -> None:
        """A snapshot older than the local state is not adopted."""
        a, b = make_pair(clock)
        a.start()
        old = SyncEvent.create(
            SyncEventType.SYNC, payload=a.snapshot(), origin="a", timestamp=clock.now
        )
        clock.advance(minutes=1)
        b.set_project_id("mine")
        b.start()
        rb = RemoteActionReconciler(b, "b")
        assert not rb.apply(old)
        assert b.state.project_id == "mine"

    def test_snapshot_without_timestamp_ignored(self, clock: FakeClock) -> None:
        """Snapshots must carry updatedAt."""
        _, b = make_pair(clock)
        rb = RemoteActionReconciler(b, "b")
        event = SyncEvent.create(
            SyncEventType.SYNC,
            payload=TimerSnapshot(status=TimerStatus.RUNNING, mode=TimerMode.WORK),
            origin="a",
        )
        assert not rb.apply(event)
        assert b.status == TimerStatus.IDLE

    def test_snapshot_adopted_by_fresh_session(self, clock: FakeClock) -> None:
        """A session with no history adopts any snapshot."""
        a, b = make_pair(clock)
        a.start()
        clock.advance(minutes=4)
        rb = RemoteActionReconciler(b, "b")
        event = SyncEvent.create(
            SyncEventType.SYNC,
            payload=a.snapshot(),
            origin="a",
            timestamp=clock.now - timedelta(seconds=1),
        )
        assert rb.apply(event)
        assert b.state.work_start_time == a.state.work_start_time
