"""Timer commands for the pomosync CLI.

Commands:
- run: Run a timer session in the terminal
- follow: Mirror the timer of the user's other devices
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING

import click

from pomosync.client.cli.config import (
    get_server_config,
    get_tick_interval,
    get_timer_file,
)
from pomosync.client.timer.state import TimerState
from pomosync.core.types import TimerMode, TimerStatus

if TYPE_CHECKING:
    from pomosync.client.recorder import HTTPTimeEntryRecorder
    from pomosync.client.session import TimerSession

# Seconds between status line refreshes
REFRESH_INTERVAL = 1.0


class StatusLineAwareHandler(logging.Handler):
    """Logging handler that coordinates with the status line display.

    Clears the status line before printing log messages and restores it after.
    """

    def __init__(
        self,
        clear_func: Callable[[], None],
        update_func: Callable[[], None],
        lock: threading.Lock,
    ) -> None:
        super().__init__()
        self._clear_func = clear_func
        self._update_func = update_func
        self._lock = lock

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            with self._lock:
                self._clear_func()
                sys.stdout.write(msg + "\n")
                sys.stdout.flush()
                self._update_func()
        except Exception:
            self.handleError(record)


def format_clock(ms: int) -> str:
    """Format milliseconds as MM:SS (HH:MM:SS past one hour)."""
    seconds = max(0, ms) // 1000
    hours, rest = divmod(seconds, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes:02d}:{seconds:02d}"


def format_status(state: TimerState) -> str:
    """One-line description of a timer state.

    Examples:
        "idle"
        "work 1/4  12:30 left  [proj-1]"
        "break 2/4  04:10 left (paused)"
        "work 1/1  37:02 elapsed"
    """
    if state.status == TimerStatus.IDLE:
        return "idle"

    label = "work" if state.mode == TimerMode.WORK else "break"
    remaining = state.remaining_ms
    if remaining is None:
        time_part = f"{format_clock(state.elapsed_ms)} elapsed"
    else:
        time_part = f"{format_clock(remaining)} left"

    line = f"{label} {state.current_repetition}/{state.repetitions}  {time_part}"
    if state.status == TimerStatus.PAUSED:
        line += " (paused)"
    if state.project_id:
        line += f"  [{state.project_id}]"
    return line


class StatusLine:
    """Single refreshing terminal line."""

    def __init__(self, enabled: bool = True) -> None:
        self._enabled = enabled
        self._last_len = 0
        self._text = ""
        self.lock = threading.Lock()

    def clear(self) -> None:
        """Clear the current status line."""
        if self._last_len > 0 and self._enabled:
            sys.stdout.write("\r" + " " * self._last_len + "\r")
            sys.stdout.flush()
            self._last_len = 0

    def redraw(self) -> None:
        """Write the current text again."""
        if not self._enabled or not self._text:
            return
        clear_part = " " * max(0, self._last_len - len(self._text))
        sys.stdout.write(f"\r{self._text}{clear_part}")
        sys.stdout.flush()
        self._last_len = len(self._text)

    def update(self, text: str) -> None:
        """Replace the line's text."""
        with self.lock:
            self._text = text
            self.redraw()

    def install_log_handler(self, verbose: bool) -> None:
        """Route pomosync logs above the status line."""
        handler = StatusLineAwareHandler(self.clear, self.redraw, self.lock)
        handler.setFormatter(logging.Formatter("%(message)s"))
        level = logging.DEBUG if verbose else logging.WARNING
        handler.setLevel(level)

        pomosync_logger = logging.getLogger("pomosync")
        for existing in pomosync_logger.handlers[:]:
            pomosync_logger.removeHandler(existing)
        pomosync_logger.addHandler(handler)
        pomosync_logger.setLevel(level)
        pomosync_logger.propagate = False


def _build_session(
    offline: bool,
    sound: bool,
    popup: bool,
) -> tuple[TimerSession, HTTPTimeEntryRecorder | None]:
    """Assemble a TimerSession from the saved configuration.

    Returns:
        (session, recorder) - recorder is None when offline.
    """
    from pomosync.client.notifications import NotificationDispatcher
    from pomosync.client.recorder import HTTPTimeEntryRecorder
    from pomosync.client.session import TimerSession
    from pomosync.client.snapshot import SnapshotStore
    from pomosync.client.sync.channel import SyncChannel
    from pomosync.client.timer.effects import EffectRunner

    server_config = None if offline else get_server_config()
    recorder = HTTPTimeEntryRecorder(server_config) if server_config else None
    channel = SyncChannel(server_config) if server_config else None
    runner = EffectRunner(
        recorder=recorder,
        notifier=NotificationDispatcher(sound=sound, popup=popup),
    )
    session = TimerSession(
        channel=channel,
        runner=runner,
        store=SnapshotStore(get_timer_file()),
        tick_interval=get_tick_interval(),
    )
    return session, recorder


async def _drive(
    session: TimerSession,
    recorder: HTTPTimeEntryRecorder | None,
    line: StatusLine,
    start: bool,
    project: str | None,
) -> None:
    """Run the session until the timer goes idle (or forever when following)."""
    await session.start()
    try:
        if start:
            if project:
                session.set_project_id(project)
            # Give the channel a moment to connect so peers see the start
            await asyncio.sleep(0.5)
            session.start_timer()
        while True:
            state = session.state
            line.update(format_status(state))
            if start and state.status == TimerStatus.IDLE:
                break
            await asyncio.sleep(REFRESH_INTERVAL)
    except asyncio.CancelledError:
        if start:
            session.stop()
        raise
    finally:
        await session.close()
        if recorder is not None:
            await recorder.aclose()
        with line.lock:
            line.clear()


@click.command()
@click.option("--project", "-p", default=None, help="Project to record time on.")
@click.option("--offline", is_flag=True, help="Do not connect to the server.")
@click.option("--no-sound", is_flag=True, help="Disable sound cues.")
@click.option("--no-popup", is_flag=True, help="Disable system notifications.")
@click.option("--no-progress", is_flag=True, help="Disable the status line.")
@click.pass_context
def run(
    ctx: click.Context,
    project: str | None,
    offline: bool,
    no_sound: bool,
    no_popup: bool,
    no_progress: bool,
) -> None:
    """Start a timer and run it until all sessions are done.

    Press Ctrl+C to stop early; the work done so far is recorded.
    """
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    if not offline and get_server_config() is None:
        click.echo("Not configured, running offline. Use 'pomosync configure' to sync.")
        offline = True

    line = StatusLine(enabled=not no_progress)
    line.install_log_handler(verbose)
    session, recorder = _build_session(offline, sound=not no_sound, popup=not no_popup)

    try:
        asyncio.run(_drive(session, recorder, line, start=True, project=project))
    except KeyboardInterrupt:
        click.echo("\nStopped.")
        return
    click.echo(click.style("All sessions completed.", fg="green"))


@click.command()
@click.option("--no-sound", is_flag=True, help="Disable sound cues.")
@click.option("--no-popup", is_flag=True, help="Disable system notifications.")
@click.pass_context
def follow(ctx: click.Context, no_sound: bool, no_popup: bool) -> None:
    """Mirror the timer running on your other devices.

    Press Ctrl+C to quit; the timer keeps running elsewhere.
    """
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    if get_server_config() is None:
        click.echo("Error: Not configured. Run 'pomosync configure' first.", err=True)
        sys.exit(1)

    line = StatusLine()
    line.install_log_handler(verbose)
    session, recorder = _build_session(False, sound=not no_sound, popup=not no_popup)

    try:
        asyncio.run(_drive(session, recorder, line, start=False, project=None))
    except KeyboardInterrupt:
        click.echo("\nBye.")
