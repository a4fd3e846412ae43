"""Elapsed-time tracking for timer phases.

This module provides:
- ElapsedClock: converts wall-clock samples into a logical elapsed duration
- ClockTicker: asyncio task that samples at a fixed sub-second interval

Elapsed time is always derived as ``now - reference`` rather than by summing
interval deltas, so a late or skipped sample never accumulates drift. Pausing
freezes the value; resuming moves the reference to ``now - frozen``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pomosync.core.config import DEFAULT_TICK_INTERVAL

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def to_ms(delta: timedelta) -> int:
    """Convert a timedelta to whole milliseconds."""
    return int(delta.total_seconds() * 1000)


class ElapsedClock:
    """Logical elapsed counter for the current phase.

    Three states:
    - stopped: no reference, value 0
    - running: value is ``now - reference``
    - frozen: no reference, value is the frozen duration (after pause)
    """

    def __init__(self) -> None:
        self._reference: datetime | None = None
        self._frozen_ms = 0

    @property
    def running(self) -> bool:
        """True while the clock advances with wall time."""
        return self._reference is not None

    @property
    def reference(self) -> datetime | None:
        """Instant the running phase would have started with no pauses."""
        return self._reference

    def start(self, at: datetime, offset_ms: int = 0) -> None:
        """Start counting from ``offset_ms`` at instant ``at``.

        Args:
            at: Wall-clock instant the count (re)starts.
            offset_ms: Elapsed value at that instant.
        """
        offset_ms = max(0, offset_ms)
        self._reference = at - timedelta(milliseconds=offset_ms)
        self._frozen_ms = 0

    def pause(self, at: datetime, elapsed_ms: int | None = None) -> int:
        """Freeze the elapsed value.

        Args:
            at: Instant of the pause.
            elapsed_ms: Value to freeze at instead of the computed one
                (used to adopt a peer's frozen value).

        Returns:
            The frozen elapsed value.
        """
        frozen = self.elapsed_ms(at) if elapsed_ms is None else max(0, elapsed_ms)
        self._reference = None
        self._frozen_ms = frozen
        return frozen

    def resume(self, at: datetime, elapsed_ms: int | None = None) -> None:
        """Continue counting from the frozen value.

        Args:
            at: Instant of the resume.
            elapsed_ms: Value to continue from instead of the frozen one.
        """
        offset = self._frozen_ms if elapsed_ms is None else elapsed_ms
        self.start(at, offset)

    def reset(self) -> None:
        """Return to 0 and stop."""
        self._reference = None
        self._frozen_ms = 0

    def elapsed_ms(self, at: datetime) -> int:
        """Elapsed value at instant ``at`` (never negative)."""
        if self._reference is None:
            return self._frozen_ms
        return max(0, to_ms(at - self._reference))


class ClockTicker:
    """Re-samples the timer at a fixed interval while started.

    The callback runs on the event loop, so it never overlaps with
    other transitions of the same session.

    Usage:
        ticker = ClockTicker(session.on_tick, interval=0.25)
        ticker.start()   # requires a running event loop
        ...
        ticker.stop()
    """

    def __init__(
        self,
        callback: Callable[[], None],
        interval: float = DEFAULT_TICK_INTERVAL,
    ) -> None:
        """Initialize the ticker.

        Args:
            callback: Called on every sample.
            interval: Seconds between samples.
        """
        if interval <= 0:
            raise ValueError("Tick interval must be positive")
        self._callback = callback
        self._interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        """Check if the sampling task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def interval(self) -> float:
        """Seconds between samples."""
        return self._interval

    def start(self) -> None:
        """Start sampling (no-op if already running)."""
        if self.running:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop, ticker not started")
            return
        self._task = loop.create_task(self._run(), name="ClockTicker")

    def stop(self) -> None:
        """Stop sampling."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def aclose(self) -> None:
        """Stop sampling and wait for the task to finish."""
        task = self._task
        self.stop()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._callback()
            except Exception:
                logger.exception("Timer tick failed")
