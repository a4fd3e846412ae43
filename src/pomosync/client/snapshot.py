"""Local persistence of the durable timer settings.

Only the durable subset (durations, repetitions, attribution) is stored;
a restarted session always comes back idle.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from pomosync.client.timer.state import TimerState

logger = logging.getLogger(__name__)


class SnapshotStore:
    """JSON file holding the durable subset of a TimerState."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        """Location of the snapshot file."""
        return self._path

    def load(self) -> TimerState:
        """Load the persisted settings into an idle state.

        A missing or unreadable file yields the defaults.
        """
        if not self._path.exists():
            return TimerState()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable timer snapshot %s: %s", self._path, e)
            return TimerState()
        if not isinstance(data, dict):
            return TimerState()
        return TimerState.from_durable(data)

    def save(self, state: TimerState) -> None:
        """Persist the durable subset of ``state``."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(state.durable(), indent=2), encoding="utf-8")
        tmp.replace(self._path)
