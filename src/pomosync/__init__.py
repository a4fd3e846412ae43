"""PomoSync - Pomodoro timer with real-time multi-device synchronization."""

__version__ = "0.1.0"
