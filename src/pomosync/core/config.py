"""Shared configuration classes for pomosync.

This module defines configuration classes used by both client and server components.
"""

from __future__ import annotations

from dataclasses import dataclass

# Timer defaults
DEFAULT_WORK_DURATION_MIN = 25
DEFAULT_BREAK_DURATION_MIN = 5
DEFAULT_REPETITIONS = 4
DEFAULT_TICK_INTERVAL = 0.25  # seconds


@dataclass
class ServerConfig:
    """Configuration for connecting to a PomoSync server.

    Used by both the HTTP time-entry recorder and the WebSocket sync channel
    to ensure consistent connection settings.

    Attributes:
        server_url: Base URL of the server (e.g., "https://timer.example.com").
        token: Bearer token identifying the user.
        timeout: Request/connection timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def ws_url(self) -> str:
        """Get WebSocket URL for timer synchronization.

        Returns:
            WebSocket URL with token in path.
        """
        url = self.server_url
        if url.startswith("https://"):
            url = "wss://" + url[8:]
        elif url.startswith("http://"):
            url = "ws://" + url[7:]
        return f"{url}/ws/timer/{self.token}"

    @property
    def api_url(self) -> str:
        """Get base URL of the REST API."""
        return f"{self.server_url}/api"

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS/WSS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")
