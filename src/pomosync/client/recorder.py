"""HTTP client for the time-entry API.

This module provides:
- HTTPTimeEntryRecorder: records completed work phases on the server
- TimeEntry: a stored time entry as returned by the API
- APIError and subclasses: error mapping for API responses
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from pomosync.client.sync.retry import retry_with_backoff
from pomosync.client.timer.state import TimeEntrySpec
from pomosync.core.config import ServerConfig
from pomosync.core.events import parse_timestamp

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


class ValidationError(APIError):
    """Request body rejected by the server."""


@dataclass
class TimeEntry:
    """Time entry as stored on the server."""

    id: int
    project: str
    start_time: datetime
    end_time: datetime
    duration: int
    notes: str = ""
    task: str | None = None
    tags: list[str] = field(default_factory=list)
    entry_key: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimeEntry:
        """Create from API response dictionary."""
        start = parse_timestamp(data["startTime"])
        end = parse_timestamp(data["endTime"])
        if start is None or end is None:
            raise APIError("Time entry response without start or end time")
        return cls(
            id=data["id"],
            project=data["project"],
            start_time=start,
            end_time=end,
            duration=data["duration"],
            notes=data.get("notes") or "",
            task=data.get("task"),
            tags=list(data.get("tags") or []),
            entry_key=data.get("entryKey"),
        )


class HTTPTimeEntryRecorder:
    """Async HTTP client that posts finished work phases.

    Transport failures are retried with backoff; HTTP errors are not
    (the request was rejected, sending it again would not help).

    Usage:
        async with HTTPTimeEntryRecorder(config) as recorder:
            entry = await recorder.record(spec)
    """

    def __init__(
        self,
        config: ServerConfig,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the recorder.

        Args:
            config: Server URL and token.
            max_retries: Retries on transport errors.
            transport: Custom transport (tests).
        """
        self._config = config
        self._max_retries = max_retries
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={"Authorization": f"Bearer {config.token}"},
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HTTPTimeEntryRecorder:
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.aclose()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code == 422:
            raise ValidationError(_detail(response, "Invalid time entry"), 422)
        if response.status_code >= 400:
            raise APIError(_detail(response, "Unknown error"), response.status_code)
        return response

    async def health_check(self) -> bool:
        """Check if the server is healthy."""
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    async def record(self, entry: TimeEntrySpec) -> TimeEntry:
        """Create a time entry.

        The server deduplicates on the entry key, so a retried request
        returns the already stored entry.

        Args:
            entry: Completed work phase.

        Returns:
            The stored entry.

        Raises:
            APIError: If the server rejects the request.
            httpx.TransportError: If the server stays unreachable.
        """
        body = entry.to_request()

        async def post() -> httpx.Response:
            return await self._client.post("/api/time-entries", json=body)

        response = await retry_with_backoff(
            post,
            max_retries=self._max_retries,
            retryable_exceptions=(httpx.TransportError,),
        )
        self._handle_response(response)
        stored = TimeEntry.from_dict(response.json())
        logger.debug("Stored time entry %d (%s)", stored.id, stored.entry_key)
        return stored

    async def list_entries(self, limit: int = 50) -> list[TimeEntry]:
        """List the most recent time entries.

        Args:
            limit: Maximum number of entries.
        """
        response = await self._client.get("/api/time-entries", params={"limit": limit})
        self._handle_response(response)
        return [TimeEntry.from_dict(item) for item in response.json()]


def _detail(response: httpx.Response, default: str) -> str:
    try:
        detail = response.json().get("detail", default)
    except ValueError:
        return default
    return detail if isinstance(detail, str) else str(detail)
