"""Retry logic with exponential backoff.

This module provides:
- ReconnectPolicy: backoff settings for the sync channel
- backoff_delays: the delay sequence a policy produces
- retry_with_backoff: async retry of a coroutine factory
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Default retry configuration
DEFAULT_MAX_RETRIES = 5
DEFAULT_INITIAL_BACKOFF = 1.0  # seconds
DEFAULT_MAX_BACKOFF = 5.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_OFFLINE_RETRY = 30.0  # seconds, once max_attempts is exhausted


@dataclass(frozen=True)
class ReconnectPolicy:
    """Backoff settings for reconnecting.

    Attributes:
        initial_delay: First delay in seconds.
        max_delay: Upper bound for any delay.
        multiplier: Growth factor between attempts.
        max_attempts: Fast attempts before falling back to offline_delay
            (None = never).
        offline_delay: Delay between attempts once the fast ones are used up.
    """

    initial_delay: float = DEFAULT_INITIAL_BACKOFF
    max_delay: float = DEFAULT_MAX_BACKOFF
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_attempts: int | None = DEFAULT_MAX_RETRIES
    offline_delay: float = DEFAULT_OFFLINE_RETRY

    def delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-indexed)."""
        delay = self.initial_delay
        for _ in range(max(0, attempt - 1)):
            if delay >= self.max_delay:
                break
            delay *= self.multiplier
        return min(delay, self.max_delay)

    def exhausted(self, attempt: int) -> bool:
        """Check if ``attempt`` failed attempts exhaust the policy."""
        return self.max_attempts is not None and attempt >= self.max_attempts


def backoff_delays(policy: ReconnectPolicy) -> Iterator[float]:
    """Yield the delays of a policy until it is exhausted.

    Example:
        >>> list(backoff_delays(ReconnectPolicy(max_attempts=4)))
        [1.0, 2.0, 4.0, 5.0]
    """
    attempt = 1
    while True:
        yield policy.delay(attempt)
        if policy.exhausted(attempt):
            return
        attempt += 1


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_backoff: float = DEFAULT_INITIAL_BACKOFF,
    max_backoff: float = DEFAULT_MAX_BACKOFF,
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
) -> T:
    """Await a coroutine factory with exponential backoff retry.

    Args:
        func: Called once per attempt; returns the awaitable to run.
        max_retries: Maximum number of retry attempts.
        initial_backoff: Initial backoff time in seconds.
        max_backoff: Maximum backoff time in seconds.
        backoff_multiplier: Multiplier for each retry.
        retryable_exceptions: Tuple of exception types to retry on.

    Returns:
        Result of the awaitable.

    Raises:
        The last exception if all retries fail.
    """
    backoff = initial_backoff

    for attempt in range(max_retries + 1):
        try:
            return await func()
        except retryable_exceptions as e:
            if attempt == max_retries:
                logger.error("All %d retries failed: %s", max_retries, e)
                raise
            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %.1fs...",
                attempt + 1, max_retries + 1, e, backoff,
            )
            await asyncio.sleep(backoff)
            backoff = min(backoff * backoff_multiplier, max_backoff)

    raise RuntimeError("Unexpected retry loop exit")
