"""Rate limiter interfaces.

The HTTP layer depends on this abstraction (not the concrete implementation)
so the storage backend can be swapped later with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

DEFAULT_WINDOW_MS = 60_000
DEFAULT_MAX_REQUESTS = 10
DEFAULT_MESSAGE = "Too many requests, please try again later."


@dataclass(frozen=True)
class RateLimitPolicy:
    """Per-route rate limit configuration.

    Attributes:
        window_ms: Length of the sliding window in milliseconds.
        max_requests: Accepted requests allowed per identifier per window.
        message: Message returned to throttled clients.
        skip_successful_requests: Do not count requests answered with < 400.
        skip_failed_requests: Do not count requests answered with >= 400.
    """

    window_ms: int = DEFAULT_WINDOW_MS
    max_requests: int = DEFAULT_MAX_REQUESTS
    message: str = DEFAULT_MESSAGE
    skip_successful_requests: bool = False
    skip_failed_requests: bool = False

    def __post_init__(self) -> None:
        if self.window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        if self.max_requests < 0:
            raise ValueError("max_requests must be >= 0")


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Requests left in the window after this one (0 when blocked).
        reset_at_ms: Epoch milliseconds when the oldest counted request
            leaves the window (None when nothing is counted).
        retry_after_seconds: Suggested wait time in seconds when blocked.
        recorded_at_ms: Timestamp recorded for an accepted request.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int | None
    retry_after_seconds: int | None = None
    recorded_at_ms: int | None = None


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    policy: RateLimitPolicy

    @abstractmethod
    def check(self, identifier: str, now: int | None = None) -> RateLimitDecision:
        """Decide whether a request from ``identifier`` may proceed.

        Accepted requests are recorded; rejected ones are not.

        Args:
            identifier: Client identifier (e.g., IP address).
            now: Current time in epoch milliseconds; defaults to the clock.

        Returns:
            RateLimitDecision describing the outcome.
        """
        raise NotImplementedError

    @abstractmethod
    def release(self, identifier: str, timestamp: int) -> bool:
        """Forget one previously recorded request.

        Returns:
            True if a matching timestamp was removed.
        """
        raise NotImplementedError

    @abstractmethod
    def peek(self, identifier: str, now: int | None = None) -> RateLimitDecision:
        """Report the current quota for ``identifier`` without recording anything."""
        raise NotImplementedError

    @abstractmethod
    def reset(self, identifier: str | None = None) -> None:
        """Drop history for one identifier, or for all when omitted."""
        raise NotImplementedError
