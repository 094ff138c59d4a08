"""In-memory sliding-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: the whole check-then-record sequence runs under the store lock.
"""

from __future__ import annotations

import math
import time
from typing import Callable

from contact_api.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitDecision,
    RateLimitPolicy,
)
from contact_api.adapters.rate_limit.store import InMemoryRateLimitStore


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class InMemorySlidingWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting accepted requests over a trailing window.

    The window start is ``now - window_ms``, recomputed on every check, so a
    client's allowance recovers continuously instead of at fixed boundaries.
    Rejected requests are not recorded: only accepted ones consume quota.
    """

    def __init__(
        self,
        policy: RateLimitPolicy | None = None,
        *,
        store: InMemoryRateLimitStore | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the limiter.

        Args:
            policy: Window/limit configuration (defaults to 10 per 60s).
            store: Timestamp store; may be shared between limiters.
            clock: Time source returning epoch milliseconds.
        """
        self.policy = policy or RateLimitPolicy()
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock

    def check(self, identifier: str, now: int | None = None) -> RateLimitDecision:
        """Check and, if allowed, record a request for ``identifier``.

        Raises:
            ValueError: If identifier is empty.
        """
        if not identifier:
            raise ValueError("identifier must be a non-empty string")

        if now is None:
            now = self._clock()
        window_ms = self.policy.window_ms
        limit = self.policy.max_requests
        window_start = now - window_ms

        with self.store.lock:
            history = self.store.get(identifier, now)
            recent = [ts for ts in history if ts > window_start]

            if len(recent) >= limit:
                reset_at = (min(recent) if recent else now) + window_ms
                retry_after = max(0, math.ceil((reset_at - now) / 1000))
                return RateLimitDecision(
                    allowed=False,
                    limit=limit,
                    remaining=0,
                    reset_at_ms=reset_at,
                    retry_after_seconds=retry_after,
                )

            recent.append(now)
            self.store.set(identifier, recent, now)

        return RateLimitDecision(
            allowed=True,
            limit=limit,
            remaining=max(0, limit - len(recent)),
            reset_at_ms=min(recent) + window_ms,
            recorded_at_ms=now,
        )

    def release(self, identifier: str, timestamp: int) -> bool:
        with self.store.lock:
            now = self._clock()
            history = self.store.get(identifier, now)
            if timestamp not in history:
                return False
            history.remove(timestamp)
            self.store.set(identifier, history, now)
            return True

    def peek(self, identifier: str, now: int | None = None) -> RateLimitDecision:
        if now is None:
            now = self._clock()
        window_ms = self.policy.window_ms
        limit = self.policy.max_requests

        with self.store.lock:
            recent = [ts for ts in self.store.get(identifier, now) if ts > now - window_ms]

        allowed = len(recent) < limit
        reset_at = min(recent) + window_ms if recent else None
        retry_after = None
        if not allowed:
            reset_at = reset_at if reset_at is not None else now + window_ms
            retry_after = max(0, math.ceil((reset_at - now) / 1000))
        return RateLimitDecision(
            allowed=allowed,
            limit=limit,
            remaining=max(0, limit - len(recent)),
            reset_at_ms=reset_at,
            retry_after_seconds=retry_after,
        )

    def reset(self, identifier: str | None = None) -> None:
        if identifier is None:
            self.store.clear()
        else:
            self.store.delete(identifier)
