"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any import that might load settings.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")

import pytest  # noqa: E402

from contact_api.adapters.rate_limit.base import RateLimitPolicy  # noqa: E402
from contact_api.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter  # noqa: E402


class FakeClock:
    """Deterministic millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.current = start

    def __call__(self) -> int:
        return self.current

    def advance(self, ms: int) -> None:
        self.current += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_limiter(clock: FakeClock):
    """Build a limiter on the fake clock with an isolated store."""

    def _make(**policy_kwargs) -> InMemorySlidingWindowRateLimiter:
        return InMemorySlidingWindowRateLimiter(RateLimitPolicy(**policy_kwargs), clock=clock)

    return _make
