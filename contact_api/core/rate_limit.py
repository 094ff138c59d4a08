"""Rate limiting middleware for guarded API routes.

This module wires the rate limiting adapter into the HTTP layer.

Design goals:
- Minimal coupling: the middleware depends on the limiter abstraction only.
- Explicit state: the limiter and its store are built by the app factory and
  owned by the middleware instance (no module-level globals).
- Independent policies: register one middleware per guarded route group.

Wire contract:
- Accepted requests reach the handler and carry X-RateLimit-Limit,
  X-RateLimit-Remaining and X-RateLimit-Reset (ISO-8601) headers.
- Rejected requests get 429 with the same headers plus Retry-After and a
  JSON body; the handler is not invoked.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from contact_api.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision, RateLimitPolicy
from contact_api.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from contact_api.adapters.rate_limit.store import InMemoryRateLimitStore, build_eviction_strategy
from contact_api.core.client_identity import identify_request
from contact_api.core.config import RateLimitSettings
from contact_api.core.logging import hash_identifier

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]


def build_rate_limiter(cfg: RateLimitSettings) -> InMemorySlidingWindowRateLimiter:
    """Create a limiter (with its own store) from settings.

    Args:
        cfg: Rate limit settings.

    Returns:
        InMemorySlidingWindowRateLimiter configured per settings.
    """

    policy = RateLimitPolicy(
        window_ms=cfg.window_ms,
        max_requests=cfg.max_requests,
        message=cfg.message,
        skip_successful_requests=cfg.skip_successful_requests,
        skip_failed_requests=cfg.skip_failed_requests,
    )
    eviction = build_eviction_strategy(
        cfg.eviction,
        ttl_ms=cfg.window_ms,
        max_keys=cfg.max_keys,
        sweep_interval_ms=cfg.sweep_interval_ms,
    )
    return InMemorySlidingWindowRateLimiter(policy, store=InMemoryRateLimitStore(eviction))


def format_reset(reset_at_ms: int) -> str:
    """Render epoch milliseconds as an ISO-8601 UTC timestamp (``...Z``)."""

    moment = datetime.fromtimestamp(reset_at_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    """Informational headers attached to both accepted and rejected responses.

    X-RateLimit-Reset is omitted when no request is counted for the client.
    """

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }
    if decision.reset_at_ms is not None:
        headers["X-RateLimit-Reset"] = format_reset(decision.reset_at_ms)
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds or 0)
    return headers


def build_rejection_response(decision: RateLimitDecision, policy: RateLimitPolicy) -> JSONResponse:
    retry_after = decision.retry_after_seconds or 0
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "success": False,
            "message": policy.message,
            "retryAfter": retry_after,
            "limit": policy.max_requests,
            "windowMs": policy.window_ms,
        },
        headers=rate_limit_headers(decision),
    )


class RateLimitMiddleware:
    """HTTP middleware enforcing a sliding-window limit on selected routes.

    Usage:
        app.middleware("http")(RateLimitMiddleware(limiter, paths={"/api/contact"}))

    Attributes:
        limiter: Limiter holding the policy and the timestamp store.
        paths: Exact request paths to guard; ``None`` guards every path.
        methods: HTTP methods to guard; ``None`` guards every method.
    """

    def __init__(
        self,
        limiter: AbstractRateLimiter,
        *,
        paths: Iterable[str] | None = None,
        methods: Iterable[str] | None = None,
    ) -> None:
        self.limiter = limiter
        self.paths = frozenset(paths) if paths is not None else None
        self.methods = frozenset(m.upper() for m in methods) if methods is not None else None

    def applies_to(self, request: Request) -> bool:
        if self.paths is not None and request.url.path not in self.paths:
            return False
        if self.methods is not None and request.method.upper() not in self.methods:
            return False
        return True

    def _should_release(self, status_code: int | None) -> bool:
        """Whether a response outcome is excluded from counting.

        ``None`` stands for a handler that raised (treated as failed).
        """
        policy = self.limiter.policy
        failed = status_code is None or status_code >= 400
        if failed:
            return policy.skip_failed_requests
        return policy.skip_successful_requests

    async def __call__(self, request: Request, call_next: CallNext) -> Response:
        if not self.applies_to(request):
            return await call_next(request)

        identifier = identify_request(request)
        key_hash = hash_identifier(identifier)
        decision = self.limiter.check(identifier)
        policy = self.limiter.policy

        if not decision.allowed:
            logger.warning(
                "rate_limit.exceeded",
                extra={
                    "key_hash": key_hash,
                    "path": request.url.path,
                    "limit": decision.limit,
                    "window_ms": policy.window_ms,
                    "retry_after_s": decision.retry_after_seconds,
                },
            )
            return build_rejection_response(decision, policy)

        logger.info(
            "rate_limit.allowed",
            extra={
                "key_hash": key_hash,
                "path": request.url.path,
                "limit": decision.limit,
                "remaining": decision.remaining,
                "window_ms": policy.window_ms,
            },
        )

        try:
            response = await call_next(request)
        except Exception:
            if self._should_release(None):
                self._release(identifier, decision, key_hash)
            raise

        quota = decision
        if self._should_release(response.status_code) and self._release(identifier, decision, key_hash):
            # Report the quota as it stands once the slot has been returned.
            quota = self.limiter.peek(identifier)

        response.headers.update(rate_limit_headers(quota))
        return response

    def _release(self, identifier: str, decision: RateLimitDecision, key_hash: str) -> bool:
        if decision.recorded_at_ms is None:
            return False
        released = self.limiter.release(identifier, decision.recorded_at_ms)
        logger.debug(
            "rate_limit.released",
            extra={"key_hash": key_hash, "released": released},
        )
        return released
