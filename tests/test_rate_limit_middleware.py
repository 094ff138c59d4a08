"""HTTP-level tests for the rate limiting middleware."""

import asyncio
from datetime import datetime

import httpx
import pytest
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from contact_api.adapters.rate_limit.base import RateLimitPolicy
from contact_api.adapters.rate_limit.in_memory import InMemorySlidingWindowRateLimiter
from contact_api.core.rate_limit import RateLimitMiddleware, format_reset


def _build_app(limiter, **middleware_kwargs) -> tuple[FastAPI, list[str]]:
    app = FastAPI()
    calls: list[str] = []

    @app.get("/guarded")
    async def guarded() -> dict:
        calls.append("guarded")
        return {"ok": True}

    @app.get("/failing")
    async def failing() -> dict:
        calls.append("failing")
        raise HTTPException(status_code=400, detail="bad input")

    @app.get("/crash")
    async def crash() -> dict:
        calls.append("crash")
        raise RuntimeError("handler blew up")

    @app.get("/open")
    async def open_route() -> dict:
        return {"ok": True}

    app.middleware("http")(RateLimitMiddleware(limiter, **middleware_kwargs))
    return app, calls


@pytest.fixture
def limiter(make_limiter):
    return make_limiter(window_ms=60_000, max_requests=2, message="Slow down.")


def test_accepted_response_carries_rate_limit_headers(limiter, clock) -> None:
    app, calls = _build_app(limiter)
    client = TestClient(app)

    resp = client.get("/guarded")

    assert resp.status_code == 200
    assert calls == ["guarded"]
    assert resp.headers["X-RateLimit-Limit"] == "2"
    assert resp.headers["X-RateLimit-Remaining"] == "1"
    assert resp.headers["X-RateLimit-Reset"] == format_reset(clock.current + 60_000)
    assert "Retry-After" not in resp.headers


def test_rejection_skips_handler_and_returns_structured_body(limiter) -> None:
    app, calls = _build_app(limiter)
    client = TestClient(app)

    client.get("/guarded")
    client.get("/guarded")
    blocked = client.get("/guarded")

    assert blocked.status_code == 429
    assert calls == ["guarded", "guarded"]
    assert blocked.json() == {
        "success": False,
        "message": "Slow down.",
        "retryAfter": 60,
        "limit": 2,
        "windowMs": 60_000,
    }
    assert blocked.headers["Retry-After"] == "60"
    assert blocked.headers["X-RateLimit-Limit"] == "2"
    assert blocked.headers["X-RateLimit-Remaining"] == "0"
    assert "X-RateLimit-Reset" in blocked.headers


def test_allowance_returns_after_window(limiter, clock) -> None:
    app, _ = _build_app(limiter)
    client = TestClient(app)

    client.get("/guarded")
    clock.advance(30_000)
    client.get("/guarded")
    assert client.get("/guarded").status_code == 429

    clock.advance(30_001)
    resp = client.get("/guarded")
    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Remaining"] == "0"


def test_clients_are_identified_by_forwarded_for(limiter) -> None:
    app, _ = _build_app(limiter)
    client = TestClient(app)
    alice = {"X-Forwarded-For": "203.0.113.1"}
    bob = {"X-Forwarded-For": "203.0.113.2, 10.0.0.1"}

    client.get("/guarded", headers=alice)
    client.get("/guarded", headers=alice)

    assert client.get("/guarded", headers=alice).status_code == 429
    assert client.get("/guarded", headers=bob).status_code == 200


def test_unguarded_paths_are_not_counted(limiter) -> None:
    app, _ = _build_app(limiter, paths={"/guarded"})
    client = TestClient(app)

    for _ in range(5):
        resp = client.get("/open")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers

    assert client.get("/guarded").status_code == 200


def test_methods_filter(limiter) -> None:
    app, _ = _build_app(limiter, methods={"POST"})
    client = TestClient(app)

    for _ in range(5):
        assert client.get("/guarded").status_code == 200


def test_independent_policies_per_route(clock) -> None:
    app = FastAPI()

    @app.get("/a")
    async def route_a() -> dict:
        return {}

    @app.get("/b")
    async def route_b() -> dict:
        return {}

    strict = InMemorySlidingWindowRateLimiter(RateLimitPolicy(max_requests=1), clock=clock)
    loose = InMemorySlidingWindowRateLimiter(RateLimitPolicy(max_requests=3), clock=clock)
    app.middleware("http")(RateLimitMiddleware(strict, paths={"/a"}))
    app.middleware("http")(RateLimitMiddleware(loose, paths={"/b"}))
    client = TestClient(app)

    assert client.get("/a").status_code == 200
    assert client.get("/a").status_code == 429
    assert [client.get("/b").status_code for _ in range(4)] == [200, 200, 200, 429]


def test_skip_failed_requests_does_not_count_errors(make_limiter) -> None:
    limiter = make_limiter(max_requests=1, skip_failed_requests=True)
    app, _ = _build_app(limiter)
    client = TestClient(app)

    for _ in range(3):
        resp = client.get("/failing")
        assert resp.status_code == 400
        assert resp.headers["X-RateLimit-Remaining"] == "1"
        assert "X-RateLimit-Reset" not in resp.headers

    assert client.get("/guarded").status_code == 200
    assert client.get("/guarded").status_code == 429


def test_skip_successful_requests_only_counts_errors(make_limiter) -> None:
    limiter = make_limiter(max_requests=1, skip_successful_requests=True)
    app, _ = _build_app(limiter)
    client = TestClient(app)

    for _ in range(3):
        assert client.get("/guarded").status_code == 200

    assert client.get("/failing").status_code == 400
    assert client.get("/guarded").status_code == 429


def test_failed_requests_count_by_default(limiter) -> None:
    app, _ = _build_app(limiter)
    client = TestClient(app)

    client.get("/failing")
    client.get("/failing")

    assert client.get("/guarded").status_code == 429


def test_concurrent_requests_accept_exactly_the_limit() -> None:
    max_requests = 5
    limiter = InMemorySlidingWindowRateLimiter(
        RateLimitPolicy(window_ms=60_000, max_requests=max_requests)
    )
    app, calls = _build_app(limiter)

    async def fire_all() -> list[int]:
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            responses = await asyncio.gather(
                *(client.get("/guarded") for _ in range(max_requests + 5))
            )
        return [r.status_code for r in responses]

    statuses = asyncio.run(fire_all())

    assert statuses.count(200) == max_requests
    assert statuses.count(429) == 5
    assert len(calls) == max_requests


def test_format_reset_is_iso_8601_utc() -> None:
    rendered = format_reset(0)

    assert rendered == "1970-01-01T00:00:00.000Z"
    assert datetime.fromisoformat(format_reset(1_700_000_000_123).replace("Z", "+00:00"))


def test_skip_failed_requests_releases_slot_when_handler_raises(make_limiter) -> None:
    limiter = make_limiter(max_requests=1, skip_failed_requests=True)
    app, calls = _build_app(limiter)
    client = TestClient(app, raise_server_exceptions=False)

    statuses = [client.get("/crash").status_code for _ in range(3)]

    assert statuses == [500, 500, 500]
    assert calls == ["crash"] * 3
    assert client.get("/guarded").status_code == 200


def test_raising_handler_consumes_slot_by_default(make_limiter) -> None:
    limiter = make_limiter(max_requests=1)
    app, calls = _build_app(limiter)
    client = TestClient(app, raise_server_exceptions=False)

    assert client.get("/crash").status_code == 500
    assert client.get("/crash").status_code == 429
    assert calls == ["crash"]


def test_reset_header_follows_history_after_release(make_limiter, clock) -> None:
    limiter = make_limiter(window_ms=60_000, max_requests=2, skip_successful_requests=True)
    app, _ = _build_app(limiter)
    client = TestClient(app)
    first_counted = clock.current

    assert client.get("/failing").status_code == 400
    clock.advance(1_000)
    resp = client.get("/guarded")

    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Remaining"] == "1"
    assert resp.headers["X-RateLimit-Reset"] == format_reset(first_counted + 60_000)
