from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Liveness check for load balancers and monitoring.

    Also reports the size of the rate limit store, since it grows with the
    number of distinct clients.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    store = getattr(limiter, "store", None)
    payload: dict = {"status": "ok"}
    if store is not None:
        payload["rate_limit"] = store.stats()
    return payload
