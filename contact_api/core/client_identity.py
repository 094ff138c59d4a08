"""Client identifier derivation used as the rate limiting partition key.

Precedence: X-Forwarded-For → X-Real-IP → transport peer address →
``"unknown"``. Clients that cannot be identified share a single bucket.
"""

from __future__ import annotations

from typing import Mapping

from fastapi import Request

FORWARDED_FOR_HEADER = "x-forwarded-for"
REAL_IP_HEADER = "x-real-ip"
UNKNOWN_CLIENT = "unknown"


def get_client_identifier(headers: Mapping[str, str], peer_host: str | None) -> str:
    """Derive a non-empty client identifier from request metadata.

    Args:
        headers: Request headers (case-insensitive mapping or lower-cased keys).
        peer_host: Transport-level peer address, if known.

    Returns:
        The first non-empty candidate, or ``"unknown"``.

    Examples:
        >>> get_client_identifier({"x-forwarded-for": "1.2.3.4, 10.0.0.1"}, "10.0.0.1")
        '1.2.3.4'
        >>> get_client_identifier({}, None)
        'unknown'
    """

    # Proxies append themselves; the first entry is the originating client.
    forwarded = (headers.get(FORWARDED_FOR_HEADER) or "").split(",")[0].strip()
    if forwarded:
        return forwarded

    real_ip = (headers.get(REAL_IP_HEADER) or "").strip()
    if real_ip:
        return real_ip

    if peer_host and peer_host.strip():
        return peer_host.strip()

    return UNKNOWN_CLIENT


def identify_request(request: Request) -> str:
    """Client identifier for a FastAPI/Starlette request."""

    peer_host = request.client.host if request.client else None
    return get_client_identifier(request.headers, peer_host)
