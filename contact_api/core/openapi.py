"""OpenAPI customization utilities.

Documents the rate limit contract on guarded operations:
- the 429 response with its JSON body
- the X-RateLimit-* and Retry-After headers

This keeps documentation concerns decoupled from the app factory.
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import FastAPI

_RATE_LIMIT_HEADERS: Dict[str, Any] = {
    "X-RateLimit-Limit": {
        "description": "Maximum requests allowed per window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Remaining": {
        "description": "Requests left in the current window.",
        "schema": {"type": "integer"},
    },
    "X-RateLimit-Reset": {
        "description": "ISO-8601 time when the oldest counted request leaves the window.",
        "schema": {"type": "string", "format": "date-time"},
    },
}

_TOO_MANY_REQUESTS: Dict[str, Any] = {
    "description": "Rate limit exceeded.",
    "headers": {
        **_RATE_LIMIT_HEADERS,
        "Retry-After": {
            "description": "Seconds to wait before retrying.",
            "schema": {"type": "integer"},
        },
    },
    "content": {
        "application/json": {
            "schema": {
                "type": "object",
                "properties": {
                    "success": {"type": "boolean", "example": False},
                    "message": {"type": "string"},
                    "retryAfter": {"type": "integer"},
                    "limit": {"type": "integer"},
                    "windowMs": {"type": "integer"},
                },
            }
        }
    },
}


def apply_openapi_customizations(app: FastAPI) -> None:
    """Patch FastAPI's OpenAPI generation to document rate limiting.

    - Adds tags metadata if not present
    - Adds the 429 response and rate limit headers to operations tagged
      ``Contact``
    """

    original_openapi = app.openapi

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema
        schema = original_openapi()

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        desired_tags = [
            {
                "name": "Contact",
                "description": "Contact form submissions (rate limited per client).",
            },
            {
                "name": "Health",
                "description": "Liveness checks.",
            },
        ]
        for tag in desired_tags:
            if tag["name"] not in existing_tag_names:
                tags.append(tag)

        for methods in schema.get("paths", {}).values():
            for operation in methods.values():
                if not isinstance(operation, dict) or "Contact" not in operation.get("tags", []):
                    continue
                responses = operation.setdefault("responses", {})
                responses.setdefault("429", _TOO_MANY_REQUESTS)
                for code, response in responses.items():
                    if code.startswith("2"):
                        response.setdefault("headers", {}).update(_RATE_LIMIT_HEADERS)

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
