"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

from contact_api.core.logging import (
    JsonFormatter,
    SensitiveDataFilter,
    clear_request_id,
    hash_identifier,
    set_request_id,
)


def _json_logger(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_contact_details():
    logger, stream = _json_logger("test_contact_redaction")

    logger.info(
        "contact_event",
        extra={
            "email": "ada@example.com",
            "company": "Analytical Engines",
            "message_chars": 42,
        },
    )

    output = stream.getvalue()
    assert "ada@example.com" not in output
    assert "Analytical Engines" not in output
    assert "[REDACTED]" in output
    assert json.loads(output)["message_chars"] == 42


def test_sensitive_filter_redacts_client_addresses():
    logger, stream = _json_logger("test_ip_redaction")

    logger.warning(
        "proxy_event",
        extra={
            "client_ip": "203.0.113.7",
            "headers": {"X-Forwarded-For": "203.0.113.7", "user-agent": "pytest"},
        },
    )

    output = stream.getvalue()
    assert "203.0.113.7" not in output
    assert "pytest" in output


def test_sensitive_filter_allows_safe_fields():
    logger, stream = _json_logger("test_safe_fields")

    logger.info(
        "rate_limit.allowed",
        extra={
            "request_id": "req-123",
            "path": "/api/contact",
            "remaining": 4,
            "key_hash": hash_identifier("203.0.113.7"),
        },
    )

    data = json.loads(stream.getvalue())
    assert data["message"] == "rate_limit.allowed"
    assert data["request_id"] == "req-123"
    assert data["path"] == "/api/contact"
    assert data["remaining"] == 4
    assert "[REDACTED]" not in stream.getvalue()


def test_request_id_from_context():
    logger, stream = _json_logger("test_ctx_request_id")

    set_request_id("ctx-req-9")
    try:
        logger.info("event")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "ctx-req-9"


def test_hash_identifier_is_stable_and_short():
    assert hash_identifier("unknown") == hash_identifier("unknown")
    assert hash_identifier("a") != hash_identifier("b")
    assert len(hash_identifier("203.0.113.7")) == 16
