"""Contact submission handling.

Submissions are screened for markup/script injection and kept in a bounded
in-memory inbox. Delivery (email, CRM) is handled outside this service.
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone

from contact_api.core.errors import ValidationAppError
from contact_api.schemas.contact import ContactSubmission

logger = logging.getLogger(__name__)

_UNSAFE_INPUT = re.compile(
    r"<\s*/?\s*script|javascript:|vbscript:|data:text/html|\bon\w+\s*=|[<>]",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class StoredSubmission:
    submission_id: str
    received_at: datetime
    submission: ContactSubmission
    client_hash: str | None = None


class ContactInbox:
    """Thread-safe, bounded store of received submissions (oldest dropped first)."""

    def __init__(self, max_entries: int = 1000) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._items: deque[StoredSubmission] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def add(self, item: StoredSubmission) -> None:
        with self._lock:
            self._items.append(item)

    def items(self) -> list[StoredSubmission]:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


def find_unsafe_field(submission: ContactSubmission) -> str | None:
    """Return the first field containing markup or script patterns, if any."""

    for field_name in ("name", "email", "company", "service", "message"):
        value = getattr(submission, field_name)
        if value and _UNSAFE_INPUT.search(str(value)):
            return field_name
    return None


class ContactService:
    """Accepts contact form submissions into an inbox."""

    def __init__(self, inbox: ContactInbox) -> None:
        self._inbox = inbox

    def submit(self, submission: ContactSubmission, *, client_hash: str | None = None) -> StoredSubmission:
        """Validate and store a submission.

        Args:
            submission: Schema-validated form payload.
            client_hash: Hashed client identifier for correlation.

        Returns:
            The stored submission record.

        Raises:
            ValidationAppError: If any field contains markup or script content.
        """

        unsafe_field = find_unsafe_field(submission)
        if unsafe_field:
            logger.warning(
                "contact.rejected",
                extra={"reason": "unsafe_input", "field": unsafe_field, "key_hash": client_hash},
            )
            raise ValidationAppError(
                code="invalid_input",
                message="Invalid characters detected in form data",
                details={"field": unsafe_field},
            )

        stored = StoredSubmission(
            submission_id=str(uuid.uuid4()),
            received_at=datetime.now(timezone.utc),
            submission=submission,
            client_hash=client_hash,
        )
        self._inbox.add(stored)

        logger.info(
            "contact.received",
            extra={
                "submission_id": stored.submission_id,
                "service": submission.service,
                "message_chars": len(submission.message),
                "key_hash": client_hash,
            },
        )
        return stored
