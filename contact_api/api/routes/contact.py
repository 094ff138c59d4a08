from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from contact_api.core.client_identity import identify_request
from contact_api.core.logging import hash_identifier
from contact_api.schemas.contact import ContactResponse, ContactSubmission
from contact_api.services.contact_service import ContactService

router = APIRouter(tags=["Contact"])


def get_contact_service(request: Request) -> ContactService:
    """Return the ContactService built by the app factory."""
    return request.app.state.contact_service


@router.post(
    "/api/contact",
    response_model=ContactResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_contact(
    submission: ContactSubmission,
    request: Request,
    service: Annotated[ContactService, Depends(get_contact_service)],
) -> ContactResponse:
    """Receive a contact form submission.

    Guarded by the contact rate limit (see ``RateLimitMiddleware``).

    Raises:
        ValidationAppError: 400 when a field contains markup or script content.
    """
    stored = service.submit(submission, client_hash=hash_identifier(identify_request(request)))
    return ContactResponse(submission_id=stored.submission_id)
