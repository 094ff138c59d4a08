from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field, field_validator


class ContactSubmission(BaseModel):
    """Payload posted by the website contact form."""

    name: str = Field(..., min_length=2, max_length=100, description="Sender name")
    email: EmailStr = Field(..., description="Reply-to address")
    company: str | None = Field(None, max_length=200)
    service: str | None = Field(None, max_length=100, description="Service of interest")
    message: str = Field(..., min_length=10, max_length=2000)

    @field_validator("name", "message", "company", "service", mode="before")
    @classmethod
    def strip_whitespace(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("company", "service")
    @classmethod
    def empty_to_none(cls, value: str | None) -> str | None:
        return value or None


class ContactResponse(BaseModel):
    """Acknowledgement returned for an accepted submission."""

    success: bool = True
    message: str = "Thank you! We'll get back to you within 24 hours."
    submission_id: str
