"""Core domain models for failed email deliveries.

This module defines the data structures used throughout the application:
- EmailType: message categories that carry their own retry budget
- FailureClassification: transient vs permanent failure causes
- FailureRecord: one failed delivery and its retry lifecycle
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator


class EmailType(str, Enum):
    """Categories of outbound notification emails."""

    REMINDER = "reminder"
    DISCLOSURE = "disclosure"
    ADMIN_NOTIFICATION = "admin_notification"
    VERIFICATION = "verification"


class FailureClassification(str, Enum):
    """Whether a delivery failure is worth retrying."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"


class FailureRecord(BaseModel):
    """A failed delivery attempt chain.

    Created by the email-sending facade when a send fails. The retry engine
    reads and updates it until it is either resolved (a retry succeeded) or
    becomes terminal (permanent failure or exhausted retry budget).

    retry_count is the number of retries already performed; the original
    send is attempt 0, so the N-th retry is attempt N.
    """

    id: str = Field(default_factory=lambda: uuid4().hex, description="Unique failure identifier")
    email_type: EmailType = Field(..., description="Message category (selects the retry budget)")
    provider: str = Field(..., description="Transport that attempted the send")
    recipient: str = Field(..., description="Original recipient address")
    subject: str = Field(..., description="Original subject line")
    error_message: str = Field("", description="Most recent raw error text")
    retry_count: int = Field(0, ge=0, description="Retries performed so far")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the original send failed (UTC)",
    )
    resolved_at: Optional[datetime] = Field(
        None, description="When a retry succeeded (UTC), None while outstanding"
    )

    @field_validator("id", "provider", "recipient")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        """Strip whitespace from identifying fields."""
        if not v or not v.strip():
            raise ValueError("Field cannot be empty or whitespace-only")
        return v.strip()

    @field_validator("created_at", "resolved_at")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Ensure datetime is timezone-aware and in UTC."""
        if v is None:
            return None
        # If timezone-naive, treat as UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def is_resolved(self) -> bool:
        """True once a retry has succeeded."""
        return self.resolved_at is not None

    model_config = {"json_schema_extra": {"example": {
        "id": "3f2e1d9c8b7a6f5e4d3c2b1a09876543",
        "email_type": "reminder",
        "provider": "sendgrid",
        "recipient": "user@example.com",
        "subject": "Check-in required",
        "error_message": "ETIMEDOUT: connection timed out",
        "retry_count": 0,
        "created_at": "2025-11-03T10:00:00Z",
        "resolved_at": None,
    }}}
