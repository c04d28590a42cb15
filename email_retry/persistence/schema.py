"""Database schema definition and ORM models.

This module defines the SQLAlchemy ORM model for failed email deliveries and
provides conversion methods between the ORM model and the domain model.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Index, Integer, String, Text, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

from email_retry.domain.models import EmailType, FailureRecord

logger = logging.getLogger(__name__)

# Create base class for ORM models
Base = declarative_base()

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class EmailFailureModel(Base):
    """ORM model for email_failures table.

    One row per failed delivery attempt chain.
    """

    __tablename__ = "email_failures"

    # Primary key
    id = Column(String(64), primary_key=True, nullable=False)

    # Message envelope
    email_type = Column(String(32), nullable=False)
    provider = Column(String(64), nullable=False)
    recipient = Column(String(320), nullable=False)
    subject = Column(Text, nullable=False)

    # Lifecycle
    error_message = Column(Text, nullable=False, default="")
    retry_count = Column(Integer, nullable=False, default=0)

    # Timestamps (stored as ISO 8601 strings)
    created_at = Column(String(50), nullable=False)
    resolved_at = Column(String(50), nullable=True)

    # Indexes
    __table_args__ = (
        Index("idx_email_failures_resolved_at", "resolved_at"),
        Index("idx_email_failures_email_type", "email_type"),
        Index("idx_email_failures_recipient", "recipient"),
        Index("idx_email_failures_created_at", "created_at"),
    )

    def to_domain(self) -> FailureRecord:
        """Convert ORM model to domain model.

        Returns:
            FailureRecord: Domain model instance
        """
        return FailureRecord(
            id=self.id,
            email_type=EmailType(self.email_type),
            provider=self.provider,
            recipient=self.recipient,
            subject=self.subject,
            error_message=self.error_message or "",
            retry_count=self.retry_count or 0,
            created_at=parse_datetime(self.created_at),
            resolved_at=parse_datetime(self.resolved_at),
        )

    @classmethod
    def from_domain(cls, record: FailureRecord) -> "EmailFailureModel":
        """Create ORM model from domain model.

        Args:
            record: Domain model instance

        Returns:
            EmailFailureModel: ORM model instance
        """
        return cls(
            id=record.id,
            email_type=record.email_type.value,
            provider=record.provider,
            recipient=record.recipient,
            subject=record.subject,
            error_message=record.error_message,
            retry_count=record.retry_count,
            created_at=format_datetime(record.created_at),
            resolved_at=format_datetime(record.resolved_at),
        )


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format datetime as ISO 8601 string for database storage.

    Fixed-width strings keep lexicographic order equal to time order,
    so range filters work on the text column.

    Args:
        dt: Datetime object (naive values are treated as UTC)

    Returns:
        ISO 8601 formatted string or None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    else:
        dt = dt.astimezone(timezone.utc)

    return dt.strftime(TIMESTAMP_FORMAT)


def parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse ISO 8601 string to datetime object.

    Args:
        dt_str: ISO 8601 formatted string

    Returns:
        Timezone-aware datetime in UTC or None
    """
    if dt_str is None or dt_str == "":
        return None

    dt_str = dt_str.rstrip("Z")

    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent).

    Args:
        engine: SQLAlchemy engine instance
    """
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)

        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")

    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
