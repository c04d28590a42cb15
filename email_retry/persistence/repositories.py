"""Data access layer (repositories) for persistence operations.

This module provides the repository for failed email delivery records.
Repositories encapsulate database operations and return domain models
rather than ORM models.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from email_retry.domain.models import EmailType, FailureRecord
from email_retry.utils.timestamps import utc_now

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError, StaleRecordError
from .schema import EmailFailureModel, format_datetime

logger = logging.getLogger(__name__)


class FailureRepository:
    """Repository for failed email delivery records."""

    def __init__(self, session: Session):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy session for database operations
        """
        self.session = session

    def get_by_id(self, failure_id: str) -> Optional[FailureRecord]:
        """Retrieve a failure record by primary key.

        Args:
            failure_id: Unique failure identifier

        Returns:
            FailureRecord if found, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(EmailFailureModel)
                .where(EmailFailureModel.id == failure_id)
                .execution_options(populate_existing=True)
            )
            model = self.session.execute(stmt).scalar_one_or_none()

            if model is None:
                return None

            return model.to_domain()

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving failure {failure_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve failure: {e}") from e

    def insert(self, record: FailureRecord) -> FailureRecord:
        """Insert a new failure record.

        Args:
            record: FailureRecord to persist

        Returns:
            Persisted FailureRecord

        Raises:
            DataIntegrityError: If a record with the same id exists
            PersistenceError: If database error occurs
        """
        try:
            model = EmailFailureModel.from_domain(record)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            logger.error(f"Integrity error inserting failure {record.id}: {e}", exc_info=True)
            raise DataIntegrityError(
                f"Failed to insert failure due to constraint violation: {e}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error inserting failure {record.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to insert failure: {e}") from e

    def log_failure(
        self,
        email_type: EmailType,
        provider: str,
        recipient: str,
        subject: str,
        error_message: str,
        created_at: Optional[datetime] = None,
    ) -> FailureRecord:
        """Record a delivery that failed its immediate attempt.

        Args:
            email_type: Message category
            provider: Transport that attempted the send
            recipient: Original recipient address
            subject: Original subject line
            error_message: Raw error from the transport
            created_at: Failure time (now if None)

        Returns:
            Persisted FailureRecord with retry_count 0

        Raises:
            PersistenceError: If database error occurs
        """
        record = FailureRecord(
            email_type=email_type,
            provider=provider,
            recipient=recipient,
            subject=subject,
            error_message=error_message,
            created_at=created_at or utc_now(),
        )
        persisted = self.insert(record)
        logger.info(
            f"Logged {persisted.email_type.value} delivery failure {persisted.id}",
            extra={
                "event": "failure.logged",
                "failure_id": persisted.id,
                "provider": persisted.provider,
            },
        )
        return persisted

    def update_lifecycle(
        self,
        failure_id: str,
        expected_retry_count: int,
        resolved_at: Optional[datetime] = None,
        retry_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> FailureRecord:
        """Conditionally update lifecycle fields of an unresolved record.

        The UPDATE only matches if the record is unresolved and its retry_count
        equals expected_retry_count.

        Args:
            failure_id: Unique failure identifier
            expected_retry_count: retry_count observed at read time
            resolved_at: Resolution timestamp to set
            retry_count: New retry count
            error_message: New error text

        Returns:
            Updated FailureRecord

        Raises:
            RecordNotFoundError: If failure_id doesn't exist
            StaleRecordError: If the record was resolved or retried meanwhile
            PersistenceError: If database error occurs
        """
        values: Dict[str, Any] = {}
        if resolved_at is not None:
            values["resolved_at"] = format_datetime(resolved_at)
        if retry_count is not None:
            values["retry_count"] = retry_count
        if error_message is not None:
            values["error_message"] = error_message

        try:
            if values:
                stmt = (
                    update(EmailFailureModel)
                    .where(
                        EmailFailureModel.id == failure_id,
                        EmailFailureModel.resolved_at.is_(None),
                        EmailFailureModel.retry_count == expected_retry_count,
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                result = self.session.execute(stmt)
                self.session.flush()
                matched = result.rowcount
            else:
                matched = None

            current = self.get_by_id(failure_id)
            if current is None:
                raise RecordNotFoundError(f"Email failure {failure_id} not found")

            if matched == 0:
                raise StaleRecordError(
                    f"Email failure {failure_id} changed since it was read "
                    f"(expected retry_count={expected_retry_count}, "
                    f"found retry_count={current.retry_count}, resolved={current.is_resolved})"
                )

            return current

        except (RecordNotFoundError, StaleRecordError):
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error updating failure {failure_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to update failure: {e}") from e

    def mark_resolved(self, failure_id: str, resolved_at: Optional[datetime] = None) -> FailureRecord:
        """Mark a record as resolved without retrying it.

        Already resolved records are returned unchanged.

        Args:
            failure_id: Unique failure identifier
            resolved_at: Resolution timestamp (now if None)

        Returns:
            Resolved FailureRecord

        Raises:
            RecordNotFoundError: If failure_id doesn't exist
            PersistenceError: If database error occurs
        """
        try:
            model = self.session.get(EmailFailureModel, failure_id)
            if model is None:
                raise RecordNotFoundError(f"Email failure {failure_id} not found")

            if model.resolved_at is None:
                model.resolved_at = format_datetime(resolved_at or utc_now())
                self.session.flush()
            else:
                logger.debug(f"Failure {failure_id} already resolved")

            return model.to_domain()

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error resolving failure {failure_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to resolve failure: {e}") from e

    def list_unresolved(
        self, email_type: Optional[EmailType] = None, limit: Optional[int] = None
    ) -> List[FailureRecord]:
        """Query unresolved failures, oldest first.

        Args:
            email_type: Optional email type filter
            limit: Maximum number of records (None = no limit)

        Returns:
            List of FailureRecord (empty list if none found)

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(EmailFailureModel).where(EmailFailureModel.resolved_at.is_(None))
            if email_type is not None:
                stmt = stmt.where(EmailFailureModel.email_type == EmailType(email_type).value)
            stmt = stmt.order_by(EmailFailureModel.created_at.asc(), EmailFailureModel.id.asc())
            if limit is not None:
                stmt = stmt.limit(limit)

            models = self.session.execute(stmt).scalars().all()
            return [model.to_domain() for model in models]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving unresolved failures: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve unresolved failures: {e}") from e

    def query(
        self,
        email_type: Optional[EmailType] = None,
        provider: Optional[str] = None,
        recipient: Optional[str] = None,
        unresolved_only: bool = False,
        limit: Optional[int] = 100,
        offset: int = 0,
    ) -> List[FailureRecord]:
        """Query failures with optional filters, newest first.

        Args:
            email_type: Filter by email type
            provider: Filter by provider
            recipient: Filter by recipient address
            unresolved_only: Only return records with resolved_at unset
            limit: Maximum number of records (None = no limit)
            offset: Number of records to skip

        Returns:
            List of FailureRecord

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(EmailFailureModel)
            if email_type is not None:
                stmt = stmt.where(EmailFailureModel.email_type == EmailType(email_type).value)
            if provider is not None:
                stmt = stmt.where(EmailFailureModel.provider == provider)
            if recipient is not None:
                stmt = stmt.where(EmailFailureModel.recipient == recipient)
            if unresolved_only:
                stmt = stmt.where(EmailFailureModel.resolved_at.is_(None))

            stmt = stmt.order_by(EmailFailureModel.created_at.desc(), EmailFailureModel.id.asc())
            if offset:
                stmt = stmt.offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)

            models = self.session.execute(stmt).scalars().all()
            return [model.to_domain() for model in models]

        except SQLAlchemyError as e:
            logger.error(f"Error querying failures: {e}", exc_info=True)
            raise PersistenceError(f"Failed to query failures: {e}") from e

    def get_by_provider(self, provider: str, limit: int = 100) -> List[FailureRecord]:
        """Retrieve failures recorded for a transport provider."""
        return self.query(provider=provider, limit=limit)

    def get_by_type(self, email_type: EmailType, limit: Optional[int] = 100) -> List[FailureRecord]:
        """Retrieve failures of one email type."""
        return self.query(email_type=email_type, limit=limit)

    def get_by_recipient(self, recipient: str, limit: int = 10) -> List[FailureRecord]:
        """Retrieve the most recent failures for a recipient address."""
        return self.query(recipient=recipient, limit=limit)

    def get_all(self) -> List[FailureRecord]:
        """Retrieve every failure record, newest first."""
        return self.query(limit=None)
