"""Failure record store interface used by the retry engine."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from email_retry.domain.models import EmailType, FailureRecord


class FailureStore(ABC):
    """Narrow read/update/insert access to failure records.

    Implementations must raise persistence exceptions from
    email_retry.persistence.exceptions:
    - RecordNotFoundError when an update targets a missing record
    - StaleRecordError when the conditional update finds the record changed
    - PersistenceError for any other storage failure
    """

    @abstractmethod
    def get(self, failure_id: str) -> Optional[FailureRecord]:
        """Load a record by id, or None if it does not exist."""
        pass

    @abstractmethod
    def update(
        self,
        failure_id: str,
        expected_retry_count: int,
        resolved_at: Optional[datetime] = None,
        retry_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> FailureRecord:
        """Update lifecycle fields of an unresolved record.

        The update only applies if the stored record is still unresolved and
        its retry_count equals expected_retry_count (optimistic concurrency).

        Args:
            failure_id: Record to update
            expected_retry_count: retry_count observed when the record was read
            resolved_at: New resolution timestamp (None leaves it unset)
            retry_count: New retry count (None leaves it unchanged)
            error_message: New error text (None leaves it unchanged)

        Returns:
            The updated record
        """
        pass

    @abstractmethod
    def list_unresolved(self, email_type: Optional[EmailType] = None) -> List[FailureRecord]:
        """List records with resolved_at unset, optionally for one email type."""
        pass

    @abstractmethod
    def insert(self, record: FailureRecord) -> FailureRecord:
        """Persist a new failure record."""
        pass
