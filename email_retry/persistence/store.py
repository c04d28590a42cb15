"""Database-backed FailureStore.

Every operation runs in its own short session, so the retry engine holds
no connection or transaction while it sleeps between read and update.
"""

from datetime import datetime
from typing import List, Optional

from email_retry.domain.models import EmailType, FailureRecord
from email_retry.retry.store import FailureStore

from .database import get_session
from .repositories import FailureRepository


class DatabaseFailureStore(FailureStore):
    """FailureStore backed by the email_failures table."""

    def get(self, failure_id: str) -> Optional[FailureRecord]:
        with get_session() as session:
            return FailureRepository(session).get_by_id(failure_id)

    def update(
        self,
        failure_id: str,
        expected_retry_count: int,
        resolved_at: Optional[datetime] = None,
        retry_count: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> FailureRecord:
        with get_session() as session:
            return FailureRepository(session).update_lifecycle(
                failure_id,
                expected_retry_count=expected_retry_count,
                resolved_at=resolved_at,
                retry_count=retry_count,
                error_message=error_message,
            )

    def list_unresolved(self, email_type: Optional[EmailType] = None) -> List[FailureRecord]:
        with get_session() as session:
            return FailureRepository(session).list_unresolved(email_type)

    def insert(self, record: FailureRecord) -> FailureRecord:
        with get_session() as session:
            return FailureRepository(session).insert(record)
