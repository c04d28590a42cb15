"""Administrative view over failed email deliveries.

The dead letter queue lets an operator inspect failures the automatic
retry loop has given up on (or not reached yet), retry them by hand, or
close them without retrying.
"""

import logging
from collections import Counter
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from email_retry.domain.models import EmailType, FailureClassification, FailureRecord
from email_retry.logging import get_logger
from email_retry.persistence.database import get_session
from email_retry.persistence.exceptions import RecordNotFoundError
from email_retry.persistence.repositories import FailureRepository
from email_retry.retry.engine import RetryEngine
from email_retry.retry.models import AttemptSend, AttemptSendFactory, RetryOutcome

logger = get_logger(__name__, component="dead_letter")

MAX_BATCH_RETRY_SIZE = 100

SessionFactory = Callable[[], AbstractContextManager]


@dataclass
class DeadLetterStats:
    """Counts over the whole failure table.

    permanent and exhausted only count unresolved records; a record can
    be in both.
    """

    total: int = 0
    unresolved: int = 0
    permanent: int = 0
    exhausted: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_provider: Dict[str, int] = field(default_factory=dict)


@dataclass
class BatchRetryError:
    failure_id: str
    error: str


@dataclass
class BatchRetryResult:
    """Outcome of an operator-initiated batch retry."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[BatchRetryError] = field(default_factory=list)

    def add_error(self, failure_id: str, error: str) -> None:
        self.failed += 1
        self.errors.append(BatchRetryError(failure_id=failure_id, error=error))


@dataclass(frozen=True)
class FailureEligibility:
    """A failure record annotated with what the retry loop thinks of it."""

    record: FailureRecord
    classification: FailureClassification
    retry_limit: int
    can_retry: bool


class DeadLetterQueue:
    """Query, retry and resolve failure records on demand."""

    def __init__(
        self,
        engine: RetryEngine,
        session_factory: SessionFactory = get_session,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """
        Args:
            engine: Retry engine used for manual retries; its policy and
                classifier also drive stats and eligibility
            session_factory: Context manager yielding a Session
            logger_instance: Logger instance (uses module logger if None)
        """
        self.engine = engine
        self.session_factory = session_factory
        self.logger = logger_instance or logger

    def _read(self, query: Callable[[FailureRepository], object]):
        with self.session_factory() as session:
            return query(FailureRepository(session))

    def query_failures(
        self,
        email_type: Optional[EmailType] = None,
        provider: Optional[str] = None,
        recipient: Optional[str] = None,
        unresolved_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[FailureRecord]:
        """Filter failures, newest first, with limit/offset paging."""
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")

        return self._read(
            lambda repo: repo.query(
                email_type=email_type,
                provider=provider,
                recipient=recipient,
                unresolved_only=unresolved_only,
                limit=limit,
                offset=offset,
            )
        )

    def get_stats(self) -> DeadLetterStats:
        records: List[FailureRecord] = self._read(lambda repo: repo.get_all())
        unresolved = [r for r in records if not r.is_resolved]

        return DeadLetterStats(
            total=len(records),
            unresolved=len(unresolved),
            permanent=sum(
                1 for r in unresolved if self.engine.classifier.is_permanent(r.error_message)
            ),
            exhausted=sum(1 for r in unresolved if self.engine.policy.is_exhausted(r)),
            by_type=dict(Counter(r.email_type.value for r in records)),
            by_provider=dict(Counter(r.provider for r in records)),
        )

    def manual_retry(self, failure_id: str, attempt_send: AttemptSend) -> RetryOutcome:
        """Retry one record immediately through the engine.

        Raises:
            RecordNotFoundError: If failure_id doesn't exist
        """
        self.logger.info(
            f"Manual retry requested for {failure_id}",
            extra={"event": "dead_letter.manual_retry", "failure_id": failure_id},
        )
        return self.engine.retry_failure(failure_id, attempt_send)

    def batch_retry(
        self,
        failure_ids: Sequence[str],
        attempt_send_factory: AttemptSendFactory,
    ) -> BatchRetryResult:
        """Retry the given records one after another.

        Missing ids and unsuccessful outcomes are collected in errors; a
        single bad id never stops the rest of the batch.

        Raises:
            ValueError: If more than MAX_BATCH_RETRY_SIZE ids are given
        """
        if len(failure_ids) > MAX_BATCH_RETRY_SIZE:
            raise ValueError(
                f"Cannot retry more than {MAX_BATCH_RETRY_SIZE} failures at once "
                f"(got {len(failure_ids)})"
            )

        result = BatchRetryResult(total=len(failure_ids))

        for failure_id in failure_ids:
            record = self.engine.store.get(failure_id)
            if record is None:
                result.add_error(failure_id, "Failure not found")
                continue

            try:
                outcome = self.engine.retry_failure(
                    failure_id, attempt_send_factory(record)
                )
            except RecordNotFoundError:
                result.add_error(failure_id, "Failure not found")
                continue

            if outcome.succeeded:
                result.successful += 1
            else:
                result.add_error(
                    failure_id, outcome.error or outcome.reason or outcome.status.value
                )

        self.logger.info(
            f"Batch retry finished: {result.successful}/{result.total} succeeded",
            extra={
                "event": "dead_letter.batch_retry",
                "total": result.total,
                "successful": result.successful,
                "failed": result.failed,
            },
        )
        return result

    def mark_resolved(self, failure_id: str) -> FailureRecord:
        """Close a record without retrying it.

        Raises:
            RecordNotFoundError: If failure_id doesn't exist
        """
        with self.session_factory() as session:
            record = FailureRepository(session).mark_resolved(failure_id)

        self.logger.info(
            f"Failure {failure_id} marked resolved",
            extra={"event": "dead_letter.resolved", "failure_id": failure_id},
        )
        return record

    def get_recipient_failures(self, recipient: str, limit: int = 10) -> List[FailureRecord]:
        return self._read(lambda repo: repo.get_by_recipient(recipient, limit=limit))

    def get_failures_by_type(self, email_type: EmailType) -> List[FailureEligibility]:
        records: List[FailureRecord] = self._read(
            lambda repo: repo.get_by_type(email_type, limit=None)
        )
        return [self._annotate(record) for record in records]

    def _annotate(self, record: FailureRecord) -> FailureEligibility:
        classification = self.engine.classifier.classify(record.error_message)
        limit = self.engine.policy.limit_for(record.email_type)
        can_retry = (
            not record.is_resolved
            and classification == FailureClassification.TRANSIENT
            and record.retry_count < limit
        )
        return FailureEligibility(
            record=record,
            classification=classification,
            retry_limit=limit,
            can_retry=can_retry,
        )
