"""Batch retry coordination across all eligible failure records."""

import logging
import threading
import time
from typing import List, Optional
from uuid import uuid4

from email_retry.domain.models import EmailType, FailureRecord
from email_retry.logging import get_logger
from email_retry.logging.context import log_context

from .engine import RetryEngine
from .models import AttemptSendFactory, BatchRetrySummary, RetryOutcome

logger = get_logger(__name__, component="batch")


class BatchRetryCoordinator:
    """
    Selects eligible failures and drives the retry engine across them.

    Records are processed sequentially, each with its own backoff sleep, which
    naturally spaces retries against the downstream provider. A failure while
    retrying one record never aborts the batch.
    """

    def __init__(
        self,
        engine: RetryEngine,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            engine: Retry engine used for each record (its store, policy and
                classifier also drive eligibility)
            logger_instance: Logger instance (uses module logger if None)
        """
        self.engine = engine
        self.logger = logger_instance or logger
        self._lock = threading.Lock()

    def is_eligible(self, record: FailureRecord) -> bool:
        """Check whether a record is a candidate for the next retry."""
        if record.is_resolved:
            return False
        if self.engine.policy.is_exhausted(record):
            return False
        if self.engine.classifier.is_permanent(record.error_message):
            return False
        return True

    def get_retryable_failures(self, email_type: Optional[EmailType] = None) -> List[FailureRecord]:
        """
        List unresolved, non-exhausted, non-permanent failures.

        Args:
            email_type: Optional email type filter

        Returns:
            Eligible records in the order the store returned them

        Raises:
            PersistenceError: If the store cannot be queried
        """
        unresolved = self.engine.store.list_unresolved(email_type)
        return [
            record
            for record in unresolved
            if (email_type is None or record.email_type == email_type) and self.is_eligible(record)
        ]

    def retry_all(
        self,
        attempt_send_factory: AttemptSendFactory,
        email_type: Optional[EmailType] = None,
    ) -> BatchRetrySummary:
        """
        Retry every eligible failure once.

        This method:
        1. Refuses to start if another run is active in this process
        2. Selects eligible records
        3. Retries each one sequentially via the engine
        4. Tallies outcomes; per-record errors count as failed

        Args:
            attempt_send_factory: Builds the send operation for a record
            email_type: Optional email type filter

        Returns:
            BatchRetrySummary with aggregate counts

        Raises:
            PersistenceError: If eligible records cannot be selected
        """
        run_id = uuid4().hex

        if not self._lock.acquire(blocking=False):
            with log_context(run_id=run_id):
                self.logger.warning(
                    "Batch retry skipped: previous run still in progress",
                    extra={"event": "batch.run.skipped", "reason": "lock_held"},
                )
            return BatchRetrySummary(run_skipped=True)

        try:
            with log_context(run_id=run_id):
                started = time.time()
                failures = self.get_retryable_failures(email_type)
                summary = BatchRetrySummary(total=len(failures))

                self.logger.info(
                    f"Batch retry started with {len(failures)} eligible failures",
                    extra={
                        "event": "batch.run.started",
                        "eligible_count": len(failures),
                        "email_type_filter": email_type.value if email_type else None,
                    },
                )

                for failure in failures:
                    outcome = self._retry_one(failure, attempt_send_factory)
                    if outcome is None:
                        summary.failed += 1
                    else:
                        summary.record(outcome)

                self.logger.info(
                    f"Batch retry completed: {summary.successful} succeeded, "
                    f"{summary.failed} failed, {summary.permanent} permanent, "
                    f"{summary.exhausted} exhausted",
                    extra={
                        "event": "batch.run.completed",
                        "duration_ms": int((time.time() - started) * 1000),
                        **summary.as_dict(),
                    },
                )
                return summary
        finally:
            self._lock.release()

    def _retry_one(
        self, failure: FailureRecord, attempt_send_factory: AttemptSendFactory
    ) -> Optional[RetryOutcome]:
        """Retry a single record, returning None if it raised."""
        try:
            attempt_send = attempt_send_factory(failure)
            return self.engine.retry_failure(failure.id, attempt_send)
        except Exception as e:
            self.logger.error(
                f"Error retrying failure {failure.id}: {e}",
                exc_info=True,
                extra={
                    "event": "batch.record.error",
                    "failure_id": failure.id,
                    "error_type": type(e).__name__,
                },
            )
            return None
