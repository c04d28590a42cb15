"""Retry engine for a single failed delivery.

The engine makes the give-up-or-retry decision for one failure record:
classify the last error, check the category budget, back off, invoke the
injected send operation and record the result. It performs no network I/O
itself.
"""

import logging
import random
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

from email_retry.domain.models import FailureClassification
from email_retry.logging import get_logger
from email_retry.logging.context import log_context
from email_retry.persistence.exceptions import RecordNotFoundError, StaleRecordError
from email_retry.utils.timestamps import utc_now

from .backoff import BASE_DELAY_SECONDS, JITTER_FACTOR, MAX_DELAY_SECONDS, calculate_backoff_delay
from .classifier import FailureClassifier, PatternFailureClassifier
from .models import AttemptSend, RetryOutcome, RetryStatus, SendResult
from .policy import RetryPolicy
from .store import FailureStore

logger = get_logger(__name__, component="retry")


class RetryEngine:
    """Retries one failure record per call.

    Each call reads the record once, updates it at most once and invokes the
    send operation at most once. Permanent and exhausted records are never
    sent. Persistence errors propagate to the caller because they mean the
    bookkeeping itself is unreliable.
    """

    def __init__(
        self,
        store: FailureStore,
        policy: Optional[RetryPolicy] = None,
        classifier: Optional[FailureClassifier] = None,
        base_delay: float = BASE_DELAY_SECONDS,
        max_delay: float = MAX_DELAY_SECONDS,
        jitter_factor: float = JITTER_FACTOR,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
        rng: Optional[random.Random] = None,
        logger_instance: Optional[logging.Logger] = None,
    ):
        """Initialize retry engine.

        Args:
            store: Failure record store
            policy: Retry budgets per email type (default limits if None)
            classifier: Failure classifier (default pattern lists if None)
            base_delay: Backoff base delay in seconds
            max_delay: Backoff cap in seconds
            jitter_factor: Jitter range as a fraction of base_delay
            sleep: Blocking sleep used for the backoff throttle
            clock: Source of the current UTC time
            rng: Random source for jitter
            logger_instance: Logger instance (uses module logger if None)
        """
        self.store = store
        self.policy = policy or RetryPolicy()
        self.classifier = classifier or PatternFailureClassifier()
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_factor = jitter_factor
        self.sleep = sleep
        self.clock = clock
        self.rng = rng
        self.logger = logger_instance or logger

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before the given retry attempt."""
        return calculate_backoff_delay(
            attempt,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter_factor=self.jitter_factor,
            rng=self.rng,
        )

    def retry_failure(self, failure_id: str, attempt_send: AttemptSend) -> RetryOutcome:
        """Retry a failed email delivery.

        Args:
            failure_id: Failure record identifier
            attempt_send: Zero-argument callable performing the send

        Returns:
            RetryOutcome describing what happened

        Raises:
            RecordNotFoundError: If no record exists for failure_id
            PersistenceError: If the store cannot be read or updated
        """
        with log_context(failure_id=failure_id):
            record = self.store.get(failure_id)
            if record is None:
                raise RecordNotFoundError(f"Failure {failure_id} not found")

            with log_context(email_type=record.email_type.value):
                if record.is_resolved:
                    self.logger.info(
                        f"Failure {failure_id} already resolved, not retrying",
                        extra={"event": "retry.skipped", "reason": "already_resolved"},
                    )
                    return RetryOutcome(
                        failure_id=failure_id,
                        status=RetryStatus.SKIPPED,
                        retry_count=record.retry_count,
                        reason="already_resolved",
                    )

                classification = self.classifier.classify(record.error_message)
                if classification == FailureClassification.PERMANENT:
                    self.logger.info(
                        f"Failure {failure_id} is permanent, not retrying",
                        extra={
                            "event": "retry.permanent",
                            "error_message": record.error_message,
                        },
                    )
                    return RetryOutcome(
                        failure_id=failure_id,
                        status=RetryStatus.PERMANENTLY_FAILED,
                        error="Permanent failure - not retrying",
                        retry_count=record.retry_count,
                    )

                limit = self.policy.limit_for(record.email_type)
                next_attempt = record.retry_count + 1
                if next_attempt > limit:
                    self.logger.info(
                        f"Failure {failure_id} exhausted its retry budget ({limit})",
                        extra={
                            "event": "retry.exhausted",
                            "retry_count": record.retry_count,
                            "retry_limit": limit,
                        },
                    )
                    return RetryOutcome(
                        failure_id=failure_id,
                        status=RetryStatus.EXHAUSTED,
                        error=f"Retry limit exceeded ({limit} attempts)",
                        retry_count=record.retry_count,
                    )

                delay = self.backoff_delay(next_attempt)
                self.logger.debug(
                    f"Backing off {delay:.2f}s before retry {next_attempt}/{limit}",
                    extra={
                        "event": "retry.backoff",
                        "attempt": next_attempt,
                        "retry_limit": limit,
                        "delay_seconds": round(delay, 3),
                    },
                )
                self.sleep(delay)

                result = self._invoke(attempt_send, next_attempt)

                if result.success:
                    return self._record_success(record.id, record.retry_count, next_attempt)

                return self._record_failure(
                    record.id, record.retry_count, next_attempt, limit, result.error
                )

    def _invoke(self, attempt_send: AttemptSend, attempt: int) -> SendResult:
        """Call the send operation, turning exceptions into failed results."""
        try:
            result = attempt_send()
        except Exception as e:
            error = str(e) or type(e).__name__
            self.logger.warning(
                f"Send operation raised during retry {attempt}: {error}",
                exc_info=True,
                extra={
                    "event": "retry.send.error",
                    "attempt": attempt,
                    "error_type": type(e).__name__,
                },
            )
            return SendResult.failed(error)

        if result is None:
            return SendResult.failed("Send operation returned no result")
        return result

    def _record_success(self, failure_id: str, previous_count: int, attempt: int) -> RetryOutcome:
        resolved_at = self.clock()
        try:
            self.store.update(failure_id, expected_retry_count=previous_count, resolved_at=resolved_at)
        except StaleRecordError as e:
            return self._concurrent_update(failure_id, previous_count, e)

        self.logger.info(
            f"Retry {attempt} succeeded for failure {failure_id}",
            extra={"event": "retry.succeeded", "attempt": attempt},
        )
        return RetryOutcome(
            failure_id=failure_id,
            status=RetryStatus.SUCCEEDED,
            retry_count=previous_count,
            attempted=True,
        )

    def _record_failure(
        self,
        failure_id: str,
        previous_count: int,
        attempt: int,
        limit: int,
        error: Optional[str],
    ) -> RetryOutcome:
        try:
            self.store.update(
                failure_id,
                expected_retry_count=previous_count,
                retry_count=attempt,
                error_message=error,
            )
        except StaleRecordError as e:
            return self._concurrent_update(failure_id, previous_count, e)

        next_retry_at = self.clock() + timedelta(seconds=self.backoff_delay(attempt + 1))

        self.logger.warning(
            f"Retry {attempt}/{limit} failed for failure {failure_id}: {error}",
            extra={
                "event": "retry.failed",
                "attempt": attempt,
                "retry_limit": limit,
                "retry_remaining": attempt < limit,
                "next_retry_at": next_retry_at.isoformat(),
            },
        )
        return RetryOutcome(
            failure_id=failure_id,
            status=RetryStatus.FAILED_WILL_RETRY,
            error=error or "Retry failed",
            next_retry_at=next_retry_at,
            retry_count=attempt,
            attempted=True,
        )

    def _concurrent_update(
        self, failure_id: str, previous_count: int, error: StaleRecordError
    ) -> RetryOutcome:
        self.logger.warning(
            f"Failure {failure_id} was updated concurrently, discarding this attempt's bookkeeping",
            extra={"event": "retry.skipped", "reason": "concurrent_update", "error": str(error)},
        )
        return RetryOutcome(
            failure_id=failure_id,
            status=RetryStatus.SKIPPED,
            error=str(error),
            retry_count=previous_count,
            attempted=True,
            reason="concurrent_update",
        )
