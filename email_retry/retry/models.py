"""Result types returned by the retry engine and batch coordinator."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from email_retry.domain.models import FailureRecord


@dataclass(frozen=True)
class SendResult:
    """Outcome reported by an injected send operation.

    Attributes:
        success: Whether the message was accepted by the transport
        error: Raw error text when success is False
    """

    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "SendResult":
        return cls(success=True)

    @classmethod
    def failed(cls, error: str) -> "SendResult":
        return cls(success=False, error=error)


AttemptSend = Callable[[], SendResult]
AttemptSendFactory = Callable[[FailureRecord], AttemptSend]


class RetryStatus(str, Enum):
    """Possible outcomes of a single retry_failure call."""

    SUCCEEDED = "succeeded"
    PERMANENTLY_FAILED = "permanently_failed"
    EXHAUSTED = "exhausted"
    FAILED_WILL_RETRY = "failed_will_retry"
    # Record already resolved, or another writer updated it first
    SKIPPED = "skipped"


@dataclass(frozen=True)
class RetryOutcome:
    """Result of retrying one failure record.

    Attributes:
        failure_id: Identifier of the record that was examined
        status: What happened
        error: Error text for non-successful outcomes
        next_retry_at: Estimated time of the next attempt (FAILED_WILL_RETRY only)
        retry_count: Retry count of the record after this call
        attempted: Whether the send operation was invoked
        reason: Short machine-readable reason for SKIPPED outcomes
    """

    failure_id: str
    status: RetryStatus
    error: Optional[str] = None
    next_retry_at: Optional[datetime] = None
    retry_count: int = 0
    attempted: bool = False
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == RetryStatus.SUCCEEDED

    @property
    def is_terminal(self) -> bool:
        """True when the record will never be retried automatically again."""
        return self.status in (
            RetryStatus.SUCCEEDED,
            RetryStatus.PERMANENTLY_FAILED,
            RetryStatus.EXHAUSTED,
        )


@dataclass
class BatchRetrySummary:
    """Aggregate counts from one retry_all run.

    Attributes:
        total: Eligible records examined in this run
        successful: Records resolved by a successful retry
        failed: Records whose retry failed (or errored) and stay eligible
        permanent: Records found to be permanently failed
        exhausted: Records that had reached their retry budget
        skipped: Records left untouched (already resolved or concurrently updated)
        run_skipped: Whether the whole run was skipped because another run was active
    """

    total: int = 0
    successful: int = 0
    failed: int = 0
    permanent: int = 0
    exhausted: int = 0
    skipped: int = 0
    run_skipped: bool = False

    def record(self, outcome: RetryOutcome) -> None:
        """Tally one outcome into the counters."""
        if outcome.status == RetryStatus.SUCCEEDED:
            self.successful += 1
        elif outcome.status == RetryStatus.PERMANENTLY_FAILED:
            self.permanent += 1
        elif outcome.status == RetryStatus.EXHAUSTED:
            self.exhausted += 1
        elif outcome.status == RetryStatus.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    @property
    def had_failures(self) -> bool:
        return self.failed > 0

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "permanent": self.permanent,
            "exhausted": self.exhausted,
            "skipped": self.skipped,
        }
