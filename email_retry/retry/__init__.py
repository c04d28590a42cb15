"""Retry core: classification, backoff, budgets, engine and batch coordination.

Public API:
    - classify_failure / PatternFailureClassifier: transient vs permanent errors
    - calculate_backoff_delay: exponential backoff with additive jitter
    - RetryPolicy: per-email-type retry budgets
    - RetryEngine: retries one failure record
    - BatchRetryCoordinator: retries every eligible record

Example usage:
    >>> from email_retry.retry import BatchRetryCoordinator, RetryEngine, SendResult
    >>> engine = RetryEngine(store)
    >>> coordinator = BatchRetryCoordinator(engine)
    >>> summary = coordinator.retry_all(lambda record: lambda: SendResult.ok())
"""

from .backoff import calculate_backoff_delay
from .classifier import (
    PERMANENT_PATTERNS,
    TRANSIENT_PATTERNS,
    FailureClassifier,
    PatternFailureClassifier,
    classify_failure,
)
from .coordinator import BatchRetryCoordinator
from .engine import RetryEngine
from .models import (
    AttemptSend,
    AttemptSendFactory,
    BatchRetrySummary,
    RetryOutcome,
    RetryStatus,
    SendResult,
)
from .policy import DEFAULT_RETRY_LIMITS, RetryPolicy
from .store import FailureStore

__all__ = [
    # Classification
    "FailureClassifier",
    "PatternFailureClassifier",
    "classify_failure",
    "PERMANENT_PATTERNS",
    "TRANSIENT_PATTERNS",
    # Backoff and budgets
    "calculate_backoff_delay",
    "RetryPolicy",
    "DEFAULT_RETRY_LIMITS",
    # Orchestration
    "RetryEngine",
    "BatchRetryCoordinator",
    "FailureStore",
    # Results
    "SendResult",
    "RetryOutcome",
    "RetryStatus",
    "BatchRetrySummary",
    "AttemptSend",
    "AttemptSendFactory",
]
