"""Operator tools for inspecting and resolving failed email deliveries."""

from .service import (
    MAX_BATCH_RETRY_SIZE,
    BatchRetryError,
    BatchRetryResult,
    DeadLetterQueue,
    DeadLetterStats,
    FailureEligibility,
)

__all__ = [
    "DeadLetterQueue",
    "DeadLetterStats",
    "BatchRetryResult",
    "BatchRetryError",
    "FailureEligibility",
    "MAX_BATCH_RETRY_SIZE",
]
