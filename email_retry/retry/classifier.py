"""Failure classification for delivery error messages.

Provider errors arrive as free text. The classifier decides whether waiting
and retrying can plausibly help (transient) or not (permanent). The retry
engine only depends on the FailureClassifier interface, so the substring
strategy below can be replaced by one built on structured provider codes.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional, Tuple

from email_retry.domain.models import FailureClassification

PERMANENT_PATTERNS: Tuple[str, ...] = (
    "invalid email",
    "email does not exist",
    "domain not found",
    "recipient rejected",
    "401",
    "403",
    "unauthorized",
    "forbidden",
    "invalid api key",
    "blocked recipient",
    "mailbox not found",
    "user unknown",
)

TRANSIENT_PATTERNS: Tuple[str, ...] = (
    "timeout",
    "rate limit",
    "service unavailable",
    "temporarily unavailable",
    "network error",
    "502",
    "503",
    "504",
    "econnrefused",
    "etimedout",
    "connection reset",
    "socket hang up",
)


class FailureClassifier(ABC):
    """Maps a raw delivery error to a FailureClassification."""

    @abstractmethod
    def classify(self, error_message: str) -> FailureClassification:
        """Classify an error message.

        Args:
            error_message: Raw error text from a delivery attempt (may be empty)

        Returns:
            FailureClassification.TRANSIENT or FailureClassification.PERMANENT
        """
        pass

    def is_permanent(self, error_message: str) -> bool:
        """Check whether an error message describes a permanent failure."""
        return self.classify(error_message) == FailureClassification.PERMANENT


class PatternFailureClassifier(FailureClassifier):
    """Case-insensitive substring matcher over two pattern lists.

    Permanent patterns are checked first, so a message matching both lists
    is permanent. A message matching neither list is transient.
    """

    def __init__(
        self,
        permanent_patterns: Optional[Iterable[str]] = None,
        transient_patterns: Optional[Iterable[str]] = None,
    ):
        """Initialize classifier with pattern lists.

        Args:
            permanent_patterns: Substrings marking permanent failures (defaults to PERMANENT_PATTERNS)
            transient_patterns: Substrings marking transient failures (defaults to TRANSIENT_PATTERNS)
        """
        if permanent_patterns is None:
            permanent_patterns = PERMANENT_PATTERNS
        if transient_patterns is None:
            transient_patterns = TRANSIENT_PATTERNS

        self.permanent_patterns = _normalize_patterns(permanent_patterns)
        self.transient_patterns = _normalize_patterns(transient_patterns)

    @classmethod
    def with_extra_patterns(
        cls,
        extra_permanent: Iterable[str] = (),
        extra_transient: Iterable[str] = (),
    ) -> "PatternFailureClassifier":
        """Build a classifier from the default lists plus additional patterns."""
        return cls(
            permanent_patterns=(*PERMANENT_PATTERNS, *extra_permanent),
            transient_patterns=(*TRANSIENT_PATTERNS, *extra_transient),
        )

    def classify(self, error_message: str) -> FailureClassification:
        lowered = (error_message or "").lower()

        for pattern in self.permanent_patterns:
            if pattern in lowered:
                return FailureClassification.PERMANENT

        for pattern in self.transient_patterns:
            if pattern in lowered:
                return FailureClassification.TRANSIENT

        # Unknown errors are assumed recoverable
        return FailureClassification.TRANSIENT


def _normalize_patterns(patterns: Iterable[str]) -> Tuple[str, ...]:
    """Lowercase, strip and deduplicate patterns, preserving order."""
    normalized = []
    for pattern in patterns:
        stripped = pattern.strip().lower()
        if stripped and stripped not in normalized:
            normalized.append(stripped)
    return tuple(normalized)


_default_classifier = PatternFailureClassifier()


def classify_failure(error_message: str) -> FailureClassification:
    """Classify an error message with the default pattern lists.

    Example:
        >>> classify_failure("Invalid email address")
        <FailureClassification.PERMANENT: 'permanent'>
        >>> classify_failure("ETIMEDOUT")
        <FailureClassification.TRANSIENT: 'transient'>
    """
    return _default_classifier.classify(error_message)
