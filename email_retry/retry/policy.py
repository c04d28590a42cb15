"""Per-category retry budgets."""

from types import MappingProxyType
from typing import Dict, Mapping, Optional, Union

from email_retry.domain.models import EmailType, FailureRecord

# disclosure emails are the critical deliveries; admin alerts are low priority
DEFAULT_RETRY_LIMITS: Mapping[EmailType, int] = MappingProxyType(
    {
        EmailType.DISCLOSURE: 5,
        EmailType.REMINDER: 3,
        EmailType.VERIFICATION: 2,
        EmailType.ADMIN_NOTIFICATION: 1,
    }
)

DEFAULT_LIMIT = 1


class RetryPolicy:
    """Immutable mapping from email type to maximum retry count.

    Categories missing from the mapping (or unknown values) get
    default_limit, which fails closed with a minimal budget.
    """

    def __init__(
        self,
        limits: Optional[Mapping[Union[EmailType, str], int]] = None,
        default_limit: int = DEFAULT_LIMIT,
    ):
        """Initialize policy.

        Args:
            limits: Retry limits keyed by EmailType or its string value
            default_limit: Limit applied to categories without an entry

        Raises:
            ValueError: If a limit is negative or a key is not a known email type
        """
        if limits is None:
            limits = DEFAULT_RETRY_LIMITS

        if default_limit < 0:
            raise ValueError(f"default_limit must be non-negative, got: {default_limit}")

        normalized: Dict[EmailType, int] = {}
        for key, limit in limits.items():
            email_type = EmailType(key)
            if limit < 0:
                raise ValueError(f"Retry limit for {email_type.value} must be non-negative, got: {limit}")
            normalized[email_type] = int(limit)

        self._limits: Mapping[EmailType, int] = MappingProxyType(normalized)
        self.default_limit = default_limit

    @property
    def limits(self) -> Mapping[EmailType, int]:
        """Read-only view of the configured limits."""
        return self._limits

    def limit_for(self, email_type: Union[EmailType, str, None]) -> int:
        """Get the maximum retry count for an email type."""
        if email_type is None:
            return self.default_limit
        try:
            key = EmailType(email_type)
        except ValueError:
            return self.default_limit
        return self._limits.get(key, self.default_limit)

    def is_exhausted(self, record: FailureRecord) -> bool:
        """Check whether a record has used its whole retry budget."""
        return record.retry_count >= self.limit_for(record.email_type)

    def __repr__(self) -> str:
        limits = ", ".join(f"{k.value}={v}" for k, v in self._limits.items())
        return f"RetryPolicy({limits}, default={self.default_limit})"
