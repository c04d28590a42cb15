"""Non-fatal configuration checks."""

import warnings
from typing import Any, Dict, List

from email_retry.domain.models import EmailType

# Budgets above this make a single failure occupy the queue for hours
LARGE_LIMIT_THRESHOLD = 10


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Inspect the raw configuration for settings that are valid but suspicious.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages: List[str] = []

    retry = config_dict.get("retry") or {}
    if not isinstance(retry, dict):
        return warning_messages

    limits = retry.get("limits") or {}
    if isinstance(limits, dict):
        if limits.get(EmailType.DISCLOSURE.value) == 0:
            warning_messages.append(
                "Retry limit for 'disclosure' is 0: failed disclosure emails will never be retried"
            )
        for email_type, limit in sorted(limits.items(), key=lambda item: str(item[0])):
            if isinstance(limit, int) and limit > LARGE_LIMIT_THRESHOLD:
                warning_messages.append(
                    f"Large retry limit for '{email_type}' ({limit}) keeps failures queued for a long time"
                )

    jitter = retry.get("jitter_factor")
    if isinstance(jitter, (int, float)) and jitter == 0:
        warning_messages.append(
            "jitter_factor is 0: concurrent retries will hit the provider in lockstep"
        )

    overlap = {
        p.strip().lower()
        for p in retry.get("extra_permanent_patterns") or []
        if isinstance(p, str)
    } & {
        p.strip().lower()
        for p in retry.get("extra_transient_patterns") or []
        if isinstance(p, str)
    }
    if overlap:
        warning_messages.append(
            "Patterns listed as both permanent and transient are treated as permanent: "
            + ", ".join(sorted(overlap))
        )

    return warning_messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit each message as a UserWarning."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
