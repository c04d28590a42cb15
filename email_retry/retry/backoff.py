"""Exponential backoff with additive jitter."""

import random
from typing import Optional

BASE_DELAY_SECONDS = 1.0
MAX_DELAY_SECONDS = 60.0
JITTER_FACTOR = 0.5


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = BASE_DELAY_SECONDS,
    max_delay: float = MAX_DELAY_SECONDS,
    jitter_factor: float = JITTER_FACTOR,
    rng: Optional[random.Random] = None,
) -> float:
    """Calculate the delay before a retry attempt.

    Formula: min(2^(attempt-1) * base_delay, max_delay) + uniform(0, base_delay * jitter_factor)

    The jitter is additive and bounded by the base delay, so the exponential
    term stays dominant while retries of many records in one batch are
    spread apart. Once saturated the result is always within
    [max_delay, max_delay + base_delay * jitter_factor].

    Args:
        attempt: Retry attempt number (1-indexed)
        base_delay: Base delay in seconds
        max_delay: Cap for the exponential term in seconds
        jitter_factor: Fraction of base_delay used as the jitter range
        rng: Random source (module-level random if None)

    Returns:
        Delay in seconds

    Raises:
        ValueError: If attempt is lower than 1 or delays are negative

    Example:
        >>> 1.0 <= calculate_backoff_delay(1) <= 1.5
        True
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got: {attempt}")
    if base_delay < 0 or max_delay < 0 or jitter_factor < 0:
        raise ValueError("base_delay, max_delay and jitter_factor must be non-negative")

    capped_delay = _capped_exponential(attempt, base_delay, max_delay)

    source = rng or random
    jitter = source.uniform(0, base_delay * jitter_factor)

    return capped_delay + jitter


def _capped_exponential(attempt: int, base_delay: float, max_delay: float) -> float:
    """Compute min(2^(attempt-1) * base_delay, max_delay) without overflowing."""
    if base_delay == 0:
        return 0.0

    # Stop doubling as soon as the cap is reached; huge attempts would overflow floats
    delay = base_delay
    for _ in range(attempt - 1):
        if delay >= max_delay:
            break
        delay *= 2

    return min(delay, max_delay)
