"""Duration strings for the batch retry interval.

Accepts short forms ("30s", "15m", "1h30m", "2d") and ISO-8601 durations
("PT15M", "PT1H", "P1D").
"""

import re

_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}

_ISO_PATTERN = re.compile(
    r"^P(?:(?P<d>\d+)D)?(?:T(?:(?P<h>\d+)H)?(?:(?P<m>\d+)M)?(?:(?P<s>\d+(?:\.\d+)?)S)?)?$"
)
_SHORT_TOKEN = re.compile(r"(\d+)([smhd])")


class DurationParseError(ValueError):
    """Raised when a duration string cannot be parsed or is out of range."""


def parse_duration(duration_str: str) -> int:
    """
    Parse a duration string to whole seconds.

    Raises:
        DurationParseError: If the string is empty, malformed or zero

    Examples:
        >>> parse_duration("15m")
        900
        >>> parse_duration("PT1H")
        3600
        >>> parse_duration("1h30m")
        5400
    """
    text = (duration_str or "").strip()
    if not text:
        raise DurationParseError("Duration string cannot be empty")

    if text.upper().startswith("P"):
        total = _parse_iso8601(text.upper())
    else:
        total = _parse_short_form(text.lower())

    if total == 0:
        raise DurationParseError(f"Duration cannot be zero: '{duration_str}'")
    return total


def _parse_iso8601(text: str) -> int:
    match = _ISO_PATTERN.match(text)
    if not match or text in ("P", "PT"):
        raise DurationParseError(
            f"Invalid ISO-8601 duration format: '{text}'. "
            "Expected format like 'P1D', 'PT1H30M', 'PT15M', or 'PT30S'"
        )

    parts = match.groupdict()
    total = 0
    for unit in ("d", "h", "m"):
        if parts[unit]:
            total += int(parts[unit]) * _UNIT_SECONDS[unit]
    if parts["s"]:
        total += int(float(parts["s"]))
    return total


def _parse_short_form(text: str) -> int:
    compact = re.sub(r"\s+", "", text)
    tokens = _SHORT_TOKEN.findall(compact)

    if not tokens:
        raise DurationParseError(
            f"Invalid duration format: '{text}'. "
            "Expected format like '15m', '1h', '30s', '2d', or combinations like '1h30m'"
        )

    # Reject leftovers such as "15x" or "m15"
    if "".join(num + unit for num, unit in tokens) != compact:
        raise DurationParseError(
            f"Invalid characters in duration: '{text}'. "
            "Use only digits and units: s (seconds), m (minutes), h (hours), d (days)"
        )

    return sum(int(num) * _UNIT_SECONDS[unit] for num, unit in tokens)


def validate_duration_range(duration_seconds: int, min_seconds: int, max_seconds: int) -> None:
    """
    Check that a retry interval falls within [min_seconds, max_seconds].

    Raises:
        DurationParseError: If the interval is outside the range
    """
    if duration_seconds < min_seconds:
        raise DurationParseError(
            f"Retry interval too short: {humanize_seconds(duration_seconds)}. "
            f"Minimum is {humanize_seconds(min_seconds)}."
        )

    if duration_seconds > max_seconds:
        raise DurationParseError(
            f"Retry interval too long: {humanize_seconds(duration_seconds)}. "
            f"Maximum is {humanize_seconds(max_seconds)}."
        )


def humanize_seconds(seconds: int) -> str:
    """Render seconds in the largest whole unit ("15 minutes", "1 hour")."""
    for unit_seconds, name in ((86400, "day"), (3600, "hour"), (60, "minute")):
        if seconds >= unit_seconds:
            count = seconds // unit_seconds
            return f"{count} {name}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
