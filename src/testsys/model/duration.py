"""Parse agent timeout strings such as `1d2h3m4s` or `5400`."""

import re
from datetime import timedelta

from .exceptions import DurationParseError

# Units must appear in this order, each at most once.
_DURATION_PATTERN = re.compile(r"^(?:(\d+)d)?(?:(\d+)h)?(?:(\d+)m)?(?:(\d+)s)?$")
_UNIT_SECONDS = (86400, 3600, 60, 1)


def parse_duration(value: str) -> timedelta:
    """Parse a duration string into a timedelta.

    Args:
        value: `[<n>d][<n>h][<n>m][<n>s]` or a bare number of seconds

    Returns:
        The parsed duration

    Raises:
        DurationParseError: If units are out of order, unknown, or missing a number
    """
    value = value.strip()
    if value.isdigit():
        return timedelta(seconds=int(value))

    match = _DURATION_PATTERN.match(value)
    if match is None:
        raise DurationParseError(f"Invalid duration: {value!r}")

    seconds = sum(
        int(amount) * unit
        for amount, unit in zip(match.groups(), _UNIT_SECONDS)
        if amount is not None
    )
    return timedelta(seconds=seconds)


__all__ = ["parse_duration"]
