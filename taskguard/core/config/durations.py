"""
Duration strings used by token lifetimes.

Accepts a positive integer followed by one unit suffix (``d``, ``h``, ``m``,
``s``) or a bare integer number of seconds::

    >>> parse_duration("7d")
    604800
    >>> parse_duration("90")
    90
"""

import re

_DURATION_PATTERN = re.compile(r"^\s*(\d+)\s*([dhms]?)\s*$")

_UNIT_SECONDS = {
    "d": 86400,
    "h": 3600,
    "m": 60,
    "s": 1,
    "": 1,
}


def parse_duration(value: str | int) -> int:
    """
    Convert a duration string into whole seconds.

    Args:
        value: Duration such as "7d", "12h", "30m", "45s", "3600" or an int

    Returns:
        Number of seconds (always > 0)

    Raises:
        ValueError: If the value is malformed or not positive
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        seconds = value
    else:
        match = _DURATION_PATTERN.match(value)
        if not match:
            raise ValueError(f"Invalid duration: {value!r} (expected e.g. '7d', '12h', '30m')")
        amount, unit = match.groups()
        seconds = int(amount) * _UNIT_SECONDS[unit]

    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds
