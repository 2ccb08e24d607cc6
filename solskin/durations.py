"""Duration strings in the ``1h30m`` / ``300ms`` / ``-5m`` format.

Operators configure age limits, cache TTLs and resync periods with the same
compact unit-suffixed strings they use for kubectl and most cluster tooling.
The literal ``off`` is reserved by callers to mean "disabled" and is never
accepted here.
"""

from __future__ import annotations

import re
from datetime import timedelta

_UNIT_SECONDS: dict[str, float] = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_RE_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_RE_FULL = re.compile(r"^[+-]?(?:(?:\d+(?:\.\d*)?|\.\d+)(?:ns|us|µs|μs|ms|s|m|h))+$")

OFF = "off"


def parse_duration(value: str) -> timedelta:
    """Parse a duration string into a ``timedelta``.

    Accepts an optional sign followed by one or more ``<number><unit>``
    components (``"1h30m"``, ``"-2.5s"``). A bare ``"0"`` is also valid.

    Raises:
        ValueError: if the string is empty or malformed.
    """
    text = value.strip()
    if text in ("0", "+0", "-0"):
        return timedelta(0)
    if not _RE_FULL.match(text):
        raise ValueError(f"invalid duration: {value!r}")

    sign = -1.0 if text.startswith("-") else 1.0
    total = 0.0
    for number, unit in _RE_COMPONENT.findall(text):
        total += float(number) * _UNIT_SECONDS[unit]
    return timedelta(seconds=sign * total)


def parse_duration_or_default(value: str, default: timedelta) -> timedelta:
    """Parse ``value``, returning ``default`` if it is malformed or not positive."""
    try:
        parsed = parse_duration(value)
    except ValueError:
        return default
    if parsed <= timedelta(0):
        return default
    return parsed
