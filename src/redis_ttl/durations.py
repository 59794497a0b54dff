"""Duration string helpers for the ``--desired-ttl`` flag."""

from __future__ import annotations

import re
from datetime import timedelta

from redis_ttl.exceptions import InvalidTtlError

# Microseconds per unit; nanoseconds are truncated by timedelta
_UNITS: dict[str, float] = {
    "ns": 0.001,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1_000.0,
    "s": 1_000_000.0,
    "m": 60 * 1_000_000.0,
    "h": 3_600 * 1_000_000.0,
}
_EXTRA_UNITS: dict[str, timedelta] = {
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}
_COMPONENT = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_ttl(text: str) -> timedelta:
    """Parse a duration such as ``90s``, ``1h30m``, ``1.5h``, ``7d`` or ``2w``."""

    if text is None or not str(text).strip():
        raise InvalidTtlError(text, "empty duration")
    value = str(text).strip()

    try:
        return _parse_go_duration(value)
    except InvalidTtlError:
        pass

    suffix = value[-1]
    multiplier = _EXTRA_UNITS.get(suffix)
    if multiplier is None:
        raise InvalidTtlError(value, f"unknown duration suffix {suffix}")
    count = value[:-1]
    if not count.isdigit():
        raise InvalidTtlError(value, f"expected a whole number of '{suffix}'")
    if int(count) == 0:
        raise InvalidTtlError(value, "duration has to be greater than 0")
    return int(count) * multiplier


def _parse_go_duration(value: str) -> timedelta:
    sign = 1
    body = value
    if body[0] in "+-":
        sign = -1 if body[0] == "-" else 1
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body:
        raise InvalidTtlError(value, "missing duration")

    total_us = 0.0
    position = 0
    while position < len(body):
        match = _COMPONENT.match(body, position)
        if match is None:
            raise InvalidTtlError(value, "malformed duration")
        number, unit = match.groups()
        total_us += float(number) * _UNITS[unit]
        position = match.end()
    return timedelta(microseconds=sign * total_us)


def format_ttl(value: timedelta) -> str:
    """Render a timedelta the way the CLI echoes it back (``1h0m0s``)."""

    total_us = int(round(value.total_seconds() * 1_000_000))
    if total_us == 0:
        return "0s"
    sign = "-" if total_us < 0 else ""
    total_us = abs(total_us)
    if total_us < 1_000_000:
        if total_us % 1_000 == 0:
            return f"{sign}{total_us // 1_000}ms"
        return f"{sign}{total_us}µs"

    hours, remainder = divmod(total_us, 3_600 * 1_000_000)
    minutes, remainder = divmod(remainder, 60 * 1_000_000)
    seconds = remainder / 1_000_000
    seconds_text = f"{seconds:.6f}".rstrip("0").rstrip(".")
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds_text}s"
    if minutes:
        return f"{sign}{minutes}m{seconds_text}s"
    return f"{sign}{seconds_text}s"
