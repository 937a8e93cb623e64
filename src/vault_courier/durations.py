"""Conversions between Vault duration strings and ``datetime.timedelta``."""

from __future__ import annotations

import datetime
import re

_UNIT_SECONDS = {"ms": 0.001, "s": 1, "m": 60, "h": 3600, "d": 86400}

_SEGMENT = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h|d)")
_COMPOUND = re.compile(r"(?:\d+(?:\.\d+)?(?:ms|s|m|h|d))+")


def parse_duration(value: str | int | float | datetime.timedelta) -> datetime.timedelta:
    """Parse a Vault-style duration to a ``timedelta``.

    Accepts plain seconds (``"300"``, ``45``) and Go-style segments, alone or
    combined: ``"5m"``, ``"1.5h"``, ``"1h30m"``, ``"2d12h"``.
    """
    if isinstance(value, datetime.timedelta):
        return value
    if isinstance(value, (int, float)):
        return datetime.timedelta(seconds=value)
    s = value.strip()
    sign = -1 if s.startswith("-") else 1
    s = s.lstrip("+-")
    if not s:
        raise ValueError(f"empty duration: {value!r}")
    if s.isdigit():
        return datetime.timedelta(seconds=sign * int(s))
    if not _COMPOUND.fullmatch(s):
        raise ValueError(f"invalid duration: {value!r}")
    seconds = sum(
        float(number) * _UNIT_SECONDS[unit] for number, unit in _SEGMENT.findall(s)
    )
    return datetime.timedelta(seconds=sign * seconds)


def format_duration(value: str | int | float | datetime.timedelta) -> str:
    """Render a duration the way Vault headers expect it, e.g. ``"60s"``."""
    seconds = int(parse_duration(value).total_seconds())
    if seconds < 0:
        raise ValueError(f"negative duration: {value!r}")
    return f"{seconds}s"
