"""Age handling: parse '7d' style spans and decide whether a file is cold."""

import re
import time
from typing import Optional

from rotguard.errors import AgeFormatError

UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
    "y": 365 * 24 * 60 * 60,
}

_AGE_RE = re.compile(r"^\s*(\d+)\s*([a-zA-Z]?)\s*$")


def parse_age(text: str) -> int:
    """
    Convert an age like '90s', '15m', '12h', '7d' or '1y' into seconds.

    A bare number is taken as seconds.

    Raises:
        AgeFormatError: empty input, negative/non-numeric value, or an
            unknown unit suffix.
    """
    if text is None:
        raise AgeFormatError("Age is empty")
    match = _AGE_RE.match(str(text))
    if not match:
        raise AgeFormatError(f"Invalid age {text!r}: expected N[s|m|h|d|y]")
    value, unit = match.groups()
    unit = unit.lower() or "s"
    if unit not in UNIT_SECONDS:
        raise AgeFormatError(
            f"Unrecognized age suffix {unit!r} in {text!r} (use s, m, h, d or y)"
        )
    return int(value) * UNIT_SECONDS[unit]


def format_age(seconds: int) -> str:
    """Render seconds using the largest unit that divides it evenly."""
    if seconds <= 0:
        return "0s"
    for unit in ("y", "d", "h", "m"):
        size = UNIT_SECONDS[unit]
        if seconds % size == 0:
            return f"{seconds // size}{unit}"
    return f"{seconds}s"


def cutoff(age_seconds: int, now: Optional[float] = None) -> float:
    """Return the newest mtime a file may have and still be scanned (exclusive)."""
    if now is None:
        now = time.time()
    return now - age_seconds


def is_cold(mtime: float, age_seconds: int, now: Optional[float] = None) -> bool:
    # strict: a file exactly at the boundary is still too recent
    return mtime < cutoff(age_seconds, now)
