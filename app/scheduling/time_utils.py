"""HH:MM arithmetic.

Times are not validated here. A part that does not parse becomes NaN, so
malformed input flows through comparisons as "never overlaps" and through
sums as NaN instead of raising.
"""

from __future__ import annotations

import math

from .constants import MINUTES_PER_DAY


def _to_number(part: str | None) -> float:
    if part is None:
        return math.nan
    text = part.strip()
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        try:
            return float(text)
        except ValueError:
            return math.nan


def to_minutes(time: str) -> float:
    """Convert ``"HH:MM"`` to minutes since midnight."""
    parts = str(time).split(":")
    hours = _to_number(parts[0])
    minutes = _to_number(parts[1] if len(parts) > 1 else None)
    return hours * 60 + minutes


def shift_duration_hours(start_time: str, end_time: str) -> float:
    """Duration in hours; an end before the start means the shift crosses midnight."""
    start = to_minutes(start_time)
    end = to_minutes(end_time)
    if end < start:
        end += MINUTES_PER_DAY
    return (end - start) / 60
