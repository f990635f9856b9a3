"""
Time-range math for My Day schedules: minutes since midnight, defined once, centrally.

Pure functions. A schedule is a (start, end) pair of minutes in 0..1440 whose
wrap-aware duration lies within [MIN_DURATION_MINUTES, MAX_DURATION_MINUTES].
Anything else collapses to the unscheduled pair (None, None).

Persisted-state normalization and user-facing reschedules both go through
normalize_range so the bounds hold everywhere.
"""

from __future__ import annotations

import math
from typing import Any

MINUTES_PER_DAY = 24 * 60
DEFAULT_DURATION_MINUTES = 60
MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 12 * 60

UNSCHEDULED: tuple[None, None] = (None, None)


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def _round_half_up(value: int | float) -> int:
    if isinstance(value, int):
        return value
    # Matches Math.round semantics used by the stored data (x.5 rounds up)
    return int(math.floor(value + 0.5))


def coerce_minute(value: Any) -> int | None:
    """Round a raw value to a minute of day, or None if it is not one.

    Booleans, non-numbers, NaN/inf and values outside 0..1440 are rejected.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    minute = _round_half_up(value)
    if minute < 0 or minute > MINUTES_PER_DAY:
        return None
    return minute


def wrapped_duration(start: int, end: int) -> int:
    """Duration from start to end, wrapping past midnight when end <= start."""
    duration = end - start
    if duration <= 0:
        duration += MINUTES_PER_DAY
    return duration


def resolve_duration(start: int, end: int) -> int | None:
    """Return the wrap-aware duration of (start, end) if it is within bounds."""
    start = _clamp(start, 0, MINUTES_PER_DAY)
    end = _clamp(end, 0, MINUTES_PER_DAY)
    duration = wrapped_duration(start, end)
    if duration < MIN_DURATION_MINUTES or duration > MAX_DURATION_MINUTES:
        return None
    return duration


def end_for_duration(start: int, duration: int) -> int:
    """End minute for a start and duration, wrapping at 1440."""
    start = _clamp(start, 0, MINUTES_PER_DAY)
    duration = _clamp(duration, MIN_DURATION_MINUTES, MAX_DURATION_MINUTES)
    end = start + duration
    if end > MINUTES_PER_DAY:
        return end - MINUTES_PER_DAY
    return end


def normalize_range(start: Any, end: Any) -> tuple[int, int] | tuple[None, None]:
    """Canonicalize a (start, end) minute pair or reject it to unscheduled.

    Args:
        start: Start minute of day (0..1440); rounded to the nearest minute.
        end: End minute of day (0..1440); may be <= start to cross midnight.

    Returns:
        (start, end) with end recomputed from start + duration, or
        (None, None) when either side is invalid. An out-of-bounds duration
        falls back once to a DEFAULT_DURATION_MINUTES range from start.
    """
    start_minute = coerce_minute(start)
    end_minute = coerce_minute(end)
    if start_minute is None or end_minute is None:
        return UNSCHEDULED

    duration = resolve_duration(start_minute, end_minute)
    if duration is not None:
        return start_minute, end_for_duration(start_minute, duration)

    fallback_end = end_for_duration(start_minute, DEFAULT_DURATION_MINUTES)
    if resolve_duration(start_minute, fallback_end) is None:
        return UNSCHEDULED
    return start_minute, fallback_end


def parse_clock_time(text: str) -> int:
    """Parse ``HH:MM`` (``24:00`` allowed) into a minute of day.

    Raises ValueError if the format is invalid.
    """
    raw = text.strip()
    hours_s, sep, minutes_s = raw.partition(":")
    digits_ok = raw.isascii() and hours_s.isdigit() and minutes_s.isdigit()
    if not sep or not digits_ok or len(minutes_s) != 2:
        raise ValueError(f"Invalid time format. Use HH:MM: {text!r}")
    hours = int(hours_s)
    minutes = int(minutes_s)
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValueError(f"Invalid time format. Use HH:MM: {text!r}")
    return hours * 60 + minutes


def format_clock_time(minute: int) -> str:
    """Format a minute of day as ``HH:MM``."""
    return f"{minute // 60:02d}:{minute % 60:02d}"
