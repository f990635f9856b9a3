"""
Day keys: which calendar day a wall-clock instant belongs to.

A My Day "day" runs from the reset hour to the same hour the next day, the
same way a programming day starts at its start hour rather than midnight.
Instants before the reset hour belong to the previous calendar date.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime, timedelta
from typing import Any

from myday.infra.settings import DEFAULT_RESET_HOUR

_DAY_KEY_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$", re.ASCII)


def normalize_reset_hour(value: Any) -> int:
    """Coerce a configured reset hour into 0..23 (default 5 for non-numbers)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_RESET_HOUR
    if isinstance(value, float) and not math.isfinite(value):
        return DEFAULT_RESET_HOUR
    hour = value if isinstance(value, int) else int(math.floor(value + 0.5))
    if hour < 0:
        return 0
    if hour > 23:
        return 23
    return hour


def resolve_day_key(now: datetime, reset_hour: Any = DEFAULT_RESET_HOUR) -> str:
    """Return the ``YYYY-MM-DD`` day key for ``now`` (in its own local time)."""
    boundary = normalize_reset_hour(reset_hour)
    effective = now.date()
    if now.hour < boundary:
        effective = effective - timedelta(days=1)
    return effective.isoformat()


def parse_day_key(day_key: Any) -> date | None:
    """Parse a day key into a date, or None if it is not a real calendar date."""
    if not isinstance(day_key, str):
        return None
    match = _DAY_KEY_RE.match(day_key.strip())
    if match is None:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None
