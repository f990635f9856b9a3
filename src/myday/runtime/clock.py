"""Clock abstractions used for day-key resolution and timestamps.

The roster needs two things from time: the local wall-clock instant (to work
out which day key is live) and epoch milliseconds (for ``addedAt`` and
``updatedAt``). Both come from an injectable clock so tests stay deterministic.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from threading import Lock
from typing import Protocol, runtime_checkable
from zoneinfo import ZoneInfo


def epoch_ms(dt: datetime) -> int:
    """Epoch milliseconds for an aware datetime (naive is read as local time)."""
    return int(dt.timestamp() * 1000)


@runtime_checkable
class RosterClock(Protocol):
    """Protocol implemented by clock providers."""

    def now(self) -> datetime:
        """Return the current local time as an aware datetime."""

    def now_ms(self) -> int:
        """Return the current time in epoch milliseconds."""


class SystemClock:
    """Clock backed by the system wall clock."""

    def __init__(self, tz: str | tzinfo | None = None) -> None:
        self._tz = self._resolve_timezone(tz)

    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone(self._tz)

    def now_ms(self) -> int:
        return epoch_ms(self.now())

    @staticmethod
    def _resolve_timezone(tz: str | tzinfo | None) -> tzinfo:
        if tz is None:
            return datetime.now().astimezone().tzinfo or timezone.utc
        if isinstance(tz, tzinfo):
            return tz
        try:
            return ZoneInfo(tz)
        except Exception:
            return timezone.utc


class FixedClock:
    """Deterministic clock used for tests.

    Time advances only when :meth:`advance` or :meth:`set` is called.
    """

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None or start.tzinfo.utcoffset(start) is None:
            raise ValueError("Datetime must be timezone-aware")
        self._current = start
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def now_ms(self) -> int:
        return epoch_ms(self.now())

    def set(self, moment: datetime) -> None:
        if moment.tzinfo is None or moment.tzinfo.utcoffset(moment) is None:
            raise ValueError("Datetime must be timezone-aware")
        with self._lock:
            self._current = moment

    def advance(self, delta: timedelta) -> datetime:
        """Advance the clock by ``delta`` (must be non-negative)."""
        if delta < timedelta(0):
            raise ValueError("delta must be non-negative")
        with self._lock:
            self._current = self._current + delta
            return self._current
