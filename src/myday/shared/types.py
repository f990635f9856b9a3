"""
Shared types and enums for My Day.

This module contains common types and enums that are used across
the runtime, host, reconcile, and CLI layers.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any

# Host block identity. Valid ids are integers > 0 (see shared.ids).
BlockId = int


class DisplayMode(str, Enum):
    """How the roster is presented."""

    LIST = "list"
    SCHEDULE = "schedule"

    @classmethod
    def coerce(cls, value: Any) -> "DisplayMode":
        """Return SCHEDULE for the schedule value, LIST for anything else."""
        if value == cls.SCHEDULE or value == cls.SCHEDULE.value:
            return cls.SCHEDULE
        return cls.LIST


class PropertyType(IntEnum):
    """Host block property value types."""

    TEXT = 1
    NUMBER = 3
    BOOLEAN = 4


class RefType(IntEnum):
    """Host block reference types."""

    INLINE = 1
