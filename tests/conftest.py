"""
Global test configuration for My Day.

This module provides global pytest configuration and fixtures.
"""

import sys
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

# Ensure the project src directory is importable without relying on external environment.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from myday.host.memory import InMemoryHostTree
from myday.runtime.clock import FixedClock

TODAY = date(2025, 7, 15)
TODAY_KEY = "2025-07-15"
NOON = datetime(2025, 7, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at noon UTC on TODAY."""
    return FixedClock(NOON)


@pytest.fixture
def host() -> InMemoryHostTree:
    """Host tree with a journal for TODAY and one task block (id 10)."""
    tree = InMemoryHostTree()
    tree.add_block(text="Write report", block_id=10)
    tree.add_journal(TODAY)
    return tree


@pytest.fixture
def journal_id(host: InMemoryHostTree) -> int:
    """Id of the TODAY journal block."""
    return host.journal_for(TODAY)
