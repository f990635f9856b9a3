"""
Block id parsing and normalization.

Host block ids are positive integers. Values read back from JSON or from
block content can arrive as integral floats, digit strings, or the wrapped
``((123))`` reference syntax; these helpers fold all of them into ``int``.

Example reference targets:
- 42 → 42
- "42" → 42
- "((42))" → 42
- {"id": 42} → 42
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from typing import Any

from myday.shared.types import BlockId

_WRAPPED_REF_RE = re.compile(r"^\(\((\d+)\)\)$", re.ASCII)


def is_valid_block_id(value: Any) -> bool:
    """True for integers > 0 (booleans excluded) and integral floats > 0."""
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return value > 0
    if isinstance(value, float):
        return math.isfinite(value) and value.is_integer() and value > 0
    return False


def coerce_block_id(value: Any) -> BlockId | None:
    """Return ``value`` as a block id, or None if it is not one."""
    if not is_valid_block_id(value):
        return None
    return int(value)


def dedupe_block_ids(values: Iterable[Any]) -> list[BlockId]:
    """Valid ids from ``values`` in first-seen order, without duplicates."""
    seen: set[BlockId] = set()
    out: list[BlockId] = []
    for value in values:
        block_id = coerce_block_id(value)
        if block_id is None or block_id in seen:
            continue
        seen.add(block_id)
        out.append(block_id)
    return out


def parse_reference_target(raw: Any) -> BlockId | None:
    """Parse a link fragment target into the block id it points at."""
    block_id = coerce_block_id(raw)
    if block_id is not None:
        return block_id

    if isinstance(raw, dict):
        nested = raw.get("id")
        if nested is not None:
            return parse_reference_target(nested)
        return None

    if not isinstance(raw, str):
        return None

    trimmed = raw.strip()
    if trimmed.isascii() and trimmed.isdigit():
        return coerce_block_id(int(trimmed))

    match = _WRAPPED_REF_RE.match(trimmed)
    if match is None:
        return None
    return coerce_block_id(int(match.group(1)))


def pick_block_id(result: Any) -> BlockId | None:
    """Extract a block id from an editor command result.

    Hosts return a bare id, an object with an ``id`` field, or a list of
    either; the first id found wins.
    """
    block_id = coerce_block_id(result)
    if block_id is not None:
        return block_id

    if isinstance(result, dict):
        return coerce_block_id(result.get("id"))

    if isinstance(result, (list, tuple)):
        for value in result:
            nested = pick_block_id(value)
            if nested is not None:
                return nested
    return None
