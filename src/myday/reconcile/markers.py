"""
Marker properties and insertion-token hygiene.

Mirror entries are tagged with private properties so they can be found again
regardless of how they were inserted. Older insertion paths could leave a
placeholder token (``mlo_myday_<n>_<suffix>``) in block text; it is stripped
together with any trailing ``#tag`` words it dragged along.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from myday.host.block import Block, BlockProperty
from myday.shared.ids import coerce_block_id
from myday.shared.types import BlockId, PropertyType

SECTION_MARKER = "_mlo_task_my_day_section"
TASK_ID_MARKER = "_mlo_task_my_day_task_id"
DAY_KEY_MARKER = "_mlo_task_my_day_day_key"

INSERT_TOKEN_RE = re.compile(r"(?:__)?mlo_myday_\d+_[a-z0-9]+(?:__)?\s*", re.IGNORECASE)
_TRAILING_HASH_WORDS_RE = re.compile(r"(?:\s+#\S+)+\s*$")

Canonical = Callable[[BlockId], BlockId]


def entry_marker_properties(task_id: BlockId, day_key: str) -> list[BlockProperty]:
    return [
        BlockProperty(TASK_ID_MARKER, PropertyType.NUMBER, task_id),
        BlockProperty(DAY_KEY_MARKER, PropertyType.TEXT, day_key),
    ]


def has_entry_marker(block: Block) -> bool:
    """True if the block carries either entry marker property."""
    return block.get_property(TASK_ID_MARKER) is not None or block.get_property(DAY_KEY_MARKER) is not None


def marked_task_id(block: Block) -> BlockId | None:
    return coerce_block_id(block.property_value(TASK_ID_MARKER))


def marked_day_key(block: Block) -> str | None:
    value = block.property_value(DAY_KEY_MARKER)
    return value if isinstance(value, str) else None


def _same_block(left: Any, right: BlockId, canonical: Canonical | None = None) -> bool:
    left_id = coerce_block_id(left)
    if left_id is None:
        return False
    if left_id == right:
        return True
    return canonical is not None and canonical(left_id) == canonical(right)


def is_legacy_section(
    block: Block,
    journal_id: BlockId,
    day_key: str | None = None,
    canonical: Canonical | None = None,
) -> bool:
    """True for a section block an earlier release created under the journal.

    Sections carry ``SECTION_MARKER = true`` and sit directly under the
    journal. When ``day_key`` is given, a section stamped with another day
    key does not match.
    """
    if block.property_value(SECTION_MARKER) is not True:
        return False
    if not _same_block(block.parent, journal_id, canonical):
        return False
    if day_key is None:
        return True
    stamped = marked_day_key(block)
    return stamped is None or stamped == day_key


def strip_insert_token(text: str) -> str:
    return INSERT_TOKEN_RE.sub("", text)


def remove_trailing_hash_words(text: str) -> str:
    return _TRAILING_HASH_WORDS_RE.sub("", text)


def clean_token_text(text: str) -> str:
    """Text with placeholder tokens removed; unchanged if it had none."""
    stripped = strip_insert_token(text)
    if stripped == text:
        return text
    return remove_trailing_hash_words(stripped).strip()


def normalize_inserted_text(text: str) -> str:
    """Clean text destined for a new block, keeping the original if nothing is left."""
    cleaned = remove_trailing_hash_words(strip_insert_token(text)).strip()
    return cleaned or text.strip()
