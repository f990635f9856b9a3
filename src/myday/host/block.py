"""
Host block tree contract.

The host owns the outline document store and its editor command engine.
This module describes the slice of it the reconciler relies on: immutable
block snapshots and an async ``HostEditor`` protocol. Snapshots are taken at
read time; a caller that needs the current shape of the tree reads again.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol, runtime_checkable

from myday.shared.ids import coerce_block_id
from myday.shared.types import BlockId

REPR_PROPERTY = "_repr"
MIRROR_REPR_TYPE = "mirror"

TEXT_FRAGMENT = "t"
LINK_FRAGMENT = "r"

# Insert / move positions understood by the host
FIRST_CHILD = "firstChild"
LAST_CHILD = "lastChild"
BEFORE = "before"
AFTER = "after"


@dataclass(frozen=True)
class BlockProperty:
    name: str
    type: int
    value: Any = None


@dataclass(frozen=True)
class ContentFragment:
    """One inline run of block content (``t`` text, ``r`` link)."""
    kind: str
    text: str = ""
    target: Any = None


@dataclass(frozen=True)
class BlockRef:
    """Outgoing reference from a block to another block."""
    type: int
    to: BlockId


@dataclass(frozen=True)
class Block:
    """Read-only snapshot of a host block."""

    id: BlockId
    parent: BlockId | None = None
    children: tuple[BlockId, ...] = ()
    text: str | None = None
    content: tuple[ContentFragment, ...] = ()
    properties: tuple[BlockProperty, ...] = ()
    refs: tuple[BlockRef, ...] = ()

    def get_property(self, name: str) -> BlockProperty | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def property_value(self, name: str, default: Any = None) -> Any:
        prop = self.get_property(name)
        return prop.value if prop is not None else default

    @property
    def mirrored_id(self) -> BlockId | None:
        """Id this block mirrors when its ``_repr`` is a mirror, else None."""
        repr_value = self.property_value(REPR_PROPERTY)
        if not isinstance(repr_value, dict) or repr_value.get("type") != MIRROR_REPR_TYPE:
            return None
        return coerce_block_id(repr_value.get("mirroredId"))

    def plain_text(self) -> str:
        """Block text, or the concatenated fragment text when text is blank."""
        if isinstance(self.text, str) and self.text.strip():
            return self.text
        return "".join(f.text for f in self.content if isinstance(f.text, str))

    def is_content_empty(self) -> bool:
        if isinstance(self.text, str) and self.text.strip():
            return False
        return all(not (isinstance(f.text, str) and f.text.strip()) for f in self.content)


@runtime_checkable
class HostEditor(Protocol):
    """Async editor commands and reads exposed by the host.

    Any method may raise; callers treat a raised failure as "did not happen".
    """

    async def resolve_journal_for_date(self, day: date) -> Block | None:
        """Journal block for a calendar date, created by the host if needed."""

    def cached_block(self, block_id: BlockId) -> Block | None:
        """Block from the host's live in-process cache, without I/O."""

    async def get_block(self, block_id: BlockId) -> Block | None:
        """Fetch a block from the host backend."""

    async def insert_block(
        self,
        parent: Block | BlockId | None,
        position: str | None,
        content: Sequence[ContentFragment] | None = None,
        repr: dict[str, Any] | None = None,
    ) -> Any:
        """Insert a block; the result may be an id, a dict with ``id``, a list, or None."""

    async def move_blocks(self, block_ids: Sequence[BlockId], target_id: BlockId, position: str) -> None:
        """Move blocks relative to ``target_id``."""

    async def delete_blocks(self, block_ids: Sequence[BlockId]) -> None:
        """Delete blocks and their descendants."""

    async def set_properties(self, block_ids: Sequence[BlockId], properties: Sequence[BlockProperty]) -> None:
        """Upsert properties by name."""

    async def set_block_content(self, block_id: BlockId, content: Sequence[ContentFragment]) -> None:
        """Replace a block's inline content."""

    async def create_ref(self, source_id: BlockId, target_id: BlockId, ref_type: int) -> None:
        """Create a reference from ``source_id`` to ``target_id``."""


def text_content(text: str) -> tuple[ContentFragment, ...]:
    """Content consisting of a single plain text fragment."""
    return (ContentFragment(kind=TEXT_FRAGMENT, text=text),)
