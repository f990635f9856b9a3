"""
In-memory host tree.

A deterministic stand-in for the host's block store and editor commands,
used by tests and the CLI dry runs. It keeps blocks as mutable records and
hands out frozen Block snapshots, so callers see the same "read again to
observe changes" behaviour as with the real host.

Failure injection:
    fail_next(op, times)       the next ``times`` calls to ``op`` raise
    drop_next_inserts(times)   inserts return None and create nothing
    silence_insert_results()   inserts create the block but return None
    wrap_next_inserts(times)   inserts create an empty wrapper around the block
"""

from __future__ import annotations

import itertools
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from myday.host.block import (
    AFTER,
    BEFORE,
    FIRST_CHILD,
    LAST_CHILD,
    MIRROR_REPR_TYPE,
    REPR_PROPERTY,
    Block,
    BlockProperty,
    BlockRef,
    ContentFragment,
)
from myday.shared.ids import coerce_block_id
from myday.shared.types import BlockId, PropertyType


class HostCommandError(RuntimeError):
    """Injected failure raised by InMemoryHostTree commands."""


@dataclass
class _BlockRecord:
    id: BlockId
    parent: BlockId | None = None
    children: list[BlockId] = field(default_factory=list)
    text: str | None = None
    content: list[ContentFragment] = field(default_factory=list)
    properties: dict[str, BlockProperty] = field(default_factory=dict)
    refs: list[BlockRef] = field(default_factory=list)

    def snapshot(self) -> Block:
        return Block(
            id=self.id,
            parent=self.parent,
            children=tuple(self.children),
            text=self.text,
            content=tuple(self.content),
            properties=tuple(self.properties.values()),
            refs=tuple(self.refs),
        )


class InMemoryHostTree:
    """HostEditor implementation over an in-process dict of blocks."""

    def __init__(self, *, first_id: int = 1000) -> None:
        self._blocks: dict[BlockId, _BlockRecord] = {}
        self._journals: dict[date, BlockId] = {}
        self._ids = itertools.count(first_id)
        self._uncached: set[BlockId] = set()
        self._failures: dict[str, int] = {}
        self._dropped_inserts = 0
        self._wrapped_inserts = 0
        self._silent_inserts = False
        self.calls: list[tuple[Any, ...]] = []

    # ------------------------------------------------------------------
    # Fixture helpers (synchronous)
    # ------------------------------------------------------------------

    def add_block(
        self,
        parent: BlockId | None = None,
        *,
        text: str | None = None,
        content: Sequence[ContentFragment] | None = None,
        properties: Sequence[BlockProperty] = (),
        refs: Sequence[BlockRef] = (),
        block_id: BlockId | None = None,
    ) -> BlockId:
        new_id = block_id if block_id is not None else next(self._ids)
        if content is None and text is not None:
            content = [ContentFragment(kind="t", text=text)]
        record = _BlockRecord(
            id=new_id,
            text=text,
            content=list(content or []),
            properties={p.name: p for p in properties},
            refs=list(refs),
        )
        self._blocks[new_id] = record
        if parent is not None:
            self._attach(new_id, parent, LAST_CHILD)
        return new_id

    def add_journal(self, day: date, *, text: str | None = None) -> BlockId:
        journal_id = self.add_block(text=text or day.isoformat())
        self._journals[day] = journal_id
        return journal_id

    def add_mirror(self, parent: BlockId | None, mirrored_id: BlockId, **kwargs: Any) -> BlockId:
        props = [BlockProperty(REPR_PROPERTY, PropertyType.TEXT, {"type": MIRROR_REPR_TYPE, "mirroredId": mirrored_id})]
        props.extend(kwargs.pop("properties", ()))
        return self.add_block(parent, properties=props, **kwargs)

    def journal_for(self, day: date) -> BlockId | None:
        return self._journals.get(day)

    def exists(self, block_id: BlockId) -> bool:
        return block_id in self._blocks

    def snapshot(self, block_id: BlockId) -> Block | None:
        record = self._blocks.get(block_id)
        return record.snapshot() if record is not None else None

    def children_of(self, block_id: BlockId) -> list[BlockId]:
        return list(self._blocks[block_id].children)

    def evict(self, block_id: BlockId) -> None:
        """Hide a block from ``cached_block`` while keeping it fetchable."""
        self._uncached.add(block_id)

    def fail_next(self, op: str, times: int = 1) -> None:
        self._failures[op] = self._failures.get(op, 0) + times

    def drop_next_inserts(self, times: int = 1) -> None:
        self._dropped_inserts += times

    def wrap_next_inserts(self, times: int = 1) -> None:
        self._wrapped_inserts += times

    def silence_insert_results(self, silent: bool = True) -> None:
        self._silent_inserts = silent

    def count_calls(self, op: str) -> int:
        return sum(1 for call in self.calls if call[0] == op)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record_call(self, op: str, *args: Any) -> None:
        self.calls.append((op, *args))
        remaining = self._failures.get(op, 0)
        if remaining > 0:
            self._failures[op] = remaining - 1
            raise HostCommandError(f"injected failure: {op}")

    def _detach(self, block_id: BlockId) -> None:
        record = self._blocks[block_id]
        if record.parent is not None and record.parent in self._blocks:
            siblings = self._blocks[record.parent].children
            if block_id in siblings:
                siblings.remove(block_id)
        record.parent = None

    def _attach(self, block_id: BlockId, target_id: BlockId, position: str) -> None:
        if target_id not in self._blocks:
            raise HostCommandError(f"unknown target block {target_id}")
        self._detach(block_id)
        if position in (FIRST_CHILD, LAST_CHILD):
            parent_id = target_id
            siblings = self._blocks[parent_id].children
            index = 0 if position == FIRST_CHILD else len(siblings)
        elif position in (BEFORE, AFTER):
            parent_id = self._blocks[target_id].parent
            if parent_id is None:
                raise HostCommandError(f"block {target_id} has no parent")
            siblings = self._blocks[parent_id].children
            index = siblings.index(target_id) + (1 if position == AFTER else 0)
        else:
            raise HostCommandError(f"unknown position {position!r}")
        siblings.insert(index, block_id)
        self._blocks[block_id].parent = parent_id

    def _delete_tree(self, block_id: BlockId) -> None:
        record = self._blocks.get(block_id)
        if record is None:
            return
        for child_id in list(record.children):
            self._delete_tree(child_id)
        self._detach(block_id)
        del self._blocks[block_id]
        self._uncached.discard(block_id)

    # ------------------------------------------------------------------
    # HostEditor
    # ------------------------------------------------------------------

    async def resolve_journal_for_date(self, day: date) -> Block | None:
        self._record_call("resolve_journal_for_date", day)
        journal_id = self._journals.get(day)
        return self.snapshot(journal_id) if journal_id is not None else None

    def cached_block(self, block_id: BlockId) -> Block | None:
        if block_id in self._uncached:
            return None
        return self.snapshot(block_id)

    async def get_block(self, block_id: BlockId) -> Block | None:
        self._record_call("get_block", block_id)
        return self.snapshot(block_id)

    async def insert_block(
        self,
        parent: Block | BlockId | None,
        position: str | None,
        content: Sequence[ContentFragment] | None = None,
        repr: dict[str, Any] | None = None,
    ) -> Any:
        parent_id = parent.id if isinstance(parent, Block) else coerce_block_id(parent)
        self._record_call("insert_block", parent_id, position, content, repr)

        if self._dropped_inserts > 0:
            self._dropped_inserts -= 1
            return None

        properties: list[BlockProperty] = []
        if repr is not None:
            properties.append(BlockProperty(REPR_PROPERTY, PropertyType.TEXT, dict(repr)))
        text = "".join(f.text for f in content) if content else None

        if parent_id is None or position is None:
            new_id = self.add_block(text=text, content=content, properties=properties)
        elif self._wrapped_inserts > 0:
            self._wrapped_inserts -= 1
            wrapper_id = self.add_block()
            self._attach(wrapper_id, parent_id, position)
            self.add_block(wrapper_id, text=text, content=content, properties=properties)
            return None if self._silent_inserts else wrapper_id
        else:
            new_id = self.add_block(text=text, content=content, properties=properties)
            self._attach(new_id, parent_id, position)

        return None if self._silent_inserts else new_id

    async def move_blocks(self, block_ids: Sequence[BlockId], target_id: BlockId, position: str) -> None:
        self._record_call("move_blocks", tuple(block_ids), target_id, position)
        anchor = target_id
        for block_id in block_ids:
            if block_id not in self._blocks:
                raise HostCommandError(f"unknown block {block_id}")
            self._attach(block_id, anchor, position)
            if position == AFTER:
                anchor = block_id

    async def delete_blocks(self, block_ids: Sequence[BlockId]) -> None:
        self._record_call("delete_blocks", tuple(block_ids))
        for block_id in block_ids:
            self._delete_tree(block_id)

    async def set_properties(self, block_ids: Sequence[BlockId], properties: Sequence[BlockProperty]) -> None:
        self._record_call("set_properties", tuple(block_ids), tuple(properties))
        for block_id in block_ids:
            record = self._blocks.get(block_id)
            if record is None:
                raise HostCommandError(f"unknown block {block_id}")
            for prop in properties:
                record.properties[prop.name] = prop

    async def set_block_content(self, block_id: BlockId, content: Sequence[ContentFragment]) -> None:
        self._record_call("set_block_content", block_id, tuple(content))
        record = self._blocks.get(block_id)
        if record is None:
            raise HostCommandError(f"unknown block {block_id}")
        record.content = list(content)
        record.text = "".join(f.text for f in content if isinstance(f.text, str))

    async def create_ref(self, source_id: BlockId, target_id: BlockId, ref_type: int) -> None:
        self._record_call("create_ref", source_id, target_id, ref_type)
        record = self._blocks.get(source_id)
        if record is None:
            raise HostCommandError(f"unknown block {source_id}")
        record.refs.append(BlockRef(type=ref_type, to=target_id))
