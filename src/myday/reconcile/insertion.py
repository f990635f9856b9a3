"""
Insertion strategies for creating a journal entry block.

Hosts have changed the shape of their insertion API over time, so creation
is a configurable, ordered tuple of strategies. Each strategy both creates
an entry and says which existing blocks it would consider a finished entry,
so an entry made by one strategy is not torn down and recreated by the next
reconciliation.

    StructuralMirrorInsertion   a ``_repr`` mirror block (default)
    ReferenceContentInsertion   a text block linking to the task
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from myday.host.block import LAST_CHILD, LINK_FRAGMENT, MIRROR_REPR_TYPE, Block, ContentFragment, HostEditor
from myday.host.repository import BlockRepository
from myday.reconcile.detection import contains_task_reference, has_reference_fragment, is_mirror_of
from myday.reconcile.markers import normalize_inserted_text
from myday.reconcile.retry import RetryPolicy, best_effort, poll
from myday.shared.ids import pick_block_id
from myday.shared.types import BlockId, RefType


@dataclass(frozen=True)
class InsertionContext:
    editor: HostEditor
    repository: BlockRepository
    child_poll: RetryPolicy


class InsertionStrategy(Protocol):
    name: str

    def accepts(self, block: Block, task_id: BlockId, ctx: InsertionContext) -> bool:
        """True if ``block`` is already a finished entry of this kind."""

    async def insert(
        self,
        ctx: InsertionContext,
        parent_id: BlockId,
        parent: Block,
        task_id: BlockId,
    ) -> BlockId | None:
        """Create an entry under ``parent`` and return its id, or None."""


async def resolve_inserted_child_id(
    ctx: InsertionContext,
    parent_id: BlockId,
    before: set[BlockId],
    candidate: BlockId | None,
) -> BlockId | None:
    """Find the child an insert produced by diffing the parent's children.

    The returned candidate wins if it is a new child; otherwise the last new
    child by position. Polls because the host may apply inserts late.
    """

    async def probe() -> BlockId | None:
        after = await ctx.repository.child_ids(parent_id)
        if candidate is not None and candidate not in before and candidate in after:
            return candidate
        for child_id in reversed(after):
            if child_id not in before:
                return child_id
        return None

    return await poll(probe, ctx.child_poll)


async def is_wrapped_entry(ctx: InsertionContext, block: Block, task_id: BlockId) -> bool:
    """An empty block whose only child represents the task."""
    if len(block.children) != 1 or not block.is_content_empty():
        return False
    child = await ctx.repository.get_or_fetch(block.children[0])
    if child is None:
        return False
    canonical = ctx.repository.canonical_id
    return is_mirror_of(child, task_id, canonical) or contains_task_reference(child, task_id, canonical)


class StructuralMirrorInsertion:
    """Insert a ``{"type": "mirror", "mirroredId": task}`` block at the end of the parent."""

    name = "mirror"

    def accepts(self, block: Block, task_id: BlockId, ctx: InsertionContext) -> bool:
        return is_mirror_of(block, task_id, ctx.repository.canonical_id)

    async def insert(
        self,
        ctx: InsertionContext,
        parent_id: BlockId,
        parent: Block,
        task_id: BlockId,
    ) -> BlockId | None:
        before = await ctx.repository.child_id_set(parent_id)
        repr_value = {"type": MIRROR_REPR_TYPE, "mirroredId": task_id}

        # Some hosts want the block object, others only take an id
        for target in (parent, parent_id):
            outcome = await best_effort(
                "insert_block",
                ctx.editor.insert_block,
                target,
                LAST_CHILD,
                None,
                repr_value,
                task_id=task_id,
            )
            if not outcome.ok:
                continue

            inserted_id = await resolve_inserted_child_id(ctx, parent_id, before, pick_block_id(outcome.value))
            if inserted_id is None:
                continue
            inserted = await ctx.repository.get_or_fetch(inserted_id)
            if inserted is None:
                continue
            if self.accepts(inserted, task_id, ctx) or await is_wrapped_entry(ctx, inserted, task_id):
                return inserted_id
        return None


def reference_content_variants(task_id: BlockId, label: str) -> list[tuple[ContentFragment, ...]]:
    """Link content in the target encodings hosts have accepted over time."""
    label = label if label.strip() else f"#{task_id}"
    return [
        (ContentFragment(kind=LINK_FRAGMENT, text=label, target=task_id),),
        (ContentFragment(kind=LINK_FRAGMENT, text=label, target=str(task_id)),),
        (ContentFragment(kind=LINK_FRAGMENT, text=label, target=f"(({task_id}))"),),
    ]


class ReferenceContentInsertion:
    """Insert a text block whose content links to the task, plus an inline ref."""

    name = "reference"

    def accepts(self, block: Block, task_id: BlockId, ctx: InsertionContext) -> bool:
        return has_reference_fragment(block, task_id, ctx.repository.canonical_id)

    async def _label(self, ctx: InsertionContext, task_id: BlockId) -> str:
        task = await ctx.repository.get_or_fetch(task_id)
        text = normalize_inserted_text(task.plain_text()) if task is not None else ""
        return text or f"#{task_id}"

    async def ensure_inline_ref(self, ctx: InsertionContext, source_id: BlockId, task_id: BlockId) -> None:
        source = await ctx.repository.get_or_fetch(source_id)
        if source is None:
            return
        canonical = ctx.repository.canonical_id
        if any(ref.type == RefType.INLINE and canonical(ref.to) == task_id for ref in source.refs):
            return
        target = await ctx.repository.resolve_existing_id([task_id, canonical(task_id)]) or task_id
        await best_effort("create_ref", ctx.editor.create_ref, source_id, target, int(RefType.INLINE), task_id=task_id)

    async def set_reference_content(
        self,
        ctx: InsertionContext,
        block_id: BlockId,
        task_id: BlockId,
        label: str,
    ) -> bool:
        """Rewrite a block to link to the task, trying each content variant."""
        for content in reference_content_variants(task_id, label):
            await best_effort("set_block_content", ctx.editor.set_block_content, block_id, content, block_id=block_id)
            updated = await ctx.repository.get_or_fetch(block_id)
            if updated is not None and self.accepts(updated, task_id, ctx):
                await self.ensure_inline_ref(ctx, block_id, task_id)
                return True

        await self.ensure_inline_ref(ctx, block_id, task_id)
        return False

    async def insert(
        self,
        ctx: InsertionContext,
        parent_id: BlockId,
        parent: Block,
        task_id: BlockId,
    ) -> BlockId | None:
        label = await self._label(ctx, task_id)
        for target in (parent, parent_id):
            for content in reference_content_variants(task_id, label):
                before = await ctx.repository.child_id_set(parent_id)
                outcome = await best_effort(
                    "insert_block",
                    ctx.editor.insert_block,
                    target,
                    LAST_CHILD,
                    content,
                    task_id=task_id,
                )
                if not outcome.ok:
                    continue
                inserted_id = await resolve_inserted_child_id(ctx, parent_id, before, pick_block_id(outcome.value))
                if inserted_id is None:
                    continue
                if await self.set_reference_content(ctx, inserted_id, task_id, label):
                    return inserted_id
        return None


DEFAULT_INSERTION_STRATEGIES: tuple[InsertionStrategy, ...] = (StructuralMirrorInsertion(),)
