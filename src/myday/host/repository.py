"""
Block repository: cached-first block access with defensive re-derivation.

Wraps a HostEditor so the rest of the core never reads the host's live cache
directly. A stale id (deleted, merged, or a mirror of another block) is
resolved by trying its mirrored id and then the backend before giving up.
"""

from __future__ import annotations

from collections.abc import Iterable

from myday.host.block import Block, HostEditor
from myday.infra.logging import get_logger
from myday.shared.ids import coerce_block_id, dedupe_block_ids
from myday.shared.types import BlockId

logger = get_logger(__name__)


class BlockRepository:
    """``get`` reads the live cache only; ``get_or_fetch`` may hit the backend."""

    def __init__(self, editor: HostEditor) -> None:
        self.editor = editor

    def canonical_id(self, block_id: BlockId) -> BlockId:
        """Map a cached mirror block to the id it mirrors; other ids pass through."""
        block = self.editor.cached_block(block_id)
        if block is None:
            return block_id
        return block.mirrored_id or block_id

    def get(self, block_id: BlockId) -> Block | None:
        block = self.editor.cached_block(block_id)
        if block is not None:
            return block
        mirror_id = self.canonical_id(block_id)
        if mirror_id != block_id:
            return self.editor.cached_block(mirror_id)
        return None

    async def get_or_fetch(self, block_id: BlockId) -> Block | None:
        block = self.get(block_id)
        if block is not None:
            return block

        mirror_id = self.canonical_id(block_id)
        try:
            fetched = await self.editor.get_block(block_id)
            if fetched is not None:
                return fetched
            if mirror_id != block_id:
                return await self.editor.get_block(mirror_id)
        except Exception:
            logger.warning("host_get_block_failed", op="get_block", block_id=block_id, exc_info=True)
        return None

    async def resolve_existing_id(self, candidates: Iterable[BlockId]) -> BlockId | None:
        """First candidate that still resolves to a block, as the host now names it."""
        for candidate in dedupe_block_ids(candidates):
            if self.editor.cached_block(candidate) is not None:
                return candidate
            fetched = await self.get_or_fetch(candidate)
            if fetched is not None:
                return coerce_block_id(fetched.id)
        return None

    async def child_ids(self, parent_id: BlockId) -> list[BlockId]:
        parent = await self.get_or_fetch(parent_id)
        if parent is None:
            return []
        return dedupe_block_ids(parent.children)

    async def child_id_set(self, parent_id: BlockId) -> set[BlockId]:
        return set(await self.child_ids(parent_id))

    async def children(self, parent: Block) -> list[Block]:
        """Snapshots of ``parent``'s children that still resolve."""
        blocks: list[Block] = []
        for child_id in dedupe_block_ids(parent.children):
            child = await self.get_or_fetch(child_id)
            if child is not None:
                blocks.append(child)
        return blocks
