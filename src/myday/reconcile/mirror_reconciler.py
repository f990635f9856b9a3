"""
Mirror reconciler: converge the day's journal to one entry per roster task.

``ensure_mirror`` is idempotent and self-correcting. Each call re-reads the
journal, adopts whatever entry an earlier call (or an earlier release) left
behind, creates one if there is none, tags it, and deletes marked
duplicates. Calls for different tasks may interleave freely; calls for the
same task may race, and the duplicate sweep on the next call repairs that.

Host failures never propagate. Every command goes through ``best_effort``
and a failed step falls through to the next strategy, a re-read, or
abandonment of the mirror for now.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from myday.host.block import AFTER, LAST_CHILD, Block, HostEditor, text_content
from myday.host.repository import BlockRepository
from myday.infra.logging import get_logger
from myday.infra.settings import settings
from myday.reconcile.detection import DEFAULT_DETECTION_STRATEGIES, DetectionStrategy, detect_entry
from myday.reconcile.insertion import (
    DEFAULT_INSERTION_STRATEGIES,
    InsertionContext,
    InsertionStrategy,
    is_wrapped_entry,
)
from myday.reconcile.markers import (
    clean_token_text,
    entry_marker_properties,
    has_entry_marker,
    is_legacy_section,
)
from myday.reconcile.retry import RetryPolicy, best_effort
from myday.runtime.clock import RosterClock, SystemClock
from myday.runtime.day_key import parse_day_key
from myday.shared.ids import coerce_block_id, dedupe_block_ids
from myday.shared.types import BlockId

logger = get_logger(__name__)


@dataclass(frozen=True)
class MirrorResult:
    """Outcome of ``ensure_mirror``; both ids are None when nothing could be done."""
    mirror_block_id: BlockId | None = None
    journal_section_id: BlockId | None = None


def default_insert_retry() -> RetryPolicy:
    # One retry after a short pause, against a freshly read parent
    return RetryPolicy(attempts=2, delay_ms=settings.insert_retry_delay_ms)


def default_child_poll() -> RetryPolicy:
    return RetryPolicy(attempts=settings.child_poll_attempts, delay_ms=settings.child_poll_delay_ms)


class MirrorReconciler:
    """Keeps exactly one tagged entry per (task, day) under the day's journal."""

    def __init__(
        self,
        editor: HostEditor,
        *,
        repository: BlockRepository | None = None,
        clock: RosterClock | None = None,
        insertion_strategies: Sequence[InsertionStrategy] = DEFAULT_INSERTION_STRATEGIES,
        detection_strategies: Sequence[DetectionStrategy] = DEFAULT_DETECTION_STRATEGIES,
        insert_retry: RetryPolicy | None = None,
        child_poll: RetryPolicy | None = None,
    ) -> None:
        self.editor = editor
        self.repository = repository or BlockRepository(editor)
        self.clock = clock or SystemClock()
        self.insertion_strategies = tuple(insertion_strategies)
        self.detection_strategies = tuple(detection_strategies)
        self.insert_retry = insert_retry or default_insert_retry()
        self.context = InsertionContext(
            editor=editor,
            repository=self.repository,
            child_poll=child_poll or default_child_poll(),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def ensure_mirror(self, task_id: object, day_key: str) -> MirrorResult:
        """Make sure the journal for ``day_key`` holds one entry for ``task_id``."""
        block_id = coerce_block_id(task_id)
        if block_id is None:
            return MirrorResult()
        task_id = self.repository.canonical_id(block_id)

        journal = await self._resolve_journal(day_key)
        section_id = coerce_block_id(journal.id) if journal is not None else None
        if section_id is None:
            logger.debug("journal_unresolved", task_id=task_id, day_key=day_key)
            return MirrorResult()

        await self._cleanup_token_artifacts(section_id)
        mirror_id = await self._reconcile_entry(section_id, task_id, day_key)
        return MirrorResult(mirror_block_id=mirror_id, journal_section_id=section_id)

    async def remove_mirror(self, mirror_block_id: object) -> bool:
        """Delete a mirror entry if it still exists and still carries our marker.

        Returns True when a delete was issued successfully.
        """
        block_id = coerce_block_id(mirror_block_id)
        if block_id is None:
            return False
        existing_id = await self.repository.resolve_existing_id([block_id])
        if existing_id is None:
            return False
        block = await self.repository.get_or_fetch(existing_id)
        if block is None:
            return False
        if not has_entry_marker(block):
            # The id may have been reused by an unrelated block
            logger.debug("mirror_remove_skipped_unmarked", block_id=existing_id)
            return False

        outcome = await best_effort("delete_blocks", self.editor.delete_blocks, [existing_id], block_id=existing_id)
        return outcome.ok

    async def list_entry_ids(self, section_id: BlockId, task_id: BlockId, day_key: str) -> list[BlockId]:
        """Entries for (task, day) directly under the section, then under legacy sections."""
        section = await self.repository.get_or_fetch(section_id)
        if section is None:
            return []

        canonical = self.repository.canonical_id
        matches: list[BlockId] = []
        for block in await self._candidate_blocks(section):
            if detect_entry(block, task_id, day_key, canonical, self.detection_strategies) is not None:
                matches.append(block.id)
        return dedupe_block_ids(matches)

    # ------------------------------------------------------------------
    # Journal and scanning
    # ------------------------------------------------------------------

    async def _resolve_journal(self, day_key: str) -> Block | None:
        day = parse_day_key(day_key)
        if day is not None:
            outcome = await best_effort(
                "resolve_journal_for_date", self.editor.resolve_journal_for_date, day, day_key=day_key
            )
            if outcome.value is not None:
                return outcome.value

        today = self.clock.now().date()
        if today == day:
            return None
        outcome = await best_effort(
            "resolve_journal_for_date", self.editor.resolve_journal_for_date, today, day_key=day_key
        )
        return outcome.value

    async def _legacy_sections(self, section: Block) -> list[Block]:
        canonical = self.repository.canonical_id
        return [
            child
            for child in await self.repository.children(section)
            if is_legacy_section(child, section.id, canonical=canonical)
        ]

    async def _candidate_blocks(self, section: Block) -> list[Block]:
        """Direct children first, then children of legacy sections; no repeats."""
        direct = await self.repository.children(section)
        nested: list[Block] = []
        for legacy in await self._legacy_sections(section):
            nested.extend(await self.repository.children(legacy))

        seen: set[BlockId] = set()
        blocks: list[Block] = []
        for block in (*direct, *nested):
            if block.id in seen:
                continue
            seen.add(block.id)
            blocks.append(block)
        return blocks

    async def _cleanup_token_artifacts(self, section_id: BlockId) -> None:
        section = await self.repository.get_or_fetch(section_id)
        if section is None:
            return
        for block in await self._candidate_blocks(section):
            if has_entry_marker(block):
                await self._sanitize_block(block)

    async def _sanitize_block(self, block: Block) -> Block:
        text = block.plain_text()
        cleaned = clean_token_text(text)
        if cleaned == text:
            return block
        await best_effort(
            "set_block_content", self.editor.set_block_content, block.id, text_content(cleaned), block_id=block.id
        )
        return await self.repository.get_or_fetch(block.id) or block

    # ------------------------------------------------------------------
    # Reconciliation steps
    # ------------------------------------------------------------------

    def _accepts(self, block: Block, task_id: BlockId) -> bool:
        return any(s.accepts(block, task_id, self.context) for s in self.insertion_strategies)

    async def _reconcile_entry(self, section_id: BlockId, task_id: BlockId, day_key: str) -> BlockId | None:
        section_id = await self.repository.resolve_existing_id([section_id]) or section_id
        if await self.repository.get_or_fetch(section_id) is None:
            return None

        entry_ids = await self.list_entry_ids(section_id, task_id, day_key)
        if entry_ids:
            entry_id = await self._ensure_under_parent(entry_ids[0], section_id)
            entry = await self.repository.get_or_fetch(entry_id)
            if entry is not None and self._accepts(entry, task_id):
                if not has_entry_marker(entry):
                    await self._tag(entry_id, task_id, day_key)
                await self._cleanup_duplicates(section_id, task_id, day_key, entry_id)
                logger.debug("mirror_reused", task_id=task_id, day_key=day_key, block_id=entry_id)
                return entry_id

            await best_effort("delete_blocks", self.editor.delete_blocks, [entry_id], block_id=entry_id)

        created_id = await self._create_entry(section_id, task_id)
        if created_id is None:
            logger.warning("mirror_create_failed", task_id=task_id, day_key=day_key, section_id=section_id)
            return None

        created_id = await self._unwrap(created_id, task_id)
        await self._tag(created_id, task_id, day_key)
        await self._cleanup_duplicates(section_id, task_id, day_key, created_id)
        logger.debug("mirror_created", task_id=task_id, day_key=day_key, block_id=created_id)
        return created_id

    async def _create_entry(self, section_id: BlockId, task_id: BlockId) -> BlockId | None:
        for attempt in range(max(1, self.insert_retry.attempts)):
            if attempt > 0:
                await self.insert_retry.pause()
            # Re-read every attempt; the parent may have changed under us
            section = await self.repository.get_or_fetch(section_id)
            if section is None:
                return None
            for strategy in self.insertion_strategies:
                created_id = await strategy.insert(self.context, section_id, section, task_id)
                if created_id is not None:
                    return created_id
        return None

    async def _ensure_under_parent(self, entry_id: BlockId, parent_id: BlockId) -> BlockId:
        entry = await self.repository.get_or_fetch(entry_id)
        if entry is None:
            return entry_id

        canonical = self.repository.canonical_id
        previous_parent = coerce_block_id(entry.parent)
        if previous_parent is not None and (
            previous_parent == parent_id or canonical(previous_parent) == canonical(parent_id)
        ):
            return entry.id

        outcome = await best_effort(
            "move_blocks", self.editor.move_blocks, [entry.id], parent_id, LAST_CHILD, block_id=entry.id
        )
        if not outcome.ok:
            return entry.id

        moved_id = await self.repository.resolve_existing_id([entry.id]) or entry.id
        if previous_parent is not None and previous_parent != parent_id:
            await self._cleanup_empty_legacy_section(previous_parent, parent_id)
        return moved_id

    async def _cleanup_empty_legacy_section(self, section_id: BlockId, journal_id: BlockId) -> None:
        section = await self.repository.get_or_fetch(section_id)
        if section is None:
            return
        if not is_legacy_section(section, journal_id, canonical=self.repository.canonical_id):
            return
        if section.children or not section.is_content_empty():
            return
        await best_effort("delete_blocks", self.editor.delete_blocks, [section.id], block_id=section.id)

    async def _unwrap(self, entry_id: BlockId, task_id: BlockId) -> BlockId:
        """Replace an empty single-child wrapper with its child."""
        entry = await self.repository.get_or_fetch(entry_id)
        if entry is None or not await is_wrapped_entry(self.context, entry, task_id):
            return entry_id

        child_id = entry.children[0]
        moved = await best_effort("move_blocks", self.editor.move_blocks, [child_id], entry.id, AFTER, block_id=child_id)
        if not moved.ok:
            return entry_id
        deleted = await best_effort("delete_blocks", self.editor.delete_blocks, [entry.id], block_id=entry.id)
        if not deleted.ok:
            return entry_id
        return await self.repository.resolve_existing_id([child_id]) or child_id

    async def _tag(self, block_id: BlockId, task_id: BlockId, day_key: str) -> None:
        # An untagged entry is still found by the mirror/reference detectors
        await best_effort(
            "set_properties",
            self.editor.set_properties,
            [block_id],
            entry_marker_properties(task_id, day_key),
            block_id=block_id,
        )

    async def _cleanup_duplicates(self, section_id: BlockId, task_id: BlockId, day_key: str, keep_id: BlockId) -> None:
        duplicates = [i for i in await self.list_entry_ids(section_id, task_id, day_key) if i != keep_id]
        removable: list[BlockId] = []
        for candidate_id in duplicates:
            block = await self.repository.get_or_fetch(candidate_id)
            # Only blocks we tagged are ours to delete
            if block is not None and has_entry_marker(block):
                removable.append(candidate_id)
        if not removable:
            return
        logger.debug("mirror_duplicates_removed", task_id=task_id, day_key=day_key, block_ids=removable)
        await best_effort("delete_blocks", self.editor.delete_blocks, removable, task_id=task_id)
