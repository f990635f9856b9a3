"""
My Day service: roster mutations plus journal mirror orchestration.

Roster read-modify-write cycles are serialized through one asyncio.Lock so
two mutations never interleave their load/save. Reconciliation with the
host runs outside that lock; its results are folded back in with a second,
short mutation that only touches ids of entries that are still present.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any

from myday.infra.exceptions import MyDayError
from myday.infra.logging import get_logger
from myday.infra.settings import settings
from myday.reconcile.mirror_reconciler import MirrorReconciler, MirrorResult
from myday.runtime import roster_store
from myday.runtime.clock import RosterClock, SystemClock
from myday.runtime.day_key import normalize_reset_hour, resolve_day_key
from myday.runtime.lane_layout import LaneLayout, compute_lanes, intervals_from_roster
from myday.runtime.roster_persistence import RosterRepository
from myday.runtime.roster_store import Canonicalize
from myday.runtime.roster_types import RosterState, TaskEntry
from myday.shared.ids import coerce_block_id
from myday.shared.types import BlockId

logger = get_logger(__name__)

Mutation = Callable[[RosterState], Awaitable[RosterState | None] | RosterState | None]


@dataclass(frozen=True)
class AddOutcome:
    """Result of ``MyDayService.add_task``."""
    state: RosterState
    added: bool
    mirror_block_id: BlockId | None = None
    synced: bool = False


@dataclass(frozen=True)
class SyncOutcome:
    state: RosterState
    skipped: bool
    mirrored: dict[BlockId, BlockId | None] = field(default_factory=dict)


def sync_signature(state: RosterState) -> str:
    """``dayKey:sorted,task,ids``; unchanged signature means nothing to sync."""
    return f"{state.day_key}:{','.join(str(i) for i in sorted(state.task_ids))}"


class MyDayService:
    """Owns the live roster for one process and keeps the journal in step."""

    def __init__(
        self,
        repository: RosterRepository,
        reconciler: MirrorReconciler | None = None,
        *,
        reset_hour: Any = None,
        clock: RosterClock | None = None,
    ) -> None:
        self.repository = repository
        self.reconciler = reconciler
        self.reset_hour = normalize_reset_hour(settings.reset_hour if reset_hour is None else reset_hour)
        self.clock = clock or SystemClock()
        self._state: RosterState | None = None
        self._lock = asyncio.Lock()
        self._last_sync_signature = ""

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    @property
    def _canonicalize(self) -> Canonicalize | None:
        if self.reconciler is None:
            return None
        return self.reconciler.repository.canonical_id

    @property
    def state(self) -> RosterState | None:
        """Last loaded or saved state, or None before first use."""
        return self._state

    async def load(self) -> RosterState:
        """(Re)load the roster for the clock's current day key."""
        async with self._lock:
            self._state = await self.repository.load(self.clock.now(), self.reset_hour)
            return self._state

    async def current_state(self) -> RosterState:
        if self._state is None:
            return await self.load()
        return self._state

    async def run_mutation(self, mutate: Mutation) -> RosterState:
        """Apply ``mutate`` to the current state and persist if it changed.

        ``mutate`` may be sync or async. Returning None or the same object
        means "no change" and skips the write.
        """
        async with self._lock:
            base = self._state
            if base is None:
                base = await self.repository.load(self.clock.now(), self.reset_hour)
                self._state = base

            result = mutate(base)
            if asyncio.iscoroutine(result):
                result = await result
            if result is None or result is base:
                return base

            self._state = await self.repository.save(result)
            return self._state

    def _now_ms(self) -> int:
        return self.clock.now_ms()

    # ------------------------------------------------------------------
    # Roster operations
    # ------------------------------------------------------------------

    async def add_task(self, task_id: Any, source_block_id: Any = None) -> AddOutcome:
        """Add a task and mirror it into the day's journal.

        Raises:
            InvalidTaskIdError: If ``task_id`` is not a valid block id.
        """
        outcome: dict[str, Any] = {}

        def mutate(state: RosterState) -> RosterState:
            result = roster_store.add_task(
                state,
                task_id,
                source_block_id,
                now_ms=self._now_ms(),
                canonicalize=self._canonicalize,
            )
            outcome["added"] = result.added
            outcome["entry"] = result.entry
            return result.state

        state = await self.run_mutation(mutate)
        entry: TaskEntry = outcome["entry"]

        if self.reconciler is None:
            return AddOutcome(state=state, added=outcome["added"], mirror_block_id=entry.mirror_block_id)

        mirror = await self.reconciler.ensure_mirror(entry.task_id, state.day_key)
        state = await self._record_mirrors(state.day_key, {entry.task_id: mirror})
        if mirror.mirror_block_id is None:
            logger.warning("my_day_journal_sync_failed", task_id=entry.task_id, day_key=state.day_key)
        return AddOutcome(
            state=state,
            added=outcome["added"],
            mirror_block_id=mirror.mirror_block_id,
            synced=mirror.mirror_block_id is not None,
        )

    async def remove_task(self, task_id: Any) -> RosterState:
        removed: list[TaskEntry] = []

        def mutate(state: RosterState) -> RosterState:
            result = roster_store.remove_task(
                state, task_id, now_ms=self._now_ms(), canonicalize=self._canonicalize
            )
            if result.removed_entry is not None:
                removed.append(result.removed_entry)
            return result.state

        state = await self.run_mutation(mutate)
        await self._remove_mirrors(removed)
        return state

    async def schedule_task(self, task_id: Any, start: Any, end: Any) -> RosterState:
        return await self.run_mutation(
            lambda state: roster_store.reschedule_task(
                state, task_id, start, end, now_ms=self._now_ms(), canonicalize=self._canonicalize
            )
        )

    async def clear_schedule(self, task_id: Any) -> RosterState:
        return await self.schedule_task(task_id, None, None)

    async def set_display_mode(self, mode: Any) -> RosterState:
        return await self.run_mutation(
            lambda state: roster_store.set_display_mode(state, mode, now_ms=self._now_ms())
        )

    async def prune_missing(self, valid_task_ids: Iterable[Any]) -> RosterState:
        """Drop entries whose task no longer exists, and their mirrors."""
        valid = list(valid_task_ids)
        removed: list[TaskEntry] = []

        def mutate(state: RosterState) -> RosterState:
            result = roster_store.prune_missing(state, valid, now_ms=self._now_ms())
            removed.extend(result.removed_entries)
            return result.state

        state = await self.run_mutation(mutate)
        await self._remove_mirrors(removed)
        return state

    # ------------------------------------------------------------------
    # Journal sync
    # ------------------------------------------------------------------

    async def sync_journal(self, *, force: bool = False) -> SyncOutcome:
        """Ensure a journal mirror for every entry of the current day.

        Skipped when the roster is empty or its signature matches the last
        completed sync, unless ``force`` is set.
        """
        state = await self.current_state()
        signature = sync_signature(state)
        if self.reconciler is None or not state.tasks:
            return SyncOutcome(state=state, skipped=True)
        if not force and signature == self._last_sync_signature:
            return SyncOutcome(state=state, skipped=True)

        results: dict[BlockId, MirrorResult] = {}
        for entry in state.tasks:
            results[entry.task_id] = await self.reconciler.ensure_mirror(entry.task_id, state.day_key)

        state = await self._record_mirrors(state.day_key, results)
        self._last_sync_signature = signature
        logger.debug("my_day_journal_synced", day_key=state.day_key, tasks=len(results))
        return SyncOutcome(
            state=state,
            skipped=False,
            mirrored={task_id: r.mirror_block_id for task_id, r in results.items()},
        )

    async def _record_mirrors(self, day_key: str, results: dict[BlockId, MirrorResult]) -> RosterState:
        def mutate(state: RosterState) -> RosterState:
            if state.day_key != day_key:
                # Rolled over while reconciling; these ids belong to another day
                return state
            next_state = state
            now_ms = self._now_ms()
            for task_id, result in results.items():
                if result.journal_section_id is not None:
                    next_state = roster_store.set_journal_section_id(
                        next_state, result.journal_section_id, now_ms=now_ms
                    )
                if result.mirror_block_id is not None:
                    next_state = roster_store.set_mirror_block_id(
                        next_state, task_id, result.mirror_block_id, now_ms=now_ms
                    )
            return next_state

        return await self.run_mutation(mutate)

    async def _remove_mirrors(self, entries: Iterable[TaskEntry]) -> None:
        if self.reconciler is None:
            return
        for entry in entries:
            if coerce_block_id(entry.mirror_block_id) is not None:
                await self.reconciler.remove_mirror(entry.mirror_block_id)

    # ------------------------------------------------------------------
    # Day rollover
    # ------------------------------------------------------------------

    async def refresh_if_rolled_over(self) -> bool:
        """Reload when the clock has crossed into a new day key.

        Returns True when a reload happened.
        """
        if self._state is None:
            await self.load()
            return False
        current_key = resolve_day_key(self.clock.now(), self.reset_hour)
        if self._state.day_key == current_key:
            return False
        previous = self._state.day_key
        state = await self.load()
        self._last_sync_signature = ""
        logger.info("my_day_rolled_over", previous_day_key=previous, day_key=state.day_key)
        return True

    async def watch_rollover(self, stop: asyncio.Event, interval_seconds: float = 60.0) -> None:
        """Check for rollover every ``interval_seconds`` until ``stop`` is set."""
        while not stop.is_set():
            try:
                await self.refresh_if_rolled_over()
            except MyDayError:
                logger.warning("my_day_rollover_check_failed", exc_info=True)
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue

    # ------------------------------------------------------------------
    # Presentation
    # ------------------------------------------------------------------

    async def lanes(self) -> dict[Hashable, LaneLayout]:
        return compute_lanes(intervals_from_roster(await self.current_state()))
