"""
Tests for MyDayService: roster mutations wired to the journal reconciler.

Runs against InMemoryHostTree with zero-delay retry policies so nothing
here sleeps for real.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from myday.host.memory import InMemoryHostTree
from myday.infra.exceptions import InvalidTaskIdError, PersistenceError
from myday.reconcile.markers import TASK_ID_MARKER
from myday.reconcile.mirror_reconciler import MirrorReconciler
from myday.reconcile.retry import RetryPolicy
from myday.runtime import roster_store
from myday.runtime.clock import FixedClock
from myday.runtime.lane_layout import LaneLayout
from myday.runtime.my_day_service import MyDayService, sync_signature
from myday.runtime.roster_persistence import InMemorySettingsStore, RosterRepository
from myday.shared.types import DisplayMode

PLUGIN = "mlo-task"
KEY = "taskMyDay.v1"
NEXT_MORNING = datetime(2025, 7, 16, 6, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_reconciler(host: InMemoryHostTree, clock: FixedClock) -> MirrorReconciler:
    return MirrorReconciler(
        host,
        clock=clock,
        insert_retry=RetryPolicy(attempts=2, delay_ms=0),
        child_poll=RetryPolicy(attempts=2, delay_ms=0),
    )


def _make_service(
    host: InMemoryHostTree,
    clock: FixedClock,
    store: InMemorySettingsStore | None = None,
    *,
    with_reconciler: bool = True,
) -> MyDayService:
    reconciler = _make_reconciler(host, clock) if with_reconciler else None
    repository = RosterRepository(
        store or InMemorySettingsStore(),
        PLUGIN,
        KEY,
        canonicalize=reconciler.repository.canonical_id if reconciler else None,
    )
    return MyDayService(repository, reconciler, reset_hour=5, clock=clock)


async def _stored(store: InMemorySettingsStore) -> dict:
    return json.loads(await store.get_data(PLUGIN, KEY))


class FlakySettingsStore(InMemorySettingsStore):
    """Settings store whose next ``failing_reads`` reads raise."""

    def __init__(self) -> None:
        super().__init__()
        self.failing_reads = 0

    async def get_data(self, plugin: str, key: str) -> str | None:
        if self.failing_reads > 0:
            self.failing_reads -= 1
            raise PersistenceError("settings unavailable")
        return await super().get_data(plugin, key)


# ---------------------------------------------------------------------------
# Add / remove with mirrors
# ---------------------------------------------------------------------------


class TestAddTask:
    @pytest.mark.asyncio
    async def test_add_mirrors_into_journal(self, host, clock, journal_id):
        store = InMemorySettingsStore()
        service = _make_service(host, clock, store)

        outcome = await service.add_task(10)

        assert outcome.added is True
        assert outcome.synced is True
        assert host.children_of(journal_id) == [outcome.mirror_block_id]
        entry = outcome.state.find(10)
        assert entry.mirror_block_id == outcome.mirror_block_id
        assert outcome.state.journal_section_id == journal_id

        doc = await _stored(store)
        assert doc["tasks"][0]["mirrorBlockId"] == outcome.mirror_block_id
        assert doc["journalSectionId"] == journal_id

    @pytest.mark.asyncio
    async def test_add_is_idempotent(self, host, clock, journal_id):
        service = _make_service(host, clock)
        first = await service.add_task(10)
        second = await service.add_task(10)

        assert second.added is False
        assert second.mirror_block_id == first.mirror_block_id
        assert len(second.state.tasks) == 1
        assert host.children_of(journal_id) == [first.mirror_block_id]
        assert host.count_calls("insert_block") == 1

    @pytest.mark.asyncio
    async def test_mirror_id_folds_into_task_id(self, host, clock):
        service = _make_service(host, clock)
        first = await service.add_task(10)
        second = await service.add_task(first.mirror_block_id)

        assert second.added is False
        assert second.state.task_ids == [10]

    @pytest.mark.asyncio
    async def test_invalid_task_id_raises(self, host, clock):
        service = _make_service(host, clock)
        with pytest.raises(InvalidTaskIdError):
            await service.add_task(0)
        assert host.count_calls("insert_block") == 0

    @pytest.mark.asyncio
    async def test_journal_failure_keeps_roster_entry(self, host, clock):
        host.fail_next("resolve_journal_for_date", 1)
        service = _make_service(host, clock)

        outcome = await service.add_task(10)

        assert outcome.added is True
        assert outcome.synced is False
        assert outcome.mirror_block_id is None
        assert outcome.state.task_ids == [10]

    @pytest.mark.asyncio
    async def test_without_reconciler_nothing_is_mirrored(self, host, clock, journal_id):
        service = _make_service(host, clock, with_reconciler=False)
        outcome = await service.add_task(10, 4)

        assert outcome.added is True
        assert outcome.synced is False
        assert outcome.state.find(10).source_block_id == 4
        assert host.children_of(journal_id) == []


class TestRemoveTask:
    @pytest.mark.asyncio
    async def test_remove_deletes_mirror(self, host, clock, journal_id):
        service = _make_service(host, clock)
        added = await service.add_task(10)

        state = await service.remove_task(10)

        assert state.tasks == ()
        assert not host.exists(added.mirror_block_id)
        assert host.children_of(journal_id) == []

    @pytest.mark.asyncio
    async def test_remove_leaves_unmarked_block_alone(self, host, clock):
        service = _make_service(host, clock, with_reconciler=False)
        await service.add_task(10)
        plain_id = host.add_block(text="unrelated")
        await service.run_mutation(
            lambda state: state.model_copy(
                update={"tasks": (state.tasks[0].model_copy(update={"mirror_block_id": plain_id}),)}
            )
        )

        service.reconciler = _make_reconciler(host, clock)
        await service.remove_task(10)

        assert host.exists(plain_id)

    @pytest.mark.asyncio
    async def test_prune_missing_removes_entries_and_mirrors(self, host, clock, journal_id):
        host.add_block(text="Call bank", block_id=11)
        service = _make_service(host, clock)
        await service.add_task(10)
        second = await service.add_task(11)

        state = await service.prune_missing([10])

        assert state.task_ids == [10]
        assert not host.exists(second.mirror_block_id)
        assert len(host.children_of(journal_id)) == 1


# ---------------------------------------------------------------------------
# Schedule and display
# ---------------------------------------------------------------------------


class TestScheduling:
    @pytest.mark.asyncio
    async def test_schedule_and_clear(self, host, clock):
        service = _make_service(host, clock, with_reconciler=False)
        await service.add_task(10)

        state = await service.schedule_task(10, 1380, 60)
        entry = state.find(10)
        assert (entry.schedule_start, entry.schedule_end) == (1380, 60)

        state = await service.clear_schedule(10)
        assert state.find(10).is_scheduled is False

    @pytest.mark.asyncio
    async def test_unchanged_mutation_skips_write(self, host, clock):
        store = InMemorySettingsStore()
        service = _make_service(host, clock, store, with_reconciler=False)
        await service.add_task(10)
        await service.schedule_task(10, 540, 600)
        writes = store.writes

        await service.schedule_task(10, 540, 600)
        await service.set_display_mode("list")
        await service.run_mutation(lambda state: None)

        assert store.writes == writes

    @pytest.mark.asyncio
    async def test_async_mutation(self, host, clock):
        service = _make_service(host, clock, with_reconciler=False)

        async def to_schedule(state):
            return state.model_copy(update={"display_mode": DisplayMode.SCHEDULE})

        state = await service.run_mutation(to_schedule)
        assert state.display_mode is DisplayMode.SCHEDULE

    @pytest.mark.asyncio
    async def test_lanes(self, host, clock):
        service = _make_service(host, clock, with_reconciler=False)
        for task_id in (10, 11, 12):
            await service.add_task(task_id)
        await service.schedule_task(10, 0, 60)
        await service.schedule_task(11, 30, 90)
        await service.schedule_task(12, 100, 130)

        lanes = await service.lanes()

        assert lanes[10] == LaneLayout(0, 2)
        assert lanes[11] == LaneLayout(1, 2)
        assert lanes[12] == LaneLayout(0, 1)


# ---------------------------------------------------------------------------
# Journal sync
# ---------------------------------------------------------------------------


class TestSyncJournal:
    @pytest.mark.asyncio
    async def test_empty_roster_is_skipped(self, host, clock):
        outcome = await _make_service(host, clock).sync_journal()
        assert outcome.skipped is True

    @pytest.mark.asyncio
    async def test_sync_recreates_missing_mirrors_once_per_signature(self, host, clock, journal_id):
        host.add_block(text="Call bank", block_id=11)
        service = _make_service(host, clock)
        await service.add_task(10)
        await service.add_task(11)
        await host.delete_blocks(host.children_of(journal_id))

        outcome = await service.sync_journal()

        assert outcome.skipped is False
        assert set(outcome.mirrored) == {10, 11}
        assert all(mirror_id is not None for mirror_id in outcome.mirrored.values())
        assert len(host.children_of(journal_id)) == 2
        assert outcome.state.find(11).mirror_block_id == outcome.mirrored[11]

        again = await service.sync_journal()
        assert again.skipped is True

        forced = await service.sync_journal(force=True)
        assert forced.skipped is False
        assert forced.mirrored == outcome.mirrored
        assert len(host.children_of(journal_id)) == 2

    @pytest.mark.asyncio
    async def test_sync_tags_entries(self, host, clock, journal_id):
        service = _make_service(host, clock)
        await service.add_task(10)
        await service.sync_journal(force=True)

        (mirror_id,) = host.children_of(journal_id)
        assert host.snapshot(mirror_id).property_value(TASK_ID_MARKER) == 10

    def test_sync_signature_ignores_order(self):
        state = roster_store.create_default_state("2025-07-15", now_ms=0)
        a = roster_store.add_task(roster_store.add_task(state, 11).state, 10).state
        b = roster_store.add_task(roster_store.add_task(state, 10).state, 11).state
        assert sync_signature(a) == sync_signature(b) == "2025-07-15:10,11"


# ---------------------------------------------------------------------------
# Day rollover
# ---------------------------------------------------------------------------


class TestRollover:
    @pytest.mark.asyncio
    async def test_first_check_only_loads(self, host, clock):
        service = _make_service(host, clock)
        assert await service.refresh_if_rolled_over() is False
        assert service.state.day_key == "2025-07-15"

    @pytest.mark.asyncio
    async def test_rollover_reloads_empty_roster(self, host, clock):
        service = _make_service(host, clock)
        await service.add_task(10)
        assert await service.refresh_if_rolled_over() is False

        clock.set(NEXT_MORNING)

        assert await service.refresh_if_rolled_over() is True
        assert service.state.day_key == "2025-07-16"
        assert service.state.tasks == ()
        assert service.state.journal_section_id is None

    @pytest.mark.asyncio
    async def test_rollover_waits_for_reset_hour(self, host, clock):
        service = _make_service(host, clock, with_reconciler=False)
        await service.add_task(10)

        clock.advance(timedelta(hours=16))
        assert await service.refresh_if_rolled_over() is False
        assert service.state.task_ids == [10]

        clock.advance(timedelta(hours=1))
        assert await service.refresh_if_rolled_over() is True
        assert service.state.day_key == "2025-07-16"

    @pytest.mark.asyncio
    async def test_watch_rollover_until_stopped(self, host, clock):
        service = _make_service(host, clock, with_reconciler=False)
        await service.add_task(10)
        clock.set(NEXT_MORNING)

        stop = asyncio.Event()
        watcher = asyncio.create_task(service.watch_rollover(stop, interval_seconds=0.01))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(watcher, timeout=1)

        assert service.state.day_key == "2025-07-16"

    @pytest.mark.asyncio
    async def test_watch_rollover_survives_failed_check(self, host, clock):
        store = FlakySettingsStore()
        service = _make_service(host, clock, store, with_reconciler=False)
        await service.add_task(10)
        clock.set(NEXT_MORNING)
        store.failing_reads = 1

        stop = asyncio.Event()
        watcher = asyncio.create_task(service.watch_rollover(stop, interval_seconds=0.01))
        await asyncio.sleep(0.05)

        assert not watcher.done()
        stop.set()
        await asyncio.wait_for(watcher, timeout=1)

        assert store.failing_reads == 0
        assert service.state.day_key == "2025-07-16"
