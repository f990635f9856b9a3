"""
Tests for the settings stores and the roster repository.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from myday.infra.exceptions import PersistenceError
from myday.runtime import roster_store
from myday.runtime.roster_persistence import (
    InMemorySettingsStore,
    JsonFileSettingsStore,
    RosterRepository,
    SettingsStore,
)

PLUGIN = "mlo-task"
KEY = "taskMyDay.v1"
NOON = datetime(2025, 7, 15, 12, 0, tzinfo=timezone.utc)
NEXT_MORNING = datetime(2025, 7, 16, 6, 0, tzinfo=timezone.utc)


def _make_repository(store: SettingsStore | None = None) -> RosterRepository:
    return RosterRepository(store or InMemorySettingsStore(), PLUGIN, KEY)


async def _stored_document(store: SettingsStore) -> dict:
    return json.loads(await store.get_data(PLUGIN, KEY))


# ---------------------------------------------------------------------------
# Settings stores
# ---------------------------------------------------------------------------


def test_stores_satisfy_protocol(tmp_path):
    assert isinstance(InMemorySettingsStore(), SettingsStore)
    assert isinstance(JsonFileSettingsStore(tmp_path / "settings.json"), SettingsStore)


class TestJsonFileSettingsStore:
    @pytest.mark.asyncio
    async def test_missing_file_reads_as_empty(self, tmp_path):
        store = JsonFileSettingsStore(tmp_path / "settings.json")
        assert await store.get_data(PLUGIN, KEY) is None

    @pytest.mark.asyncio
    async def test_values_are_scoped_by_plugin(self, tmp_path):
        path = tmp_path / "nested" / "settings.json"
        store = JsonFileSettingsStore(path)

        await store.set_data(PLUGIN, KEY, '{"a": 1}')
        await store.set_data("other-plugin", KEY, "x")

        assert await store.get_data(PLUGIN, KEY) == '{"a": 1}'
        assert await store.get_data("other-plugin", KEY) == "x"
        assert json.loads(path.read_text(encoding="utf-8")) == {
            f"{PLUGIN}/{KEY}": '{"a": 1}',
            f"other-plugin/{KEY}": "x",
        }

    @pytest.mark.asyncio
    async def test_no_temp_files_are_left_behind(self, tmp_path):
        store = JsonFileSettingsStore(tmp_path / "settings.json")
        await store.set_data(PLUGIN, KEY, "one")
        await store.set_data(PLUGIN, KEY, "two")

        assert [p.name for p in tmp_path.iterdir()] == ["settings.json"]
        assert await store.get_data(PLUGIN, KEY) == "two"

    @pytest.mark.asyncio
    async def test_non_string_slot_reads_as_missing(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({f"{PLUGIN}/{KEY}": {"not": "a string"}}), encoding="utf-8")
        assert await JsonFileSettingsStore(path).get_data(PLUGIN, KEY) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
    async def test_unreadable_file_raises(self, tmp_path, content):
        path = tmp_path / "settings.json"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(PersistenceError):
            await JsonFileSettingsStore(path).get_data(PLUGIN, KEY)


# ---------------------------------------------------------------------------
# Roster repository
# ---------------------------------------------------------------------------


class TestRosterRepository:
    @pytest.mark.asyncio
    async def test_first_load_creates_and_persists_default(self):
        store = InMemorySettingsStore()
        state = await _make_repository(store).load(NOON, 5)

        assert state.day_key == "2025-07-15"
        assert state.tasks == ()
        assert store.writes == 1
        assert (await _stored_document(store))["dayKey"] == "2025-07-15"

    @pytest.mark.asyncio
    async def test_clean_load_does_not_write(self):
        store = InMemorySettingsStore()
        repository = _make_repository(store)
        first = await repository.load(NOON, 5)
        second = await repository.load(NOON, 5)

        assert second == first
        assert store.writes == 1

    @pytest.mark.asyncio
    async def test_save_then_load_round_trip(self):
        store = InMemorySettingsStore()
        repository = _make_repository(store)
        state = await repository.load(NOON, 5)
        state = roster_store.add_task(state, 10, now_ms=1).state
        state = roster_store.reschedule_task(state, 10, 540, 600, now_ms=2)

        saved = await repository.save(state)
        loaded = await repository.load(NOON, 5)

        assert saved == state
        assert loaded == state
        assert store.writes == 2

    @pytest.mark.asyncio
    async def test_corrupt_document_is_replaced(self):
        store = InMemorySettingsStore({(PLUGIN, KEY): "{truncated"})
        state = await _make_repository(store).load(NOON, 5)

        assert state.tasks == ()
        assert store.writes == 1
        assert (await _stored_document(store))["tasks"] == []

    @pytest.mark.asyncio
    async def test_number_too_long_to_parse_is_replaced(self):
        document = '{"dayKey": "2025-07-15", "updatedAt": ' + "9" * 5000 + "}"
        store = InMemorySettingsStore({(PLUGIN, KEY): document})
        state = await _make_repository(store).load(NOON, 5)

        assert state.day_key == "2025-07-15"
        assert state.tasks == ()
        assert store.writes == 1

    @pytest.mark.asyncio
    async def test_load_after_reset_hour_rolls_over(self):
        store = InMemorySettingsStore()
        repository = _make_repository(store)
        state = await repository.load(NOON, 5)
        await repository.save(roster_store.add_task(state, 10, now_ms=1).state)

        rolled = await repository.load(NEXT_MORNING, 5)

        assert rolled.day_key == "2025-07-16"
        assert rolled.tasks == ()
        assert (await _stored_document(store))["dayKey"] == "2025-07-16"

    @pytest.mark.asyncio
    async def test_before_reset_hour_keeps_previous_day(self):
        store = InMemorySettingsStore()
        repository = _make_repository(store)
        state = await repository.load(NOON, 5)
        await repository.save(roster_store.add_task(state, 10, now_ms=1).state)

        early = await repository.load(datetime(2025, 7, 16, 4, 0, tzinfo=timezone.utc), 5)

        assert early.day_key == "2025-07-15"
        assert early.task_ids == [10]

    @pytest.mark.asyncio
    async def test_file_store_round_trip(self, tmp_path):
        repository = _make_repository(JsonFileSettingsStore(tmp_path / "settings.json"))
        state = await repository.load(NOON, 5)
        await repository.save(roster_store.add_task(state, 10, now_ms=1).state)

        reopened = _make_repository(JsonFileSettingsStore(tmp_path / "settings.json"))
        assert (await reopened.load(NOON, 5)).task_ids == [10]
