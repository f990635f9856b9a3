"""
Roster store: pure transformations over RosterState.

Every operation takes a state and returns a new one; nothing is persisted
here. When an operation has nothing to do it returns the *same* state
object, so callers can use ``is`` to skip a redundant save.

Task identities pass through an optional ``canonicalize`` callable before
use. The service wires this to the host repository so a mirror block id
folds into the id of the task it mirrors.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterable
from typing import Any

from myday.infra.exceptions import InvalidTaskIdError
from myday.runtime.roster_types import (
    LEGACY_STATE_FIELDS,
    LEGACY_TASK_FIELDS,
    SCHEMA_VERSION,
    AddResult,
    NormalizeResult,
    PruneResult,
    RemoveResult,
    RosterState,
    TaskEntry,
)
from myday.runtime.time_range import coerce_minute, normalize_range
from myday.shared.ids import coerce_block_id
from myday.shared.types import BlockId, DisplayMode

Canonicalize = Callable[[BlockId], BlockId]


def _identity(block_id: BlockId) -> BlockId:
    return block_id


def _now_ms(now_ms: int | None) -> int:
    return now_ms if now_ms is not None else int(time.time() * 1000)


def _task_id(value: Any, canonicalize: Canonicalize | None) -> BlockId | None:
    block_id = coerce_block_id(value)
    if block_id is None:
        return None
    return coerce_block_id((canonicalize or _identity)(block_id))


def _non_negative_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return fallback
    if isinstance(value, float) and not math.isfinite(value):
        return fallback
    floored = math.floor(value)
    return fallback if floored < 0 else int(floored)


def _timestamp(value: Any) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return int(value)


def _resequence(entries: Iterable[TaskEntry]) -> tuple[TaskEntry, ...]:
    return tuple(
        entry if entry.order == index else entry.model_copy(update={"order": index})
        for index, entry in enumerate(entries)
    )


def _with_tasks(state: RosterState, tasks: Iterable[TaskEntry], now_ms: int | None) -> RosterState:
    return state.model_copy(update={"tasks": tuple(tasks), "updated_at": _now_ms(now_ms)})


# ---------------------------------------------------------------------------
# Load / normalize
# ---------------------------------------------------------------------------


def create_default_state(day_key: str, *, now_ms: int | None = None) -> RosterState:
    """Fresh, empty roster for ``day_key``."""
    return RosterState(
        schema_version=SCHEMA_VERSION,
        day_key=day_key,
        display_mode=DisplayMode.LIST,
        journal_section_id=None,
        tasks=(),
        updated_at=_now_ms(now_ms),
    )


def _upgrade_legacy_fields(raw: dict[str, Any], renames: dict[str, str]) -> dict[str, Any]:
    upgraded = dict(raw)
    for old, new in renames.items():
        if old in upgraded:
            value = upgraded.pop(old)
            upgraded.setdefault(new, value)
    return upgraded


def _normalize_entry(
    raw: Any,
    now_ms: int,
    canonicalize: Canonicalize | None,
) -> TaskEntry | None:
    if not isinstance(raw, dict):
        return None
    raw = _upgrade_legacy_fields(raw, LEGACY_TASK_FIELDS)

    task_id = _task_id(raw.get("taskId"), canonicalize)
    if task_id is None:
        return None

    start, end = normalize_range(
        coerce_minute(raw.get("scheduleStart")),
        coerce_minute(raw.get("scheduleEnd")),
    )
    added_at = _timestamp(raw.get("addedAt"))
    return TaskEntry(
        task_id=task_id,
        source_block_id=_task_id(raw.get("sourceBlockId"), canonicalize),
        added_at=added_at if added_at is not None else now_ms,
        schedule_start=start,
        schedule_end=end,
        order=_non_negative_int(raw.get("order"), 0),
        mirror_block_id=coerce_block_id(raw.get("mirrorBlockId")),
    )


def _normalize_tasks(
    raw: Any,
    now_ms: int,
    canonicalize: Canonicalize | None,
) -> tuple[TaskEntry, ...]:
    if not isinstance(raw, (list, tuple)):
        return ()

    entries: list[TaskEntry] = []
    seen: set[BlockId] = set()
    for item in raw:
        entry = _normalize_entry(item, now_ms, canonicalize)
        # Malformed entries and later duplicates are dropped
        if entry is None or entry.task_id in seen:
            continue
        seen.add(entry.task_id)
        entries.append(entry)

    entries.sort(key=lambda e: (e.order, e.added_at, e.task_id))
    return _resequence(entries)


def normalize_roster(
    raw: Any,
    current_day_key: str,
    *,
    now_ms: int | None = None,
    canonicalize: Canonicalize | None = None,
) -> NormalizeResult:
    """Rebuild a valid RosterState from untrusted persisted data.

    Args:
        raw: Decoded JSON (anything). Non-dicts fall back to a default state.
        current_day_key: The live day key. A stored state for any other day
            is reset: tasks and the journal section are cleared.
        now_ms: Timestamp used for repaired ``addedAt``/``updatedAt`` values.
        canonicalize: Maps task ids to their primary (non-mirrored) form.

    Returns:
        NormalizeResult whose ``changed`` is True when the normalized
        document differs from ``raw`` in any way, so the caller re-persists.
    """
    now = _now_ms(now_ms)
    if not isinstance(raw, dict):
        return NormalizeResult(create_default_state(current_day_key, now_ms=now), True)

    upgraded = _upgrade_legacy_fields(raw, LEGACY_STATE_FIELDS)

    stored_day_key = upgraded.get("dayKey")
    stored_day_key = stored_day_key.strip() if isinstance(stored_day_key, str) else ""
    updated_at = _timestamp(upgraded.get("updatedAt"))

    state = RosterState(
        schema_version=_non_negative_int(upgraded.get("schema"), SCHEMA_VERSION),
        day_key=stored_day_key or current_day_key,
        display_mode=DisplayMode.coerce(upgraded.get("displayMode")),
        journal_section_id=coerce_block_id(upgraded.get("journalSectionId")),
        tasks=_normalize_tasks(upgraded.get("tasks"), now, canonicalize),
        updated_at=updated_at if updated_at is not None else now,
    )

    if state.day_key != current_day_key:
        # Day rollover
        state = state.model_copy(
            update={
                "day_key": current_day_key,
                "journal_section_id": None,
                "tasks": (),
                "updated_at": now,
            }
        )

    return NormalizeResult(state, state.to_document() != raw)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def is_task_in_roster(state: RosterState, task_id: Any) -> bool:
    block_id = coerce_block_id(task_id)
    return block_id is not None and state.find(block_id) is not None


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def add_task(
    state: RosterState,
    task_id: Any,
    source_block_id: Any = None,
    *,
    now_ms: int | None = None,
    canonicalize: Canonicalize | None = None,
) -> AddResult:
    """Add a task at the end of the roster; idempotent per task id.

    Raises:
        InvalidTaskIdError: If ``task_id`` is not a valid block id.
    """
    normalized_id = _task_id(task_id, canonicalize)
    if normalized_id is None:
        raise InvalidTaskIdError(task_id)
    source_id = _task_id(source_block_id, canonicalize)

    existing = state.find(normalized_id)
    if existing is not None:
        if existing.source_block_id is not None or source_id is None:
            return AddResult(state, existing, added=False)
        updated = existing.model_copy(update={"source_block_id": source_id})
        tasks = [updated if e.task_id == normalized_id else e for e in state.tasks]
        return AddResult(_with_tasks(state, tasks, now_ms), updated, added=False)

    now = _now_ms(now_ms)
    next_order = max((e.order for e in state.tasks), default=-1) + 1
    entry = TaskEntry(
        task_id=normalized_id,
        source_block_id=source_id,
        added_at=now,
        order=next_order,
    )
    return AddResult(_with_tasks(state, [*state.tasks, entry], now), entry, added=True)


def remove_task(
    state: RosterState,
    task_id: Any,
    *,
    now_ms: int | None = None,
    canonicalize: Canonicalize | None = None,
) -> RemoveResult:
    """Remove a task and close the gap in ``order``."""
    normalized_id = _task_id(task_id, canonicalize)
    removed = state.find(normalized_id) if normalized_id is not None else None
    if removed is None:
        return RemoveResult(state, None, removed=False)

    remaining = _resequence(e for e in state.tasks if e.task_id != normalized_id)
    return RemoveResult(_with_tasks(state, remaining, now_ms), removed, removed=True)


def _update_entry(
    state: RosterState,
    task_id: Any,
    changes: dict[str, Any],
    now_ms: int | None,
    canonicalize: Canonicalize | None,
) -> RosterState:
    normalized_id = _task_id(task_id, canonicalize)
    if normalized_id is None:
        return state
    entry = state.find(normalized_id)
    if entry is None:
        return state
    if all(getattr(entry, key) == value for key, value in changes.items()):
        return state
    updated = entry.model_copy(update=changes)
    tasks = [updated if e.task_id == normalized_id else e for e in state.tasks]
    return _with_tasks(state, tasks, now_ms)


def reschedule_task(
    state: RosterState,
    task_id: Any,
    start: Any,
    end: Any,
    *,
    now_ms: int | None = None,
    canonicalize: Canonicalize | None = None,
) -> RosterState:
    """Set a task's schedule; an invalid range clears it."""
    normalized_start, normalized_end = normalize_range(start, end)
    return _update_entry(
        state,
        task_id,
        {"schedule_start": normalized_start, "schedule_end": normalized_end},
        now_ms,
        canonicalize,
    )


def set_mirror_block_id(
    state: RosterState,
    task_id: Any,
    mirror_block_id: Any,
    *,
    now_ms: int | None = None,
    canonicalize: Canonicalize | None = None,
) -> RosterState:
    return _update_entry(
        state,
        task_id,
        {"mirror_block_id": coerce_block_id(mirror_block_id)},
        now_ms,
        canonicalize,
    )


def set_journal_section_id(
    state: RosterState,
    journal_section_id: Any,
    *,
    now_ms: int | None = None,
) -> RosterState:
    section_id = coerce_block_id(journal_section_id)
    if state.journal_section_id == section_id:
        return state
    return state.model_copy(update={"journal_section_id": section_id, "updated_at": _now_ms(now_ms)})


def set_display_mode(
    state: RosterState,
    mode: Any,
    *,
    now_ms: int | None = None,
) -> RosterState:
    display_mode = DisplayMode.coerce(mode)
    if state.display_mode == display_mode:
        return state
    return state.model_copy(update={"display_mode": display_mode, "updated_at": _now_ms(now_ms)})


def prune_missing(
    state: RosterState,
    valid_task_ids: Iterable[Any],
    *,
    now_ms: int | None = None,
) -> PruneResult:
    """Drop entries whose task id is not in ``valid_task_ids``."""
    valid = {block_id for block_id in map(coerce_block_id, valid_task_ids) if block_id is not None}
    removed = [e for e in state.tasks if e.task_id not in valid]
    if not removed:
        return PruneResult(state, [])

    kept = _resequence(e for e in state.tasks if e.task_id in valid)
    return PruneResult(_with_tasks(state, kept, now_ms), removed)
