"""
Roster data model.

RosterState and TaskEntry are immutable pydantic models. Field names are
snake_case in Python and camelCase on the wire, matching the persisted blob:

    {schema, dayKey, displayMode, journalSectionId,
     tasks: [{taskId, sourceBlockId, addedAt, scheduleStart, scheduleEnd,
              order, mirrorBlockId}],
     updatedAt}

Instances are only ever built by roster_store, which does the defensive
coercion of untrusted input; the models themselves just hold valid data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from myday.shared.types import BlockId, DisplayMode

SCHEMA_VERSION = 1

# Field names written by earlier releases, mapped to their current names
LEGACY_STATE_FIELDS = {"journalSectionBlockId": "journalSectionId"}
LEGACY_TASK_FIELDS = {
    "scheduleStartMinute": "scheduleStart",
    "scheduleEndMinute": "scheduleEnd",
}


class TaskEntry(BaseModel):
    """One task in the roster."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    task_id: BlockId = Field(..., gt=0, alias="taskId")
    source_block_id: BlockId | None = Field(None, alias="sourceBlockId")
    added_at: int = Field(..., alias="addedAt", description="Epoch milliseconds")
    schedule_start: int | None = Field(None, ge=0, le=1440, alias="scheduleStart")
    schedule_end: int | None = Field(None, ge=0, le=1440, alias="scheduleEnd")
    order: int = Field(0, ge=0)
    mirror_block_id: BlockId | None = Field(None, alias="mirrorBlockId")

    @property
    def is_scheduled(self) -> bool:
        return self.schedule_start is not None and self.schedule_end is not None


class RosterState(BaseModel):
    """The live roster for one day key."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    schema_version: int = Field(SCHEMA_VERSION, ge=0, alias="schema")
    day_key: str = Field(..., alias="dayKey")
    display_mode: DisplayMode = Field(DisplayMode.LIST, alias="displayMode")
    journal_section_id: BlockId | None = Field(None, alias="journalSectionId")
    tasks: tuple[TaskEntry, ...] = ()
    updated_at: int = Field(..., alias="updatedAt", description="Epoch milliseconds")

    def to_document(self) -> dict[str, Any]:
        """JSON-compatible dict using the persisted (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)

    def find(self, task_id: BlockId) -> TaskEntry | None:
        for entry in self.tasks:
            if entry.task_id == task_id:
                return entry
        return None

    @property
    def task_ids(self) -> list[BlockId]:
        return [entry.task_id for entry in self.tasks]


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NormalizeResult:
    """A normalized state and whether anything had to be repaired."""
    state: RosterState
    changed: bool


@dataclass(frozen=True)
class AddResult:
    state: RosterState
    entry: TaskEntry
    added: bool


@dataclass(frozen=True)
class RemoveResult:
    state: RosterState
    removed_entry: TaskEntry | None
    removed: bool


@dataclass(frozen=True)
class PruneResult:
    state: RosterState
    removed_entries: list[TaskEntry] = field(default_factory=list)
