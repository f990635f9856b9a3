"""
Roster persistence: the plugin-scoped settings store and the roster repository.

The host exposes a string key/value store scoped by plugin name. The roster is
one JSON document under a fixed key. Loading always normalizes against the
live day key and writes back when normalization had to repair anything.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from myday.infra.exceptions import PersistenceError
from myday.infra.logging import get_logger
from myday.runtime.clock import epoch_ms
from myday.runtime.day_key import resolve_day_key
from myday.runtime.roster_store import Canonicalize, normalize_roster
from myday.runtime.roster_types import RosterState

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Settings store
# ---------------------------------------------------------------------------


@runtime_checkable
class SettingsStore(Protocol):
    """Plugin-scoped string key/value store."""

    async def get_data(self, plugin: str, key: str) -> str | None: ...

    async def set_data(self, plugin: str, key: str, value: str) -> None: ...


class InMemorySettingsStore:
    """Dict-backed settings store used in tests and as a default."""

    def __init__(self, initial: dict[tuple[str, str], str] | None = None) -> None:
        self._data: dict[tuple[str, str], str] = dict(initial or {})
        self.writes = 0

    async def get_data(self, plugin: str, key: str) -> str | None:
        return self._data.get((plugin, key))

    async def set_data(self, plugin: str, key: str, value: str) -> None:
        self._data[(plugin, key)] = value
        self.writes += 1


class JsonFileSettingsStore:
    """Settings store backed by one JSON file of ``"plugin/key" -> string``.

    Writes go to a temp file in the same directory and are moved into place,
    so a crash never leaves a half-written file.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    @staticmethod
    def _slot(plugin: str, key: str) -> str:
        return f"{plugin}/{key}"

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Cannot read settings file {self.path}: {e}") from e
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except ValueError as e:
            raise PersistenceError(f"Settings file {self.path} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Settings file {self.path} must contain a JSON object")
        return data

    async def get_data(self, plugin: str, key: str) -> str | None:
        value = self._read_all().get(self._slot(plugin, key))
        return value if isinstance(value, str) else None

    async def set_data(self, plugin: str, key: str, value: str) -> None:
        data = self._read_all()
        data[self._slot(plugin, key)] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".settings-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle, indent=2, sort_keys=True)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise PersistenceError(f"Cannot write settings file {self.path}: {e}") from e


# ---------------------------------------------------------------------------
# Roster repository
# ---------------------------------------------------------------------------


class RosterRepository:
    """Loads and saves the roster document through a SettingsStore."""

    def __init__(
        self,
        store: SettingsStore,
        plugin_name: str,
        data_key: str,
        *,
        canonicalize: Canonicalize | None = None,
    ) -> None:
        self.store = store
        self.plugin_name = plugin_name
        self.data_key = data_key
        self.canonicalize = canonicalize

    async def _read_raw(self) -> Any:
        raw = await self.store.get_data(self.plugin_name, self.data_key)
        if raw is None or not raw.strip():
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.error(
                "roster_parse_failed",
                plugin=self.plugin_name,
                key=self.data_key,
                exc_info=True,
            )
            return None

    async def _write(self, state: RosterState) -> None:
        await self.store.set_data(
            self.plugin_name,
            self.data_key,
            state.model_dump_json(by_alias=True),
        )

    async def load(self, now: datetime, reset_hour: Any) -> RosterState:
        """Load the roster for the day key live at ``now``.

        Missing or corrupt data yields a fresh state. The normalized state is
        written back whenever normalization changed anything, including the
        day-rollover reset.
        """
        day_key = resolve_day_key(now, reset_hour)
        raw = await self._read_raw()
        result = normalize_roster(
            raw,
            day_key,
            now_ms=epoch_ms(now),
            canonicalize=self.canonicalize,
        )
        if result.changed:
            logger.debug("roster_repaired", day_key=day_key, tasks=len(result.state.tasks))
            await self._write(result.state)
        return result.state

    async def save(self, state: RosterState) -> RosterState:
        """Normalize against the state's own day key and persist unconditionally."""
        normalized = normalize_roster(
            state.to_document(),
            state.day_key,
            now_ms=state.updated_at,
            canonicalize=self.canonicalize,
        ).state
        await self._write(normalized)
        return normalized
