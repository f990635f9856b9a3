"""
Roster commands: inspect and edit the persisted My Day roster.

Examples:
    myday show
    myday add 4211 --source 98
    myday schedule 4211 --start 09:30 --end 10:15
    myday lanes --json
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import Any, NoReturn

import typer

from ...infra.exceptions import MyDayError
from ...infra.settings import settings
from ...runtime.clock import SystemClock
from ...runtime.day_key import normalize_reset_hour, resolve_day_key
from ...runtime.my_day_service import MyDayService
from ...runtime.roster_persistence import JsonFileSettingsStore, RosterRepository
from ...runtime.roster_types import RosterState, TaskEntry
from ...runtime.time_range import format_clock_time, parse_clock_time
from ...shared.ids import coerce_block_id
from ...shared.types import DisplayMode

app = typer.Typer(name="roster", help="My Day roster operations")


def _build_service(ctx: typer.Context) -> MyDayService:
    obj = ctx.find_root().obj or {}
    data_file: Path = obj.get("data_file") or settings.data_file
    repository = RosterRepository(
        JsonFileSettingsStore(data_file),
        settings.plugin_name,
        settings.data_key,
    )
    return MyDayService(repository, reset_hour=settings.reset_hour, clock=SystemClock())


async def _load_then(service: MyDayService, action: Callable[[MyDayService], Awaitable[Any]]) -> tuple[Any, Any]:
    """Load the roster, then run ``action``; returns (loaded state, action result)."""
    loaded = await service.load()
    return loaded, await action(service)


def _parse_task_id(raw: str) -> int:
    text = raw.strip()
    block_id = coerce_block_id(int(text)) if text.isascii() and text.isdigit() else None
    if block_id is None:
        raise ValueError(f"Invalid task id: {raw!r}")
    return block_id


def _fail(message: str, json_output: bool, code: str = "VALIDATION_ERROR") -> NoReturn:
    if json_output:
        typer.echo(json.dumps({"status": "error", "code": code, "message": message}, indent=2))
    else:
        typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(1)


def _emit_ok(json_output: bool, payload: dict[str, Any], message: str) -> None:
    if json_output:
        typer.echo(json.dumps({"status": "ok", **payload}, indent=2))
    else:
        typer.echo(message)


def _schedule_text(entry: TaskEntry) -> str:
    if not entry.is_scheduled:
        return "-"
    return f"{format_clock_time(entry.schedule_start)}-{format_clock_time(entry.schedule_end)}"


def _print_state(state: RosterState) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    table = Table(title=f"My Day {state.day_key} ({state.display_mode.value})")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Task", style="green")
    table.add_column("Schedule", style="yellow")
    table.add_column("Mirror", style="magenta")
    for entry in state.tasks:
        table.add_row(
            str(entry.order),
            str(entry.task_id),
            _schedule_text(entry),
            str(entry.mirror_block_id) if entry.mirror_block_id is not None else "-",
        )
    console.print(table)


@app.command("day-key")
def day_key(
    at: str | None = typer.Option(None, "--at", help="ISO timestamp (default: now, local time)"),
    reset_hour: int | None = typer.Option(None, "--reset-hour", help="Hour the day starts (0-23)"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Print the day key for a moment in time."""
    try:
        moment = datetime.fromisoformat(at) if at else SystemClock().now()
    except ValueError:
        _fail(f"Invalid timestamp: {at!r}", json_output)
    hour = normalize_reset_hour(settings.reset_hour if reset_hour is None else reset_hour)
    key = resolve_day_key(moment, hour)
    _emit_ok(json_output, {"day_key": key, "reset_hour": hour}, key)


@app.command("show")
def show(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Show today's roster."""
    try:
        state = asyncio.run(_build_service(ctx).load())
    except MyDayError as e:
        _fail(str(e), json_output, code="PERSISTENCE_ERROR")

    if json_output:
        typer.echo(json.dumps({"status": "ok", "state": state.to_document()}, indent=2))
    elif not state.tasks:
        typer.echo(f"My Day {state.day_key}: no tasks")
    else:
        _print_state(state)


@app.command("add")
def add(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task block id"),
    source: str | None = typer.Option(None, "--source", help="Block the task was added from"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Add a task to My Day (no-op if it is already there)."""
    try:
        parsed_id = _parse_task_id(task_id)
        source_id = _parse_task_id(source) if source is not None else None
        outcome = asyncio.run(_build_service(ctx).add_task(parsed_id, source_id))
    except ValueError as e:
        _fail(str(e), json_output)
    except MyDayError as e:
        _fail(str(e), json_output, code="PERSISTENCE_ERROR")

    message = f"Added task {parsed_id}" if outcome.added else f"Task {parsed_id} is already in My Day"
    _emit_ok(json_output, {"added": outcome.added, "state": outcome.state.to_document()}, message)


@app.command("remove")
def remove(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task block id"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Remove a task from My Day."""
    try:
        parsed_id = _parse_task_id(task_id)
        before, state = asyncio.run(_load_then(_build_service(ctx), lambda s: s.remove_task(parsed_id)))
    except ValueError as e:
        _fail(str(e), json_output)
    except MyDayError as e:
        _fail(str(e), json_output, code="PERSISTENCE_ERROR")

    removed = state is not before
    message = f"Removed task {parsed_id}" if removed else f"Task {parsed_id} is not in My Day"
    _emit_ok(json_output, {"removed": removed, "state": state.to_document()}, message)


def _require_entry(state: RosterState, task_id: int, json_output: bool) -> TaskEntry:
    entry = state.find(task_id)
    if entry is None:
        _fail(f"Task {task_id} is not in My Day", json_output, code="TASK_NOT_FOUND")
    return entry


@app.command("schedule")
def schedule(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task block id"),
    start: str = typer.Option(..., "--start", help="Start time in HH:MM format"),
    end: str = typer.Option(..., "--end", help="End time in HH:MM format (may be past midnight)"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Give a task a time range.

    Durations are kept between 15 minutes and 12 hours; anything else falls
    back to one hour from the start.
    """
    try:
        parsed_id = _parse_task_id(task_id)
        start_minute = parse_clock_time(start)
        end_minute = parse_clock_time(end)
        _, state = asyncio.run(
            _load_then(_build_service(ctx), lambda s: s.schedule_task(parsed_id, start_minute, end_minute))
        )
    except ValueError as e:
        _fail(str(e), json_output, code="INVALID_TIME_FORMAT" if "time format" in str(e) else "VALIDATION_ERROR")
    except MyDayError as e:
        _fail(str(e), json_output, code="PERSISTENCE_ERROR")

    entry = _require_entry(state, parsed_id, json_output)
    _emit_ok(
        json_output,
        {"task": entry.model_dump(mode="json", by_alias=True)},
        f"Task {parsed_id} scheduled {_schedule_text(entry)}",
    )


@app.command("unschedule")
def unschedule(
    ctx: typer.Context,
    task_id: str = typer.Argument(..., help="Task block id"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Clear a task's time range."""
    try:
        parsed_id = _parse_task_id(task_id)
        _, state = asyncio.run(_load_then(_build_service(ctx), lambda s: s.clear_schedule(parsed_id)))
    except ValueError as e:
        _fail(str(e), json_output)
    except MyDayError as e:
        _fail(str(e), json_output, code="PERSISTENCE_ERROR")

    entry = _require_entry(state, parsed_id, json_output)
    _emit_ok(json_output, {"task": entry.model_dump(mode="json", by_alias=True)}, f"Task {parsed_id} unscheduled")


@app.command("mode")
def mode(
    ctx: typer.Context,
    display_mode: str = typer.Argument(..., help="list or schedule"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Switch between list and schedule display."""
    allowed = [m.value for m in DisplayMode]
    if display_mode not in allowed:
        _fail(f"Invalid display mode {display_mode!r}; expected one of {', '.join(allowed)}", json_output)
    try:
        state = asyncio.run(_build_service(ctx).set_display_mode(display_mode))
    except MyDayError as e:
        _fail(str(e), json_output, code="PERSISTENCE_ERROR")

    _emit_ok(json_output, {"display_mode": state.display_mode.value}, f"Display mode: {state.display_mode.value}")


@app.command("prune")
def prune(
    ctx: typer.Context,
    keep: str = typer.Option(..., "--keep", help="Comma-separated ids of tasks that still exist"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Remove every task not listed in --keep."""
    try:
        valid = [_parse_task_id(part) for part in keep.split(",") if part.strip()]
        before, state = asyncio.run(_load_then(_build_service(ctx), lambda s: s.prune_missing(valid)))
    except ValueError as e:
        _fail(str(e), json_output)
    except MyDayError as e:
        _fail(str(e), json_output, code="PERSISTENCE_ERROR")

    removed = [i for i in before.task_ids if i not in set(state.task_ids)]
    _emit_ok(json_output, {"removed": removed, "state": state.to_document()}, f"Pruned {len(removed)} task(s)")


@app.command("lanes")
def lanes(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Show the lane layout of scheduled tasks."""
    try:
        state, layout = asyncio.run(_load_then(_build_service(ctx), lambda s: s.lanes()))
    except MyDayError as e:
        _fail(str(e), json_output, code="PERSISTENCE_ERROR")

    rows = []
    for entry in state.tasks:
        lane = layout.get(entry.task_id)
        if lane is None:
            continue
        rows.append(
            {
                "taskId": entry.task_id,
                "schedule": _schedule_text(entry),
                "laneIndex": lane.lane_index,
                "laneCount": lane.lane_count,
            }
        )
    rows.sort(key=lambda r: (r["schedule"], r["taskId"]))

    if json_output:
        typer.echo(json.dumps({"status": "ok", "lanes": rows}, indent=2))
        return
    if not rows:
        typer.echo("No scheduled tasks")
        return

    from rich.console import Console
    from rich.table import Table

    console = Console()
    table = Table(title=f"Lanes {state.day_key}")
    table.add_column("Task", style="green")
    table.add_column("Schedule", style="yellow")
    table.add_column("Lane", style="cyan", justify="right")
    for row in rows:
        table.add_row(str(row["taskId"]), row["schedule"], f"{row['laneIndex'] + 1}/{row['laneCount']}")
    console.print(table)
