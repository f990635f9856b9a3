"""
Main CLI application using Typer with router-based command dispatch.

The roster commands operate on the file-backed settings store named by
``MYDAY_DATA_FILE`` (or ``--data-file``). There is no host here, so the
journal mirror is not touched.
"""

from __future__ import annotations

from pathlib import Path

import typer

from myday.infra.logging import configure_logging

from .commands import roster
from .router import get_router

app = typer.Typer(help="My Day roster operator CLI")

router = get_router(app)
router.register_commands("roster", roster.app)


@app.callback()
def main(
    ctx: typer.Context,
    data_file: Path | None = typer.Option(
        None, "--data-file", help="Settings file holding the roster (default: MYDAY_DATA_FILE)"
    ),
):
    """My Day - a day-scoped task roster."""
    configure_logging()
    ctx.ensure_object(dict)
    ctx.obj["data_file"] = data_file


def cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
