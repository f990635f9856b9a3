"""
CLI test utilities for My Day contract tests.

Provides helper functions for testing CLI commands using Typer's CliRunner.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any


def run_cli(args: list[str], data_file: Path) -> tuple[int, str]:
    """
    Run the My Day CLI against ``data_file``.

    Args:
        args: Command line arguments after the global options (e.g., ['show', '--json'])
        data_file: Settings file the roster is persisted in

    Returns:
        Tuple of (exit_code, stdout)
    """
    from typer.testing import CliRunner

    from myday.cli.main import app

    runner = CliRunner()
    result = runner.invoke(app, ["--data-file", str(data_file), *args])
    return result.exit_code, result.stdout


def run_cli_json(args: list[str], data_file: Path) -> tuple[int, dict[str, Any]]:
    """Run a ``--json`` command and decode its payload."""
    exit_code, stdout = run_cli([*args, "--json"], data_file)
    return exit_code, json.loads(stdout)
