"""
CLI Router: Centralized command registration.

Command modules expose a Typer app. The router lifts its commands onto the
root app and refuses to register a module or a command name twice.
"""

from __future__ import annotations

import typer


class CliRouter:
    """
    Centralized router for CLI command modules.

    Each command module owns its commands; the router only decides where
    they are mounted.
    """

    def __init__(self, root_app: typer.Typer) -> None:
        self.root_app = root_app
        self._registered: set[str] = set()

    def register_commands(self, name: str, command_group: typer.Typer) -> None:
        """
        Lift every command of ``command_group`` onto the root app.

        ``name`` identifies the module in the registry; the commands themselves
        keep their own names.
        """
        if name in self._registered:
            raise ValueError(f"Command group '{name}' is already registered")

        existing = {c.name for c in self.root_app.registered_commands}
        for command in command_group.registered_commands:
            if command.name in existing:
                raise ValueError(f"Command '{command.name}' is already registered")
            self.root_app.registered_commands.append(command)

        self._registered.add(name)


# Global router instance
_router: CliRouter | None = None


def get_router(root_app: typer.Typer) -> CliRouter:
    """Get or create the global CLI router instance."""
    global _router
    if _router is None:
        _router = CliRouter(root_app)
    return _router
