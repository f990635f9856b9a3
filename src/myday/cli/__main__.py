#!/usr/bin/env python3
"""
CLI entry point for myday.cli module.

This allows running: python -m myday.cli
"""

from .main import cli

if __name__ == "__main__":
    cli()
