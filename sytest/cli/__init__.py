"""Command line interface."""

from sytest.cli.main import cli, main

__all__ = ["cli", "main"]
