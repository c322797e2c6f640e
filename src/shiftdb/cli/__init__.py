"""shiftdb command-line interface (``shiftdb`` entry point)."""

from shiftdb.cli.app import app

__all__ = ["app"]
