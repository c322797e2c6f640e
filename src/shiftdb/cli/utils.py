"""
CLI utility helpers: settings bootstrap and output formatting.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from shiftdb.core.errors import ShiftError
from shiftdb.core.logging import clear_context, configure_logging, get_logger
from shiftdb.core.settings import ShiftSettings, load_settings

console = Console()
err_console = Console(stderr=True)

logger = get_logger(__name__)


# ── Settings helper ──────────────────────────────────────────────────────


def get_settings(config_file: Path | None) -> ShiftSettings:
    """Load settings for a command and configure logging from them."""
    # Each invocation starts without bindings left by a previous one
    clear_context()
    try:
        settings = load_settings(config_file)
    except ShiftError as e:
        fail(e)
    json_format = {"json": True, "console": False}.get(settings.log_format.lower())
    configure_logging(level=settings.log_level, json_format=json_format)
    return settings


# ── Output helpers ───────────────────────────────────────────────────────


def fail(error: ShiftError) -> None:
    """Log a ``ShiftError``, print it to stderr and exit with status 1."""
    logger.error("command.failed", **error.to_dict())
    err_console.print(
        f"[bold red]Error[/bold red] ({error.category.value}): {error.message}",
        markup=True,
        highlight=False,
    )
    raise typer.Exit(code=1)


def output_dict(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a dataclass as JSON or as key-value lines."""
    payload = asdict(data) if hasattr(data, "__dataclass_fields__") else dict(data)
    if as_json:
        console.print_json(json.dumps(payload, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in payload.items():
        if isinstance(v, list):
            v = ", ".join(str(item) for item in v) or "-"
        console.print(f"  [cyan]{k}[/cyan]: {v}")
