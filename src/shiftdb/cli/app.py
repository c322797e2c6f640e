"""
Root Typer application for the shiftdb CLI.
"""

from __future__ import annotations

from pathlib import Path

import typer
from typer import Typer

from shiftdb.cli.utils import fail, get_settings, output_dict
from shiftdb.core.errors import ShiftError

app = Typer(
    name="shiftdb",
    help="shiftdb: forward-only SQL migrations with hooks and a shadow database.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from shiftdb import __version__

        typer.echo(f"shiftdb {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Apply committed migrations and inspect their status."""


# ── Commands ─────────────────────────────────────────────────────────────


ConfigOption = typer.Option(None, "--config", "-c", help="Path to shiftdb.toml")


@app.command("migrate")
def migrate_command(
    shadow: bool = typer.Option(
        False, "--shadow", help="Apply migrations to the shadow DB (for development)."
    ),
    force_actions: bool = typer.Option(
        False,
        "--force-actions",
        "--forceActions",
        help="Run before_all_migrations and after_all_migrations actions even if no migration was necessary.",
    ),
    config: Path | None = ConfigOption,
) -> None:
    """Runs any un-executed committed migrations. For use in production and development."""
    from shiftdb.commands.migrate import migrate

    settings = get_settings(config)
    try:
        migrate(settings, shadow=shadow, force_actions=force_actions)
    except ShiftError as e:
        fail(e)


@app.command("status")
def status_command(
    shadow: bool = typer.Option(False, "--shadow", help="Inspect the shadow DB."),
    config: Path | None = ConfigOption,
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show the last committed migration and the pending ones."""
    from shiftdb.commands.status import status

    settings = get_settings(config)
    try:
        report = status(settings, shadow=shadow)
    except ShiftError as e:
        fail(e)
    output_dict(report, as_json=json_out, title="Migration Status")
