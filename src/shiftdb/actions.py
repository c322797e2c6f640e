"""Before/after hook actions.

Actions are configured as ordered lists (``before_all_migrations`` and
``after_all_migrations``) and run around the migration batch. Two kinds
exist:

``sql``
    A SQL file, relative to the migrations folder, executed in its own
    transaction against the run's target database. A bare string in the
    config is shorthand for this kind.

``command``
    A shell command. It receives ``SHIFTDB_DATABASE_URL``,
    ``SHIFTDB_DATABASE_NAME`` and ``SHIFTDB_SHADOW`` (``1``/``0``) in its
    environment. With ``shadow`` set, it only runs for the matching target.

The executor decides nothing about *whether* a phase runs; that is the
migrate command's call.
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Sequence
from typing import TYPE_CHECKING, Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from shiftdb.core.connection import DB_ERRORS, database_name, with_client
from shiftdb.core.errors import HookActionError
from shiftdb.core.logging import get_logger

if TYPE_CHECKING:
    from shiftdb.core.settings import ParsedSettings
    from shiftdb.core.target import Target

logger = get_logger(__name__)


class SqlAction(BaseModel):
    """Run a SQL file against the target database."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["sql"] = "sql"
    file: str

    def describe(self) -> str:
        return f"sql:{self.file}"


class CommandAction(BaseModel):
    """Run a shell command with the target's connection details in its environment."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["command"] = "command"
    command: str
    shadow: bool | None = None

    def describe(self) -> str:
        return f"command:{self.command}"


Action = Annotated[SqlAction | CommandAction, Field(discriminator="kind")]


def execute_actions(
    settings: ParsedSettings,
    target: Target,
    actions: Sequence[Action],
) -> None:
    """Run *actions* in order against *target*.

    An empty sequence is a no-op. The first failing action raises
    :class:`HookActionError` and the remaining actions do not run.
    """
    if not actions:
        return

    connection_string = target.connection_string(settings)
    for action in actions:
        if isinstance(action, CommandAction):
            if action.shadow is not None and action.shadow != target.is_shadow:
                logger.debug("action.skipped", action=action.describe(), target=target.value)
                continue
            _run_command(action, target, connection_string)
        else:
            _run_sql(action, settings, connection_string)


def _run_sql(action: SqlAction, settings: ParsedSettings, connection_string: str) -> None:
    path = settings.migrations_folder / action.file
    logger.info("action.started", action=action.describe())
    try:
        body = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise HookActionError(
            f"Cannot read SQL action file {path}: {e}", action=action.describe(), cause=e
        ) from e

    with with_client(connection_string, settings, bootstrap=False) as (conn, _context):
        conn.begin()
        try:
            conn.executescript(body)
            conn.commit()
        except DB_ERRORS as e:
            conn.rollback()
            raise HookActionError(
                f"SQL action {action.file} failed: {e}", action=action.describe(), cause=e
            ) from e


def _run_command(action: CommandAction, target: Target, connection_string: str) -> None:
    env = {
        **os.environ,
        "SHIFTDB_DATABASE_URL": connection_string,
        "SHIFTDB_DATABASE_NAME": database_name(connection_string),
        "SHIFTDB_SHADOW": "1" if target.is_shadow else "0",
    }
    logger.info("action.started", action=action.describe())
    try:
        completed = subprocess.run(action.command, shell=True, env=env, check=False)
    except OSError as e:
        raise HookActionError(
            f"Could not start command {action.command!r}: {e}",
            action=action.describe(),
            cause=e,
        ) from e
    if completed.returncode != 0:
        raise HookActionError(
            f"Command {action.command!r} exited with status {completed.returncode}",
            action=action.describe(),
        )
