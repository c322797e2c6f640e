"""``shiftdb migrate``: apply every committed migration not yet applied.

One run walks a fixed sequence of phases and never goes back::

    START
      → CONNECTING        open a client on the target (shadow or production)
      → LOCKING           wait for the advisory lock
      → READING_LEDGER    last applied migration + pending batch
      → BEFORE_ACTIONS    only if the batch is non-empty or actions are forced
      → APPLYING          each pending migration, in catalog order
      → AFTER_ACTIONS     same condition as BEFORE_ACTIONS
      → REPORTING         one status line
      → DONE              lock and client released (also on any failure)

Any error aborts the run where it happens. Migrations applied before the
failure stay committed; the next run picks up after the last one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

from shiftdb.actions import execute_actions
from shiftdb.core.connection import with_client
from shiftdb.core.errors import ShiftError
from shiftdb.core.locks import with_advisory_lock
from shiftdb.core.logging import LogContext, get_logger
from shiftdb.core.settings import ParsedSettings, ShiftSettings, parse_settings
from shiftdb.core.target import Target
from shiftdb.migrations.catalog import MigrationDescriptor
from shiftdb.migrations.ledger import LastMigration, get_last_migration, get_migrations_after
from shiftdb.migrations.runner import run_committed_migration

logger = get_logger(__name__)


class MigratePhase(IntEnum):
    """States of a migrate run, in the only order they may occur."""

    START = 0
    CONNECTING = 1
    LOCKING = 2
    READING_LEDGER = 3
    BEFORE_ACTIONS = 4
    APPLYING = 5
    AFTER_ACTIONS = 6
    REPORTING = 7
    DONE = 8


@dataclass(frozen=True)
class RunOutcome:
    """Terminal summary of a successful run. Not persisted."""

    target: Target
    applied: tuple[str, ...]
    last_migration: LastMigration | None

    @property
    def already_migrated(self) -> bool:
        """The target had committed migrations before this run."""
        return self.last_migration is not None

    @property
    def message(self) -> str:
        if self.applied:
            status = f"{len(self.applied)} committed migrations executed"
        elif self.already_migrated:
            status = "Already up to date"
        else:
            status = "Up to date — no committed migrations to run"
        return f"shiftdb{self.target.log_suffix}: {status}"


@dataclass
class MigrationRun:
    """Control state of one migrate invocation.

    Owned by a single run; concurrent runs are kept apart by the advisory
    lock, not by sharing this object.
    """

    settings: ParsedSettings
    target: Target
    force_actions: bool = False
    phase: MigratePhase = MigratePhase.START
    last_migration: LastMigration | None = None
    pending: tuple[MigrationDescriptor, ...] = ()
    applied: list[str] = field(default_factory=list)

    def advance(self, phase: MigratePhase) -> None:
        """Move to *phase*; phases only move forward."""
        if phase <= self.phase:
            raise ShiftError(
                f"Invalid migrate transition {self.phase.name} -> {phase.name}"
            )
        logger.debug("migrate.phase", phase=phase.name.lower())
        self.phase = phase

    @property
    def should_execute_actions(self) -> bool:
        return bool(self.pending) or self.force_actions

    def execute(self) -> RunOutcome:
        connection_string = self.target.connection_string(self.settings)
        log_suffix = self.target.log_suffix

        self.advance(MigratePhase.CONNECTING)
        with with_client(connection_string, self.settings) as (conn, context):
            with LogContext(target=self.target.value, run_id=context.run_id):
                self.advance(MigratePhase.LOCKING)
                with with_advisory_lock(conn, context.info):
                    self.advance(MigratePhase.READING_LEDGER)
                    self.last_migration = get_last_migration(conn, self.settings)
                    self.pending = tuple(
                        get_migrations_after(self.settings, self.last_migration)
                    )

                    if self.should_execute_actions:
                        self.advance(MigratePhase.BEFORE_ACTIONS)
                        execute_actions(
                            self.settings, self.target, self.settings.before_all_migrations
                        )

                    # Run migrations in series
                    self.advance(MigratePhase.APPLYING)
                    for migration in self.pending:
                        run_committed_migration(
                            conn, self.settings, context, migration, log_suffix
                        )
                        self.applied.append(migration.filename)

                    if self.should_execute_actions:
                        self.advance(MigratePhase.AFTER_ACTIONS)
                        execute_actions(
                            self.settings, self.target, self.settings.after_all_migrations
                        )

                    self.advance(MigratePhase.REPORTING)
                    outcome = RunOutcome(
                        target=self.target,
                        applied=tuple(self.applied),
                        last_migration=self.last_migration,
                    )
                    self.settings.logger.info(outcome.message)

        self.advance(MigratePhase.DONE)
        return outcome


def _migrate(
    parsed_settings: ParsedSettings,
    shadow: bool = False,
    force_actions: bool = False,
) -> RunOutcome:
    """Run the migrate protocol with already-parsed settings."""
    run = MigrationRun(
        settings=parsed_settings,
        target=Target.from_shadow(shadow),
        force_actions=force_actions,
    )
    try:
        return run.execute()
    except ShiftError as e:
        e.with_context(target=run.target.value, phase=run.phase.name.lower())
        raise


def migrate(
    settings: ShiftSettings,
    shadow: bool = False,
    force_actions: bool = False,
) -> RunOutcome:
    """Runs any un-executed committed migrations against the chosen target."""
    parsed_settings = parse_settings(settings, shadow)
    return _migrate(parsed_settings, shadow, force_actions)
