"""``shiftdb status``: read-only view of a target's migration state.

Reads the ledger and the catalog without taking the migrate lock or
creating the ledger table. Nothing runs, so it may report a batch that
a concurrent ``migrate`` is applying right now.
"""

from __future__ import annotations

from dataclasses import dataclass

from shiftdb.core.connection import with_client
from shiftdb.core.settings import ParsedSettings, ShiftSettings, parse_settings
from shiftdb.core.target import Target
from shiftdb.migrations.ledger import (
    LastMigration,
    get_last_migration,
    get_migrations_after,
    ledger_installed,
)


@dataclass(frozen=True)
class StatusReport:
    target: str
    database: str
    last_migration: str | None
    last_applied_at: str | None
    pending: list[str]

    @property
    def up_to_date(self) -> bool:
        return not self.pending


def _status(parsed_settings: ParsedSettings, shadow: bool = False) -> StatusReport:
    target = Target.from_shadow(shadow)
    connection_string = target.connection_string(parsed_settings)
    with with_client(connection_string, parsed_settings, bootstrap=False) as (conn, context):
        last: LastMigration | None = None
        # No ledger table means never migrated
        if ledger_installed(conn, context.info):
            last = get_last_migration(conn, parsed_settings)
        pending = get_migrations_after(parsed_settings, last)
    return StatusReport(
        target=target.value,
        database=context.database,
        last_migration=last.filename if last else None,
        last_applied_at=last.applied_at if last else None,
        pending=[m.filename for m in pending],
    )


def status(settings: ShiftSettings, shadow: bool = False) -> StatusReport:
    """Report the last committed migration and the pending ones for a target."""
    return _status(parse_settings(settings, shadow), shadow)
