"""Migration ledger: which committed migrations a database has applied.

The ledger is the ``shiftdb_migrations`` table in the target database::

    hash           TEXT PRIMARY KEY   chained identity of the migration
    previous_hash  TEXT               identity of the migration before it
    sequence       INTEGER NOT NULL   catalog position
    filename       TEXT NOT NULL
    applied_at     TEXT NOT NULL      ISO-8601 UTC

Rows are only ever inserted by the runner, inside the same transaction
as the migration they describe. The newest row is the "last migration"
marker.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from shiftdb.core.connection import DB_ERRORS, ConnectionInfo
from shiftdb.core.errors import LedgerError
from shiftdb.core.logging import get_logger
from shiftdb.core.protocols import Connection
from shiftdb.migrations.catalog import MigrationDescriptor, read_committed_migrations

if TYPE_CHECKING:
    from shiftdb.core.settings import ParsedSettings

logger = get_logger(__name__)

LEDGER_TABLE = "shiftdb_migrations"


@dataclass(frozen=True)
class LastMigration:
    """The most recently committed migration recorded for a target."""

    hash: str
    previous_hash: str | None
    sequence: int
    filename: str
    applied_at: str


def install_ledger_schema(conn: Connection) -> None:
    """Create the ledger table if it does not exist."""
    try:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {LEDGER_TABLE} (
                hash TEXT PRIMARY KEY,
                previous_hash TEXT,
                sequence INTEGER NOT NULL,
                filename TEXT NOT NULL,
                applied_at TEXT NOT NULL
            )
            """
        )
        conn.commit()
    except DB_ERRORS as e:
        conn.rollback()
        raise LedgerError(f"Could not install the migration ledger: {e}", cause=e) from e


def ledger_installed(conn: Connection, info: ConnectionInfo) -> bool:
    """Whether the ledger table exists, without creating it."""
    if info.is_postgres:
        sql = "SELECT to_regclass(?)"
    else:
        sql = "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?"
    try:
        conn.execute(sql, (LEDGER_TABLE,))
        row = conn.fetchone()
        conn.commit()
    except DB_ERRORS as e:
        conn.rollback()
        raise LedgerError(f"Could not inspect the migration ledger: {e}", cause=e) from e
    return row is not None and row[0] is not None


def get_last_migration(conn: Connection, settings: ParsedSettings) -> LastMigration | None:
    """Return the last committed migration, or ``None`` for a never-migrated target.

    Raises:
        LedgerError: the ledger table is missing or its newest row is unusable.
    """
    try:
        conn.execute(
            f"""
            SELECT hash, previous_hash, sequence, filename, applied_at
            FROM {LEDGER_TABLE}
            ORDER BY sequence DESC
            LIMIT 1
            """
        )
        row = conn.fetchone()
        conn.commit()
    except DB_ERRORS as e:
        conn.rollback()
        raise LedgerError(
            "Migration ledger is missing or unreadable; the database was never bootstrapped",
            cause=e,
        ) from e

    if row is None:
        return None

    migration_hash, previous_hash, sequence, filename, applied_at = tuple(row)
    if not migration_hash or not filename or sequence is None:
        raise LedgerError(f"Corrupt migration ledger row: {tuple(row)!r}")

    return LastMigration(
        hash=migration_hash,
        previous_hash=previous_hash,
        sequence=int(sequence),
        filename=filename,
        applied_at=str(applied_at),
    )


def get_migrations_after(
    settings: ParsedSettings,
    last_migration: LastMigration | None,
) -> list[MigrationDescriptor]:
    """Return the catalog suffix strictly after *last_migration*, in order.

    Raises:
        LedgerError: the recorded migration is not part of the catalog
            (the database and the committed files have diverged), or the
            catalog itself is malformed.
    """
    catalog = read_committed_migrations(settings.committed_folder)
    if last_migration is None:
        return catalog

    for index, migration in enumerate(catalog):
        if migration.hash == last_migration.hash:
            if migration.filename != last_migration.filename:
                logger.warning(
                    "ledger.renamed_migration",
                    recorded=last_migration.filename,
                    current=migration.filename,
                )
            return catalog[index + 1:]

    raise LedgerError(
        f"Last applied migration {last_migration.filename} ({last_migration.hash}) "
        f"is not in the committed migrations; the database has diverged from "
        f"{settings.committed_folder}"
    ).with_context(migration=last_migration.filename)


def record_migration(conn: Connection, migration: MigrationDescriptor) -> None:
    """Insert the ledger row for *migration* in the current transaction."""
    conn.execute(
        f"""
        INSERT INTO {LEDGER_TABLE} (hash, previous_hash, sequence, filename, applied_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (
            migration.hash,
            migration.previous_hash,
            migration.sequence,
            migration.filename,
            datetime.now(UTC).isoformat(),
        ),
    )
