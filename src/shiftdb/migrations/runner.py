"""Apply one committed migration.

The migration body and its ledger row are written in a single
transaction: after a crash the ledger lists exactly the migrations that
committed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shiftdb.core.connection import DB_ERRORS, ClientContext
from shiftdb.core.errors import RunnerError
from shiftdb.core.logging import get_logger
from shiftdb.core.protocols import Connection
from shiftdb.migrations.catalog import MigrationDescriptor
from shiftdb.migrations.ledger import record_migration

if TYPE_CHECKING:
    from shiftdb.core.settings import ParsedSettings

logger = get_logger(__name__)


def run_committed_migration(
    conn: Connection,
    settings: ParsedSettings,
    context: ClientContext,
    migration: MigrationDescriptor,
    log_suffix: str,
) -> None:
    """Apply *migration* and advance the ledger, atomically.

    Raises:
        RunnerError: the body or the ledger insert failed. The transaction
            is rolled back, so neither is visible.
    """
    settings.logger.info(f"shiftdb{log_suffix}: Running migration '{migration.filename}'")
    conn.begin()
    try:
        conn.executescript(migration.body)
        record_migration(conn, migration)
        conn.commit()
    except DB_ERRORS as e:
        conn.rollback()
        logger.error(
            "migration.failed",
            migration=migration.filename,
            database=context.database,
            run_id=context.run_id,
            error=str(e),
        )
        raise RunnerError(
            f"Error occurred whilst processing migration '{migration.filename}': {e}",
            migration_identity=migration.filename,
            cause=e,
        ) from e

    logger.debug(
        "migration.applied",
        migration=migration.filename,
        hash=migration.hash,
        database=context.database,
        run_id=context.run_id,
    )
