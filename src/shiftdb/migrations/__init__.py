"""Committed migration catalog, ledger and runner.

Modules
-------
catalog   Reads ``committed/*.sql`` into ordered ``MigrationDescriptor``\\ s
ledger    ``shiftdb_migrations`` table: last marker and pending suffix
runner    Applies one migration and its ledger row in one transaction
"""

from shiftdb.migrations.catalog import MigrationDescriptor, read_committed_migrations
from shiftdb.migrations.ledger import (
    LastMigration,
    get_last_migration,
    get_migrations_after,
    install_ledger_schema,
)
from shiftdb.migrations.runner import run_committed_migration

__all__ = [
    "LastMigration",
    "MigrationDescriptor",
    "get_last_migration",
    "get_migrations_after",
    "install_ledger_schema",
    "read_committed_migrations",
    "run_committed_migration",
]
