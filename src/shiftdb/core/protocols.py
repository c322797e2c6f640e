"""
Protocol definitions shared across shiftdb.

``Connection`` is the one database contract every component codes
against. Both backends (the sqlite3 adapter and the SQLAlchemy bridge
used for PostgreSQL) satisfy it structurally.

    Connection Protocol:
    ┌────────────────────────────────────────────────────────┐
    │ execute(sql, params)   → Execute single statement      │
    │ executescript(sql)     → Execute a multi-statement body │
    │ fetchone()             → Get one result row            │
    │ fetchall()             → Get all result rows           │
    │ begin()                → Open an explicit transaction  │
    │ commit()               → Commit transaction            │
    │ rollback()             → Rollback transaction          │
    │ close()                → Release the session           │
    └────────────────────────────────────────────────────────┘

Parameters always use ``?`` placeholders; the PostgreSQL bridge rewrites
them for the driver.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """Minimal synchronous connection interface for migration work."""

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute a single SQL statement with optional parameters."""
        ...

    def executescript(self, sql: str) -> None:
        """Execute a multi-statement SQL body inside the current transaction."""
        ...

    def fetchone(self) -> Any:
        """Fetch one row from the last query."""
        ...

    def fetchall(self) -> list:
        """Fetch all rows from the last query."""
        ...

    def begin(self) -> None:
        """Start an explicit transaction."""
        ...

    def commit(self) -> None:
        """Commit the current transaction."""
        ...

    def rollback(self) -> None:
        """Roll back the current transaction."""
        ...

    def close(self) -> None:
        """Close the underlying session."""
        ...
