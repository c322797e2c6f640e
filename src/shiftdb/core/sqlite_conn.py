"""SQLite connection adapter.

Wraps a raw :class:`sqlite3.Connection` to satisfy the
:class:`~shiftdb.core.protocols.Connection` protocol.

The underlying connection runs with ``isolation_level=None`` so that
transactions are opened only by an explicit :meth:`begin`. The stdlib
module's implicit transaction handling would otherwise commit DDL
statements outside the migration's transaction.

Usage::

    from shiftdb.core.sqlite_conn import SqliteConnection

    conn = SqliteConnection(":memory:")
    conn.begin()
    conn.executescript("CREATE TABLE t (id INTEGER); INSERT INTO t VALUES (1);")
    conn.commit()
    conn.execute("SELECT id FROM t")
    row = conn.fetchone()
    conn.close()
"""

from __future__ import annotations

import sqlite3
from typing import Any


def split_statements(script: str) -> list[str]:
    """Split a SQL script into complete statements.

    Uses :func:`sqlite3.complete_statement` so that semicolons inside
    string literals and ``CREATE TRIGGER ... BEGIN ... END`` bodies do not
    split a statement.
    """
    statements: list[str] = []
    start = 0
    for index, char in enumerate(script):
        if char == ";" and sqlite3.complete_statement(script[start:index + 1]):
            statement = script[start:index + 1].strip()
            if statement != ";":
                statements.append(statement)
            start = index + 1
    tail = script[start:].strip()
    if tail:
        # Trailing statement without a semicolon
        statements.append(tail)
    return statements


class SqliteConnection:
    """Adapter: ``sqlite3.Connection`` → ``Connection`` protocol.

    Maintains a single cursor so that ``execute`` / ``fetchone`` /
    ``fetchall`` operate on the same result set.
    """

    def __init__(self, path: str = ":memory:", *, timeout: float = 5.0) -> None:
        self._conn = sqlite3.connect(
            path,
            timeout=timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        self._cursor = self._conn.cursor()

    # -- Connection protocol -----------------------------------------------

    def execute(self, sql: str, params: tuple = ()) -> Any:
        self._cursor.execute(sql, params)
        return self._cursor

    def executescript(self, sql: str) -> None:
        for statement in split_statements(sql):
            # Comment-only chunks are complete statements too
            if statement.startswith("--") and all(
                line.strip().startswith("--") or not line.strip()
                for line in statement.splitlines()
            ):
                continue
            self._cursor.execute(statement)

    def fetchone(self) -> Any:
        return self._cursor.fetchone()

    def fetchall(self) -> list:
        return self._cursor.fetchall()

    def begin(self) -> None:
        self._conn.execute("BEGIN")

    def commit(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("COMMIT")

    def rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def close(self) -> None:
        self._conn.close()

    # -- convenience -------------------------------------------------------

    @property
    def in_transaction(self) -> bool:
        return self._conn.in_transaction

    @property
    def raw(self) -> sqlite3.Connection:
        """Access the underlying ``sqlite3.Connection`` (e.g. for pragmas)."""
        return self._conn

    def __repr__(self) -> str:
        return f"SqliteConnection({self._conn!r})"
