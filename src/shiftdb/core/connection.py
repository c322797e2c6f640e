"""Connection factory and scoped client for migration targets.

``create_connection()`` is the single entry point for opening a database
connection from a URL; ``with_client()`` wraps it in an
acquire/use/release scope that every command runs inside.

Supported URL schemes
---------------------
==================  ==========================================  ============
Scheme              Example                                     Backend
==================  ==========================================  ============
``memory``          ``memory`` or ``:memory:``                   SQLite RAM
``sqlite``          ``sqlite:///path/to/file.db``                SQLite file
``(file path)``     ``./data/my.db``                             SQLite file
``postgresql``      ``postgresql://user:pw@host:port/db``        PostgreSQL
``postgres``        ``postgres://user:pw@host:port/db``          PostgreSQL
==================  ==========================================  ============

Usage
-----
::

    from shiftdb.core.connection import with_client

    with with_client("sqlite:///app.db", settings) as (conn, context):
        conn.execute("SELECT 1")
        print(context.info)
    # connection closed here, on success or error

An unreachable database raises ``DatabaseConnectionError``; there is no
fallback backend.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from shiftdb.core.errors import ConfigurationError, DatabaseConnectionError
from shiftdb.core.logging import get_logger

if TYPE_CHECKING:
    from shiftdb.core.settings import ParsedSettings

logger = get_logger(__name__)

# Driver exceptions either backend can raise from execute/commit
DB_ERRORS: tuple[type[Exception], ...] = (sqlite3.Error, SQLAlchemyError)


# ── ConnectionInfo ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConnectionInfo:
    """Metadata about a database connection."""

    backend: str
    """Backend identifier: ``"sqlite"`` or ``"postgresql"``."""

    persistent: bool
    """Whether data survives process exit."""

    url: str
    """The original URL or path used to create the connection."""

    database: str
    """Database name (file stem for SQLite)."""

    resolved_path: str | None = None
    """For file-based SQLite, the resolved absolute path."""

    def __repr__(self) -> str:
        parts = [f"backend={self.backend!r}", f"database={self.database!r}"]
        if self.resolved_path:
            parts.append(f"path={self.resolved_path!r}")
        return f"ConnectionInfo({', '.join(parts)})"

    @property
    def is_sqlite(self) -> bool:
        return self.backend == "sqlite"

    @property
    def is_postgres(self) -> bool:
        return self.backend == "postgresql"


@dataclass(frozen=True)
class ClientContext:
    """Run-scoped metadata handed to the body of :func:`with_client`.

    Passed through unchanged to the migration runner.
    """

    info: ConnectionInfo
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def database(self) -> str:
        return self.info.database


# ── Backends ─────────────────────────────────────────────────────────────


def _create_sqlite_memory() -> tuple[Any, ConnectionInfo]:
    from shiftdb.core.sqlite_conn import SqliteConnection

    conn = SqliteConnection(":memory:")
    info = ConnectionInfo(
        backend="sqlite",
        persistent=False,
        url=":memory:",
        database=":memory:",
    )
    return conn, info


def _create_sqlite_file(path_str: str, timeout: float) -> tuple[Any, ConnectionInfo]:
    from shiftdb.core.sqlite_conn import SqliteConnection

    path = Path(path_str)
    resolved = str(path.resolve())
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = SqliteConnection(resolved, timeout=timeout)
    except (OSError, sqlite3.Error) as e:
        raise DatabaseConnectionError(
            f"Cannot open SQLite database at {resolved}: {e}", cause=e
        ) from e
    info = ConnectionInfo(
        backend="sqlite",
        persistent=True,
        url=path_str,
        database=path.stem,
        resolved_path=resolved,
    )
    return conn, info


def _create_postgresql(url: str, timeout: float) -> tuple[Any, ConnectionInfo]:
    from shiftdb.core.orm.session import SAConnectionBridge, ShiftSession, create_shift_engine

    try:
        engine = create_shift_engine(
            url, connect_args={"connect_timeout": max(1, int(timeout))}
        )
        sa_conn = engine.connect()
    except (SQLAlchemyError, ImportError) as e:
        raise DatabaseConnectionError(
            f"Cannot connect to PostgreSQL database: {e}", cause=e
        ) from e

    session = ShiftSession(bind=sa_conn)
    conn = SAConnectionBridge(session, sa_conn)
    info = ConnectionInfo(
        backend="postgresql",
        persistent=True,
        url=url,
        database=engine.url.database or "",
    )
    return conn, info


# ── URL parsing ──────────────────────────────────────────────────────────


def _parse_url(db: str) -> tuple[str, str]:
    """Parse a database URL into (scheme, target).

    Returns
    -------
    tuple[str, str]
        (scheme, target) where scheme is one of:
        ``"memory"``, ``"sqlite"``, ``"postgresql"``, ``"file"``.
    """
    if db in ("memory", ":memory:"):
        return "memory", ":memory:"

    if db.startswith("sqlite:///"):
        path = db[len("sqlite:///"):]
        if not path or path == ":memory:":
            return "memory", ":memory:"
        return "sqlite", path

    if db.startswith("sqlite://"):
        path = db[len("sqlite://"):]
        if not path or path == ":memory:":
            return "memory", ":memory:"
        return "sqlite", path

    if db.startswith(("postgresql://", "postgres://")):
        return "postgresql", db

    if db.startswith(("postgresql+", "postgres+")):
        return "postgresql", db

    if "://" in db:
        return db.split("://", 1)[0], db

    # Bare file path is a SQLite file
    return "file", db


def is_memory_url(db: str) -> bool:
    """True when *db* opens a private in-memory SQLite database per connection."""
    return _parse_url(db)[0] == "memory"


# ── Main factory ─────────────────────────────────────────────────────────


def create_connection(db: str, *, timeout: float = 5.0) -> tuple[Any, ConnectionInfo]:
    """Create a database connection from a URL or path.

    *timeout* is the connect timeout for PostgreSQL and the busy timeout
    for SQLite, in seconds.

    Returns
    -------
    tuple[Connection, ConnectionInfo]
        The connection object (satisfies ``Connection`` protocol)
        and metadata about it.

    Raises
    ------
    ConfigurationError
        The URL is empty or uses an unsupported scheme.
    DatabaseConnectionError
        The database could not be opened.
    """
    if not db:
        raise ConfigurationError("Could not determine connection string")

    scheme, target = _parse_url(db)

    if scheme == "memory":
        return _create_sqlite_memory()
    if scheme in ("sqlite", "file"):
        return _create_sqlite_file(target, timeout)
    if scheme == "postgresql":
        return _create_postgresql(target, timeout)

    raise ConfigurationError(f"Unsupported database URL scheme {scheme!r}")


@contextmanager
def with_client(
    connection_string: str,
    settings: ParsedSettings,
    *,
    bootstrap: bool = True,
) -> Iterator[tuple[Any, ClientContext]]:
    """Open a client for *connection_string*, yield it, always close it.

    When *bootstrap* is true the ledger table is installed (idempotently)
    before the body runs, so a fresh target reads as "never migrated"
    rather than as missing bookkeeping.

    Yields:
        ``(connection, ClientContext)``
    """
    conn, info = create_connection(connection_string, timeout=settings.connect_timeout)
    context = ClientContext(info=info)
    logger.debug("client.opened", backend=info.backend, database=info.database, run_id=context.run_id)
    try:
        if bootstrap:
            from shiftdb.migrations.ledger import install_ledger_schema

            install_ledger_schema(conn)
        yield conn, context
    finally:
        conn.close()
        logger.debug("client.closed", database=info.database, run_id=context.run_id)


def database_name(db: str) -> str:
    """Return the database name a URL points at, without connecting."""
    scheme, target = _parse_url(db)
    if scheme == "memory":
        return ":memory:"
    if scheme in ("sqlite", "file"):
        return Path(target).stem
    from sqlalchemy.engine import make_url

    return make_url(target).database or ""
