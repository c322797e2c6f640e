"""Advisory lock around migration work.

Only one migrate run per target database may be inside the lock at a
time. A second run blocks until the first releases; there is no timeout
and no "already locked" failure. Callers that need bounded waiting must
cancel from outside (the lock is still released on the way out).

    Lock Flow::

        Run A: acquire ──► body ──► release
        Run B:    acquire (blocks) ............► body ──► release

Backends:
    PostgreSQL      ``pg_advisory_lock(MIGRATE_LOCK_KEY)`` on the run's own
                    session. Advisory locks are per database, so the key
                    is constant. Released with ``pg_advisory_unlock`` or
                    by the server when the session ends.
    SQLite file     ``BEGIN EXCLUSIVE`` on a sidecar ``<db>-shiftdb.lock``
                    file held by a dedicated connection, retried until it
                    succeeds. The OS drops the file lock if the process dies.
    SQLite memory   Private to one connection; nothing to exclude.

Example::

    with with_client(url, settings) as (conn, context):
        with with_advisory_lock(conn, context.info):
            ...  # migrations
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

from shiftdb.core.connection import DB_ERRORS, ConnectionInfo
from shiftdb.core.errors import LockError
from shiftdb.core.logging import get_logger
from shiftdb.core.protocols import Connection

logger = get_logger(__name__)

# "SHIFTDB" on a phone keypad
MIGRATE_LOCK_KEY = 7443832

LOCK_FILE_SUFFIX = "-shiftdb.lock"


class PostgresAdvisoryLock:
    """Session-level ``pg_advisory_lock`` on the migrate key."""

    def __init__(self, conn: Connection, key: int = MIGRATE_LOCK_KEY) -> None:
        self.conn = conn
        self.key = key

    def acquire(self) -> None:
        try:
            self.conn.execute("SELECT pg_advisory_lock(?)", (self.key,))
            self.conn.fetchone()
            self.conn.commit()
        except DB_ERRORS as e:
            raise LockError(
                f"Database session failed while waiting for the migration lock: {e}",
                cause=e,
            ) from e
        logger.debug("lock.acquired", backend="postgresql", key=self.key)

    def release(self) -> None:
        try:
            # An aborted transaction would reject the unlock call
            self.conn.rollback()
            self.conn.execute("SELECT pg_advisory_unlock(?)", (self.key,))
            row = self.conn.fetchone()
            self.conn.commit()
        except DB_ERRORS as e:
            raise LockError(f"Could not release the migration lock: {e}", cause=e) from e
        if row is not None and not row[0]:
            logger.warning("lock.not_held", backend="postgresql", key=self.key)
        else:
            logger.debug("lock.released", backend="postgresql", key=self.key)


class SqliteFileLock:
    """Exclusive transaction on a sidecar lock file.

    Args:
        path: Lock file path (created if missing)
        poll_interval: Seconds SQLite's busy handler waits before each retry
    """

    def __init__(self, path: str, poll_interval: float = 1.0) -> None:
        self.path = path
        self.poll_interval = poll_interval
        self._conn: sqlite3.Connection | None = None

    def acquire(self) -> None:
        try:
            self._conn = sqlite3.connect(
                self.path,
                timeout=self.poll_interval,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as e:
            raise LockError(f"Cannot open lock file {self.path}: {e}", cause=e) from e

        while True:
            try:
                self._conn.execute("BEGIN EXCLUSIVE")
                break
            except sqlite3.OperationalError as e:
                if "locked" not in str(e).lower() and "busy" not in str(e).lower():
                    self._conn.close()
                    self._conn = None
                    raise LockError(f"Cannot lock {self.path}: {e}", cause=e) from e
                logger.info("lock.waiting", path=self.path)
        logger.debug("lock.acquired", backend="sqlite", path=self.path)

    def release(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            raise LockError(f"Could not release lock file {self.path}: {e}", cause=e) from e
        finally:
            self._conn.close()
            self._conn = None
        logger.debug("lock.released", backend="sqlite", path=self.path)


class NoopLock:
    """Lock for in-memory SQLite databases, which no other session can see."""

    def acquire(self) -> None:
        logger.debug("lock.skipped", backend="sqlite", reason="in-memory database")

    def release(self) -> None:
        pass


def lock_for(conn: Connection, info: ConnectionInfo, *, poll_interval: float = 1.0):
    """Pick the lock implementation for a connection's backend."""
    if info.is_postgres:
        return PostgresAdvisoryLock(conn)
    if info.persistent and info.resolved_path:
        return SqliteFileLock(info.resolved_path + LOCK_FILE_SUFFIX, poll_interval)
    return NoopLock()


@contextmanager
def with_advisory_lock(
    conn: Connection,
    info: ConnectionInfo,
    *,
    poll_interval: float = 1.0,
) -> Iterator[None]:
    """Hold the migration lock for the duration of the ``with`` body.

    Blocks until the lock is held. The lock is released on every exit
    path. A release failure raises :class:`LockError` after a successful
    body; after a failed body it is logged and the body's error propagates.

    Raises:
        LockError: the lock could not be acquired (e.g. session lost).
    """
    lock = lock_for(conn, info, poll_interval=poll_interval)
    lock.acquire()
    body_failed = False
    try:
        yield
    except BaseException:
        body_failed = True
        raise
    finally:
        try:
            lock.release()
        except LockError as e:
            if not body_failed:
                raise
            logger.warning("lock.release_failed", error=e.message)
