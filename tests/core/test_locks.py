"""Tests for the migration advisory lock."""

from __future__ import annotations

import sqlite3
import threading

import pytest

from shiftdb.core import locks
from shiftdb.core.connection import ConnectionInfo
from shiftdb.core.errors import LockError
from shiftdb.core.locks import (
    LOCK_FILE_SUFFIX,
    MIGRATE_LOCK_KEY,
    NoopLock,
    PostgresAdvisoryLock,
    SqliteFileLock,
    lock_for,
    with_advisory_lock,
)

PG_INFO = ConnectionInfo(backend="postgresql", persistent=True, url="postgresql://h/db", database="db")
MEMORY_INFO = ConnectionInfo(backend="sqlite", persistent=False, url=":memory:", database=":memory:")


class FakeConnection:
    """Records statements; optionally fails on a given SQL fragment."""

    def __init__(self, fail_on: str | None = None, unlock_result: bool = True) -> None:
        self.calls: list[tuple] = []
        self.fail_on = fail_on
        self.unlock_result = unlock_result

    def execute(self, sql, params=()):
        self.calls.append(("execute", sql, params))
        if self.fail_on and self.fail_on in sql:
            raise sqlite3.OperationalError("server closed the connection unexpectedly")

    def fetchone(self):
        return (self.unlock_result,)

    def commit(self):
        self.calls.append(("commit",))

    def rollback(self):
        self.calls.append(("rollback",))


class FakeLock:
    def __init__(self, fail_release: bool = False) -> None:
        self.events: list[str] = []
        self.fail_release = fail_release

    def acquire(self):
        self.events.append("acquire")

    def release(self):
        self.events.append("release")
        if self.fail_release:
            raise LockError("could not unlock")


# ── lock_for ─────────────────────────────────────────────────────────


class TestLockFor:
    def test_postgres(self):
        assert isinstance(lock_for(FakeConnection(), PG_INFO), PostgresAdvisoryLock)

    def test_memory(self):
        assert isinstance(lock_for(FakeConnection(), MEMORY_INFO), NoopLock)

    def test_sqlite_file_uses_sidecar(self, tmp_path):
        path = str(tmp_path / "app.db")
        info = ConnectionInfo(
            backend="sqlite", persistent=True, url=path, database="app", resolved_path=path
        )
        lock = lock_for(FakeConnection(), info)
        assert isinstance(lock, SqliteFileLock)
        assert lock.path == path + LOCK_FILE_SUFFIX


# ── PostgreSQL advisory lock ─────────────────────────────────────────


class TestPostgresAdvisoryLock:
    def test_acquire_and_release(self):
        conn = FakeConnection()
        lock = PostgresAdvisoryLock(conn)
        lock.acquire()
        lock.release()
        executed = [(c[1], c[2]) for c in conn.calls if c[0] == "execute"]
        assert executed == [
            ("SELECT pg_advisory_lock(?)", (MIGRATE_LOCK_KEY,)),
            ("SELECT pg_advisory_unlock(?)", (MIGRATE_LOCK_KEY,)),
        ]
        # Aborted transactions are cleared before unlocking
        unlock_index = conn.calls.index(("execute", "SELECT pg_advisory_unlock(?)", (MIGRATE_LOCK_KEY,)))
        assert conn.calls[unlock_index - 1] == ("rollback",)

    def test_session_lost_while_waiting(self):
        lock = PostgresAdvisoryLock(FakeConnection(fail_on="pg_advisory_lock"))
        with pytest.raises(LockError, match="waiting for the migration lock"):
            lock.acquire()

    def test_release_failure(self):
        lock = PostgresAdvisoryLock(FakeConnection(fail_on="pg_advisory_unlock"))
        with pytest.raises(LockError, match="release"):
            lock.release()

    def test_release_when_not_held_is_not_an_error(self):
        PostgresAdvisoryLock(FakeConnection(unlock_result=False)).release()


# ── SQLite sidecar lock ──────────────────────────────────────────────


class TestSqliteFileLock:
    def test_second_acquirer_waits(self, tmp_path):
        path = str(tmp_path / "app.db") + LOCK_FILE_SUFFIX
        first = SqliteFileLock(path, poll_interval=0.1)
        second = SqliteFileLock(path, poll_interval=0.1)
        acquired = threading.Event()

        def contend():
            second.acquire()
            acquired.set()

        first.acquire()
        worker = threading.Thread(target=contend)
        worker.start()
        try:
            assert not acquired.wait(0.5)
            first.release()
            assert acquired.wait(10)
        finally:
            worker.join(10)
            second.release()

    def test_reacquire_after_release(self, tmp_path):
        lock = SqliteFileLock(str(tmp_path / "x.lock"), poll_interval=0.1)
        lock.acquire()
        lock.release()
        lock.acquire()
        lock.release()

    def test_release_without_acquire(self, tmp_path):
        SqliteFileLock(str(tmp_path / "x.lock")).release()

    def test_unopenable_path(self, tmp_path):
        lock = SqliteFileLock(str(tmp_path / "missing-dir" / "x.lock"))
        with pytest.raises(LockError):
            lock.acquire()


# ── with_advisory_lock ───────────────────────────────────────────────


class TestWithAdvisoryLock:
    def test_releases_on_success(self, monkeypatch):
        fake = FakeLock()
        monkeypatch.setattr(locks, "lock_for", lambda conn, info, poll_interval: fake)
        with with_advisory_lock(None, MEMORY_INFO):
            fake.events.append("body")
        assert fake.events == ["acquire", "body", "release"]

    def test_releases_on_error(self, monkeypatch):
        fake = FakeLock()
        monkeypatch.setattr(locks, "lock_for", lambda conn, info, poll_interval: fake)
        with pytest.raises(ValueError):
            with with_advisory_lock(None, MEMORY_INFO):
                raise ValueError("body failed")
        assert fake.events == ["acquire", "release"]

    def test_release_failure_after_success_raises(self, monkeypatch):
        fake = FakeLock(fail_release=True)
        monkeypatch.setattr(locks, "lock_for", lambda conn, info, poll_interval: fake)
        with pytest.raises(LockError):
            with with_advisory_lock(None, MEMORY_INFO):
                pass

    def test_body_error_wins_over_release_failure(self, monkeypatch):
        fake = FakeLock(fail_release=True)
        monkeypatch.setattr(locks, "lock_for", lambda conn, info, poll_interval: fake)
        with pytest.raises(ValueError):
            with with_advisory_lock(None, MEMORY_INFO):
                raise ValueError("body failed")

    def test_sqlite_file_lock_end_to_end(self, tmp_path):
        path = str(tmp_path / "app.db")
        info = ConnectionInfo(
            backend="sqlite", persistent=True, url=path, database="app", resolved_path=path
        )
        with with_advisory_lock(None, info, poll_interval=0.1):
            conn = sqlite3.connect(path + LOCK_FILE_SUFFIX, timeout=0.1)
            try:
                with pytest.raises(sqlite3.OperationalError):
                    conn.execute("BEGIN EXCLUSIVE")
            finally:
                conn.close()
