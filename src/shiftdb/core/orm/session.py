"""SQLAlchemy engine factory, session, and Connection bridge.

PostgreSQL targets are reached through SQLAlchemy. Advisory locks are
session-scoped, so the bridge pins its ``Session`` to one dedicated
``Connection`` (``NullPool`` engine, ``Session(bind=connection)``): every
statement of a run, lock included, travels over the same database
session.

This module provides:

* ``create_shift_engine``  -- Create a SA engine for a single-session client.
* ``ShiftSession``         -- ``Session`` with ``expire_on_commit=False``.
* ``SAConnectionBridge``   -- Wraps a SA ``Session`` to satisfy the
  ``shiftdb.core.protocols.Connection`` protocol.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlalchemy import create_engine as _sa_create_engine
from sqlalchemy import text
from sqlalchemy.engine import Connection as SAConnection
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool


def create_shift_engine(url: str, *, echo: bool = False, **kwargs: Any) -> Engine:
    """Create a SQLAlchemy engine that opens one connection per checkout.

    Parameters
    ----------
    url:
        Database URL (``postgresql://…``, ``postgresql+psycopg://…``).
    echo:
        If ``True``, log all SQL.
    **kwargs:
        Extra arguments forwarded to ``sqlalchemy.create_engine``.
    """
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        url = "postgresql+psycopg://" + url[len("postgresql://"):]
    kwargs.setdefault("poolclass", NullPool)
    return _sa_create_engine(url, echo=echo, **kwargs)


class ShiftSession(Session):
    """Pre-configured session with ``expire_on_commit=False``."""

    def __init__(self, bind: Engine | SAConnection | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("expire_on_commit", False)
        super().__init__(bind=bind, **kwargs)


def _rewrite_placeholders(sql: str, parameters: Sequence[Any]) -> tuple[str, dict[str, Any]]:
    """Convert positional ``?`` placeholders to ``:pN`` for ``text()``."""
    rewritten, idx = [], 0
    for ch in sql:
        if ch == "?":
            rewritten.append(f":p{idx}")
            idx += 1
        else:
            rewritten.append(ch)
    return "".join(rewritten), {f"p{i}": v for i, v in enumerate(parameters)}


class SAConnectionBridge:
    """Adapter that makes a SQLAlchemy ``Session`` look like ``shiftdb.core.protocols.Connection``.

    Implements: ``execute``, ``executescript``, ``fetchone``, ``fetchall``,
    ``begin``, ``commit``, ``rollback``, ``close``.
    """

    def __init__(self, session: Session, connection: SAConnection | None = None) -> None:
        self._session = session
        self._connection = connection
        self._last_result: Any = None

    def execute(self, sql: str, parameters: Sequence[Any] | None = None) -> SAConnectionBridge:
        if parameters:
            rewritten, mapping = _rewrite_placeholders(sql, parameters)
            self._last_result = self._session.execute(text(rewritten), mapping)
        else:
            self._last_result = self._session.execute(text(sql))
        return self

    def executescript(self, sql: str) -> None:
        # Driver-level execution: no bind parsing, multiple statements allowed
        self._session.connection().exec_driver_sql(sql)
        self._last_result = None

    def fetchone(self) -> tuple[Any, ...] | None:
        if self._last_result is None:
            return None
        row = self._last_result.fetchone()
        return tuple(row) if row is not None else None

    def fetchall(self) -> list[tuple[Any, ...]]:
        if self._last_result is None:
            return []
        return [tuple(r) for r in self._last_result.fetchall()]

    def begin(self) -> None:
        if not self._session.in_transaction():
            self._session.begin()

    def commit(self) -> None:
        self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()

    def close(self) -> None:
        self._session.close()
        if self._connection is not None:
            self._connection.close()

    @property
    def session(self) -> Session:
        """Access the underlying SA session."""
        return self._session
