"""
Shared pytest fixtures for shiftdb tests.

This module provides:
- A recording logger standing in for ``ParsedSettings.logger``
- A ``ParsedSettings`` factory pointed at SQLite files under ``tmp_path``
- Helpers to write committed migrations and read the ledger back
- Environment isolation for ``SHIFTDB_*`` / ``DATABASE_URL`` variables
"""

from __future__ import annotations

import sqlite3
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

# Ensure shiftdb package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shiftdb.core.settings import ParsedSettings


class RecordingLogger:
    """Collects ``info`` messages the way an operator would see them."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def info(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.messages.append(message)

    def debug(self, message: str, *args: Any, **kwargs: Any) -> None:
        pass

    warning = debug
    error = debug


# =============================================================================
# Environment isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DATABASE_URL",
        "SHADOW_DATABASE_URL",
        "SHIFTDB_CONNECTION_STRING",
        "SHIFTDB_SHADOW_CONNECTION_STRING",
        "SHIFTDB_MIGRATIONS_FOLDER",
        "SHIFTDB_BEFORE_ALL_MIGRATIONS",
        "SHIFTDB_AFTER_ALL_MIGRATIONS",
        "SHIFTDB_LOG_LEVEL",
        "SHIFTDB_LOG_FORMAT",
        "SHIFTDB_CONNECT_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture()
def logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "app.db"


@pytest.fixture()
def shadow_db_path(tmp_path: Path) -> Path:
    return tmp_path / "shadow.db"


@pytest.fixture()
def migrations_folder(tmp_path: Path) -> Path:
    folder = tmp_path / "migrations"
    (folder / "committed").mkdir(parents=True)
    return folder


@pytest.fixture()
def make_settings(
    db_path: Path,
    shadow_db_path: Path,
    migrations_folder: Path,
    logger: RecordingLogger,
) -> Callable[..., ParsedSettings]:
    """Factory for ``ParsedSettings`` with per-test overrides."""

    def _make(**overrides: Any) -> ParsedSettings:
        values: dict[str, Any] = {
            "connection_string": f"sqlite:///{db_path}",
            "shadow_connection_string": f"sqlite:///{shadow_db_path}",
            "migrations_folder": migrations_folder,
            "before_all_migrations": (),
            "after_all_migrations": (),
            "connect_timeout": 5.0,
            "logger": logger,
        }
        values.update(overrides)
        return ParsedSettings(**values)

    return _make


# =============================================================================
# Migrations and ledger
# =============================================================================


@pytest.fixture()
def write_migrations(migrations_folder: Path) -> Callable[..., list[Path]]:
    """Write ``000001.sql``, ``000002.sql``, ... with the given bodies."""

    def _write(*bodies: str) -> list[Path]:
        committed = migrations_folder / "committed"
        paths = []
        for sequence, body in enumerate(bodies, start=1):
            path = committed / f"{sequence:06d}.sql"
            path.write_text(body, encoding="utf-8")
            paths.append(path)
        return paths

    return _write


@pytest.fixture()
def ledger_rows() -> Callable[[Path], list[tuple[int, str]]]:
    """Read ``(sequence, filename)`` rows from a SQLite target's ledger."""

    def _read(path: Path) -> list[tuple[int, str]]:
        conn = sqlite3.connect(path)
        try:
            return conn.execute(
                "SELECT sequence, filename FROM shiftdb_migrations ORDER BY sequence"
            ).fetchall()
        finally:
            conn.close()

    return _read


@pytest.fixture()
def table_names() -> Callable[[Path], set[str]]:
    def _read(path: Path) -> set[str]:
        conn = sqlite3.connect(path)
        try:
            rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
            return {name for (name,) in rows}
        finally:
            conn.close()

    return _read
