"""Committed migration catalog.

Committed migrations live in ``<migrations_folder>/committed/`` and are
named ``NNNNNN.sql`` or ``NNNNNN-some-slug.sql``. Sequence numbers start
at 1 and have no gaps.

Each migration's identity is a chained hash::

    hash = "sha1:" + sha1(previous_hash + "\\n" + body.strip() + "\\n")

so editing an already-committed file changes the identity of that
migration and of every later one. The ledger records identities, which
is how divergence between a database and the files on disk is detected.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from pathlib import Path

from shiftdb.core.errors import LedgerError
from shiftdb.core.logging import get_logger

logger = get_logger(__name__)

_FILENAME_RE = re.compile(r"^(?P<sequence>\d+)(?:-(?P<slug>[\w.-]+))?\.sql$")


@dataclass(frozen=True)
class MigrationDescriptor:
    """One committed migration, read-only once built.

    Attributes:
        sequence: Position in the catalog, starting at 1
        filename: File name inside the committed folder
        body: SQL text
        previous_hash: Identity of the preceding migration, ``None`` for the first
        hash: Chained identity of this migration
    """

    sequence: int
    filename: str
    body: str
    previous_hash: str | None
    hash: str

    def __str__(self) -> str:
        return self.filename


def calculate_hash(body: str, previous_hash: str | None) -> str:
    """Compute the chained identity of a migration body."""
    payload = f"{previous_hash or ''}\n{body.strip()}\n"
    return "sha1:" + hashlib.sha1(payload.encode("utf-8")).hexdigest()


def parse_filename(filename: str) -> int:
    """Return the sequence number encoded in a committed migration filename.

    Raises:
        LedgerError: the name does not follow ``NNNNNN[-slug].sql``.
    """
    match = _FILENAME_RE.match(filename)
    if not match:
        raise LedgerError(f"Invalid committed migration filename: {filename}")
    return int(match.group("sequence"))


def read_committed_migrations(committed_folder: Path) -> list[MigrationDescriptor]:
    """Read the full catalog in sequence order.

    A missing folder is an empty catalog.

    Raises:
        LedgerError: a filename is invalid, a sequence number is
            duplicated, the sequence has a gap, or a file is not readable UTF-8.
    """
    if not committed_folder.is_dir():
        logger.debug("catalog.missing_folder", folder=str(committed_folder))
        return []

    numbered: dict[int, Path] = {}
    for path in committed_folder.glob("*.sql"):
        sequence = parse_filename(path.name)
        if sequence in numbered:
            raise LedgerError(
                f"Duplicate migration number {sequence}: "
                f"{numbered[sequence].name} and {path.name}"
            )
        numbered[sequence] = path

    migrations: list[MigrationDescriptor] = []
    previous_hash: str | None = None
    for expected, sequence in enumerate(sorted(numbered), start=1):
        if sequence != expected:
            raise LedgerError(
                f"Committed migrations have a gap: expected number {expected}, "
                f"found {numbered[sequence].name}"
            )
        path = numbered[sequence]
        try:
            body = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise LedgerError(f"Cannot read migration {path.name}: {e}", cause=e) from e
        migration_hash = calculate_hash(body, previous_hash)
        migrations.append(
            MigrationDescriptor(
                sequence=sequence,
                filename=path.name,
                body=body,
                previous_hash=previous_hash,
                hash=migration_hash,
            )
        )
        previous_hash = migration_hash

    return migrations
