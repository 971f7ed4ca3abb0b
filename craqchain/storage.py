"""Versioned file metadata: the storage interface and an SQL-backed store."""

from __future__ import annotations

import sqlite3
import threading
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Protocol, runtime_checkable

__all__ = ["VersionState", "Chunk", "StorageClient", "StorageError", "CraqStore"]


class VersionState(IntEnum):
    """Whether a stored version has been acknowledged by the tail."""

    DIRTY = 0
    CLEAN = 1


@dataclass(frozen=True)
class Chunk:
    """Metadata for one versioned file."""

    folder: str
    file_name: str
    seq: int
    state: VersionState
    path: str


class StorageError(Exception):
    """A storage operation could not be carried out."""


@runtime_checkable
class StorageClient(Protocol):
    """What a chain node needs from its metadata store."""

    def put(self, seq: int, file_name: str, folder: str, path: str) -> None:
        """Record a dirty version unless a newer one is already stored."""

    def mark_clean(self, folder: str, file_name: str, seq: int) -> None:
        """Mark the given version clean; raise StorageError if absent."""

    def get_latest(self, folder: str, file_name: str) -> Optional[Chunk]:
        """Return the stored version, or None."""

    def list_files_in_folder(self, folder: str) -> list[str]:
        """List files and immediate sub-folders (with a trailing '/')."""


_SCHEMA = """
CREATE TABLE IF NOT EXISTS chunk_metadata (
    folder    TEXT    NOT NULL,
    file_name TEXT    NOT NULL,
    seq       INTEGER NOT NULL,
    state     TEXT    NOT NULL,
    path      TEXT    NOT NULL,
    PRIMARY KEY (folder, file_name)
)
"""

_UPSERT = """
INSERT INTO chunk_metadata (folder, file_name, seq, state, path)
VALUES (?, ?, ?, 'dirty', ?)
ON CONFLICT (folder, file_name) DO UPDATE
SET seq = excluded.seq,
    state = 'dirty',
    path = excluded.path
WHERE chunk_metadata.seq < excluded.seq
"""


class CraqStore:
    """Metadata store kept in an SQL database file (or ':memory:')."""

    def __init__(self, dsn: str) -> None:
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(dsn, check_same_thread=False)
        with self._conn:
            self._conn.execute(_SCHEMA)

    def __enter__(self) -> "CraqStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def put(self, seq: int, file_name: str, folder: str, path: str) -> None:
        """Store a dirty version; an older or equal sequence leaves the row as is."""
        if seq < 0:
            raise ValueError(f"sequence number must not be negative: {seq}")
        with self._lock, self._conn:
            self._conn.execute(_UPSERT, (folder, file_name, seq, path))

    def mark_clean(self, folder: str, file_name: str, seq: int) -> None:
        """Mark exactly this version clean."""
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "UPDATE chunk_metadata SET state = 'clean' "
                "WHERE folder = ? AND file_name = ? AND seq = ?",
                (folder, file_name, seq),
            )
            if cursor.rowcount == 0:
                raise StorageError("no matching chunk to mark clean")

    def get_latest(self, folder: str, file_name: str) -> Optional[Chunk]:
        """Return the stored version of a file, or None if there is none."""
        with self._lock:
            row = self._conn.execute(
                "SELECT seq, state, path FROM chunk_metadata "
                "WHERE folder = ? AND file_name = ?",
                (folder, file_name),
            ).fetchone()
        if row is None:
            return None
        seq, state, path = row
        return Chunk(
            folder=folder,
            file_name=file_name,
            seq=seq,
            state=VersionState.CLEAN if state == "clean" else VersionState.DIRTY,
            path=path,
        )

    def list_files_in_folder(self, folder: str) -> list[str]:
        """List direct files and first-level sub-folders under a folder prefix."""
        with self._lock:
            rows = self._conn.execute(
                "SELECT DISTINCT folder, file_name FROM chunk_metadata "
                "WHERE substr(folder, 1, length(?)) = ?",
                (folder, folder),
            ).fetchall()

        entries: set[str] = set()
        for full_folder, file_name in rows:
            rest = full_folder[len(folder):]
            if not rest:
                entries.add(file_name)
                continue
            first = rest.removeprefix("/").split("/")[0]
            if first:
                entries.add(first + "/")
        return sorted(entries)

    def close(self) -> None:
        """Release the database connection."""
        with self._lock:
            self._conn.close()