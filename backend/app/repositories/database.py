from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

COLLECTION_NAMES: tuple[str, ...] = ("history", "watchlist")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS history (
    id TEXT PRIMARY KEY,
    movie_json TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    write_seq INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_recency
ON history(timestamp DESC, write_seq DESC);

CREATE TABLE IF NOT EXISTS watchlist (
    id TEXT PRIMARY KEY,
    movie_json TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    write_seq INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_watchlist_recency
ON watchlist(timestamp DESC, write_seq DESC);
"""


class StorageUnavailableError(RuntimeError):
    """The local store could not be opened or a statement against it failed."""


class Database:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._initialized = False

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._path)
        except sqlite3.Error as exc:
            raise StorageUnavailableError(f"Cannot open local store at {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageUnavailableError(f"Local store operation failed: {exc}") from exc
        finally:
            conn.close()

    def initialize(self) -> Database:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailableError(
                f"Cannot create local store directory {self._path.parent}: {exc}"
            ) from exc
        with self.connection() as conn:
            conn.executescript(SCHEMA_SQL)
        self._initialized = True
        return self

    def ensure_initialized(self) -> Database:
        if not self._initialized:
            self.initialize()
        return self
