from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Literal, cast

from backend.app.models.movie import Movie, StoredMovie
from backend.app.repositories.common import to_storage_timestamp, utc_now
from backend.app.repositories.database import COLLECTION_NAMES, Database

Collection = Literal["history", "watchlist"]
HISTORY: Collection = "history"
WATCHLIST: Collection = "watchlist"

LOGGER = logging.getLogger("cinema_flash.store")


class InteractionRepository:
    """
    Upsert/delete/list over the two interaction collections.

    Records are keyed by movie id within a collection. Every write refreshes the
    record timestamp, and listings are most-recently-touched first. Equal
    timestamps fall back to write order (latest write first).
    """

    def __init__(self, db: Database, *, history_max_items: int = 0) -> None:
        self._db = db
        self._history_max_items = max(0, history_max_items)

    def put(self, collection: str, movie: Movie) -> StoredMovie:
        table = _collection_table(collection)
        timestamp = utc_now()
        movie_json = json.dumps(
            movie.model_dump(mode="json", by_alias=True, exclude={"timestamp"}),
            sort_keys=True,
            ensure_ascii=False,
        )

        db = self._db.ensure_initialized()
        with db.connection() as conn:
            row = conn.execute(
                f"SELECT COALESCE(MAX(write_seq), 0) + 1 AS seq FROM {table}"
            ).fetchone()
            write_seq = int(row["seq"])
            conn.execute(
                f"""
                INSERT INTO {table} (id, movie_json, timestamp, write_seq)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    movie_json = excluded.movie_json,
                    timestamp = excluded.timestamp,
                    write_seq = excluded.write_seq
                """,
                (movie.id, movie_json, to_storage_timestamp(timestamp), write_seq),
            )
            evicted = 0
            if table == HISTORY and self._history_max_items > 0:
                result = conn.execute(
                    """
                    DELETE FROM history
                    WHERE id NOT IN (
                        SELECT id FROM history
                        ORDER BY timestamp DESC, write_seq DESC
                        LIMIT ?
                    )
                    """,
                    (self._history_max_items,),
                )
                evicted = max(0, result.rowcount)

        if evicted:
            LOGGER.info("history cap reached; evicted oldest records count=%s", evicted)
        LOGGER.debug("stored movie collection=%s movie_id=%s", table, movie.id)
        return _stored_movie(movie_json, timestamp)

    def remove(self, collection: str, movie_id: str) -> bool:
        table = _collection_table(collection)
        db = self._db.ensure_initialized()
        with db.connection() as conn:
            result = conn.execute(f"DELETE FROM {table} WHERE id = ?", (movie_id,))
        removed = result.rowcount > 0
        LOGGER.debug(
            "removed movie collection=%s movie_id=%s removed=%s", table, movie_id, removed
        )
        return removed

    def list_items(self, collection: str) -> list[StoredMovie]:
        table = _collection_table(collection)
        db = self._db.ensure_initialized()
        with db.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT movie_json, timestamp
                FROM {table}
                ORDER BY timestamp DESC, write_seq DESC
                """
            ).fetchall()

        items: list[StoredMovie] = []
        for row in rows:
            stored = _load_stored_movie(str(row["movie_json"]), str(row["timestamp"]))
            if stored is None:
                LOGGER.warning("skipping unreadable stored record collection=%s", table)
                continue
            items.append(stored)
        return items

    def get(self, collection: str, movie_id: str) -> StoredMovie | None:
        table = _collection_table(collection)
        db = self._db.ensure_initialized()
        with db.connection() as conn:
            row = conn.execute(
                f"SELECT movie_json, timestamp FROM {table} WHERE id = ?",
                (movie_id,),
            ).fetchone()
        if row is None:
            return None
        return _load_stored_movie(str(row["movie_json"]), str(row["timestamp"]))

    def contains(self, collection: str, movie_id: str) -> bool:
        table = _collection_table(collection)
        db = self._db.ensure_initialized()
        with db.connection() as conn:
            row = conn.execute(f"SELECT 1 FROM {table} WHERE id = ?", (movie_id,)).fetchone()
        return row is not None


def _collection_table(collection: str) -> Collection:
    normalized = collection.strip().lower() if isinstance(collection, str) else ""
    if normalized not in COLLECTION_NAMES:
        raise ValueError(
            f"Unknown collection {collection!r}; expected one of: {', '.join(COLLECTION_NAMES)}."
        )
    return cast(Collection, normalized)


def _stored_movie(movie_json: str, timestamp: datetime) -> StoredMovie:
    payload = cast(dict[str, object], json.loads(movie_json))
    payload["timestamp"] = timestamp
    return StoredMovie.model_validate(payload)


def _load_stored_movie(movie_json: str, raw_timestamp: str) -> StoredMovie | None:
    try:
        timestamp = datetime.fromisoformat(raw_timestamp)
        return _stored_movie(movie_json, timestamp)
    except (TypeError, ValueError):
        # Covers JSON decode errors and pydantic validation errors.
        return None
