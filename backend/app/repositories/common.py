from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_storage_timestamp(value: datetime) -> str:
    # Fixed-width so lexical order in SQLite matches chronological order.
    return value.astimezone(UTC).isoformat(timespec="microseconds")
