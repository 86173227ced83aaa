"""Timezone helpers.

SQLite returns naive datetimes for ``DateTime(timezone=True)`` columns; every
value we store is UTC, so naive values read back are treated as UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None
