"""Datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, datetime

__all__ = [
    "EPOCH",
    "ensure_utc",
    "parse_timestamp",
    "serialize_datetime",
]

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to a sortable ISO 8601 UTC string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp, returning ``None`` when it is unusable.

    Accepts ISO 8601 as produced by Postgres (``2025-01-11 10:00:00+00``) and
    JavaScript (``2025-01-11T10:00:00.000Z``).
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    # Postgres abbreviates whole-hour offsets to "+00".
    if len(text) > 3 and text[-3] in "+-" and text[-2:].isdigit() and ":" in text:
        text = text + ":00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return ensure_utc(parsed)
