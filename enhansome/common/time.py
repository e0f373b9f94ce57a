"""Common time utilities."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


def parse_timestamp(value: str | None) -> dt.datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Empty strings and ``None`` mean "no timestamp" and return ``None``. Naive
    timestamps are assumed to be UTC, matching how catalog documents record
    ``last_commit`` values.

    Raises
    ------
    ValueError
        If ``value`` is non-empty but not an ISO-8601 timestamp.

    Examples
    --------
    >>> parse_timestamp("2025-10-10T00:00:00Z").isoformat()
    '2025-10-10T00:00:00+00:00'
    >>> parse_timestamp("") is None
    True

    """
    if value is None or not value.strip():
        return None
    parsed = dt.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=dt.UTC)
    return parsed.astimezone(dt.UTC)
