"""Timestamp helpers for values round-tripped through Cassandra."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Current time, UTC-aware, truncated to millisecond precision.

    Cassandra ``timestamp`` columns store milliseconds, so truncating before
    the write keeps in-memory values equal to what a later read returns.
    """
    now = datetime.now(UTC)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt
