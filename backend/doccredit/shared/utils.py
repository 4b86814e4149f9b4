"""Shared utility functions used across components."""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Return datetime as timezone-aware UTC. Returns None if input is None."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def month_start(now: datetime | None = None) -> datetime:
    """First instant of the calendar month containing ``now`` (UTC)."""
    current = ensure_utc(now) or utcnow()
    return current.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user search text matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
