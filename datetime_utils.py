from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional


UTC = timezone.utc


def utc_now() -> datetime:
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def hours_ago(hours: float, *, now: Optional[datetime] = None) -> datetime:
    """Return the UTC instant ``hours`` before ``now``."""

    base = ensure_utc(now) or utc_now()
    return base - timedelta(hours=hours)


def to_rfc3339_utc(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to RFC3339 in UTC."""

    if dt is None:
        return None
    value = ensure_utc(dt)
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


__all__ = [
    "UTC",
    "ensure_utc",
    "hours_ago",
    "to_rfc3339_utc",
    "utc_now",
]
