"""
Datetime helpers shared by the session machine and the API.

All timestamps are timezone-aware UTC; snapshots and API payloads carry them
as ISO-8601 strings.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Return the current datetime in UTC.

    Patch this function (``assessments.core.datetime_utils.utc_now``) to
    freeze time in tests.
    """
    return datetime.now(timezone.utc)


def ensure_timezone_aware(dt: Optional[datetime]) -> datetime:
    """
    Ensure a datetime is timezone-aware (UTC).

    SQLite returns naive datetimes even for timezone-aware columns.

    Raises:
        ValueError: If dt is None
    """
    if dt is None:
        raise ValueError("datetime cannot be None")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as an ISO-8601 UTC string, passing None through."""
    if dt is None:
        return None
    return ensure_timezone_aware(dt).isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string (``Z`` suffix accepted) into an aware datetime."""
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_timezone_aware(datetime.fromisoformat(value))


def elapsed_ms(start: datetime, end: Optional[datetime] = None) -> int:
    """Milliseconds between ``start`` and ``end`` (defaults to now), never negative."""
    end = end or utc_now()
    delta = ensure_timezone_aware(end) - ensure_timezone_aware(start)
    return max(0, int(delta.total_seconds() * 1000))
