from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def store_zone(tz_name: str | None):
    """IANA zone for a store. Unknown or malformed names fall back to UTC."""
    try:
        return ZoneInfo(tz_name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def to_local(dt: datetime, tz_name: str | None) -> datetime:
    """UTC-naive datetime -> aware datetime in the store's zone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(store_zone(tz_name))


def to_local_iso(dt: datetime, tz_name: str | None) -> str:
    """
    Render a UTC-naive datetime as ISO-8601 in the store's local zone,
    with an explicit offset (e.g. 2026-10-19T21:30:00+09:00).
    """
    return to_local(dt, tz_name).replace(microsecond=0).isoformat()


def local_day_start(day: date, tz_name: str | None) -> datetime:
    """Midnight of a store-local calendar day, as a UTC-naive datetime."""
    local_midnight = datetime.combine(day, time.min, tzinfo=store_zone(tz_name))
    return local_midnight.astimezone(timezone.utc).replace(tzinfo=None)


def whole_minutes(delta: timedelta) -> int:
    """Floor a duration to whole minutes, never negative."""
    seconds = int(delta.total_seconds())
    return max(seconds // 60, 0)
