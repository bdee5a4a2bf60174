"""Timestamp helpers shared by the store, rollups and alert history.

All timestamps are handled as timezone-aware UTC datetimes and persisted as
ISO-8601 text with a fixed microsecond precision, so that string order in
SQLite matches chronological order.
"""
from datetime import datetime, timedelta, timezone


def utcnow():
    return datetime.now(timezone.utc)


def to_utc(dt):
    """Normalize a datetime (or ISO string) to an aware UTC datetime. Naive values are taken as UTC."""
    if dt is None:
        return None
    if isinstance(dt, str):
        dt = datetime.fromisoformat(dt.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt):
    """Serialize for storage."""
    if dt is None:
        return None
    return to_utc(dt).isoformat(timespec="microseconds")


def parse_iso(value):
    if value is None:
        return None
    return to_utc(datetime.fromisoformat(value))


def floor_time(dt, resolution):
    """Truncate to the start of the minute/hour/day containing dt."""
    dt = to_utc(dt)
    res = getattr(resolution, "value", resolution)
    if res == "minute":
        return dt.replace(second=0, microsecond=0)
    if res == "hour":
        return dt.replace(minute=0, second=0, microsecond=0)
    if res == "day":
        return dt.replace(hour=0, minute=0, second=0, microsecond=0)
    raise ValueError(f"Unknown resolution: {resolution}")


def ceil_time(dt, resolution):
    """Smallest boundary of the given resolution at or after dt."""
    floored = floor_time(dt, resolution)
    if floored == to_utc(dt):
        return floored
    res = getattr(resolution, "value", resolution)
    step = {"minute": timedelta(minutes=1), "hour": timedelta(hours=1), "day": timedelta(days=1)}[res]
    return floored + step


def same_period(a, b, resolution="minute"):
    return floor_time(a, resolution) == floor_time(b, resolution)
