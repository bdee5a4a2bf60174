"""Formatting utilities for display."""
from datetime import datetime, timezone


def format_watts(value):
    """Format power, switching to kW above 1000 W."""
    if value is None:
        return "N/A"
    value = float(value)
    if abs(value) >= 1000:
        return f"{value / 1000:,.2f} kW"
    return f"{value:,.1f} W"


def format_kwh(value, decimals=3):
    if value is None:
        return "N/A"
    return f"{float(value):,.{decimals}f} kWh"


def format_timestamp(ts):
    """Format a datetime to human-readable string."""
    if ts is None:
        return "N/A"
    if isinstance(ts, str):
        return ts
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def time_ago(dt, now=None):
    """Return human-readable time since dt. E.g., '3h ago', '2d ago'."""
    if dt is None:
        return "never"
    now = now or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    seconds = int((now - dt).total_seconds())

    if seconds < 60:
        return f"{seconds}s ago"
    elif seconds < 3600:
        return f"{seconds // 60}m ago"
    elif seconds < 86400:
        return f"{seconds // 3600}h ago"
    else:
        return f"{seconds // 86400}d ago"
