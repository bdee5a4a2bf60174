"""Utility modules for PowerWatch."""
from utils.logger import setup_logging
from utils.formatters import format_watts, format_kwh, format_timestamp, time_ago
from utils.timeutil import utcnow, to_utc, to_iso, parse_iso, floor_time, ceil_time
