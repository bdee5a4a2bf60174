"""Energy (kWh) from power readings by trapezoidal integration."""
import logging
import math
from datetime import timedelta

from models.enums import Resolution
from utils.timeutil import utcnow, to_utc, to_iso, floor_time

logger = logging.getLogger("powerwatch.energy")

DEFAULT_MAX_GAP_SECONDS = 120


def integrate_energy(points, max_gap_seconds=DEFAULT_MAX_GAP_SECONDS):
    """Integrate ordered (power_watts, timestamp) pairs into kWh.

    Each interval contributes the mean of its two endpoint powers times its
    duration. Intervals longer than max_gap_seconds are clamped to it so an
    outage does not get billed as if the last reading held throughout.
    """
    energy = 0.0
    prev = None
    for power, ts in points:
        ts = to_utc(ts)
        power = power or 0.0
        if prev is not None:
            p1, t1 = prev
            dt = (ts - t1).total_seconds()
            if dt > 0:
                if max_gap_seconds is not None:
                    dt = min(dt, max_gap_seconds)
                energy += ((p1 + power) / 2) / 1000 * (dt / 3600)
        prev = (power, ts)
    return energy


def period_boundaries(now):
    """Start/end pairs for the comparison periods, weeks starting on Monday."""
    now = to_utc(now)
    today = floor_time(now, Resolution.DAY)
    yesterday = today - timedelta(days=1)
    this_week = today - timedelta(days=today.weekday())
    last_week = this_week - timedelta(days=7)
    this_month = today.replace(day=1)
    last_month = (this_month - timedelta(days=1)).replace(day=1)
    return {
        "today": (today, now),
        "yesterday": (yesterday, today),
        "this_week": (this_week, now),
        "last_week": (last_week, this_week),
        "this_month": (this_month, now),
        "last_month": (last_month, this_month),
    }


class EnergyCalculator:
    def __init__(self, db, max_gap_seconds=DEFAULT_MAX_GAP_SECONDS):
        self.db = db
        self.max_gap_seconds = max_gap_seconds

    def energy_between(self, start, end, resolution=Resolution.MINUTE):
        """kWh consumed in [start, end).

        Minute resolution integrates raw samples. Hour and day count each
        bucket at its average power over the part of its width that falls
        inside the range.
        """
        resolution = Resolution(resolution)
        start, end = to_utc(start), to_utc(end)
        if resolution is Resolution.MINUTE:
            samples = self.db.get_samples(start, end)
            return integrate_energy(((s.power, s.timestamp) for s in samples),
                                    self.max_gap_seconds)
        width = timedelta(seconds=resolution.seconds)
        buckets = self.db.get_buckets(resolution, floor_time(start, resolution), end)
        parts = []
        for b in buckets:
            covered = (min(b.bucket_start + width, end) - max(b.bucket_start, start)).total_seconds()
            if covered > 0:
                parts.append((b.avg_power or 0.0) / 1000 * covered / 3600)
        return math.fsum(parts)

    def compare(self, now=None):
        now = to_utc(now) if now else utcnow()
        result = {name: self.energy_between(start, end)
                  for name, (start, end) in period_boundaries(now).items()}
        result["calculated_at"] = to_iso(now)
        return result
