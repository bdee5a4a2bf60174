"""Sample store: durable append log of power readings with same-minute merging."""
import logging
import sqlite3
from datetime import timedelta

from models.database import StoreError
from models.telemetry import Sample
from utils.timeutil import utcnow, to_utc, same_period

logger = logging.getLogger("powerwatch.store")


class SampleStore:
    """Owns the raw sample log.

    A reading landing in the same minute as the last stored sample is folded
    into it by pairwise averaging instead of appending a row, which bounds
    storage under high-frequency reporting. Rows older than the retention
    horizon are dropped after every write.
    """

    def __init__(self, db, retention_hours=24, merge_period="minute"):
        self.db = db
        self.retention_hours = retention_hours
        self.merge_period = merge_period

    def add(self, power, voltage, current, timestamp=None):
        """Store one reading and return the resulting (possibly merged) sample."""
        ts = to_utc(timestamp) if timestamp is not None else utcnow()
        incoming = Sample(power=float(power), voltage=float(voltage),
                          current=float(current), timestamp=ts)
        try:
            last = self.db.get_latest_sample()
            if last is not None and same_period(last.timestamp, ts, self.merge_period):
                stored = Sample(
                    id=last.id,
                    power=(last.power + incoming.power) / 2,
                    voltage=(last.voltage + incoming.voltage) / 2,
                    current=(last.current + incoming.current) / 2,
                    timestamp=max(last.timestamp, ts),
                )
                self.db.update_sample(stored)
                logger.debug(f"Merged reading into sample {stored.id}: {stored.power:.1f} W")
            else:
                stored = incoming
                stored.id = self.db.insert_sample(stored)
                logger.debug(f"Stored sample {stored.id}: {stored.power:.1f} W")
            self.trim(now=stored.timestamp)
        except sqlite3.Error as e:
            raise StoreError(f"Failed to store sample: {e}") from e
        return stored

    def trim(self, now=None):
        """Drop samples older than the retention horizon. Returns rows removed."""
        if not self.retention_hours:
            return 0
        cutoff = (to_utc(now) if now else utcnow()) - timedelta(hours=self.retention_hours)
        removed = self.db.delete_samples_before(cutoff)
        if removed:
            logger.debug(f"Trimmed {removed} samples older than {cutoff.isoformat()}")
        return removed

    def latest(self):
        return self.db.get_latest_sample()

    def recent(self, now=None, freshness_seconds=10):
        """Latest sample, only if it was reported within the freshness window."""
        last = self.db.get_latest_sample()
        if last is None:
            return None
        now = to_utc(now) if now else utcnow()
        if (now - last.timestamp).total_seconds() < freshness_seconds:
            return last
        return None

    def samples_between(self, start, end):
        return self.db.get_samples(start, end)

    def average_since(self, since):
        """Mean power/voltage/current over samples at or after `since`, or None if there are none."""
        row = self.db.get_sample_averages(to_utc(since))
        if not row["count"]:
            return None
        return {
            "power": row["power"],
            "voltage": row["voltage"],
            "current": row["current"],
            "count": row["count"],
        }
