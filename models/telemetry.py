"""Dataclasses for telemetry samples and rollup buckets."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from models.enums import Resolution
from utils.timeutil import utcnow, to_iso, parse_iso


@dataclass
class Sample:
    power: float = 0.0
    voltage: float = 0.0
    current: float = 0.0
    timestamp: datetime = field(default_factory=utcnow)
    id: Optional[int] = None

    def to_dict(self):
        return {
            "timestamp": to_iso(self.timestamp),
            "power": self.power,
            "voltage": self.voltage,
            "current": self.current,
        }

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        return cls(
            id=d.get("id"),
            power=d.get("power"),
            voltage=d.get("voltage"),
            current=d.get("current"),
            timestamp=parse_iso(d["timestamp"]),
        )


@dataclass
class RollupBucket:
    bucket_start: datetime
    resolution: Resolution
    power_sum: float = 0.0
    voltage_sum: float = 0.0
    current_sum: float = 0.0
    count: int = 0

    @property
    def avg_power(self):
        return self.power_sum / self.count if self.count else 0.0

    @property
    def avg_voltage(self):
        return self.voltage_sum / self.count if self.count else 0.0

    @property
    def avg_current(self):
        return self.current_sum / self.count if self.count else 0.0

    def to_dict(self):
        return {
            "bucket_start": to_iso(self.bucket_start),
            "resolution": self.resolution.value,
            "power_sum": self.power_sum,
            "voltage_sum": self.voltage_sum,
            "current_sum": self.current_sum,
            "count": self.count,
            "avg_power": self.avg_power,
            "avg_voltage": self.avg_voltage,
            "avg_current": self.avg_current,
        }

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        return cls(
            bucket_start=parse_iso(d["bucket_start"]),
            resolution=Resolution(d["resolution"]),
            power_sum=d["power_sum"],
            voltage_sum=d["voltage_sum"],
            current_sum=d["current_sum"],
            count=d["count"],
        )
