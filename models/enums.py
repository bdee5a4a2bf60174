"""Enums for telemetry metrics, rule conditions, rollup resolutions and action kinds."""
from enum import Enum


class Metric(str, Enum):
    POWER = "power"
    VOLTAGE = "voltage"
    CURRENT = "current"


class Condition(str, Enum):
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"


class Resolution(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"

    @property
    def seconds(self):
        return {"minute": 60, "hour": 3600, "day": 86400}[self.value]


class ActionType(str, Enum):
    LOG = "log"
    FILE = "file"
    WEBHOOK = "webhook"
    EMAIL = "email"
    SMS = "sms"
    TELEGRAM = "telegram"
