"""Data models."""
from models.enums import Metric, Condition, Resolution, ActionType
from models.telemetry import Sample, RollupBucket
from models.alerts import ActionSpec, AlertRule, AlertEvent, ActionResult
