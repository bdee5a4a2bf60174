"""Dataclasses for alert rules, action specs, trigger events and action results."""
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from utils.timeutil import utcnow, to_iso, parse_iso


@dataclass
class ActionSpec:
    type: str = "log"
    params: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw):
        """Accept both {"type": .., "params": {..}} and the flat {"type": .., "url": ..} form."""
        raw = dict(raw or {})
        action_type = str(raw.pop("type", "log")).lower()
        params = raw.pop("params", None)
        if params is None:
            params = raw
        return cls(type=action_type, params=dict(params))

    def to_dict(self):
        return {"type": self.type, "params": self.params}


@dataclass
class AlertRule:
    id: str = ""
    name: str = ""
    metric: str = "power"
    condition: str = "gt"
    threshold: float = 0.0
    cooldown_seconds: int = 300
    active: bool = True
    message: str = ""
    actions: list = field(default_factory=list)
    # Trigger state, written only by the evaluator
    triggered: bool = False
    last_triggered_at: Optional[datetime] = None
    trigger_count: int = 0

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        actions = json.loads(d.get("actions") or "[]")
        return cls(
            id=d["id"],
            name=d["name"],
            metric=d["metric"],
            condition=d["condition"],
            threshold=d["threshold"],
            cooldown_seconds=d["cooldown_seconds"],
            active=bool(d["active"]),
            message=d.get("message") or "",
            actions=[ActionSpec.from_dict(a) for a in actions],
            triggered=bool(d["triggered"]),
            last_triggered_at=parse_iso(d.get("last_triggered_at")),
            trigger_count=d.get("trigger_count") or 0,
        )

    def actions_json(self):
        return json.dumps([a.to_dict() if isinstance(a, ActionSpec) else a for a in self.actions])


@dataclass
class AlertEvent:
    alert_id: str = ""
    alert_name: str = ""
    metric: str = ""
    condition: str = ""
    threshold: float = 0.0
    actual_value: float = 0.0
    triggered_at: datetime = field(default_factory=utcnow)
    message: str = ""
    sample_snapshot: dict = field(default_factory=dict)
    id: Optional[int] = None

    def to_dict(self):
        return {
            "id": self.id,
            "alert_id": self.alert_id,
            "alert_name": self.alert_name,
            "metric": self.metric,
            "condition": self.condition,
            "threshold": self.threshold,
            "actual_value": self.actual_value,
            "triggered_at": to_iso(self.triggered_at),
            "message": self.message,
            "sample_snapshot": self.sample_snapshot,
        }

    @classmethod
    def from_row(cls, row):
        d = dict(row)
        return cls(
            id=d["id"],
            alert_id=d["alert_id"],
            alert_name=d["alert_name"],
            metric=d["metric"],
            condition=d["condition"],
            threshold=d["threshold"],
            actual_value=d["actual_value"],
            triggered_at=parse_iso(d["triggered_at"]),
            message=d.get("message") or "",
            sample_snapshot=json.loads(d.get("sample_snapshot") or "{}"),
        )


@dataclass
class ActionResult:
    action_type: str
    ok: bool
    detail: str = ""
