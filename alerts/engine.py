"""Alert rule evaluation engine."""
import logging

from models.alerts import AlertEvent
from models.enums import Metric
from utils.timeutil import utcnow, to_utc

logger = logging.getLogger("powerwatch.alerts.engine")

EQ_TOLERANCE = 0.01

CONDITION_MAP = {
    "gt": lambda v, t: v > t,
    "lt": lambda v, t: v < t,
    "gte": lambda v, t: v >= t,
    "lte": lambda v, t: v <= t,
    "eq": lambda v, t: abs(v - t) < EQ_TOLERANCE,
}


class AlertEvaluator:
    """Compares the latest sample with every active rule.

    A matching rule is marked triggered through a compare-and-set on its
    last trigger time, its event is recorded, then its actions run. The rule
    stays triggered until acknowledged externally; once its cooldown has
    passed it can fire again regardless.
    """

    def __init__(self, db, store, history, dispatcher=None):
        self.db = db
        self.store = store
        self.history = history
        self.dispatcher = dispatcher

    def _extract_metric_value(self, sample, metric_name):
        if metric_name not in {m.value for m in Metric}:
            raise ValueError(f"Unknown metric: {metric_name!r}")
        return getattr(sample, metric_name, None)

    def _evaluate_condition(self, value, condition, threshold):
        func = CONDITION_MAP.get(condition)
        if func is None:
            raise ValueError(f"Unknown condition: {condition!r}")
        return func(float(value), float(threshold))

    def _in_cooldown(self, rule, now):
        if rule.last_triggered_at is None:
            return False
        elapsed = (now - rule.last_triggered_at).total_seconds()
        return elapsed < float(rule.cooldown_seconds or 0)

    def tick(self, now=None):
        """One scheduled pass over the latest stored sample."""
        sample = self.store.latest()
        if sample is None:
            logger.debug("No samples yet, nothing to evaluate")
            return []
        return self.evaluate(sample, now)

    def evaluate(self, sample, now=None):
        """Evaluate active rules in id order; returns the events triggered."""
        now = to_utc(now) if now else utcnow()
        triggered = []
        for rule in self.db.get_rules(active_only=True):
            try:
                event = self._evaluate_rule(rule, sample, now)
            except Exception as e:
                logger.error(f"Rule {rule.id} ({rule.name}) evaluation failed: {e}")
                continue
            if event is not None:
                triggered.append(event)
        return triggered

    def _evaluate_rule(self, rule, sample, now):
        if self._in_cooldown(rule, now):
            return None

        value = self._extract_metric_value(sample, rule.metric)
        if value is None:
            return None

        if not self._evaluate_condition(value, rule.condition, rule.threshold):
            return None

        if not self.db.mark_rule_triggered(rule.id, rule.last_triggered_at, now):
            logger.debug(f"Rule {rule.id} was updated concurrently, skipping trigger")
            return None

        event = AlertEvent(
            alert_id=rule.id,
            alert_name=rule.name,
            metric=rule.metric,
            condition=rule.condition,
            threshold=float(rule.threshold),
            actual_value=float(value),
            triggered_at=now,
            message=rule.message,
            sample_snapshot=sample.to_dict(),
        )
        try:
            event.id = self.history.record(event)
        except Exception as e:
            logger.error(f"Failed to record alert event for rule {rule.id}: {e}")

        logger.info(f"Alert triggered: {rule.name} ({rule.metric} = {value:.2f} "
                    f"{rule.condition} {rule.threshold})")

        if self.dispatcher is not None and rule.actions:
            self.dispatcher.dispatch(event, rule.actions)
        return event

    def preview(self, sample):
        """Evaluate ALL rules ignoring cooldowns and without changing state."""
        results = []
        for rule in self.db.get_rules():
            value, would_fire = None, False
            try:
                if sample is not None:
                    value = self._extract_metric_value(sample, rule.metric)
                if value is not None:
                    would_fire = self._evaluate_condition(value, rule.condition, rule.threshold)
            except (TypeError, ValueError):
                would_fire = False
            results.append({
                "rule_id": rule.id,
                "name": rule.name,
                "metric": rule.metric,
                "condition": rule.condition,
                "threshold": rule.threshold,
                "current_value": value,
                "would_fire": would_fire,
                "active": rule.active,
                "triggered": rule.triggered,
            })
        return results

    def format_alert_summary(self, events):
        if not events:
            return "All clear - no alerts triggered."
        lines = []
        for e in events:
            lines.append(f"[!] {e.alert_name}: {e.metric} = {e.actual_value:.2f} "
                         f"({e.condition} {e.threshold}) {e.message}".rstrip())
        return "\n".join(lines)
