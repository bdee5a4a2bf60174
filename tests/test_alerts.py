"""Tests for the alert evaluator: conditions, cooldown, acknowledge, isolation."""
import pytest
from datetime import timedelta
from unittest.mock import MagicMock

from conftest import T0, make_rule
from alerts.engine import AlertEvaluator
from alerts.history import HistoryRecorder
from models.telemetry import Sample


def _sample(power=500.0, voltage=230.0, current=2.0, ts=T0):
    return Sample(power=power, voltage=voltage, current=current, timestamp=ts)


@pytest.fixture
def evaluator(temp_db, store):
    return AlertEvaluator(temp_db, store, HistoryRecorder(temp_db), dispatcher=MagicMock())


# ── Rule Evaluation ─────────────────────────────────────

def test_rule_triggers(temp_db, evaluator):
    temp_db.save_rule(make_rule())
    events = evaluator.evaluate(_sample(power=1200), now=T0)
    assert len(events) == 1
    assert events[0].alert_id == "r1"
    assert events[0].actual_value == 1200
    assert events[0].sample_snapshot["power"] == 1200

    rule = temp_db.get_rule("r1")
    assert rule.triggered is True
    assert rule.trigger_count == 1
    assert rule.last_triggered_at == T0


def test_rule_does_not_trigger(temp_db, evaluator):
    temp_db.save_rule(make_rule())
    assert evaluator.evaluate(_sample(power=900), now=T0) == []
    assert temp_db.get_rule("r1").triggered is False


@pytest.mark.parametrize("condition,threshold,value,expected", [
    ("gt", 100, 101, True), ("gt", 100, 100, False),
    ("lt", 100, 99, True), ("lt", 100, 100, False),
    ("gte", 100, 100, True), ("gte", 100, 99.9, False),
    ("lte", 100, 100, True), ("lte", 100, 100.1, False),
    ("eq", 100, 100.005, True), ("eq", 100, 100.02, False),
    ("eq", 100, 99.995, True),
])
def test_all_conditions(temp_db, evaluator, condition, threshold, value, expected):
    temp_db.save_rule(make_rule(metric="voltage", condition=condition, threshold=threshold))
    events = evaluator.evaluate(_sample(voltage=value), now=T0)
    assert (len(events) == 1) == expected


def test_inactive_rule_ignored(temp_db, evaluator):
    temp_db.save_rule(make_rule(active=False))
    assert evaluator.evaluate(_sample(power=5000), now=T0) == []


def test_missing_metric_value_skipped(temp_db, evaluator):
    temp_db.save_rule(make_rule())
    assert evaluator.evaluate(_sample(power=None), now=T0) == []


# ── Cooldown ────────────────────────────────────────────

def test_cooldown_sequence(temp_db, evaluator):
    temp_db.save_rule(make_rule(threshold=1000, cooldown_seconds=300))

    assert len(evaluator.evaluate(_sample(power=1200), now=T0)) == 1
    assert temp_db.get_rule("r1").trigger_count == 1

    later = T0 + timedelta(seconds=60)
    assert evaluator.evaluate(_sample(power=1300, ts=later), now=later) == []
    assert temp_db.get_rule("r1").trigger_count == 1
    assert temp_db.get_rule("r1").triggered is True

    expired = T0 + timedelta(seconds=310)
    assert len(evaluator.evaluate(_sample(power=1250, ts=expired), now=expired)) == 1
    rule = temp_db.get_rule("r1")
    assert rule.trigger_count == 2
    assert rule.last_triggered_at == expired


def test_no_auto_clear_when_metric_recovers(temp_db, evaluator):
    temp_db.save_rule(make_rule(cooldown_seconds=0))
    evaluator.evaluate(_sample(power=1200), now=T0)
    evaluator.evaluate(_sample(power=10), now=T0 + timedelta(seconds=5))
    assert temp_db.get_rule("r1").triggered is True


def test_acknowledge_keeps_cooldown_and_count(temp_db, evaluator):
    temp_db.save_rule(make_rule(cooldown_seconds=300))
    evaluator.evaluate(_sample(power=1200), now=T0)

    assert temp_db.acknowledge_rule("r1") is True
    rule = temp_db.get_rule("r1")
    assert rule.triggered is False
    assert rule.trigger_count == 1
    assert rule.last_triggered_at == T0

    # Still cooling down after acknowledge
    later = T0 + timedelta(seconds=100)
    assert evaluator.evaluate(_sample(power=1500), now=later) == []
    assert temp_db.get_rule("r1").triggered is False


def test_overlapping_ticks_trigger_once(temp_db, store):
    """Two evaluators that both read the rule before either writes: only one wins."""
    temp_db.save_rule(make_rule())
    history = HistoryRecorder(temp_db)
    first = AlertEvaluator(temp_db, store, history)
    second = AlertEvaluator(temp_db, store, history)

    stale_rule = temp_db.get_rule("r1")
    assert first.evaluate(_sample(power=1200), now=T0)
    assert second._evaluate_rule(stale_rule, _sample(power=1200), T0 + timedelta(seconds=1)) is None
    assert temp_db.get_rule("r1").trigger_count == 1
    assert temp_db.count_alert_events() == 1


# ── Isolation & dispatch ────────────────────────────────

def test_malformed_rule_does_not_stop_batch(temp_db, evaluator):
    temp_db.save_rule(make_rule("a_bad", threshold="not-a-number"))
    temp_db.save_rule(make_rule("b_bad", condition="between"))
    temp_db.save_rule(make_rule("c_good"))
    events = evaluator.evaluate(_sample(power=1200), now=T0)
    assert [e.alert_id for e in events] == ["c_good"]
    assert temp_db.get_rule("a_bad").triggered is False


def test_actions_dispatched_with_event(temp_db, store):
    dispatcher = MagicMock()
    evaluator = AlertEvaluator(temp_db, store, HistoryRecorder(temp_db), dispatcher)
    temp_db.save_rule(make_rule(actions=[{"type": "log"}]))
    events = evaluator.evaluate(_sample(power=1200), now=T0)

    dispatcher.dispatch.assert_called_once()
    event, specs = dispatcher.dispatch.call_args[0]
    assert event is events[0]
    assert event.id is not None
    assert specs[0].type == "log"


def test_tick_without_samples(evaluator, temp_db):
    temp_db.save_rule(make_rule())
    assert evaluator.tick(now=T0) == []


def test_tick_uses_latest_sample(evaluator, store, temp_db):
    temp_db.save_rule(make_rule())
    store.add(800, 230, 3, timestamp=T0)
    store.add(1500, 230, 6, timestamp=T0 + timedelta(minutes=2))
    events = evaluator.tick(now=T0 + timedelta(minutes=2))
    assert len(events) == 1
    assert events[0].actual_value == 1500


# ── preview / summary ───────────────────────────────────

def test_preview_ignores_cooldown_and_state(temp_db, evaluator):
    temp_db.save_rule(make_rule("r1", threshold=1000))
    temp_db.save_rule(make_rule("r2", threshold=5000, active=False))
    evaluator.evaluate(_sample(power=1200), now=T0)

    results = evaluator.preview(_sample(power=1200))
    by_id = {r["rule_id"]: r for r in results}
    assert by_id["r1"]["would_fire"] is True
    assert by_id["r2"]["would_fire"] is False
    assert temp_db.get_rule("r1").trigger_count == 1


def test_format_alert_summary(evaluator):
    assert "All clear" in evaluator.format_alert_summary([])
