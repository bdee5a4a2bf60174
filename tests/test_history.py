"""Tests for the alert history recorder."""
import pytest
from datetime import timedelta

from conftest import T0
from alerts.history import HistoryRecorder
from models.alerts import AlertEvent


@pytest.fixture
def history(temp_db):
    recorder = HistoryRecorder(temp_db)
    specs = [
        ("r1", "High power", "power", 0),
        ("r1", "High power", "power", 10),
        ("r1", "High power", "power", 20),
        ("r2", "Undervoltage", "voltage", 30),
        ("r2", "Undervoltage", "voltage", 40),
    ]
    for alert_id, name, metric, minutes in specs:
        recorder.record(AlertEvent(alert_id=alert_id, alert_name=name, metric=metric,
                                   condition="gt", threshold=1, actual_value=2,
                                   triggered_at=T0 + timedelta(minutes=minutes)))
    return recorder


def test_query_newest_first(history):
    page = history.query()
    assert page.total == 5
    assert page.events[0].triggered_at == T0 + timedelta(minutes=40)
    assert page.has_more is False


def test_pagination(history):
    page = history.query(limit=2, skip=0)
    assert len(page.events) == 2
    assert page.has_more is True
    last = history.query(limit=2, skip=4)
    assert len(last.events) == 1
    assert last.has_more is False


def test_filters(history):
    assert history.query(alert_id="r2").total == 2
    assert history.query(metric="power").total == 3
    ranged = history.query(start=T0 + timedelta(minutes=10), end=T0 + timedelta(minutes=30))
    # inclusive at both ends
    assert ranged.total == 3


def test_stats_grouped_by_name(history):
    stats = history.stats()
    assert stats[0]["alert_name"] == "High power"
    assert stats[0]["count"] == 3
    assert stats[1]["alert_name"] == "Undervoltage"
    assert stats[1]["last_triggered"].startswith("2024-03-04T12:40")


def test_page_to_dict(history):
    d = history.query(limit=1).to_dict()
    assert d["pagination"] == {"total": 5, "limit": 1, "skip": 0, "hasMore": True}
    assert len(d["history"]) == 1
    assert len(d["stats"]) == 2


def test_purge_requires_filter(history):
    with pytest.raises(ValueError):
        history.purge()


def test_purge_older_than(history):
    removed = history.purge(older_than=T0 + timedelta(minutes=15))
    assert removed == 2
    assert history.query().total == 3


def test_purge_by_alert(history):
    assert history.purge(alert_id="r1") == 3
    assert history.query().total == 2


def test_invalid_pagination(history):
    with pytest.raises(ValueError):
        history.query(limit=0)
