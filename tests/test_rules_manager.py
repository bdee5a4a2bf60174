"""Tests for YAML rule loading and syncing."""
import os
import pytest
import yaml

from conftest import T0
from alerts.rules_manager import RulesManager

BUNDLED_RULES = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                             "config", "alert_rules.yaml")


def _write_rules(path, rules):
    path.write_text(yaml.safe_dump({"rules": rules}))
    return str(path)


def test_bundled_rules_parse(temp_db):
    rules = RulesManager(temp_db, BUNDLED_RULES).load()
    ids = {r.id for r in rules}
    assert {"high_power", "undervoltage", "overcurrent"} <= ids
    overcurrent = next(r for r in rules if r.id == "overcurrent")
    assert overcurrent.active is False
    assert overcurrent.actions[1].type == "webhook"
    assert overcurrent.actions[1].params["url"].startswith("http")


def test_invalid_rules_skipped(temp_db, tmp_path):
    path = _write_rules(tmp_path / "rules.yaml", [
        {"id": "ok", "metric": "power", "condition": "gt", "threshold": 10},
        {"id": "bad_metric", "metric": "frequency", "condition": "gt", "threshold": 10},
        {"id": "bad_cond", "metric": "power", "condition": "between", "threshold": 10},
    ])
    rules = RulesManager(temp_db, path).load()
    assert [r.id for r in rules] == ["ok"]
    assert rules[0].cooldown_seconds == 300


def test_missing_file_loads_nothing(temp_db, tmp_path):
    assert RulesManager(temp_db, str(tmp_path / "missing.yaml")).sync() == 0


def test_sync_preserves_trigger_state(temp_db, tmp_path):
    path = _write_rules(tmp_path / "rules.yaml", [
        {"id": "hp", "name": "High power", "metric": "power", "condition": "gt", "threshold": 1000},
    ])
    manager = RulesManager(temp_db, path)
    assert manager.sync() == 1
    assert temp_db.mark_rule_triggered("hp", None, T0)

    _write_rules(tmp_path / "rules.yaml", [
        {"id": "hp", "name": "High power", "metric": "power", "condition": "gt", "threshold": 1500},
    ])
    manager.sync()

    rule = manager.get_rule("hp")
    assert rule.threshold == 1500
    assert rule.triggered is True
    assert rule.trigger_count == 1
    assert rule.last_triggered_at == T0


def test_toggle_and_acknowledge(temp_db, tmp_path):
    path = _write_rules(tmp_path / "rules.yaml", [
        {"id": "hp", "metric": "power", "condition": "gt", "threshold": 1000},
    ])
    manager = RulesManager(temp_db, path)
    manager.sync()

    assert manager.toggle("hp") is False
    assert manager.get_active_rules() == []
    assert manager.toggle("hp") is True
    assert manager.toggle("missing") is None

    temp_db.mark_rule_triggered("hp", None, T0)
    assert manager.acknowledge("hp") is True
    assert manager.get_rule("hp").triggered is False


def test_set_active_and_delete(temp_db, tmp_path):
    path = _write_rules(tmp_path / "rules.yaml", [
        {"id": "hp", "metric": "power", "condition": "gt", "threshold": 1000},
    ])
    manager = RulesManager(temp_db, path)
    manager.sync()

    assert manager.set_active("hp", False) is True
    assert manager.get_rule("hp").active is False
    assert manager.set_active("missing", True) is False

    assert manager.delete("hp") is True
    assert manager.get_rule("hp") is None
    assert manager.delete("hp") is False
