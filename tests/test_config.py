"""Tests for config loading, merging and validation."""
import pytest
import yaml
from unittest.mock import patch

from config import load_config, _deep_merge, _validate_config


def test_defaults_load():
    with patch.dict("os.environ", {}, clear=True):
        cfg = load_config()
    assert cfg["store"]["retention_hours"] == 24
    assert cfg["energy"]["max_gap_seconds"] == 120
    assert cfg["evaluator"]["interval_seconds"] == 5
    assert cfg["actions"]["timeout_seconds"] == 10


def test_file_overrides_merge(tmp_path):
    path = tmp_path / "cfg.yaml"
    path.write_text(yaml.safe_dump({"store": {"retention_hours": 48}}))
    with patch.dict("os.environ", {}, clear=True):
        cfg = load_config(str(path))
    assert cfg["store"]["retention_hours"] == 48
    # sibling keys survive the merge
    assert cfg["store"]["recent_window_seconds"] == 10


def test_missing_override_file_uses_defaults(tmp_path):
    with patch.dict("os.environ", {}, clear=True):
        cfg = load_config(str(tmp_path / "nope.yaml"))
    assert cfg["rollup"]["interval_seconds"] == 3600


def test_env_overrides(tmp_path):
    with patch.dict("os.environ", {
        "POWERWATCH_DB_PATH": str(tmp_path / "env.db"),
        "POWERWATCH_RETENTION_HOURS": "0",
        "POWERWATCH_LOG_LEVEL": "DEBUG",
    }, clear=True):
        cfg = load_config()
    assert cfg["database"]["path"] == str(tmp_path / "env.db")
    assert cfg["store"]["retention_hours"] == 0
    assert cfg["logging"]["level"] == "DEBUG"


def test_deep_merge_does_not_mutate():
    base = {"a": {"x": 1, "y": 2}}
    merged = _deep_merge(base, {"a": {"y": 3}})
    assert merged == {"a": {"x": 1, "y": 3}}
    assert base["a"]["y"] == 2


@pytest.mark.parametrize("section,key,value", [
    ("evaluator", "interval_seconds", 0),
    ("rollup", "interval_seconds", 30),
    ("energy", "max_gap_seconds", 0),
    ("store", "retention_hours", -1),
    ("actions", "timeout_seconds", 0),
])
def test_validation_rejects_bad_values(section, key, value):
    with patch.dict("os.environ", {}, clear=True):
        cfg = load_config()
    cfg[section][key] = value
    with pytest.raises(ValueError):
        _validate_config(cfg)


def test_validation_requires_sections():
    with pytest.raises(ValueError, match="store"):
        _validate_config({"database": {}})


def test_env_override_accepts_fractional_hours():
    with patch.dict("os.environ", {"POWERWATCH_RETENTION_HOURS": "0.5"}, clear=True):
        cfg = load_config()
    assert cfg["store"]["retention_hours"] == 0.5


def test_non_numeric_env_override_is_value_error():
    with patch.dict("os.environ", {"POWERWATCH_EVAL_INTERVAL": "often"}, clear=True):
        with pytest.raises(ValueError, match="evaluator.interval_seconds"):
            load_config()
