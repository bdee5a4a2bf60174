"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path and Path(path).exists():
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        config = _deep_merge(config, overrides)

    # Environment variable overrides
    env_map = {
        "POWERWATCH_DB_PATH": ("database", "path"),
        "POWERWATCH_EVAL_INTERVAL": ("evaluator", "interval_seconds"),
        "POWERWATCH_ROLLUP_INTERVAL": ("rollup", "interval_seconds"),
        "POWERWATCH_RETENTION_HOURS": ("store", "retention_hours"),
        "POWERWATCH_LOG_LEVEL": ("logging", "level"),
    }
    for env_key, config_path in env_map.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            d[config_path[-1]] = _coerce(val)

    _validate_config(config)
    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _coerce(value):
    """Env values are strings; numbers become int or float."""
    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            continue
    return value


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Basic config validation."""
    required_sections = ["database", "store", "rollup", "energy", "evaluator", "actions"]
    for section in required_sections:
        if section not in config:
            raise ValueError(f"Missing required config section: {section}")

    numeric = [("evaluator", "interval_seconds"), ("rollup", "interval_seconds"),
               ("energy", "max_gap_seconds"), ("store", "retention_hours"),
               ("actions", "timeout_seconds")]
    for section, key in numeric:
        value = config[section].get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{section}.{key} must be a number, got {value!r}")

    if config["evaluator"]["interval_seconds"] < 1:
        raise ValueError("evaluator.interval_seconds must be >= 1 second")
    if config["rollup"]["interval_seconds"] < 60:
        raise ValueError("rollup.interval_seconds must be >= 60 seconds")
    if config["energy"]["max_gap_seconds"] <= 0:
        raise ValueError("energy.max_gap_seconds must be > 0")
    if config["store"]["retention_hours"] < 0:
        raise ValueError("store.retention_hours must be >= 0 (0 disables trimming)")
    if config["actions"]["timeout_seconds"] <= 0:
        raise ValueError("actions.timeout_seconds must be > 0")
