"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timezone
from models.database import Database
from models.alerts import AlertRule, ActionSpec
from telemetry.store import SampleStore

T0 = datetime(2024, 3, 4, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.unlink(db_path + suffix)


@pytest.fixture
def store(temp_db):
    """Sample store without retention trimming, so fixed historical timestamps survive."""
    return SampleStore(temp_db, retention_hours=0)


@pytest.fixture
def config(tmp_path):
    from config import load_config
    cfg = load_config()
    cfg["database"]["path"] = str(tmp_path / "powerwatch.db")
    cfg["store"]["retention_hours"] = 0
    cfg["actions"]["file_path"] = str(tmp_path / "alerts.jsonl")
    return cfg


def make_rule(rule_id="r1", name="High power", metric="power", condition="gt",
              threshold=1000, cooldown_seconds=300, active=True, actions=None, message=""):
    return AlertRule(
        id=rule_id, name=name, metric=metric, condition=condition,
        threshold=threshold, cooldown_seconds=cooldown_seconds, active=active,
        message=message or f"{name} alert",
        actions=[ActionSpec.from_dict(a) for a in (actions or [])],
    )
