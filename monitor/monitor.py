"""PowerMonitor - central service object wiring ingestion, rollups, alerts and queries."""
import logging
from datetime import timedelta

from alerts.dispatcher import ActionDispatcher
from alerts.engine import AlertEvaluator
from alerts.history import HistoryRecorder
from models.database import Database
from models.enums import Resolution
from monitor.scheduler import PeriodicTask
from telemetry.energy import EnergyCalculator
from telemetry.rollup import RollupAggregator, build_buckets
from telemetry.store import SampleStore
from utils.timeutil import utcnow, to_utc

logger = logging.getLogger("powerwatch.monitor")


class PowerMonitor:
    """Constructed once at startup and passed to whatever needs it.

    `start()` launches the evaluator and rollup tasks, `stop()` halts them.
    The query methods are safe to call whether or not the tasks are running.
    """

    def __init__(self, db, config):
        self.db = db
        self.config = config
        retention = config["store"]["retention_hours"]

        self.store = SampleStore(db, retention_hours=retention)
        self.aggregator = RollupAggregator(db, retention_hours=retention)
        self.energy_calc = EnergyCalculator(db, max_gap_seconds=config["energy"]["max_gap_seconds"])
        self.history_recorder = HistoryRecorder(db)
        self.dispatcher = ActionDispatcher(
            config,
            timeout_seconds=config["actions"]["timeout_seconds"],
            max_workers=config["actions"]["max_workers"],
        )
        self.evaluator = AlertEvaluator(db, self.store, self.history_recorder, self.dispatcher)

        self.tasks = [
            PeriodicTask("evaluator", self.evaluator.tick, config["evaluator"]["interval_seconds"]),
            PeriodicTask("rollup", self.aggregator.run, config["rollup"]["interval_seconds"]),
        ]

    @classmethod
    def from_config(cls, config):
        """Open the database (fatal if unreachable) and build the service."""
        db = Database(config["database"]["path"]).connect()
        return cls(db, config)

    # --- Lifecycle ---

    def start(self):
        for task in self.tasks:
            task.start()
        logger.info("PowerMonitor started")

    def stop(self):
        for task in self.tasks:
            task.stop()
        logger.info("PowerMonitor stopped")

    def close(self):
        self.stop()
        self.dispatcher.shutdown()
        self.db.close()

    # --- Ingestion ---

    def ingest(self, power, voltage, current, timestamp=None):
        return self.store.add(power, voltage, current, timestamp)

    # --- Queries ---

    def latest(self):
        return self.store.latest()

    def recent(self, now=None):
        """Latest reading if fresh, plus the 10-minute average."""
        now = to_utc(now) if now else utcnow()
        cfg = self.config["store"]
        return {
            "recent": self.store.recent(now, cfg["recent_window_seconds"]),
            "average": self.store.average_since(now - timedelta(minutes=cfg["average_window_minutes"])),
        }

    def series(self, start, end, resolution=Resolution.HOUR):
        """Aggregated buckets for [start, end). Minute buckets are built on the fly from samples."""
        resolution = Resolution(resolution)
        if resolution is Resolution.MINUTE:
            samples = self.store.samples_between(start, end)
            return build_buckets(samples, Resolution.MINUTE,
                                 key=lambda s: s.timestamp,
                                 values=lambda s: (s.power, s.voltage, s.current, 1))
        return self.aggregator.buckets(resolution, start, end)

    def energy(self, start, end, resolution=Resolution.MINUTE):
        return self.energy_calc.energy_between(start, end, resolution)

    def energy_comparison(self, now=None):
        return self.energy_calc.compare(now)

    def history(self, **filters):
        return self.history_recorder.query(**filters)

    def run_rollup(self, since=None):
        return self.aggregator.run(since=since)

    def check_alerts(self, now=None):
        return self.evaluator.tick(now)
