"""SQLite database for storing samples, rollup buckets, alert rules and alert history."""
import functools
import json
import sqlite3
import logging
import threading
from pathlib import Path

from models.alerts import AlertRule, AlertEvent
from models.telemetry import Sample, RollupBucket
from utils.timeutil import utcnow, to_iso

logger = logging.getLogger("powerwatch.db")


class StoreError(Exception):
    """Persistent store failure surfaced to the caller."""


def _synchronized(method):
    """Serialize access to the shared connection (scheduler threads + caller)."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


class Database:
    def __init__(self, db_path="data/powerwatch.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.RLock()

    def connect(self):
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode=WAL")
            self._create_tables()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS samples (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                power REAL,
                voltage REAL,
                current REAL
            );

            CREATE INDEX IF NOT EXISTS idx_samples_timestamp
                ON samples(timestamp);

            CREATE TABLE IF NOT EXISTS rollups (
                bucket_start TEXT NOT NULL,
                resolution TEXT NOT NULL,
                power_sum REAL NOT NULL,
                voltage_sum REAL NOT NULL,
                current_sum REAL NOT NULL,
                count INTEGER NOT NULL CHECK (count >= 1),
                PRIMARY KEY (bucket_start, resolution)
            );

            CREATE TABLE IF NOT EXISTS alert_rules (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                metric TEXT NOT NULL,
                condition TEXT NOT NULL,
                threshold REAL,
                cooldown_seconds INTEGER DEFAULT 300,
                active INTEGER DEFAULT 1,
                message TEXT,
                actions TEXT DEFAULT '[]',
                triggered INTEGER DEFAULT 0,
                last_triggered_at TEXT,
                trigger_count INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS alert_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alert_id TEXT NOT NULL,
                alert_name TEXT NOT NULL,
                metric TEXT NOT NULL,
                condition TEXT NOT NULL,
                threshold REAL,
                actual_value REAL,
                triggered_at TEXT NOT NULL,
                message TEXT,
                sample_snapshot TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_history_triggered
                ON alert_history(triggered_at);
            CREATE INDEX IF NOT EXISTS idx_history_alert
                ON alert_history(alert_id);
        """)
        self.conn.commit()

    # --- Samples ---

    @_synchronized
    def get_latest_sample(self):
        row = self.conn.execute(
            "SELECT * FROM samples ORDER BY timestamp DESC, id DESC LIMIT 1"
        ).fetchone()
        return Sample.from_row(row) if row else None

    @_synchronized
    def insert_sample(self, sample):
        d = sample.to_dict()
        cur = self.conn.execute("""
            INSERT INTO samples (timestamp, power, voltage, current)
            VALUES (?, ?, ?, ?)
        """, (d["timestamp"], d["power"], d["voltage"], d["current"]))
        self.conn.commit()
        return cur.lastrowid

    @_synchronized
    def update_sample(self, sample):
        d = sample.to_dict()
        self.conn.execute("""
            UPDATE samples SET timestamp = ?, power = ?, voltage = ?, current = ?
            WHERE id = ?
        """, (d["timestamp"], d["power"], d["voltage"], d["current"], sample.id))
        self.conn.commit()

    @_synchronized
    def delete_samples_before(self, cutoff):
        cur = self.conn.execute(
            "DELETE FROM samples WHERE timestamp < ?", (to_iso(cutoff),)
        )
        self.conn.commit()
        return cur.rowcount

    @_synchronized
    def get_samples(self, start=None, end=None):
        """Samples in [start, end), oldest first."""
        query = "SELECT * FROM samples WHERE 1=1"
        params = []
        if start is not None:
            query += " AND timestamp >= ?"
            params.append(to_iso(start))
        if end is not None:
            query += " AND timestamp < ?"
            params.append(to_iso(end))
        query += " ORDER BY timestamp ASC, id ASC"
        rows = self.conn.execute(query, params).fetchall()
        return [Sample.from_row(r) for r in rows]

    @_synchronized
    def get_sample_averages(self, since):
        row = self.conn.execute("""
            SELECT AVG(power) AS power, AVG(voltage) AS voltage,
                   AVG(current) AS current, COUNT(*) AS count
            FROM samples WHERE timestamp >= ?
        """, (to_iso(since),)).fetchone()
        return dict(row)

    @_synchronized
    def get_sample_count(self):
        return self.conn.execute("SELECT COUNT(*) AS cnt FROM samples").fetchone()["cnt"]

    # --- Rollups ---

    @_synchronized
    def replace_buckets(self, buckets):
        """Upsert on (bucket_start, resolution): replace if present, insert otherwise."""
        self.conn.executemany("""
            INSERT OR REPLACE INTO rollups
            (bucket_start, resolution, power_sum, voltage_sum, current_sum, count)
            VALUES (?, ?, ?, ?, ?, ?)
        """, [(to_iso(b.bucket_start), b.resolution.value, b.power_sum,
               b.voltage_sum, b.current_sum, b.count) for b in buckets])
        self.conn.commit()
        logger.debug(f"Replaced {len(buckets)} rollup buckets")

    @_synchronized
    def get_buckets(self, resolution, start=None, end=None):
        """Buckets of one resolution in [start, end), oldest first."""
        query = "SELECT * FROM rollups WHERE resolution = ?"
        params = [getattr(resolution, "value", resolution)]
        if start is not None:
            query += " AND bucket_start >= ?"
            params.append(to_iso(start))
        if end is not None:
            query += " AND bucket_start < ?"
            params.append(to_iso(end))
        query += " ORDER BY bucket_start ASC"
        rows = self.conn.execute(query, params).fetchall()
        return [RollupBucket.from_row(r) for r in rows]

    # --- Alert Rules ---

    @_synchronized
    def save_rule(self, rule):
        """Insert or update a rule definition. Trigger state of an existing rule is left alone."""
        now = to_iso(utcnow())
        self.conn.execute("""
            INSERT INTO alert_rules
            (id, name, metric, condition, threshold, cooldown_seconds, active,
             message, actions, triggered, last_triggered_at, trigger_count,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                metric = excluded.metric,
                condition = excluded.condition,
                threshold = excluded.threshold,
                cooldown_seconds = excluded.cooldown_seconds,
                active = excluded.active,
                message = excluded.message,
                actions = excluded.actions,
                updated_at = excluded.updated_at
        """, (
            rule.id, rule.name, rule.metric, rule.condition, rule.threshold,
            rule.cooldown_seconds, int(rule.active), rule.message, rule.actions_json(),
            int(rule.triggered), to_iso(rule.last_triggered_at), rule.trigger_count,
            now, now,
        ))
        self.conn.commit()

    @_synchronized
    def get_rule(self, rule_id):
        row = self.conn.execute(
            "SELECT * FROM alert_rules WHERE id = ?", (rule_id,)
        ).fetchone()
        return AlertRule.from_row(row) if row else None

    @_synchronized
    def get_rules(self, active_only=False):
        query = "SELECT * FROM alert_rules"
        if active_only:
            query += " WHERE active = 1"
        query += " ORDER BY id ASC"
        rows = self.conn.execute(query).fetchall()
        return [AlertRule.from_row(r) for r in rows]

    @_synchronized
    def delete_rule(self, rule_id):
        cur = self.conn.execute("DELETE FROM alert_rules WHERE id = ?", (rule_id,))
        self.conn.commit()
        return cur.rowcount > 0

    @_synchronized
    def mark_rule_triggered(self, rule_id, expected_last_triggered_at, triggered_at):
        """Compare-and-set trigger update.

        Succeeds only while last_triggered_at still holds the value the caller
        read before its cooldown check, so two overlapping ticks cannot both
        trigger the same rule.
        """
        cur = self.conn.execute("""
            UPDATE alert_rules
            SET triggered = 1,
                last_triggered_at = ?,
                trigger_count = trigger_count + 1,
                updated_at = ?
            WHERE id = ? AND active = 1 AND last_triggered_at IS ?
        """, (to_iso(triggered_at), to_iso(utcnow()), rule_id,
              to_iso(expected_last_triggered_at)))
        self.conn.commit()
        return cur.rowcount == 1

    @_synchronized
    def acknowledge_rule(self, rule_id):
        """Clear the triggered flag; cooldown window and counters are kept."""
        cur = self.conn.execute(
            "UPDATE alert_rules SET triggered = 0, updated_at = ? WHERE id = ?",
            (to_iso(utcnow()), rule_id),
        )
        self.conn.commit()
        return cur.rowcount > 0

    @_synchronized
    def set_rule_active(self, rule_id, active):
        cur = self.conn.execute(
            "UPDATE alert_rules SET active = ?, updated_at = ? WHERE id = ?",
            (int(active), to_iso(utcnow()), rule_id),
        )
        self.conn.commit()
        return cur.rowcount > 0

    @_synchronized
    def toggle_rule_active(self, rule_id):
        """Flip the active flag in one statement. Returns the new state, or None if no such rule."""
        cur = self.conn.execute(
            "UPDATE alert_rules SET active = 1 - active, updated_at = ? WHERE id = ?",
            (to_iso(utcnow()), rule_id),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            return None
        row = self.conn.execute(
            "SELECT active FROM alert_rules WHERE id = ?", (rule_id,)
        ).fetchone()
        return bool(row["active"])

    # --- Alert History ---

    @_synchronized
    def save_alert_event(self, event):
        cur = self.conn.execute("""
            INSERT INTO alert_history
            (alert_id, alert_name, metric, condition, threshold, actual_value,
             triggered_at, message, sample_snapshot)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            event.alert_id, event.alert_name, event.metric, event.condition,
            event.threshold, event.actual_value, to_iso(event.triggered_at),
            event.message, json.dumps(event.sample_snapshot, default=str),
        ))
        self.conn.commit()
        return cur.lastrowid

    @staticmethod
    def _history_filter(alert_id=None, metric=None, start=None, end=None):
        clause = " WHERE 1=1"
        params = []
        if alert_id:
            clause += " AND alert_id = ?"
            params.append(alert_id)
        if metric:
            clause += " AND metric = ?"
            params.append(metric)
        if start is not None:
            clause += " AND triggered_at >= ?"
            params.append(to_iso(start))
        if end is not None:
            clause += " AND triggered_at <= ?"
            params.append(to_iso(end))
        return clause, params

    @_synchronized
    def get_alert_events(self, alert_id=None, metric=None, start=None, end=None,
                         limit=100, skip=0):
        clause, params = self._history_filter(alert_id, metric, start, end)
        rows = self.conn.execute(
            "SELECT * FROM alert_history" + clause
            + " ORDER BY triggered_at DESC, id DESC LIMIT ? OFFSET ?",
            params + [limit, skip],
        ).fetchall()
        return [AlertEvent.from_row(r) for r in rows]

    @_synchronized
    def count_alert_events(self, alert_id=None, metric=None, start=None, end=None):
        clause, params = self._history_filter(alert_id, metric, start, end)
        row = self.conn.execute(
            "SELECT COUNT(*) AS cnt FROM alert_history" + clause, params
        ).fetchone()
        return row["cnt"]

    @_synchronized
    def get_alert_stats(self, alert_id=None, metric=None, start=None, end=None):
        clause, params = self._history_filter(alert_id, metric, start, end)
        rows = self.conn.execute(
            "SELECT alert_name, COUNT(*) AS count, MAX(triggered_at) AS last_triggered"
            " FROM alert_history" + clause
            + " GROUP BY alert_name ORDER BY count DESC, alert_name ASC",
            params,
        ).fetchall()
        return [dict(r) for r in rows]

    @_synchronized
    def delete_alert_events(self, older_than=None, alert_id=None):
        query = "DELETE FROM alert_history WHERE 1=1"
        params = []
        if older_than is not None:
            query += " AND triggered_at < ?"
            params.append(to_iso(older_than))
        if alert_id:
            query += " AND alert_id = ?"
            params.append(alert_id)
        cur = self.conn.execute(query, params)
        self.conn.commit()
        return cur.rowcount
