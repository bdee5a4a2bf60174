"""Append-only alert history with filtered, paginated and grouped reads."""
import logging
from dataclasses import dataclass, field

from utils.timeutil import to_utc

logger = logging.getLogger("powerwatch.alerts.history")


@dataclass
class HistoryPage:
    events: list = field(default_factory=list)
    total: int = 0
    limit: int = 100
    skip: int = 0
    has_more: bool = False
    stats: list = field(default_factory=list)

    def to_dict(self):
        return {
            "history": [e.to_dict() for e in self.events],
            "pagination": {
                "total": self.total,
                "limit": self.limit,
                "skip": self.skip,
                "hasMore": self.has_more,
            },
            "stats": self.stats,
        }


class HistoryRecorder:
    def __init__(self, db):
        self.db = db

    def record(self, event):
        event_id = self.db.save_alert_event(event)
        logger.debug(f"Recorded alert event {event_id} for {event.alert_name}")
        return event_id

    def query(self, alert_id=None, metric=None, start=None, end=None, limit=100, skip=0):
        """Newest-first page of events; the date range is inclusive at both ends."""
        limit, skip = int(limit), int(skip)
        if limit < 1 or skip < 0:
            raise ValueError("limit must be >= 1 and skip >= 0")
        filters = dict(alert_id=alert_id, metric=metric, start=to_utc(start), end=to_utc(end))
        total = self.db.count_alert_events(**filters)
        return HistoryPage(
            events=self.db.get_alert_events(limit=limit, skip=skip, **filters),
            total=total,
            limit=limit,
            skip=skip,
            has_more=total > skip + limit,
            stats=self.db.get_alert_stats(**filters),
        )

    def stats(self, alert_id=None, metric=None, start=None, end=None):
        """Trigger count and most recent trigger per rule name, most frequent first."""
        return self.db.get_alert_stats(alert_id=alert_id, metric=metric,
                                       start=to_utc(start), end=to_utc(end))

    def purge(self, older_than=None, alert_id=None):
        if older_than is None and not alert_id:
            raise ValueError("Must specify older_than or alert_id")
        removed = self.db.delete_alert_events(older_than=to_utc(older_than), alert_id=alert_id)
        logger.info(f"Purged {removed} alert history entries")
        return removed
