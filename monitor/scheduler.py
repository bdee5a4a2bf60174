"""Background periodic tasks for rule evaluation and rollups."""
import logging
import threading
import schedule
import time

logger = logging.getLogger("powerwatch.scheduler")


class PeriodicTask:
    """Runs a callable every `interval_seconds` on its own thread.

    Each task owns a private schedule.Scheduler so tasks do not delay each
    other. A tick that comes due while the previous one (or a manual
    run_now call) is still executing is skipped, not queued.
    """

    def __init__(self, name, func, interval_seconds, run_immediately=True, poll_seconds=0.5):
        self.name = name
        self.func = func
        self.interval = interval_seconds
        self.run_immediately = run_immediately
        self.poll_seconds = poll_seconds
        self._scheduler = schedule.Scheduler()
        self._busy = threading.Lock()
        self._stop = threading.Event()
        self._thread = None
        self._consecutive_failures = 0
        self.runs = 0
        self.skipped = 0

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._stop.clear()
        self._scheduler.clear()
        self._scheduler.every(self.interval).seconds.do(self.run_now)
        self._thread = threading.Thread(target=self._run_loop, name=f"task-{self.name}", daemon=True)
        self._thread.start()
        logger.info(f"Task {self.name} started (every {self.interval}s)")

    def stop(self, timeout=30):
        """Stop scheduling; an in-flight tick is allowed to finish."""
        self._stop.set()
        self._scheduler.clear()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info(f"Task {self.name} stopped")

    def _run_loop(self):
        if self.run_immediately:
            self.run_now()
        while not self._stop.is_set():
            self._scheduler.run_pending()
            self._stop.wait(self.poll_seconds)

    def run_now(self):
        """Run one tick unless one is already executing. Returns False if skipped."""
        if not self._busy.acquire(blocking=False):
            self.skipped += 1
            logger.debug(f"Task {self.name} still running, skipping tick")
            return False
        try:
            started = time.monotonic()
            self.func()
            self.runs += 1
            self._consecutive_failures = 0
            logger.debug(f"Task {self.name} finished in {time.monotonic() - started:.2f}s")
        except Exception as e:
            self._consecutive_failures += 1
            logger.error(f"Task {self.name} failed ({self._consecutive_failures} consecutive): {e}")
            if self._consecutive_failures >= 5:
                logger.critical(f"Task {self.name}: 5+ consecutive failures!")
        finally:
            self._busy.release()
        return True
