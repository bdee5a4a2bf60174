"""Runs a rule's action list with per-action timeouts and failure isolation."""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from alerts.actions import build_action
from models.alerts import ActionResult

logger = logging.getLogger("powerwatch.alerts.dispatcher")


class ActionDispatcher:
    """Fans an event out to its actions on a worker pool.

    The pool is created on first use and again after `shutdown()`, so a
    service that is stopped and started keeps dispatching.
    """

    def __init__(self, config=None, timeout_seconds=10, max_workers=4):
        self.config = config or {}
        self.timeout_seconds = timeout_seconds
        self.max_workers = max_workers
        self._executor = None
        self._pool_lock = threading.Lock()

    def _pool(self):
        with self._pool_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.max_workers,
                                                    thread_name_prefix="alert-action")
            return self._executor

    def dispatch(self, event, specs):
        """Execute every action spec for an event. Never raises."""
        pending = []
        for spec in specs:
            try:
                action = build_action(spec, self.config)
                if action is None:
                    logger.warning(f"Unknown action type '{spec.type}' on alert {event.alert_name}, skipping")
                    pending.append((spec.type, None, ActionResult(spec.type, False, "unknown action type")))
                    continue
                future = self._pool().submit(action.execute, event)
            except Exception as e:
                logger.warning(f"Could not start {spec.type} action for {event.alert_name}: {e}")
                pending.append((spec.type, None, ActionResult(spec.type, False, str(e))))
                continue
            pending.append((spec.type, future, None))

        # Actions run concurrently; the timeout bounds the wait for each one.
        results = []
        for action_type, future, result in pending:
            if future is not None:
                result = self._collect(action_type, future, event)
            results.append(result)
        return results

    def _collect(self, action_type, future, event):
        try:
            result = future.result(timeout=self.timeout_seconds)
        except FutureTimeout:
            # Still queued behind busy workers: drop it rather than run it late.
            future.cancel()
            logger.warning(f"{action_type} action for {event.alert_name} timed out "
                           f"after {self.timeout_seconds}s")
            return ActionResult(action_type, False, "timeout")
        except Exception as e:
            logger.warning(f"{action_type} action for {event.alert_name} failed: {e}")
            return ActionResult(action_type, False, str(e))
        if result is None:
            return ActionResult(action_type, True)
        if not result.ok:
            logger.debug(f"{action_type} action for {event.alert_name} unsuccessful: {result.detail}")
        return result

    def shutdown(self):
        with self._pool_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False)
