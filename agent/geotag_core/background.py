"""
Background resumption — services an OS-scheduled unit of work after relaunch.

The process may have been dead since the last session, so everything is
rebuilt from the credential store. The OS must hear back exactly once
per task, whatever path the run takes.
"""

import threading

from .config import log
from .state import SessionOutcome

_FAILED_OUTCOMES = frozenset({
    SessionOutcome.SUSPENDED,
    SessionOutcome.PERMISSION_PENDING,
    SessionOutcome.PERMISSION_DENIED,
})


class _Completion:
    """Reports a task's completion once; later reports are ignored."""

    def __init__(self, task):
        self._task = task
        self._lock = threading.Lock()
        self._reported = False

    def report(self, success):
        with self._lock:
            if self._reported:
                return False
            self._reported = True
        try:
            self._task.set_task_completed(success)
        except Exception as e:
            log.error("Failed to report background task completion: %s", e)
        log.info("Background task completed (success=%s)", success)
        return True


class BackgroundResumptionAdapter:
    """Bridges OS background tasks to TrackingOrchestrator.resume()."""

    def __init__(self, orchestrator, store):
        self._orchestrator = orchestrator
        self._store = store

    def handle_task(self, task):
        """Service one background task. Returns the success flag reported."""
        completion = _Completion(task)

        if self._store.load() is None:
            log.warning("Background task woke without stored credentials — failing it")
            completion.report(False)
            return False

        cancel_event = threading.Event()

        def on_expired():
            log.warning("Background execution window expired — cancelling session")
            cancel_event.set()
            self._orchestrator.cancel()

        task.expiration_handler = on_expired

        success = False
        try:
            result = self._orchestrator.resume(cancel_event=cancel_event)
            success = result.outcome not in _FAILED_OUTCOMES
            log.info("Background session run: %s", result.outcome.value)
        except Exception as e:
            log.error("Background session failed: %s", e, exc_info=True)
        finally:
            completion.report(success)
        return success
