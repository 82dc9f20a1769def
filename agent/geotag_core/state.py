"""
Session state — the orchestrator's lifecycle enum, the in-memory Session,
and the single-flight guard.

The guard is a monitor (lock + flag), not a bare boolean: an explicit
start() and an OS-triggered resumption can race, and exactly one of
them may win. Each acquisition gets an owner token so a session that was
force-stopped cannot release the guard out from under its successor.
"""

import itertools
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from .models import utc_now


class SessionState(str, Enum):
    IDLE = "idle"
    PERMISSION_PENDING = "permission_pending"
    DENIED = "denied"
    ACTIVE = "active"
    CAPTURING = "capturing"
    DELIVERING = "delivering"
    SUSPENDED = "suspended"
    SESSION_COMPLETE = "session_complete"

    @property
    def is_running(self) -> bool:
        return self in (SessionState.ACTIVE, SessionState.CAPTURING, SessionState.DELIVERING)


class SessionOutcome(str, Enum):
    """How one start()/resume() invocation ended."""

    COMPLETED = "completed"
    NO_PENDING_VERIFICATION = "no_pending_verification"
    FETCH_FAILED = "fetch_failed"
    SUSPENDED = "suspended"
    PERMISSION_PENDING = "permission_pending"
    PERMISSION_DENIED = "permission_denied"
    ALREADY_ACTIVE = "already_active"
    STOPPED = "stopped"


class TickOutcome(str, Enum):
    DELIVERED = "delivered"
    CACHED = "cached"
    SKIPPED = "skipped"


@dataclass
class SessionResult:
    outcome: SessionOutcome
    ticks: int = 0
    delivered: int = 0
    cached: int = 0
    skipped: int = 0
    next_due: Optional[datetime] = None


@dataclass
class Session:
    schedule: List[datetime] = field(default_factory=list)
    cursor: int = 0
    active: bool = True
    stopped: bool = False
    started_at: datetime = field(default_factory=utc_now)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self):
        self.cancel_event.set()

    def stop(self):
        """Cancel for good: no suspension, no wake-up."""
        self.stopped = True
        self.cancel_event.set()

    def remaining(self) -> List[datetime]:
        return self.schedule[self.cursor:]


class SessionGuard:
    """Single-flight guard. acquire() is an atomic check-and-set."""

    def __init__(self):
        self._lock = threading.Lock()
        self._owner = None
        self._tokens = itertools.count(1)

    @property
    def active(self) -> bool:
        with self._lock:
            return self._owner is not None

    def acquire(self):
        """Return an owner token, or None if a session is already active."""
        with self._lock:
            if self._owner is not None:
                return None
            self._owner = next(self._tokens)
            return self._owner

    def owns(self, token) -> bool:
        with self._lock:
            return token is not None and self._owner == token

    def release(self, token):
        """Release if ``token`` still owns the guard. Idempotent."""
        with self._lock:
            if self._owner == token:
                self._owner = None
                return True
            return False

    def force_release(self):
        with self._lock:
            self._owner = None
