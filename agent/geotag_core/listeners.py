"""
Event channel — permission changes and delivery notifications.

Replaces delegate callbacks: producers publish on a topic, the
orchestrator (and the host app) subscribe. A failing subscriber is
logged and never breaks the publisher.
"""

import threading
from collections import defaultdict

from .config import log

# Topics
PERMISSION = "permission"
STATE = "state"
LOCATION_CAPTURED = "location_captured"
GEOTAG_DELIVERED = "geotag_delivered"
GEOTAG_CACHED = "geotag_cached"


class EventChannel:
    """Thread-safe observer list keyed by topic."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers = defaultdict(list)

    def subscribe(self, topic, callback):
        """Register ``callback(payload)``. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe():
            with self._lock:
                try:
                    self._subscribers[topic].remove(callback)
                except ValueError:
                    pass

        return unsubscribe

    def publish(self, topic, payload=None):
        with self._lock:
            callbacks = list(self._subscribers.get(topic, ()))
        for callback in callbacks:
            try:
                callback(payload)
            except Exception as e:
                log.error("Subscriber for %s failed: %s", topic, e, exc_info=True)
