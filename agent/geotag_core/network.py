"""
Network utilities — connectivity probe and the offline geotag cache.

Connectivity: socket-level check against the API host (network-interface
agnostic). Bounded to about a second; it is a best-effort gate, actual
delivery failures are still handled by the caller.

Offline cache: JSON-lines file of geotags that could not be delivered.
Oldest first. Flushed strictly in order, stopping at the first failure,
so the backend always sees a chronological address history.
"""

import os
import json
import socket
import threading
from pathlib import Path
from urllib.parse import urlsplit

from .config import log, OFFLINE_CACHE_FILE
from .constants import CONNECTIVITY_TIMEOUT
from .errors import GeotagError
from .models import GeoTagEvent


# ─── Connectivity check (network-interface agnostic) ─────────────

def is_online(server_url, timeout=CONNECTIVITY_TIMEOUT):
    """
    Quick connectivity check via socket connect to the server's host.
    Only tests whether a TCP connection can be established within
    ``timeout`` seconds.
    """
    parts = urlsplit(server_url)
    host = parts.hostname
    if not host:
        return False
    port = parts.port or (443 if parts.scheme == "https" else 80)
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
        sock.close()
        return True
    except (socket.timeout, OSError):
        return False


def connectivity_probe(server_url, timeout=CONNECTIVITY_TIMEOUT):
    """Bind is_online to one server URL: returns a zero-arg callable."""
    def probe():
        return is_online(server_url, timeout=timeout)
    return probe


# ─── Offline geotag cache (local persistence) ────────────────────

class OfflineGeoTagCache:
    """Durable FIFO of undelivered geotags."""

    def __init__(self, path=OFFLINE_CACHE_FILE):
        self._path = Path(path)
        self._lock = threading.RLock()

    @property
    def path(self):
        return self._path

    def append(self, event):
        """Append one geotag to the tail of the queue."""
        entry = event.to_dict()
        with self._lock:
            # Avoid back-to-back duplicate entries for the same event.
            entries = self._read()
            if entries and entries[-1].to_dict() == entry:
                log.info("Geotag already cached (%s), not appending twice", event.device_timestamp)
                return
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry) + "\n")
        log.info("Cached geotag for later delivery (%s)", event.device_timestamp)

    def load(self):
        """All cached geotags, oldest first."""
        with self._lock:
            return self._read()

    def __len__(self):
        return len(self.load())

    def clear(self):
        with self._lock:
            self._path.unlink(missing_ok=True)

    def flush(self, deliver):
        """
        Deliver cached geotags in insertion order. Returns (flushed, remaining).

        ``deliver(event)`` raises GeotagError on failure. The first failure
        stops the flush: that entry and everything after it stay queued,
        in order, for the next attempt.
        """
        with self._lock:
            entries = self._read()
            if not entries:
                return 0, 0

            flushed = 0
            try:
                for event in entries:
                    try:
                        deliver(event)
                    except GeotagError as e:
                        log.warning("Cache flush stopped at %s: %s", event.device_timestamp, e)
                        break
                    flushed += 1
            finally:
                # Delivered entries leave the file even when deliver() raised.
                remaining = entries[flushed:]
                if remaining:
                    self._rewrite(remaining)
                else:
                    self._path.unlink(missing_ok=True)

        if flushed:
            log.info("Flushed %d cached geotags (%d still pending)", flushed, len(remaining))
        return flushed, len(remaining)

    # ── File I/O (caller holds the lock) ─────────────────────

    def _read(self):
        if not self._path.exists():
            return []
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            log.warning("Failed to read offline cache: %s", e)
            return []

        entries = []
        for line in lines:
            if not line.strip():
                continue
            try:
                entries.append(GeoTagEvent.from_dict(json.loads(line)))
            except (ValueError, KeyError, TypeError) as e:
                log.warning("Dropping corrupt cache line: %s", e)
        return entries

    def _rewrite(self, entries):
        tmp = self._path.with_name(self._path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            for event in entries:
                f.write(json.dumps(event.to_dict()) + "\n")
        os.replace(tmp, self._path)
