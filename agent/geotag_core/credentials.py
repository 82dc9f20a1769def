"""
CredentialStore — durable {apiKey, authToken, refreshToken, customerID}.

The store is the only source of truth on relaunch: the background
resumption path rebuilds everything from what is on disk here.
Writes go through a temp file + os.replace so a crash mid-write never
leaves a half-written record.
"""

import os
import json
import threading
from pathlib import Path

from .config import log, CREDENTIALS_FILE
from .errors import MissingCredentials
from .models import Credentials


class CredentialStore:
    """JSON-file credential store. Thread-safe."""

    def __init__(self, path=CREDENTIALS_FILE):
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self):
        return self._path

    def load(self):
        """Return Credentials, or None if the record is missing or incomplete."""
        with self._lock:
            return self._read()

    def save(self, credentials):
        with self._lock:
            self._write(credentials)
        log.info("Credentials saved for customer %s", credentials.customer_id)

    def update_tokens(self, auth_token, refresh_token):
        """Swap authToken + refreshToken in one write. Returns the new Credentials."""
        with self._lock:
            current = self._read()
            if current is None:
                raise MissingCredentials("Cannot refresh tokens: no stored credentials")
            updated = current.with_tokens(auth_token, refresh_token)
            self._write(updated)
        log.info("Auth tokens rotated for customer %s", updated.customer_id)
        return updated

    def clear(self):
        with self._lock:
            self._path.unlink(missing_ok=True)
        log.info("Credentials cleared")

    # ── File I/O (caller holds the lock) ─────────────────────

    def _read(self):
        if not self._path.exists():
            return None
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            log.warning("Unreadable credentials file %s: %s", self._path, e)
            return None
        return Credentials.from_dict(data)

    def _write(self, credentials):
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(credentials.to_dict(), f, indent=2)
        os.replace(tmp, self._path)
