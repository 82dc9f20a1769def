"""
Pytest fixtures and fakes for geotag agent tests.

No network, no real location hardware: HTTP goes through a MagicMock
session, collaborators are small in-memory fakes.
"""

import os
import tempfile
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

# Keep the agent home out of the real user directory before importing geotag_core.
os.environ.setdefault("GEOTAG_HOME", os.path.join(tempfile.gettempdir(), "geotag-test-home"))

from geotag_core.credentials import CredentialStore
from geotag_core.models import Credentials
from geotag_core.network import OfflineGeoTagCache
from geotag_core.providers import PermissionStatus

T0 = datetime(2025, 7, 1, 9, 0, 0, tzinfo=timezone.utc)


def make_response(status_code=200, body=None):
    """A requests.Response stand-in."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = "" if body is None else str(body)
    if isinstance(body, Exception):
        resp.json.side_effect = body
    else:
        resp.json.return_value = body
    return resp


def org_config_body(interval=1, timeout=1, tolerance=50):
    return {
        "data": {
            "distanceTolerance": tolerance,
            "geotaggingPollingInterval": interval,
            "geotaggingSessionTimeout": timeout,
        },
        "status": True,
        "statusCode": 200,
        "message": "ok",
    }


def history_body(status="pending", timestamps=()):
    return {
        "data": [
            {
                "_id": "rec-1",
                "reference": "ref-1",
                "verificationStatus": status,
                "metadata": {
                    "addressLineOne": "1 Main St",
                    "addressType": "home",
                    "verificationEndDate": "2025-08-01T00:00:00Z",
                    "locations": [
                        {"address": "1 Main St", "latitude": 6.5, "longitude": 3.3, "timestamp": ts}
                        for ts in timestamps
                    ],
                },
            }
        ],
        "status": True,
        "statusCode": 200,
        "message": "ok",
    }


GEOTAG_OK = {"data": 1, "status": True, "statusCode": 200, "message": "ok"}


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)


class FakeLocation:
    def __init__(self, permission=PermissionStatus.GRANTED, fix=(6.5244, 3.3792)):
        self.permission = permission
        self.fix = fix
        self.requests = 0
        self.captures = 0
        self.updating = False
        self.on_request = None

    def permission_status(self):
        return self.permission

    def request_permission(self):
        self.requests += 1
        if self.on_request is not None:
            self.on_request()

    def start_updates(self):
        self.updating = True

    def stop_updates(self):
        self.updating = False

    def get_current_location(self, timeout):
        self.captures += 1
        return self.fix


class FakeGeocoder:
    def __init__(self, address="12 Marina Rd, Lagos"):
        self.address = address
        self.calls = []

    def reverse_geocode(self, latitude, longitude):
        self.calls.append((latitude, longitude))
        return self.address


class FakeScheduler:
    def __init__(self):
        self.submitted = []

    def submit(self, identifier, earliest_begin):
        self.submitted.append((identifier, earliest_begin))


class FakeTask:
    def __init__(self):
        self.expiration_handler = None
        self.completions = []
        self.lock = threading.Lock()

    def set_task_completed(self, success):
        with self.lock:
            self.completions.append(success)


@pytest.fixture
def credentials():
    return Credentials(
        api_key="sk_test_key",
        auth_token="token-1",
        refresh_token="refresh-1",
        customer_id="cust-42",
    )


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "credentials.json")


@pytest.fixture
def saved_store(store, credentials):
    store.save(credentials)
    return store


@pytest.fixture
def cache(tmp_path):
    return OfflineGeoTagCache(tmp_path / "pending.jsonl")


@pytest.fixture
def http_session():
    return MagicMock()
