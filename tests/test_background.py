"""
Background resumption: exactly one completion report per OS task.
"""

import threading
from datetime import timedelta
from unittest.mock import MagicMock

from geotag_core.background import BackgroundResumptionAdapter
from geotag_core.listeners import EventChannel
from geotag_core.models import GeoSample, OrgPolicy, VerificationRecord, VerificationStatus
from geotag_core.providers import PermissionStatus
from geotag_core.state import SessionOutcome, SessionResult
from geotag_core.tracker import TrackingOrchestrator

from conftest import T0, FakeClock, FakeGeocoder, FakeLocation, FakeTask


def _orchestrator(store, cache, location, sleep=None, clock=None):
    clock = clock or FakeClock(T0 + timedelta(minutes=30))
    client = MagicMock()
    client.fetch_org_policy.return_value = OrgPolicy(polling_interval_hours=1, session_timeout_days=1)
    client.fetch_pending_record.return_value = VerificationRecord(
        id="rec-1",
        status=VerificationStatus.PENDING,
        samples=[GeoSample("1 Main St", 6.5, 3.3, T0)],
    )

    def advance(seconds, cancel_event):
        clock.advance(seconds)
        return cancel_event.is_set()

    return TrackingOrchestrator(
        store=store,
        client=client,
        cache=cache,
        location=location,
        geocoder=FakeGeocoder(),
        is_online=lambda: True,
        events=EventChannel(),
        clock=clock,
        sleep=sleep or advance,
        max_ticks_per_run=3,
    )


def test_missing_credentials_fails_the_task(store):
    orchestrator = MagicMock()
    task = FakeTask()

    assert BackgroundResumptionAdapter(orchestrator, store).handle_task(task) is False

    assert task.completions == [False]
    orchestrator.resume.assert_not_called()


def test_successful_run_reports_once(saved_store, cache):
    location = FakeLocation()
    orchestrator = _orchestrator(saved_store, cache, location)
    task = FakeTask()

    assert BackgroundResumptionAdapter(orchestrator, saved_store).handle_task(task) is True

    assert task.completions == [True]
    assert location.captures == 3
    assert task.expiration_handler is not None


def test_expiration_mid_run_reports_failure_once(saved_store, cache):
    location = FakeLocation()
    task = FakeTask()
    parked = threading.Event()

    def sleep(seconds, cancel_event):
        parked.set()
        return cancel_event.wait(5)

    orchestrator = _orchestrator(saved_store, cache, location, sleep=sleep)
    adapter = BackgroundResumptionAdapter(orchestrator, saved_store)
    results = []
    worker = threading.Thread(target=lambda: results.append(adapter.handle_task(task)))
    worker.start()
    assert parked.wait(5)

    task.expiration_handler()
    worker.join(5)
    task.expiration_handler()

    assert results == [False]
    assert task.completions == [False]
    assert location.captures == 0
    assert not orchestrator.is_active


def test_expiration_before_session_starts_is_not_lost(saved_store):
    task = FakeTask()
    orchestrator = MagicMock()

    def resume(cancel_event):
        task.expiration_handler()
        assert cancel_event.is_set()
        return SessionResult(SessionOutcome.SUSPENDED)

    orchestrator.resume.side_effect = resume

    assert BackgroundResumptionAdapter(orchestrator, saved_store).handle_task(task) is False
    assert task.completions == [False]


def test_resume_exception_reports_failure(saved_store):
    orchestrator = MagicMock()
    orchestrator.resume.side_effect = RuntimeError("boom")
    task = FakeTask()

    assert BackgroundResumptionAdapter(orchestrator, saved_store).handle_task(task) is False
    assert task.completions == [False]


def test_denied_permission_reports_failure(saved_store, cache):
    location = FakeLocation(permission=PermissionStatus.DENIED)
    task = FakeTask()

    adapter = BackgroundResumptionAdapter(_orchestrator(saved_store, cache, location), saved_store)

    assert adapter.handle_task(task) is False
    assert task.completions == [False]


def test_duplicate_run_counts_as_success(saved_store):
    orchestrator = MagicMock()
    orchestrator.resume.return_value = SessionResult(SessionOutcome.ALREADY_ACTIVE)
    task = FakeTask()

    assert BackgroundResumptionAdapter(orchestrator, saved_store).handle_task(task) is True
    assert task.completions == [True]



def test_stopped_session_counts_as_success(saved_store):
    orchestrator = MagicMock()
    orchestrator.resume.return_value = SessionResult(SessionOutcome.STOPPED)
    task = FakeTask()

    assert BackgroundResumptionAdapter(orchestrator, saved_store).handle_task(task) is True
    assert task.completions == [True]
