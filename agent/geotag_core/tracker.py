"""
TrackingOrchestrator — owns one geotag session from permission to completion.

  IDLE → PERMISSION_PENDING → ACTIVE → (CAPTURING → DELIVERING)* → SESSION_COMPLETE → IDLE
  ACTIVE/CAPTURING/DELIVERING → SUSPENDED   (cancel: background budget expired)
  PERMISSION_PENDING → DENIED               (terminal until start() again)
  any → IDLE                                (stop: no suspension, no wake-up)

One session per instance, enforced by the single-flight guard. Ticks run
sequentially on the calling thread; the wait before each tick is the
only suspension point and is woken early by cancel()/stop().
Cancellation is checked at the top of every iteration, so a tick either
finishes its deliver-or-cache step or never starts.
"""

import threading

from .config import log
from .constants import MAX_TICKS_PER_RUN, LOCATION_TIMEOUT, BACKGROUND_TASK_ID
from .errors import (
    ApiError, AuthRefreshFailed, GeocodeFailed, GeotagError, LocationUnavailable,
    MissingCredentials, NetworkError,
)
from .listeners import (
    EventChannel, PERMISSION, STATE, LOCATION_CAPTURED, GEOTAG_DELIVERED, GEOTAG_CACHED,
)
from .models import GeoTagEvent, to_iso, utc_now
from .providers import PermissionStatus
from .schedule import take_schedule
from .state import (
    Session, SessionGuard, SessionOutcome, SessionResult, SessionState, TickOutcome,
)


def _wait_on_event(seconds, cancel_event):
    """Sleep up to ``seconds``; True if cancelled meanwhile."""
    return cancel_event.wait(seconds)


class TrackingOrchestrator:
    """Schedules, captures and delivers geotags for one customer session."""

    def __init__(
        self,
        store,
        client,
        cache,
        location,
        geocoder,
        is_online,
        events=None,
        scheduler=None,
        clock=utc_now,
        sleep=_wait_on_event,
        max_ticks_per_run=MAX_TICKS_PER_RUN,
        location_timeout=LOCATION_TIMEOUT,
        on_location_post=None,
        resume_on_grant=True,
    ):
        if max_ticks_per_run < 1:
            raise ValueError("max_ticks_per_run must be >= 1")
        self._store = store
        self._client = client
        self._cache = cache
        self._location = location
        self._geocoder = geocoder
        self._is_online = is_online
        self._events = events or EventChannel()
        self._scheduler = scheduler
        self._clock = clock
        self._sleep = sleep
        self._max_ticks = max_ticks_per_run
        self._location_timeout = location_timeout
        self._on_location_post = on_location_post
        self._resume_on_grant = resume_on_grant

        self._guard = SessionGuard()
        self._state_lock = threading.Lock()
        self._state = SessionState.IDLE
        self._session = None

        self._events.subscribe(PERMISSION, self._on_permission_changed)

    # ── State ────────────────────────────────────────────────

    @property
    def state(self):
        with self._state_lock:
            return self._state

    @property
    def events(self):
        return self._events

    @property
    def is_active(self):
        return self._guard.active

    def _set_state(self, new_state):
        with self._state_lock:
            old, self._state = self._state, new_state
        if old is not new_state:
            log.info("Session state: %s → %s", old.value, new_state.value)
            self._events.publish(STATE, new_state)

    def _set_tick_state(self, session, new_state):
        # A cancelled or stopped session no longer drives the state.
        if session is not None and session.cancelled:
            return
        self._set_state(new_state)

    # ── Lifecycle ────────────────────────────────────────────

    def start(self, credentials):
        """Persist credentials and run one session invocation."""
        self._store.save(credentials)
        return self._run(credentials)

    def resume(self, cancel_event=None):
        """Run a session from stored credentials (process relaunch path).

        ``cancel_event`` lets the caller cancel even before the session exists.
        """
        credentials = self._store.load()
        if credentials is None:
            raise MissingCredentials()
        return self._run(credentials, cancel_event)

    def stop(self):
        """Go IDLE now: cancel any running session, halt location, clear the guard."""
        session = self._session
        # Release first: once woken, the old session must not own the guard.
        self._guard.force_release()
        if session is not None:
            session.stop()
        try:
            self._location.stop_updates()
        except Exception as e:
            log.warning("stop_updates failed: %s", e)
        self._set_state(SessionState.IDLE)
        log.info("Tracking stopped")

    def cancel(self):
        """Ask the running session to stop before its next tick. True if one was running."""
        session = self._session
        if session is None or not session.active:
            return False
        log.info("Cancellation requested — session will stop before the next tick")
        session.cancel()
        return True

    def _run(self, credentials, cancel_event=None):
        if self._guard.active:
            log.info("Session already active — ignoring duplicate start")
            return SessionResult(SessionOutcome.ALREADY_ACTIVE)

        # Permission is settled before taking the guard: a grant delivered
        # synchronously from request_permission() must be able to resume.
        permission = PermissionStatus(self._location.permission_status())
        if permission is PermissionStatus.UNDETERMINED:
            self._set_state(SessionState.PERMISSION_PENDING)
            log.info("Location permission undetermined — requesting, not scheduling yet")
            self._location.request_permission()
            return SessionResult(SessionOutcome.PERMISSION_PENDING)
        if permission is PermissionStatus.DENIED:
            self._set_state(SessionState.DENIED)
            log.warning("Location permission denied — tracking not started")
            return SessionResult(SessionOutcome.PERMISSION_DENIED)

        token = self._guard.acquire()
        if token is None:
            log.info("Session already active — ignoring duplicate start")
            return SessionResult(SessionOutcome.ALREADY_ACTIVE)

        session = None
        updates_started = False
        try:
            session = Session(started_at=self._clock(), cancel_event=cancel_event or threading.Event())
            self._session = session
            self._location.start_updates()
            updates_started = True
            self._set_state(SessionState.ACTIVE)
            log.info("Session started for customer %s", credentials.customer_id)

            try:
                policy = self._client.fetch_org_policy()
                record = self._client.fetch_pending_record()
            except AuthRefreshFailed:
                raise
            except (NetworkError, ApiError) as e:
                log.warning("Session setup fetch failed: %s; ending session", e)
                if self._guard.owns(token):
                    self._set_state(SessionState.SESSION_COMPLETE)
                return SessionResult(SessionOutcome.FETCH_FAILED)

            if record is None:
                if self._guard.owns(token):
                    self._set_state(SessionState.SESSION_COMPLETE)
                return SessionResult(SessionOutcome.NO_PENDING_VERIFICATION)

            # One extra instant tells us where to wake up next if the cap is hit.
            planned = take_schedule(
                record.latest_sample_timestamp(), policy, self._max_ticks + 1, now=self._clock(),
            )
            session.schedule = planned[:self._max_ticks]
            overflow = planned[self._max_ticks:]
            log.info(
                "Schedule armed: %d ticks this run (first=%s)",
                len(session.schedule),
                to_iso(session.schedule[0]) if session.schedule else "none",
            )

            result = self._run_ticks(session)

            if session.stopped:
                # stop() already moved to IDLE; nothing is left to resume.
                result.outcome = SessionOutcome.STOPPED
                log.info("Session stopped after %d ticks", result.ticks)
                return result

            remaining = session.remaining() + overflow
            result.next_due = remaining[0] if remaining else None

            if session.cancelled:
                result.outcome = SessionOutcome.SUSPENDED
                if self._guard.owns(token):
                    self._set_state(SessionState.SUSPENDED)
            elif self._guard.owns(token):
                self._set_state(SessionState.SESSION_COMPLETE)

            if result.next_due is not None:
                self._schedule_wake(result.next_due)
            log.info(
                "Session run finished: %s (ticks=%d delivered=%d cached=%d skipped=%d)",
                result.outcome.value, result.ticks, result.delivered, result.cached, result.skipped,
            )
            return result
        finally:
            # After stop() the guard may already belong to a newer session.
            if updates_started and self._guard.owns(token):
                try:
                    self._location.stop_updates()
                except Exception as e:
                    log.warning("stop_updates failed: %s", e)
            if session is not None:
                session.active = False
                if self._session is session:
                    self._session = None
            released = self._guard.release(token)
            if released and (self.state is SessionState.SESSION_COMPLETE or self.state.is_running):
                self._set_state(SessionState.IDLE)

    def _run_ticks(self, session):
        result = SessionResult(SessionOutcome.COMPLETED)
        while session.cursor < len(session.schedule):
            if session.cancelled:
                log.info("Session cancelled before tick %d", session.cursor + 1)
                break
            due = session.schedule[session.cursor]
            if self._wait_until(due, session):
                log.info("Session cancelled while waiting for %s", to_iso(due))
                break

            try:
                outcome = self.capture_and_deliver(session)
            except Exception as e:
                log.error("Tick error: %s", e, exc_info=True)
                outcome = TickOutcome.SKIPPED
            finally:
                self._set_tick_state(session, SessionState.ACTIVE)

            session.cursor += 1
            result.ticks += 1
            if outcome is TickOutcome.DELIVERED:
                result.delivered += 1
            elif outcome is TickOutcome.CACHED:
                result.cached += 1
            else:
                result.skipped += 1
        return result

    def _wait_until(self, due, session):
        """Block until ``due``. True if the session was cancelled first."""
        delay = (due - self._clock()).total_seconds()
        if delay <= 0:
            return session.cancelled
        return bool(self._sleep(delay, session.cancel_event))

    def _schedule_wake(self, when):
        if self._scheduler is None:
            return
        try:
            self._scheduler.submit(BACKGROUND_TASK_ID, when)
            log.info("Background wake requested for %s", to_iso(when))
        except Exception as e:
            log.warning("Could not schedule background wake: %s", e)

    # ── One tick: capture → geocode → deliver-or-cache ────────

    def capture_and_deliver(self, session=None):
        """One tick. ``session`` is the run that owns it; state updates stop once it is cancelled."""
        self._set_tick_state(session, SessionState.CAPTURING)
        try:
            fix = self._location.get_current_location(self._location_timeout)
        except LocationUnavailable as e:
            log.info("Location unavailable (%s), skipping tick", e)
            return TickOutcome.SKIPPED
        if fix is None:
            log.info("No location fix, skipping tick")
            return TickOutcome.SKIPPED
        latitude, longitude = fix

        try:
            address = self._geocoder.reverse_geocode(latitude, longitude)
        except GeocodeFailed as e:
            log.warning("%s; skipping tick", e)
            return TickOutcome.SKIPPED
        if not address:
            log.warning("Empty address for (%.5f, %.5f), skipping tick", latitude, longitude)
            return TickOutcome.SKIPPED

        # Capture time, not the scheduled time, goes on the event.
        event = GeoTagEvent(address, latitude, longitude, to_iso(self._clock()))
        if self._on_location_post is not None:
            try:
                self._on_location_post(latitude, longitude)
            except Exception as e:
                log.error("on_location_post hook failed: %s", e, exc_info=True)
        self._events.publish(LOCATION_CAPTURED, event)

        self._set_tick_state(session, SessionState.DELIVERING)
        return self._deliver(event)

    def _deliver(self, event):
        if not self._is_online():
            log.info("Offline, caching geotag without a delivery attempt")
            return self._cache_event(event)

        # From here on the event is either delivered or cached, whatever is raised.
        try:
            _, remaining = self._cache.flush(self._client.submit_geotag)
        except Exception as e:
            log.error("Cache flush failed: %s; caching current geotag", e, exc_info=True)
            return self._cache_event(event)
        if remaining:
            log.info("%d older geotags still queued; caching current one behind them", remaining)
            return self._cache_event(event)

        try:
            self._client.submit_geotag(event)
        except AuthRefreshFailed as e:
            log.error("Geotag not delivered, auth refresh failed: %s", e)
            return self._cache_event(event)
        except GeotagError as e:
            log.warning("Geotag delivery failed: %s", e)
            return self._cache_event(event)
        except Exception as e:
            log.error("Unexpected error delivering geotag: %s", e, exc_info=True)
            return self._cache_event(event)

        self._events.publish(GEOTAG_DELIVERED, event)
        return TickOutcome.DELIVERED

    def _cache_event(self, event):
        self._cache.append(event)
        self._events.publish(GEOTAG_CACHED, event)
        return TickOutcome.CACHED

    # ── Permission events ─────────────────────────────────────

    def _on_permission_changed(self, status):
        status = PermissionStatus(status)
        log.info("Location permission changed: %s", status.value)
        if self.state is not SessionState.PERMISSION_PENDING:
            return
        if status is PermissionStatus.DENIED:
            self._set_state(SessionState.DENIED)
        elif status is PermissionStatus.GRANTED:
            self._set_state(SessionState.IDLE)
            if self._resume_on_grant:
                threading.Thread(target=self._resume_after_grant, daemon=True).start()

    def _resume_after_grant(self):
        try:
            self.resume()
        except GeotagError as e:
            log.error("Resume after permission grant failed: %s", e)
