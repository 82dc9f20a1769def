"""
Schedule planner — turns org policy + last capture into future capture instants.

Pure: no I/O, no clock reads beyond the optional ``now`` default.
Recomputing from a later ``now`` always yields a suffix of the earlier
schedule, which is why the orchestrator never persists what is left.
"""

from datetime import datetime, timedelta
from itertools import islice
from typing import Iterator, List, Optional

from .models import OrgPolicy, utc_now


def plan_schedule(
    last_timestamp: Optional[datetime],
    policy: OrgPolicy,
    now: Optional[datetime] = None,
) -> Iterator[datetime]:
    """
    Lazily yield capture instants t with last <= t <= last + timeout and t > now,
    spaced by the polling interval.

    A non-positive interval yields at most one instant (now), as long as
    now still falls inside the session window.
    """
    now = now or utc_now()
    start = last_timestamp or now
    end = start + timedelta(seconds=policy.session_seconds)
    step = policy.step_seconds

    if step <= 0:
        if start <= now <= end:
            yield now
        return

    step_delta = timedelta(seconds=step)
    t = start
    while t <= end:
        if t > now:
            yield t
        t += step_delta


def take_schedule(last_timestamp, policy, limit, now=None) -> List[datetime]:
    """First ``limit`` instants of the schedule."""
    return list(islice(plan_schedule(last_timestamp, policy, now), limit))


def next_due(last_timestamp, policy, now=None) -> Optional[datetime]:
    """The next capture instant, or None once the session window is spent."""
    return next(plan_schedule(last_timestamp, policy, now), None)
