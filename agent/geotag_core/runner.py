"""
Host wiring and the ops CLI.

build_agent() is what a host application calls once at startup: it
constructs every collaborator explicitly (no module-level singletons)
and hands back the pieces the host needs. main() is a small operator
CLI over the durable state: status, flush the offline queue, preview
the upcoming schedule.
"""

import sys
import argparse
from dataclasses import dataclass

from .constants import AGENT_VERSION
from .config import (
    log, safe_print, setup_logging, load_settings, AgentSettings,
    CREDENTIALS_FILE, OFFLINE_CACHE_FILE,
)
from .api import RemoteClient
from .background import BackgroundResumptionAdapter
from .credentials import CredentialStore
from .errors import GeotagError
from .listeners import EventChannel
from .models import to_iso, utc_now
from .network import OfflineGeoTagCache, connectivity_probe
from .providers import NominatimGeocoder
from .schedule import take_schedule
from .tracker import TrackingOrchestrator
from . import http_client


@dataclass
class Services:
    settings: AgentSettings
    store: CredentialStore
    cache: OfflineGeoTagCache
    client: RemoteClient


@dataclass
class GeotagAgent:
    services: Services
    events: EventChannel
    orchestrator: TrackingOrchestrator
    background: BackgroundResumptionAdapter


def build_services(settings=None, credentials_path=CREDENTIALS_FILE, cache_path=OFFLINE_CACHE_FILE):
    settings = settings or load_settings()
    store = CredentialStore(credentials_path)
    client = RemoteClient(
        store,
        session=http_client.create_session(),
        base_url=settings.base_url,
        timeout=settings.api_timeout,
    )
    return Services(settings, store, OfflineGeoTagCache(cache_path), client)


def build_agent(location, geocoder=None, scheduler=None, settings=None, events=None,
                on_location_post=None, **paths):
    """Wire one agent instance around the host's location provider."""
    services = build_services(settings, **paths)
    settings = services.settings
    events = events or EventChannel()
    orchestrator = TrackingOrchestrator(
        store=services.store,
        client=services.client,
        cache=services.cache,
        location=location,
        geocoder=geocoder or NominatimGeocoder(timeout=settings.api_timeout),
        is_online=connectivity_probe(settings.base_url, timeout=settings.connectivity_timeout),
        events=events,
        scheduler=scheduler,
        max_ticks_per_run=settings.max_ticks_per_run,
        location_timeout=settings.location_timeout,
        on_location_post=on_location_post,
        resume_on_grant=settings.resume_on_grant,
    )
    background = BackgroundResumptionAdapter(orchestrator, services.store)
    log.info("Geotag agent v%s wired (base=%s, max_ticks=%d)",
             AGENT_VERSION, settings.base_url, settings.max_ticks_per_run)
    return GeotagAgent(services, events, orchestrator, background)


# ─── Ops CLI ─────────────────────────────────────────────────────

def cmd_status(services):
    creds = services.store.load()
    safe_print(f"Base URL:      {services.settings.base_url}")
    safe_print(f"Credentials:   {'customer ' + creds.customer_id if creds else 'missing'}")
    safe_print(f"Cached tags:   {len(services.cache)}")
    return 0


def cmd_flush(services):
    if services.store.load() is None:
        safe_print("No stored credentials — nothing can be delivered.")
        return 1
    flushed, remaining = services.cache.flush(services.client.submit_geotag)
    safe_print(f"Flushed {flushed} geotags, {remaining} still pending.")
    return 0 if remaining == 0 else 2


def cmd_plan(services, limit):
    try:
        policy = services.client.fetch_org_policy()
        record = services.client.fetch_pending_record()
    except GeotagError as e:
        safe_print(f"Could not fetch policy/history: {e}")
        return 1
    if record is None:
        safe_print("No pending verification — nothing to schedule.")
        return 0
    for ts in take_schedule(record.latest_sample_timestamp(), policy, limit, now=utc_now()):
        safe_print(to_iso(ts))
    return 0


def main(argv=None):
    """Operator entry point. Returns a process exit code."""
    parser = argparse.ArgumentParser(prog="geotag-agent", description="Geotag agent operations")
    parser.add_argument("--version", action="version", version=f"%(prog)s {AGENT_VERSION}")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="show stored credentials and offline queue size")
    sub.add_parser("flush", help="deliver queued geotags now, oldest first")
    plan = sub.add_parser("plan", help="print upcoming capture instants")
    plan.add_argument("--limit", type=int, default=10)
    args = parser.parse_args(argv)

    setup_logging()
    services = build_services()

    if args.command == "status":
        return cmd_status(services)
    if args.command == "flush":
        return cmd_flush(services)
    return cmd_plan(services, args.limit)


if __name__ == "__main__":
    sys.exit(main())
