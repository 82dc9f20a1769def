"""
geotag_core — Background Geotag Verification Agent
==================================================
Architecture: one session worker thread, cooperative waits, durable state on disk.

  constants.py    → Version, API paths, timeouts, policy defaults
  config.py       → Paths, logging, settings load/save
  errors.py       → Error taxonomy (network, API, auth, location, geocode)
  models.py       → Credentials, OrgPolicy, VerificationRecord, GeoTagEvent
  credentials.py  → CredentialStore (atomic token rotation)
  network.py      → Connectivity probe + OfflineGeoTagCache (FIFO, non-skipping flush)
  http_client.py  → HTTP session with retry/pooling + CA bundle
  api.py          → RemoteClient (one-shot, serialized token refresh)
  schedule.py     → Schedule planner (pure, lazy)
  state.py        → SessionState, Session, SessionGuard (single-flight)
  listeners.py    → EventChannel (permission + delivery events)
  providers.py    → Location / geocoder / OS scheduler contracts
  tracker.py      → TrackingOrchestrator (state machine + tick loop)
  background.py   → BackgroundResumptionAdapter (relaunch path)
  runner.py       → build_agent() + ops CLI
"""

from .constants import AGENT_VERSION
from .credentials import CredentialStore
from .models import Credentials, GeoTagEvent, OrgPolicy, VerificationRecord
from .network import OfflineGeoTagCache
from .api import RemoteClient
from .schedule import plan_schedule
from .state import SessionOutcome, SessionState, TickOutcome
from .tracker import TrackingOrchestrator
from .background import BackgroundResumptionAdapter
from .runner import build_agent

__version__ = AGENT_VERSION
