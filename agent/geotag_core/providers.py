"""
Collaborator contracts — location, geocoding, OS background scheduling.

The host application supplies the location provider and the background
scheduler; both wrap platform APIs this package does not own. A
requests-based reverse geocoder is included for hosts without one.
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol, Tuple

import requests

from .config import log
from .constants import API_TIMEOUT, NOMINATIM_URL, NOMINATIM_USER_AGENT
from .errors import GeocodeFailed
from . import http_client


class PermissionStatus(str, Enum):
    UNDETERMINED = "undetermined"
    GRANTED = "granted"
    DENIED = "denied"


class LocationProvider(Protocol):
    """Device location. Permission transitions are published on the
    event channel under the ``permission`` topic."""

    def permission_status(self) -> PermissionStatus: ...

    def request_permission(self) -> None: ...

    def start_updates(self) -> None: ...

    def stop_updates(self) -> None: ...

    def get_current_location(self, timeout: float) -> Optional[Tuple[float, float]]:
        """(latitude, longitude), or None when no fix is available."""
        ...


class Geocoder(Protocol):
    def reverse_geocode(self, latitude: float, longitude: float) -> str:
        """Human-readable address. Raises GeocodeFailed."""
        ...


class BackgroundScheduler(Protocol):
    def submit(self, identifier: str, earliest_begin: datetime) -> None:
        """Ask the OS to wake the host no earlier than ``earliest_begin``."""
        ...


class BackgroundTask(Protocol):
    """One OS-granted unit of background work."""

    expiration_handler: Optional[Callable[[], None]]

    def set_task_completed(self, success: bool) -> None: ...


# ─── Reverse geocoding (OpenStreetMap Nominatim) ─────────────────

class NominatimGeocoder:
    """Reverse geocoder backed by the Nominatim ``/reverse`` endpoint."""

    def __init__(self, session=None, url=NOMINATIM_URL, timeout=API_TIMEOUT,
                 user_agent=NOMINATIM_USER_AGENT):
        self._session = session or http_client.create_session()
        self._url = url
        self._timeout = timeout
        self._user_agent = user_agent

    def reverse_geocode(self, latitude, longitude):
        params = {"format": "jsonv2", "lat": latitude, "lon": longitude}
        try:
            resp = self._session.get(
                self._url, params=params, timeout=self._timeout,
                headers={"User-Agent": self._user_agent},
            )
        except requests.RequestException as e:
            raise GeocodeFailed(latitude, longitude, str(e)) from e

        if resp.status_code != 200:
            raise GeocodeFailed(latitude, longitude, f"HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise GeocodeFailed(latitude, longitude, "undecodable response") from e

        if not isinstance(data, dict):
            raise GeocodeFailed(latitude, longitude, "unexpected response shape")
        address = data.get("display_name")
        if not address:
            raise GeocodeFailed(latitude, longitude, data.get("error", "no address"))
        log.info("Reverse geocoded (%.5f, %.5f)", latitude, longitude)
        return address
