"""
Data model — credentials, org policy, verification records, geotag events.

Wire names (camelCase) are only spoken in the to_dict/from_dict helpers;
everything else works with the snake_case attributes.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from .constants import (
    DEFAULT_POLLING_INTERVAL_HOURS, DEFAULT_SESSION_TIMEOUT_DAYS,
    STATUS_PENDING, STATUS_VERIFIED, STATUS_REJECTED,
)


# ─── Time helpers ────────────────────────────────────────────────

def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def to_iso(ts: datetime) -> str:
    """UTC ISO-8601 with a trailing Z, the format the backend stores."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string. Naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


# ─── Credentials ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Credentials:
    api_key: str
    auth_token: str
    refresh_token: str
    customer_id: str

    def with_tokens(self, auth_token: str, refresh_token: str) -> "Credentials":
        return Credentials(self.api_key, auth_token, refresh_token, self.customer_id)

    def to_dict(self) -> dict:
        return {
            "apiKey": self.api_key,
            "authToken": self.auth_token,
            "refreshToken": self.refresh_token,
            "customerID": self.customer_id,
        }

    @classmethod
    def from_dict(cls, data) -> Optional["Credentials"]:
        """Returns None unless all four values are present and non-empty."""
        if not isinstance(data, dict):
            return None
        values = [data.get(k) for k in ("apiKey", "authToken", "refreshToken", "customerID")]
        if not all(isinstance(v, str) and v for v in values):
            return None
        return cls(*values)

    def __repr__(self):
        # Never log secrets.
        return f"Credentials(customer_id={self.customer_id!r})"


# ─── Org policy ──────────────────────────────────────────────────

@dataclass(frozen=True)
class OrgPolicy:
    polling_interval_hours: float = DEFAULT_POLLING_INTERVAL_HOURS
    session_timeout_days: int = DEFAULT_SESSION_TIMEOUT_DAYS
    distance_tolerance: float = 0.0

    def __post_init__(self):
        if self.polling_interval_hours < 0:
            raise ValueError(f"polling interval must be >= 0, got {self.polling_interval_hours}")
        if self.session_timeout_days < 0:
            raise ValueError(f"session timeout must be >= 0, got {self.session_timeout_days}")

    @property
    def step_seconds(self) -> float:
        return self.polling_interval_hours * 3600

    @property
    def session_seconds(self) -> float:
        return self.session_timeout_days * 86400

    @classmethod
    def from_dict(cls, data: dict) -> "OrgPolicy":
        interval = data.get("geotaggingPollingInterval")
        timeout = data.get("geotaggingSessionTimeout")
        return cls(
            polling_interval_hours=float(DEFAULT_POLLING_INTERVAL_HOURS if interval is None else interval),
            session_timeout_days=int(DEFAULT_SESSION_TIMEOUT_DAYS if timeout is None else timeout),
            distance_tolerance=float(data.get("distanceTolerance") or 0.0),
        )


# ─── Verification history ────────────────────────────────────────

class VerificationStatus(str, Enum):
    PENDING = STATUS_PENDING
    VERIFIED = STATUS_VERIFIED
    REJECTED = STATUS_REJECTED
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value) -> "VerificationStatus":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class GeoSample:
    address: str
    latitude: float
    longitude: float
    timestamp: datetime

    @classmethod
    def from_dict(cls, data: dict) -> "GeoSample":
        return cls(
            address=data.get("address", ""),
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            timestamp=parse_iso(data["timestamp"]),
        )


@dataclass
class VerificationRecord:
    id: str
    status: VerificationStatus
    reference: str = ""
    address_line_one: str = ""
    address_type: str = ""
    verification_end_date: Optional[str] = None
    samples: List[GeoSample] = field(default_factory=list)

    @property
    def is_pending(self) -> bool:
        return self.status is VerificationStatus.PENDING

    def latest_sample_timestamp(self) -> Optional[datetime]:
        if not self.samples:
            return None
        return max(s.timestamp for s in self.samples)

    @classmethod
    def from_dict(cls, data: dict) -> "VerificationRecord":
        metadata = data.get("metadata") or {}
        samples = [GeoSample.from_dict(loc) for loc in metadata.get("locations") or []]
        return cls(
            id=str(data.get("_id") or data.get("id") or ""),
            status=VerificationStatus.parse(data.get("verificationStatus")),
            reference=data.get("reference") or "",
            address_line_one=metadata.get("addressLineOne") or "",
            address_type=metadata.get("addressType") or "",
            verification_end_date=metadata.get("verificationEndDate"),
            samples=samples,
        )


# ─── Geotag events ───────────────────────────────────────────────

@dataclass(frozen=True)
class GeoTagEvent:
    address: str
    latitude: float
    longitude: float
    device_timestamp: str

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "deviceTimestamp": self.device_timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "GeoTagEvent":
        return cls(
            address=data["address"],
            latitude=float(data["latitude"]),
            longitude=float(data["longitude"]),
            device_timestamp=data["deviceTimestamp"],
        )


# A cached geotag is the same immutable event, persisted after a failed delivery.
CachedGeoTag = GeoTagEvent
