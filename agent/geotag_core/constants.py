"""
Constants, API paths, timeouts, and server policy defaults.
"""

AGENT_VERSION = "1.0.0"

# ─── Remote API ──────────────────────────────────────────────────
DEFAULT_BASE_URL = "https://api.rd.usesourceid.com/v1/api"

PATH_ORG_CONFIG = "organization/address-verification-config"
PATH_ADDRESS_HISTORY = "customer/address-history"
PATH_ADD_GEOTAG = "customer/add-geotag"
PATH_REFRESH_TOKEN = "customer/refresh-token"

HEADER_API_KEY = "x-api-key"
HEADER_AUTH_TOKEN = "x-auth-token"

# ─── Network ─────────────────────────────────────────────────────
API_TIMEOUT = 20               # Seconds per HTTP call
CONNECTIVITY_TIMEOUT = 1.0     # Connectivity probe must answer within 1s
LOCATION_TIMEOUT = 10          # Seconds to wait for a location fix

# ─── Org policy defaults (used when the server omits a field) ────
DEFAULT_POLLING_INTERVAL_HOURS = 10.0
DEFAULT_SESSION_TIMEOUT_DAYS = 30

# ─── Session ─────────────────────────────────────────────────────
MAX_TICKS_PER_RUN = 10         # Ticks serviced per OS execution window
BACKGROUND_TASK_ID = "com.sourceid.geotag.refresh"

# ─── Verification status values ──────────────────────────────────
STATUS_PENDING = "pending"
STATUS_VERIFIED = "verified"
STATUS_REJECTED = "rejected"

# ─── Reverse geocoding (OpenStreetMap Nominatim) ─────────────────
NOMINATIM_URL = "https://nominatim.openstreetmap.org/reverse"
NOMINATIM_USER_AGENT = f"geotag-agent/{AGENT_VERSION}"
