"""
HTTP session with connection pooling, transport retry, and CA bundle.

Transport retries only cover idempotent methods. The geotag POST must
reach the server at most once per attempt; its failures fall back to the
offline cache instead.
"""

import os

import certifi
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import BASE_DIR

_retry_strategy = Retry(
    total=3,
    backoff_factor=1,                           # Wait 1s, 2s, 4s between retries
    status_forcelist=[502, 503, 504],
    allowed_methods=["HEAD", "GET"],
    raise_on_status=False,
)


def _get_ca_bundle():
    """Get the CA bundle path.

    Priority: agent home copy → env var → certifi.
    """
    local = BASE_DIR / "cacert.pem"
    if local.is_file():
        return str(local)
    env_ca = os.environ.get("REQUESTS_CA_BUNDLE") or os.environ.get("SSL_CERT_FILE")
    if env_ca and os.path.isfile(env_ca):
        return env_ca
    return certifi.where()


def create_session():
    """Create a new requests.Session with connection pooling, retry, and SSL."""
    session = requests.Session()
    adapter = HTTPAdapter(
        pool_connections=1,
        pool_maxsize=3,
        max_retries=_retry_strategy,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.verify = _get_ca_bundle()
    session.headers.update({"Content-Type": "application/json", "Accept": "*/*"})
    return session


def reset_session(session):
    """Close and recreate the HTTP session (fixes stale connections)."""
    try:
        session.close()
    except requests.RequestException:
        pass
    return create_session()
