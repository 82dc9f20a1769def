"""
Remote client — org config, address history, geotag submit, token refresh.

All calls are blocking (run on the session worker thread). Authorized
calls recover from an expired auth token exactly once: refresh, rotate
the stored tokens, retry the original call. Refreshes are serialized, so
two callers that both hit a 401 end up sharing one refresh.
"""

import threading

import requests

from .config import log
from .constants import (
    DEFAULT_BASE_URL, API_TIMEOUT, HEADER_API_KEY, HEADER_AUTH_TOKEN,
    PATH_ORG_CONFIG, PATH_ADDRESS_HISTORY, PATH_ADD_GEOTAG, PATH_REFRESH_TOKEN,
)
from .errors import (
    ApiError, AuthExpired, AuthRefreshFailed, MissingCredentials, NetworkError,
)
from .models import OrgPolicy, VerificationRecord
from . import http_client


class RemoteClient:
    """Typed operations against the verification service."""

    def __init__(self, store, session=None, base_url=DEFAULT_BASE_URL, timeout=API_TIMEOUT):
        self._store = store
        # Only a session we created is ours to recycle.
        self._owns_session = session is None
        self._session = session or http_client.create_session()
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._refresh_lock = threading.Lock()

    @property
    def base_url(self):
        return self._base_url

    # ─── Operations ──────────────────────────────────────────

    def fetch_org_policy(self) -> OrgPolicy:
        """GET organization/address-verification-config (api key only)."""
        creds = self._credentials()
        body = self._request("GET", PATH_ORG_CONFIG, self._headers(creds.api_key))
        data = body.get("data")
        if not isinstance(data, dict):
            raise ApiError("Org config response has no data object")
        try:
            policy = OrgPolicy.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ApiError(f"Invalid org config: {e}") from e
        log.info(
            "Org policy: every %.2fh for %dd (tolerance=%.1f)",
            policy.polling_interval_hours, policy.session_timeout_days,
            policy.distance_tolerance,
        )
        return policy

    def fetch_address_history(self):
        """GET customer/address-history. Returns a list of VerificationRecord."""
        body = self._authorized("GET", PATH_ADDRESS_HISTORY)
        data = body.get("data")
        if data is None:
            return []
        if not isinstance(data, list):
            raise ApiError("Address history response data is not a list")
        try:
            return [VerificationRecord.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise ApiError(f"Invalid address history record: {e}") from e

    def fetch_pending_record(self):
        """First pending verification record, or None."""
        for record in self.fetch_address_history():
            if record.is_pending:
                log.info("Pending verification %s (%d prior samples)",
                         record.id or "?", len(record.samples))
                return record
        log.info("No pending verification for this customer")
        return None

    def submit_geotag(self, event):
        """POST customer/add-geotag. Raises on any non-success outcome."""
        body = self._authorized("POST", PATH_ADD_GEOTAG, payload=event.to_dict())
        log.info("Geotag delivered (%s)", event.device_timestamp)
        return body

    def refresh_auth_token(self, refresh_token):
        """POST customer/refresh-token. Returns (token, refresh_token)."""
        creds = self._credentials()
        body = self._request(
            "POST", PATH_REFRESH_TOKEN, self._headers(creds.api_key),
            payload={"refreshToken": refresh_token},
        )
        token = body.get("token")
        new_refresh = body.get("refreshToken")
        if not token or not new_refresh:
            raise ApiError("Refresh response is missing token or refreshToken")
        return token, new_refresh

    # ─── Auth-refresh wrapper ────────────────────────────────

    def _authorized(self, method, path, payload=None):
        """
        Run an authorized call. On 401: refresh (serialized), rotate the
        stored tokens, retry exactly once. Never refreshes twice per call.
        """
        creds = self._credentials()
        try:
            return self._request(method, path, self._headers(creds.api_key, creds.auth_token), payload)
        except AuthExpired as original:
            log.info("Auth token expired on %s %s, refreshing", method, path)
            try:
                creds = self._rotate_tokens(stale_token=creds.auth_token)
            except (NetworkError, ApiError, MissingCredentials, OSError) as refresh_error:
                log.error("Token refresh failed: %s", refresh_error)
                raise AuthRefreshFailed(original.message) from refresh_error

        return self._request(method, path, self._headers(creds.api_key, creds.auth_token), payload)

    def _rotate_tokens(self, stale_token):
        """Refresh under the lock unless another caller already rotated."""
        with self._refresh_lock:
            creds = self._credentials()
            if creds.auth_token != stale_token:
                log.info("Auth token already rotated by a concurrent call")
                return creds
            token, refresh_token = self.refresh_auth_token(creds.refresh_token)
            return self._store.update_tokens(token, refresh_token)

    # ─── Plumbing ────────────────────────────────────────────

    def _credentials(self):
        creds = self._store.load()
        if creds is None:
            raise MissingCredentials()
        return creds

    @staticmethod
    def _headers(api_key, auth_token=None):
        headers = {HEADER_API_KEY: api_key}
        if auth_token:
            headers[HEADER_AUTH_TOKEN] = auth_token
        return headers

    def _request(self, method, path, headers, payload=None):
        url = f"{self._base_url}/{path}"
        try:
            resp = self._session.request(
                method, url, headers=headers, json=payload, timeout=self._timeout,
            )
        except requests.RequestException as e:
            log.warning("%s %s network error: %s", method, path, e)
            if self._owns_session and isinstance(e, requests.ConnectionError):
                self._session = http_client.reset_session(self._session)
            raise NetworkError(f"{method} {path}: {e}") from e

        if resp.status_code == 401:
            raise AuthExpired(f"{method} {path} rejected (401)")
        if resp.status_code < 200 or resp.status_code >= 300:
            log.warning("%s %s failed: HTTP %d — %s", method, path, resp.status_code, resp.text[:200])
            raise ApiError(f"{method} {path} failed: HTTP {resp.status_code}", resp.status_code)

        try:
            body = resp.json()
        except ValueError as e:
            raise ApiError(f"{method} {path}: undecodable response body", resp.status_code) from e
        if not isinstance(body, dict):
            raise ApiError(f"{method} {path}: unexpected response shape", resp.status_code)
        if body.get("status") is False:
            # 2xx with a failure envelope: the server refused the request.
            code = _envelope_status(body, resp.status_code)
            log.warning("%s %s rejected: %s", method, path, body.get("message"))
            raise ApiError(f"{method} {path} rejected: {body.get('message', 'no message')}", code)
        return body


def _envelope_status(body, fallback):
    """statusCode from a response envelope; ``fallback`` when missing or not numeric."""
    try:
        return int(body.get("statusCode"))
    except (TypeError, ValueError):
        return fallback
