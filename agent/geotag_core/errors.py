"""Geotag agent errors."""


class GeotagError(Exception):
    """Base error for geotag agent operations."""

    def __init__(self, message: str, code: str = "GEOTAG_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NetworkError(GeotagError):
    """Transport failure talking to the verification service."""

    def __init__(self, message: str):
        super().__init__(message, "NETWORK_ERROR")


class ApiError(GeotagError):
    """Verification service answered with an error or an unreadable body."""

    def __init__(self, message: str, status_code: int = 0, code: str = "API_ERROR"):
        super().__init__(message, code)
        self.status_code = status_code


class AuthExpired(ApiError):
    """Auth token rejected (HTTP 401)."""

    def __init__(self, message: str = "Auth token expired", code: str = "AUTH_EXPIRED"):
        super().__init__(message, 401, code)


class AuthRefreshFailed(AuthExpired):
    """Auth token rejected and the refresh call failed too.

    Carries the original authorization error; the refresh failure is
    chained as ``__cause__``.
    """

    def __init__(self, message: str = "Auth token expired and refresh failed"):
        super().__init__(message, "AUTH_REFRESH_FAILED")


class MissingCredentials(GeotagError):
    """No complete credentials record in the store."""

    def __init__(self, message: str = "Missing credentials"):
        super().__init__(message, "MISSING_CREDENTIALS")


class LocationUnavailable(GeotagError):
    """Location provider could not produce a fix."""

    def __init__(self, message: str = "Location unavailable"):
        super().__init__(message, "LOCATION_UNAVAILABLE")


class GeocodeFailed(GeotagError):
    """Coordinates could not be turned into an address."""

    def __init__(self, latitude: float, longitude: float, reason: str = ""):
        message = f"Reverse geocode failed for ({latitude:.5f}, {longitude:.5f})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "GEOCODE_FAILED")
        self.latitude = latitude
        self.longitude = longitude
