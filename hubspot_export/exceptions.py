"""Exception classes for the hubspot_export package.

This module defines the error taxonomy used throughout the exporter so
callers can branch on the kind of failure instead of inspecting messages.
"""
from typing import Optional


class HubSpotExportException(Exception):
    """Base exception for all hubspot_export errors.

    Catching this exception will catch all hubspot_export-specific errors.
    """
    pass


class ConfigurationError(HubSpotExportException):
    """Raised when required settings are missing or malformed.

    This is detected at startup, before any network call is made.
    """
    pass


class ApiRequestError(HubSpotExportException):
    """Raised when a request to the HubSpot API fails.

    This can occur due to:
    - Network connectivity issues or timeouts
    - Server errors (5xx status codes)
    - Invalid request parameters (4xx status codes)
    """

    def __init__(self, message: str, status: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.endpoint = endpoint


class AuthExpiredError(ApiRequestError):
    """Raised when HubSpot answers 401 Unauthorized.

    The access token has expired or was revoked. Callers holding a refresh
    token may refresh and retry the same request once.
    """

    def __init__(self, message: str, endpoint: Optional[str] = None):
        super().__init__(message, status=401, endpoint=endpoint)


class RateLimitedError(ApiRequestError):
    """Raised when HubSpot keeps answering 429 Too Many Requests."""

    def __init__(self, message: str, retry_after: Optional[float] = None,
                 endpoint: Optional[str] = None):
        super().__init__(message, status=429, endpoint=endpoint)
        self.retry_after = retry_after


class AuthenticationError(ApiRequestError):
    """Raised when the OAuth token endpoint rejects an exchange.

    This can occur due to:
    - Revoked or unknown refresh token
    - Wrong client id / client secret
    - Authorization code already used or redirect URI mismatch
    """
    pass
