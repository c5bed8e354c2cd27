"""Exception taxonomy for the Spotify integration.

Every failure the auth flow, the API client or the analysis pipeline can
surface is one of the classes below, so callers can catch ``SpotifyAPIError``
once and still branch on the concrete type.

Hierarchy::

    SpotifyAPIError
        StateMismatch       OAuth callback state differs from the stored nonce
        MissingVerifier     no pending PKCE authorization to complete
        ExchangeFailed      token endpoint refused or returned no access_token
        AuthExpired         HTTP 401, or no usable token at all
        AccessDenied        HTTP 403
        NotFound            HTTP 404
        RateLimited         HTTP 429 after the single automatic retry
        RemoteServerError   HTTP 5xx or an unparseable response
        RemoteRequestError  any other HTTP 4xx
        NetworkError        no response received (connect/read error, timeout)
        InsufficientData    nothing to analyze
        InvalidInput        malformed playlist reference or request target
"""

from typing import Any, Dict, Optional


class SpotifyAPIError(Exception):
    """Base class. ``message`` is short and safe to show to the user."""

    default_message = "Request failed. Please try again."

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class StateMismatch(SpotifyAPIError):
    default_message = "State parameter mismatch. Please start the login again."


class MissingVerifier(SpotifyAPIError):
    default_message = "Code verifier not found. Please start the login again."


class ExchangeFailed(SpotifyAPIError):
    default_message = "Token exchange failed."


class AuthExpired(SpotifyAPIError):
    default_message = "Authentication expired. Please log in again."


class AccessDenied(SpotifyAPIError):
    default_message = "Access denied. Please check your Spotify permissions."


class NotFound(SpotifyAPIError):
    default_message = "The requested resource was not found."


class RateLimited(SpotifyAPIError):
    default_message = "Spotify is rate limiting requests. Please try again shortly."

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *,
        retry_after: Optional[float] = None,
    ) -> None:
        super().__init__(message, details)
        self.retry_after = retry_after


class RemoteServerError(SpotifyAPIError):
    default_message = "Spotify server error. Please try again later."


class RemoteRequestError(SpotifyAPIError):
    default_message = "An unexpected error occurred."

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


class NetworkError(SpotifyAPIError):
    default_message = "Network error. Please check your internet connection."


class InsufficientData(SpotifyAPIError):
    default_message = "Not enough data to analyze this playlist."


class InvalidInput(SpotifyAPIError):
    default_message = "Invalid input."


AUTH_ERRORS = (AuthExpired, StateMismatch, MissingVerifier, ExchangeFailed)


def is_auth_error(exc: BaseException) -> bool:
    """True for failures that should send the user back through login."""
    return isinstance(exc, AUTH_ERRORS)
