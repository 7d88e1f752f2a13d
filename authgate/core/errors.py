"""Error taxonomy for the login flow.

Every error carries an OAuth2-style error code, the HTTP status the web
layer answers with, and whether the user may simply try again.
"""

from __future__ import annotations

from typing import Any


class AuthGateError(Exception):
    """Base class for all AuthGate errors."""

    error_code = "server_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON body of an error response."""
        return {
            "error": self.error_code,
            "error_description": self.message,
            "retryable": self.retryable,
        }


class ConfigurationError(AuthGateError):
    """Required configuration is missing or invalid. Fatal at startup."""

    error_code = "configuration_error"

    def __init__(self, message: str, missing: list[str] | None = None) -> None:
        super().__init__(message)
        self.missing = missing or []


class DiscoveryError(AuthGateError):
    """The provider's discovery document could not be fetched or parsed."""

    error_code = "discovery_failed"
    status_code = 502
    retryable = True


class CallbackError(AuthGateError):
    """A callback could not be turned into an authenticated session.

    These end the current login attempt; the user has to start over.
    """

    error_code = "invalid_callback"
    status_code = 400


class StateMismatchError(CallbackError):
    """Returned ``state`` is absent or does not match the pending attempt."""

    error_code = "state_mismatch"


class LoginExpiredError(CallbackError):
    """The pending login attempt is older than the configured flow timeout."""

    error_code = "login_expired"


class ProviderErrorResponse(CallbackError):
    """The provider redirected back with an OAuth2 error."""

    error_code = "provider_error"

    def __init__(self, error: str, error_description: str | None = None) -> None:
        message = f"Provider returned error '{error}'"
        if error_description:
            message = f"{message}: {error_description}"
        super().__init__(message, detail=error_description)
        self.error = error
        self.error_description = error_description


class TokenExchangeError(CallbackError):
    """The authorization code could not be exchanged for tokens."""

    error_code = "token_exchange_failed"

    def __init__(self, message: str, *, status: int | None = None, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.status = status


class TokenValidationError(CallbackError):
    """The ID token signature or standard claims are invalid."""

    error_code = "invalid_id_token"


class NonceMismatchError(CallbackError):
    """The ID token ``nonce`` claim is absent or does not match."""

    error_code = "nonce_mismatch"
