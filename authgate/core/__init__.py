"""Core login flow: configuration, errors, session state and state machine."""

from authgate.core.errors import (
    AuthGateError,
    CallbackError,
    ConfigurationError,
    DiscoveryError,
    LoginExpiredError,
    NonceMismatchError,
    ProviderErrorResponse,
    StateMismatchError,
    TokenExchangeError,
    TokenValidationError,
)
from authgate.core.logging import (
    HTTPExchange,
    LoggingClient,
    LogLevel,
    ProtocolLogger,
    configure_logging,
    redact_sensitive,
)

__all__ = [
    # Errors
    "AuthGateError",
    "CallbackError",
    "ConfigurationError",
    "DiscoveryError",
    "LoginExpiredError",
    "NonceMismatchError",
    "ProviderErrorResponse",
    "StateMismatchError",
    "TokenExchangeError",
    "TokenValidationError",
    # Logging
    "HTTPExchange",
    "LoggingClient",
    "LogLevel",
    "ProtocolLogger",
    "configure_logging",
    "redact_sensitive",
]
