"""Application configuration management.

Loads configuration from config.yaml files and environment variables.
Environment variables take precedence over config file settings.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml

from authgate.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Default config locations
DEFAULT_CONFIG_DIR = Path.home() / ".authgate"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

# Environment variable prefix
ENV_PREFIX = "AUTHGATE_"

TOKEN_ENDPOINT_AUTH_METHODS = ("client_secret_basic", "client_secret_post")


@dataclass
class ServerSettings:
    """Server configuration settings."""

    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServerSettings:
        """Create ServerSettings from a dictionary."""
        return cls(
            host=data.get("host", "127.0.0.1"),
            port=data.get("port", 3000),
            debug=data.get("debug", False),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"host": self.host, "port": self.port, "debug": self.debug}


@dataclass
class OIDCSettings:
    """Identity provider and client registration settings."""

    issuer_url: str = ""
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    scopes: list[str] = field(default_factory=lambda: ["openid"])
    id_token_signed_response_alg: str = "HS256"
    token_endpoint_auth_method: str = "client_secret_basic"
    http_timeout_seconds: float = 10.0
    discovery_ttl_seconds: int = 3600
    flow_timeout_seconds: int = 600
    clock_skew_seconds: int = 120

    @property
    def callback_path(self) -> str:
        """Path component of the redirect URI, where the provider sends the browser back."""
        return urlsplit(self.redirect_uri).path or "/"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OIDCSettings:
        """Create OIDCSettings from a dictionary."""
        defaults = cls()
        return cls(
            issuer_url=data.get("issuer_url", ""),
            client_id=data.get("client_id", ""),
            client_secret=data.get("client_secret", ""),
            redirect_uri=data.get("redirect_uri", ""),
            scopes=data.get("scopes") or defaults.scopes,
            id_token_signed_response_alg=data.get("id_token_signed_response_alg", "HS256"),
            token_endpoint_auth_method=data.get("token_endpoint_auth_method", "client_secret_basic"),
            http_timeout_seconds=data.get("http_timeout_seconds", 10.0),
            discovery_ttl_seconds=data.get("discovery_ttl_seconds", 3600),
            flow_timeout_seconds=data.get("flow_timeout_seconds", 600),
            clock_skew_seconds=data.get("clock_skew_seconds", 120),
        )

    def to_dict(self, include_secret: bool = True) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        secret = self.client_secret
        if not include_secret and secret:
            secret = "[REDACTED]"
        return {
            "issuer_url": self.issuer_url,
            "client_id": self.client_id,
            "client_secret": secret,
            "redirect_uri": self.redirect_uri,
            "scopes": self.scopes,
            "id_token_signed_response_alg": self.id_token_signed_response_alg,
            "token_endpoint_auth_method": self.token_endpoint_auth_method,
            "http_timeout_seconds": self.http_timeout_seconds,
            "discovery_ttl_seconds": self.discovery_ttl_seconds,
            "flow_timeout_seconds": self.flow_timeout_seconds,
            "clock_skew_seconds": self.clock_skew_seconds,
        }


@dataclass
class SessionSettings:
    """Server-side session settings."""

    cookie_name: str = "authgate_session"
    cookie_secure: bool = False
    ttl_seconds: int = 4 * 60 * 60
    secret_key: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionSettings:
        """Create SessionSettings from a dictionary."""
        return cls(
            cookie_name=data.get("cookie_name", "authgate_session"),
            cookie_secure=data.get("cookie_secure", False),
            ttl_seconds=data.get("ttl_seconds", 4 * 60 * 60),
            secret_key=data.get("secret_key", ""),
        )

    def to_dict(self, include_secret: bool = True) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        secret = self.secret_key
        if not include_secret and secret:
            secret = "[REDACTED]"
        return {
            "cookie_name": self.cookie_name,
            "cookie_secure": self.cookie_secure,
            "ttl_seconds": self.ttl_seconds,
            "secret_key": secret,
        }


@dataclass
class LoggingSettings:
    """Logging settings."""

    level: str = "INFO"
    trace_enabled: bool = False
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoggingSettings:
        """Create LoggingSettings from a dictionary."""
        return cls(
            level=data.get("level", "INFO"),
            trace_enabled=data.get("trace_enabled", False),
            log_file=data.get("log_file"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"level": self.level, "trace_enabled": self.trace_enabled, "log_file": self.log_file}


@dataclass
class AppConfig:
    """Main application configuration."""

    server: ServerSettings = field(default_factory=ServerSettings)
    oidc: OIDCSettings = field(default_factory=OIDCSettings)
    session: SessionSettings = field(default_factory=SessionSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], config_path: Path | None = None) -> AppConfig:
        """Create AppConfig from a dictionary."""
        return cls(
            server=ServerSettings.from_dict(data.get("server") or {}),
            oidc=OIDCSettings.from_dict(data.get("oidc") or {}),
            session=SessionSettings.from_dict(data.get("session") or {}),
            logging=LoggingSettings.from_dict(data.get("logging") or {}),
            config_path=config_path,
        )

    def to_dict(self, include_secrets: bool = True) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "server": self.server.to_dict(),
            "oidc": self.oidc.to_dict(include_secret=include_secrets),
            "session": self.session.to_dict(include_secret=include_secrets),
            "logging": self.logging.to_dict(),
        }

    def save(self, path: Path | None = None) -> None:
        """Save configuration to a YAML file.

        Args:
            path: Path to save to. Uses config_path or default if not specified.
        """
        save_path = path or self.config_path or DEFAULT_CONFIG_FILE
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)

    def validate(self) -> None:
        """Check that the service can start with this configuration.

        Raises:
            ConfigurationError: Listing every missing or invalid value.
        """
        oidc = self.oidc
        missing = [
            name
            for name, value in (
                ("client_id", oidc.client_id),
                ("client_secret", oidc.client_secret),
                ("issuer_url", oidc.issuer_url),
                ("redirect_uri", oidc.redirect_uri),
            )
            if not value
        ]
        if missing:
            env_names = ", ".join(f"{ENV_PREFIX}{name.upper()}" for name in missing)
            raise ConfigurationError(
                f"Missing required OIDC settings: {', '.join(missing)} (set {env_names})",
                missing=missing,
            )

        problems = []
        if oidc.token_endpoint_auth_method not in TOKEN_ENDPOINT_AUTH_METHODS:
            problems.append(
                f"token_endpoint_auth_method must be one of {', '.join(TOKEN_ENDPOINT_AUTH_METHODS)}"
            )
        if not 0 < oidc.http_timeout_seconds <= 60:
            problems.append("http_timeout_seconds must be in (0, 60]")
        if oidc.flow_timeout_seconds <= 0:
            problems.append("flow_timeout_seconds must be positive")
        if urlsplit(oidc.redirect_uri).scheme not in ("http", "https"):
            problems.append("redirect_uri must be an absolute http(s) URL")
        elif oidc.callback_path == "/":
            problems.append("redirect_uri needs a path other than / for the callback")
        if problems:
            raise ConfigurationError("Invalid configuration: " + "; ".join(problems))

        if not oidc.issuer_url.startswith("https://"):
            logger.warning("Issuer URL %s is not HTTPS", oidc.issuer_url)


def _get_env_bool(key: str, default: bool) -> bool:
    """Get a boolean from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _get_env_int(key: str, default: int) -> int:
    """Get an integer from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_float(key: str, default: float) -> float:
    """Get a float from environment variable."""
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load application configuration.

    Configuration is loaded in this order (later values override earlier):
    1. Default values
    2. config.yaml file (if exists)
    3. Environment variables

    Args:
        config_path: Path to config file. Uses default if not specified.

    Returns:
        AppConfig with merged settings.

    Raises:
        ConfigurationError: If the config file exists but is not valid YAML.
    """
    config = AppConfig()

    file_path = config_path or DEFAULT_CONFIG_FILE
    if file_path.exists():
        try:
            with open(file_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid config file {file_path}: {e}") from e
        config = AppConfig.from_dict(data, config_path=file_path)

    # Server settings
    if os.environ.get(f"{ENV_PREFIX}HOST"):
        config.server.host = os.environ[f"{ENV_PREFIX}HOST"]
    config.server.port = _get_env_int(f"{ENV_PREFIX}PORT", config.server.port)
    config.server.debug = _get_env_bool(f"{ENV_PREFIX}DEBUG", config.server.debug)

    # OIDC settings
    oidc = config.oidc
    for attr in ("issuer_url", "client_id", "client_secret", "redirect_uri"):
        value = os.environ.get(f"{ENV_PREFIX}{attr.upper()}")
        if value:
            setattr(oidc, attr, value)

    if os.environ.get(f"{ENV_PREFIX}SCOPES"):
        oidc.scopes = os.environ[f"{ENV_PREFIX}SCOPES"].split()
    if os.environ.get(f"{ENV_PREFIX}ID_TOKEN_ALG"):
        oidc.id_token_signed_response_alg = os.environ[f"{ENV_PREFIX}ID_TOKEN_ALG"]
    if os.environ.get(f"{ENV_PREFIX}TOKEN_AUTH_METHOD"):
        oidc.token_endpoint_auth_method = os.environ[f"{ENV_PREFIX}TOKEN_AUTH_METHOD"]

    oidc.http_timeout_seconds = _get_env_float(f"{ENV_PREFIX}HTTP_TIMEOUT", oidc.http_timeout_seconds)
    oidc.discovery_ttl_seconds = _get_env_int(f"{ENV_PREFIX}DISCOVERY_TTL", oidc.discovery_ttl_seconds)
    oidc.flow_timeout_seconds = _get_env_int(f"{ENV_PREFIX}FLOW_TIMEOUT", oidc.flow_timeout_seconds)

    # Session settings
    session = config.session
    if os.environ.get(f"{ENV_PREFIX}SECRET_KEY"):
        session.secret_key = os.environ[f"{ENV_PREFIX}SECRET_KEY"]
    session.ttl_seconds = _get_env_int(f"{ENV_PREFIX}SESSION_TTL", session.ttl_seconds)
    session.cookie_secure = _get_env_bool(f"{ENV_PREFIX}COOKIE_SECURE", session.cookie_secure)

    # Logging settings
    if os.environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
        config.logging.level = os.environ[f"{ENV_PREFIX}LOG_LEVEL"]
    if os.environ.get(f"{ENV_PREFIX}LOG_FILE"):
        config.logging.log_file = os.environ[f"{ENV_PREFIX}LOG_FILE"]
    config.logging.trace_enabled = _get_env_bool(f"{ENV_PREFIX}LOG_TRACE", config.logging.trace_enabled)

    return config


def get_default_config_yaml() -> str:
    """Get the default config.yaml content as a string.

    Useful for generating example configuration files.
    """
    return """\
# AuthGate Configuration File
# Environment variables override these settings (prefix: AUTHGATE_)

server:
  host: "127.0.0.1"
  port: 3000
  debug: false

oidc:
  # Issuer URL; the discovery document is read from
  # <issuer_url>/.well-known/openid-configuration
  issuer_url: "https://access.line.me"

  # Client registration (required, or AUTHGATE_CLIENT_ID / AUTHGATE_CLIENT_SECRET)
  client_id: ""
  client_secret: ""

  # Must exactly match the redirect URI registered with the provider.
  # Its path is served as the callback endpoint.
  redirect_uri: "http://localhost:3000/cb"

  scopes:
    - openid

  # ID token signing algorithm. HS* algorithms verify with the client secret,
  # anything else with the provider's JWKS.
  id_token_signed_response_alg: HS256

  # client_secret_basic or client_secret_post
  token_endpoint_auth_method: client_secret_basic

  # Timeout for each call to the provider
  http_timeout_seconds: 10

  # How long a discovery document is reused before it is fetched again
  discovery_ttl_seconds: 3600

  # How long a started login may wait for its callback
  flow_timeout_seconds: 600

session:
  cookie_name: authgate_session
  # Set to true when served over HTTPS
  cookie_secure: false
  ttl_seconds: 14400

logging:
  # ERROR, INFO, DEBUG or TRACE
  level: INFO
  # Log tokens and secrets unredacted at TRACE (never in production)
  trace_enabled: false
"""
