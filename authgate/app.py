"""Flask application factory."""

from __future__ import annotations

import secrets

from flask import Flask

from authgate.core.config import AppConfig, load_config
from authgate.core.logging import LogLevel, ProtocolLogger, configure_logging
from authgate.core.machine import SessionStateMachine
from authgate.core.oidc.discovery import ProviderConfig
from authgate.web.sessions import MemorySessionStore, ServerSideSessionInterface


def create_app(config: dict | None = None, app_config: AppConfig | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Optional Flask configuration overriding defaults. Besides
            regular Flask keys it accepts ``SESSION_STORE``,
            ``OIDC_HTTP_TRANSPORT`` and ``PROTOCOL_LOGGER``.
        app_config: Application configuration. Loads from file/env if not provided.

    Returns:
        Configured Flask application instance.

    Raises:
        ConfigurationError: If required OIDC settings are missing.
    """
    if app_config is None:
        app_config = load_config()
    app_config.validate()

    app = Flask(__name__)

    # Sessions are server-side, so a per-process key only has to sign session ids
    secret_key = app_config.session.secret_key or secrets.token_hex(32)

    app.config.from_mapping(
        SECRET_KEY=secret_key,
        SESSION_COOKIE_NAME=app_config.session.cookie_name,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=app_config.session.cookie_secure,
        AUTHGATE_CONFIG=app_config,
    )

    if config:
        app.config.from_mapping(config)

    store = app.config.get("SESSION_STORE") or MemorySessionStore(ttl_seconds=app_config.session.ttl_seconds)
    app.session_interface = ServerSideSessionInterface(store)

    protocol_logger = app.config.get("PROTOCOL_LOGGER") or ProtocolLogger(
        level=LogLevel.__members__.get(app_config.logging.level.upper(), LogLevel.INFO),
        trace_enabled=app_config.logging.trace_enabled,
    )
    provider = ProviderConfig(
        app_config.oidc,
        protocol_logger=protocol_logger,
        transport=app.config.get("OIDC_HTTP_TRANSPORT"),
    )
    app.extensions["authgate"] = SessionStateMachine(
        provider,
        flow_timeout_seconds=app_config.oidc.flow_timeout_seconds,
    )

    from authgate.web import routes

    routes.init_app(app, callback_path=app_config.oidc.callback_path)

    return app


def run_server(
    app_config: AppConfig | None = None,
    host: str | None = None,
    port: int | None = None,
) -> None:
    """Run the Flask development server.

    Args:
        app_config: Application configuration. Loads from file/env if not provided.
        host: Override host from config.
        port: Override port from config.

    Raises:
        ConfigurationError: If required OIDC settings are missing.
    """
    if app_config is None:
        app_config = load_config()

    protocol_logger = configure_logging(
        level=app_config.logging.level,
        trace_enabled=app_config.logging.trace_enabled,
        log_file=app_config.logging.log_file,
    )
    app = create_app({"PROTOCOL_LOGGER": protocol_logger}, app_config=app_config)
    app.debug = app_config.server.debug

    server_host = host or app_config.server.host
    server_port = port or app_config.server.port

    if not app_config.oidc.redirect_uri.startswith("https://"):
        print("WARNING: redirect_uri is not HTTPS. Use HTTPS outside local development.")
        print("")

    print("Starting AuthGate server...")
    print(f"  URL: http://{server_host}:{server_port}")
    print(f"  Issuer: {app_config.oidc.issuer_url}")
    print(f"  Callback: {app_config.oidc.callback_path}")
    print("")

    app.run(host=server_host, port=server_port, threaded=True)
