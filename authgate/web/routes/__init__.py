"""Web routes for AuthGate."""

from __future__ import annotations

import logging

from flask import Blueprint, Flask, Response, jsonify

from authgate.core.errors import AuthGateError

logger = logging.getLogger(__name__)

main_bp = Blueprint("main", __name__)


@main_bp.route("/health")
def health() -> dict[str, str]:
    """Health check endpoint (unauthenticated)."""
    return {"status": "healthy"}


def handle_auth_error(error: AuthGateError) -> tuple[Response, int]:
    """Render a login flow error as JSON with its HTTP status."""
    if error.retryable:
        logger.error("Login flow failed (%s): %s", error.error_code, error.message)
    else:
        logger.warning("Login attempt rejected (%s): %s", error.error_code, error.message)
    return jsonify(error.to_dict()), error.status_code


def init_app(app: Flask, callback_path: str) -> None:
    """Register blueprints, the callback route and error handlers.

    Args:
        app: Flask application.
        callback_path: Path of the configured redirect URI.
    """
    from authgate.web.routes.gate import callback, gate_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(gate_bp)
    app.add_url_rule(callback_path, endpoint="callback", view_func=callback, methods=["GET"])
    app.register_error_handler(AuthGateError, handle_auth_error)
