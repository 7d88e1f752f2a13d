"""Tests for the Flask application."""

from flask import Flask
from flask.testing import FlaskClient

from authgate.core.machine import SessionStateMachine
from authgate.web.sessions import ServerSideSessionInterface


def test_health_endpoint(client: FlaskClient) -> None:
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json == {"status": "healthy"}


def test_index_redirects_to_provider(client: FlaskClient) -> None:
    """Test the index page starts a login."""
    response = client.get("/")
    assert response.status_code == 302
    assert response.headers["Location"].startswith("https://idp.example.com/authorize?")


def test_app_wiring(app: Flask) -> None:
    """Test the state machine, session interface and callback route are installed."""
    assert isinstance(app.extensions["authgate"], SessionStateMachine)
    assert isinstance(app.session_interface, ServerSideSessionInterface)
    assert app.config["SESSION_COOKIE_NAME"] == "authgate_session"
    assert app.config["SESSION_COOKIE_HTTPONLY"] is True
    assert any(rule.rule == "/cb" and rule.endpoint == "callback" for rule in app.url_map.iter_rules())
