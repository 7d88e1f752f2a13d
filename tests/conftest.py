"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from pathlib import Path

import pytest
from fake_provider import CLIENT_ID, CLIENT_SECRET, ISSUER, REDIRECT_URI, FakeProvider
from flask import Flask
from flask.testing import FlaskClient

from authgate.app import create_app
from authgate.core.config import AppConfig, OIDCSettings


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep tests away from the user's config file and AUTHGATE_* variables."""
    for key in list(os.environ):
        if key.startswith("AUTHGATE_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr("authgate.core.config.DEFAULT_CONFIG_FILE", tmp_path / "config.yaml")


@pytest.fixture
def oidc_settings() -> OIDCSettings:
    """OIDC settings pointing at the fake provider."""
    return OIDCSettings(
        issuer_url=ISSUER,
        client_id=CLIENT_ID,
        client_secret=CLIENT_SECRET,
        redirect_uri=REDIRECT_URI,
    )


@pytest.fixture
def app_config(oidc_settings: OIDCSettings) -> AppConfig:
    """Valid application configuration."""
    return AppConfig(oidc=oidc_settings)


@pytest.fixture
def provider() -> FakeProvider:
    """Fake identity provider."""
    return FakeProvider()


@pytest.fixture
def app(app_config: AppConfig, provider: FakeProvider) -> Generator[Flask, None, None]:
    """Create application for testing against the fake provider."""
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test-secret-key",
            "OIDC_HTTP_TRANSPORT": provider.transport,
        },
        app_config=app_config,
    )
    yield app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
    """Create test client."""
    return app.test_client()
