"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from authgate.app import create_app
from authgate.core.config import AppConfig, OIDCSettings, get_default_config_yaml, load_config
from authgate.core.errors import ConfigurationError

CONFIG_YAML = """\
server:
  port: 8080
oidc:
  issuer_url: https://idp.example.com
  client_id: yaml-client
  client_secret: yaml-secret
  redirect_uri: https://app.example.com/auth/callback
  scopes: [openid, profile]
  token_endpoint_auth_method: client_secret_post
session:
  cookie_secure: true
logging:
  level: DEBUG
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "authgate.yaml"
    path.write_text(CONFIG_YAML)
    return path


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_without_file(self, tmp_path: Path):
        config = load_config(tmp_path / "missing.yaml")
        assert config.config_path is None
        assert config.server.port == 3000
        assert config.oidc.scopes == ["openid"]
        assert config.oidc.id_token_signed_response_alg == "HS256"
        assert config.oidc.flow_timeout_seconds == 600
        assert config.session.cookie_name == "authgate_session"

    def test_load_yaml(self, config_file: Path):
        config = load_config(config_file)
        assert config.config_path == config_file
        assert config.server.port == 8080
        assert config.oidc.client_id == "yaml-client"
        assert config.oidc.scopes == ["openid", "profile"]
        assert config.oidc.token_endpoint_auth_method == "client_secret_post"
        assert config.oidc.callback_path == "/auth/callback"
        assert config.session.cookie_secure is True
        assert config.logging.level == "DEBUG"

    def test_env_overrides_file(self, config_file: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("AUTHGATE_CLIENT_ID", "env-client")
        monkeypatch.setenv("AUTHGATE_CLIENT_SECRET", "env-secret")
        monkeypatch.setenv("AUTHGATE_PORT", "9000")
        monkeypatch.setenv("AUTHGATE_SCOPES", "openid email")
        monkeypatch.setenv("AUTHGATE_FLOW_TIMEOUT", "120")
        monkeypatch.setenv("AUTHGATE_COOKIE_SECURE", "false")

        config = load_config(config_file)

        assert config.oidc.client_id == "env-client"
        assert config.oidc.client_secret == "env-secret"
        assert config.oidc.issuer_url == "https://idp.example.com"
        assert config.server.port == 9000
        assert config.oidc.scopes == ["openid", "email"]
        assert config.oidc.flow_timeout_seconds == 120
        assert config.session.cookie_secure is False

    def test_invalid_number_keeps_value(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        monkeypatch.setenv("AUTHGATE_HTTP_TIMEOUT", "soon")
        assert load_config(tmp_path / "missing.yaml").oidc.http_timeout_seconds == 10.0

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("oidc: [unclosed")
        with pytest.raises(ConfigurationError, match="Invalid config file"):
            load_config(path)

    def test_save_and_reload(self, tmp_path: Path, config_file: Path):
        config = load_config(config_file)
        target = tmp_path / "saved" / "config.yaml"
        config.save(target)
        assert load_config(target).to_dict() == config.to_dict()

    def test_default_yaml_parses(self):
        data = yaml.safe_load(get_default_config_yaml())
        config = AppConfig.from_dict(data)
        assert config.oidc.redirect_uri == "http://localhost:3000/cb"
        assert config.oidc.callback_path == "/cb"


class TestValidate:
    """Tests for AppConfig.validate."""

    def test_valid(self, app_config: AppConfig):
        app_config.validate()

    def test_missing_required(self):
        with pytest.raises(ConfigurationError) as exc_info:
            AppConfig().validate()
        assert exc_info.value.missing == ["client_id", "client_secret", "issuer_url", "redirect_uri"]
        assert "AUTHGATE_CLIENT_ID" in exc_info.value.message

    def test_missing_secret_only(self, oidc_settings: OIDCSettings):
        oidc_settings.client_secret = ""
        with pytest.raises(ConfigurationError) as exc_info:
            AppConfig(oidc=oidc_settings).validate()
        assert exc_info.value.missing == ["client_secret"]

    @pytest.mark.parametrize(
        ("field", "value", "message"),
        [
            ("token_endpoint_auth_method", "private_key_jwt", "token_endpoint_auth_method"),
            ("http_timeout_seconds", 0, "http_timeout_seconds"),
            ("http_timeout_seconds", 61, "http_timeout_seconds"),
            ("flow_timeout_seconds", 0, "flow_timeout_seconds"),
            ("redirect_uri", "localhost/cb", "absolute"),
            ("redirect_uri", "http://localhost/", "path other than /"),
        ],
    )
    def test_invalid_values(self, oidc_settings: OIDCSettings, field: str, value, message: str):
        setattr(oidc_settings, field, value)
        with pytest.raises(ConfigurationError, match=message):
            AppConfig(oidc=oidc_settings).validate()

    def test_create_app_fails_fast(self):
        with pytest.raises(ConfigurationError):
            create_app({"TESTING": True}, app_config=AppConfig())

    def test_create_app_reads_environment(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("AUTHGATE_ISSUER_URL", "https://idp.example.com")
        monkeypatch.setenv("AUTHGATE_CLIENT_ID", "env-client")
        monkeypatch.setenv("AUTHGATE_CLIENT_SECRET", "env-secret")
        monkeypatch.setenv("AUTHGATE_REDIRECT_URI", "http://localhost:3000/login/callback")

        app = create_app({"TESTING": True})

        assert app.config["AUTHGATE_CONFIG"].oidc.client_id == "env-client"
        assert any(rule.rule == "/login/callback" for rule in app.url_map.iter_rules())
