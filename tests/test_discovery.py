"""Tests for provider discovery and client binding."""

import httpx
import pytest
from fake_provider import ISSUER, FakeProvider

from authgate.core.config import OIDCSettings
from authgate.core.errors import DiscoveryError
from authgate.core.oidc.discovery import ProviderConfig, ProviderMetadata, discovery_url_for


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider_config(oidc_settings: OIDCSettings, provider: FakeProvider, clock: FakeClock) -> ProviderConfig:
    return ProviderConfig(oidc_settings, transport=provider.transport, clock=clock)


def test_discovery_url_for():
    """Test the well-known suffix is appended once."""
    expected = "https://idp.example.com/.well-known/openid-configuration"
    assert discovery_url_for("https://idp.example.com") == expected
    assert discovery_url_for("https://idp.example.com/") == expected
    assert discovery_url_for(expected) == expected


class TestProviderMetadata:
    """Tests for parsing discovery documents."""

    def test_from_document(self, provider: FakeProvider):
        metadata = ProviderMetadata.from_document(provider.document(), ISSUER)
        assert metadata.issuer == ISSUER
        assert metadata.authorization_endpoint == f"{ISSUER}/authorize"
        assert metadata.token_endpoint == f"{ISSUER}/token"
        assert metadata.jwks_uri == f"{ISSUER}/jwks"
        assert "S256" in metadata.code_challenge_methods_supported

    def test_issuer_falls_back_to_configured_url(self, provider: FakeProvider):
        document = provider.document()
        del document["issuer"]
        metadata = ProviderMetadata.from_document(document, "https://other.example.com/")
        assert metadata.issuer == "https://other.example.com"

    @pytest.mark.parametrize("missing", ["authorization_endpoint", "token_endpoint"])
    def test_missing_required_endpoint(self, provider: FakeProvider, missing: str):
        document = provider.document()
        del document[missing]
        with pytest.raises(DiscoveryError, match=missing):
            ProviderMetadata.from_document(document, ISSUER)


class TestDiscover:
    """Tests for ProviderConfig.discover."""

    def test_discover(self, provider_config: ProviderConfig, provider: FakeProvider):
        metadata = provider_config.discover()
        assert metadata.token_endpoint == f"{ISSUER}/token"
        assert provider.discovery_calls == 1

    def test_cached_within_ttl(self, provider_config: ProviderConfig, provider: FakeProvider, clock: FakeClock):
        first = provider_config.discover()
        clock.now += 3599
        assert provider_config.discover() is first
        assert provider.discovery_calls == 1

    def test_refetched_when_stale(self, provider_config: ProviderConfig, provider: FakeProvider, clock: FakeClock):
        provider_config.discover()
        clock.now += 3600
        provider_config.discover()
        assert provider.discovery_calls == 2

    def test_invalidate(self, provider_config: ProviderConfig, provider: FakeProvider):
        provider_config.discover()
        provider_config.invalidate()
        provider_config.discover()
        assert provider.discovery_calls == 2

    def test_invalidate_one_issuer_drops_its_keys(self, provider_config: ProviderConfig, provider: FakeProvider):
        metadata = provider_config.discover()
        manager = provider_config.jwks_manager(metadata.jwks_uri)

        provider_config.invalidate(ISSUER)

        assert provider_config.jwks_manager(metadata.jwks_uri) is not manager
        provider_config.discover()
        assert provider.discovery_calls == 2

    def test_http_error(self, provider_config: ProviderConfig, provider: FakeProvider):
        provider.discovery_status = 500
        with pytest.raises(DiscoveryError, match="HTTP 500") as exc_info:
            provider_config.discover()
        assert exc_info.value.retryable
        assert exc_info.value.status_code == 502

    def test_failure_is_not_cached(self, provider_config: ProviderConfig, provider: FakeProvider):
        provider.discovery_status = 503
        with pytest.raises(DiscoveryError):
            provider_config.discover()
        provider.discovery_status = 200
        assert provider_config.discover().issuer == ISSUER

    def test_connection_error(self, oidc_settings: OIDCSettings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        provider_config = ProviderConfig(oidc_settings, transport=httpx.MockTransport(handler))
        with pytest.raises(DiscoveryError, match="Request error"):
            provider_config.discover()

    def test_timeout(self, oidc_settings: OIDCSettings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        provider_config = ProviderConfig(oidc_settings, transport=httpx.MockTransport(handler))
        with pytest.raises(DiscoveryError, match="Timeout"):
            provider_config.discover()

    def test_invalid_json(self, oidc_settings: OIDCSettings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>not json</html>"))
        provider_config = ProviderConfig(oidc_settings, transport=transport)
        with pytest.raises(DiscoveryError, match="Invalid JSON"):
            provider_config.discover()

    def test_non_object_json(self, oidc_settings: OIDCSettings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=["not", "an", "object"]))
        provider_config = ProviderConfig(oidc_settings, transport=transport)
        with pytest.raises(DiscoveryError, match="not a JSON object"):
            provider_config.discover()

    def test_missing_endpoint(self, provider_config: ProviderConfig, provider: FakeProvider):
        document = provider.document()
        del document["token_endpoint"]
        provider.discovery_document = document
        with pytest.raises(DiscoveryError, match="token_endpoint"):
            provider_config.discover()

    def test_warns_on_unadvertised_algorithm(
        self,
        provider_config: ProviderConfig,
        provider: FakeProvider,
        caplog: pytest.LogCaptureFixture,
    ):
        document = provider.document()
        document["id_token_signing_alg_values_supported"] = ["RS256"]
        provider.discovery_document = document
        provider_config.discover()
        assert "does not advertise ID token algorithm HS256" in caplog.text


class TestJWKSManagers:
    """Tests for the shared signing key caches."""

    def test_one_manager_per_uri(self, provider_config: ProviderConfig):
        first = provider_config.jwks_manager(f"{ISSUER}/jwks")
        assert provider_config.jwks_manager(f"{ISSUER}/jwks") is first
        assert provider_config.jwks_manager(f"{ISSUER}/other-jwks") is not first

    def test_uses_http_timeout(self, oidc_settings: OIDCSettings):
        oidc_settings.http_timeout_seconds = 4.0
        manager = ProviderConfig(oidc_settings).jwks_manager(f"{ISSUER}/jwks")
        assert manager.timeout == 4.0

    def test_invalidate_all_drops_managers(self, provider_config: ProviderConfig):
        first = provider_config.jwks_manager(f"{ISSUER}/jwks")
        provider_config.invalidate()
        assert provider_config.jwks_manager(f"{ISSUER}/jwks") is not first


class TestClient:
    """Tests for binding the client registration."""

    def test_client(self, provider_config: ProviderConfig):
        client = provider_config.client()
        assert client.client_id == "test-client"
        assert client.response_type == "code"
        assert client.grant_type == "authorization_code"
        assert client.id_token_signed_response_alg == "HS256"
        assert client.token_endpoint_auth_method == "client_secret_basic"
        assert client.scopes == ("openid",)
        assert client.uses_shared_secret

    def test_openid_scope_always_present(self, oidc_settings: OIDCSettings, provider: FakeProvider):
        oidc_settings.scopes = ["profile", "email"]
        provider_config = ProviderConfig(oidc_settings, transport=provider.transport)
        assert provider_config.client().scopes == ("openid", "profile", "email")
