"""Provider metadata discovery and client binding.

``ProviderConfig`` is constructed once per application from
``OIDCSettings`` and owns the discovery cache, so nothing here lives in
module-level state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from authgate.core.config import OIDCSettings
from authgate.core.errors import DiscoveryError
from authgate.core.logging import LoggingClient, ProtocolLogger
from authgate.core.oidc.validation import JWKSManager

logger = logging.getLogger(__name__)

WELL_KNOWN_PATH = ".well-known/openid-configuration"
REQUIRED_FIELDS = ("authorization_endpoint", "token_endpoint")


@dataclass(frozen=True)
class ProviderMetadata:
    """Parsed OIDC discovery document."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str | None = None
    userinfo_endpoint: str | None = None
    id_token_signing_alg_values_supported: tuple[str, ...] = ()
    code_challenge_methods_supported: tuple[str, ...] = ()
    token_endpoint_auth_methods_supported: tuple[str, ...] = ()
    raw_config: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_document(cls, document: dict[str, Any], issuer_url: str) -> ProviderMetadata:
        """Build metadata from a discovery document.

        Args:
            document: Decoded JSON of the well-known configuration.
            issuer_url: Configured issuer, used when the document omits ``issuer``.

        Raises:
            DiscoveryError: If a required endpoint is missing.
        """
        missing = [name for name in REQUIRED_FIELDS if not isinstance(document.get(name), str) or not document[name]]
        if missing:
            raise DiscoveryError(
                f"Discovery document for {issuer_url} is missing required fields: {', '.join(missing)}"
            )

        return cls(
            issuer=document.get("issuer") or issuer_url.rstrip("/"),
            authorization_endpoint=document["authorization_endpoint"],
            token_endpoint=document["token_endpoint"],
            jwks_uri=document.get("jwks_uri"),
            userinfo_endpoint=document.get("userinfo_endpoint"),
            id_token_signing_alg_values_supported=tuple(document.get("id_token_signing_alg_values_supported") or ()),
            code_challenge_methods_supported=tuple(document.get("code_challenge_methods_supported") or ()),
            token_endpoint_auth_methods_supported=tuple(document.get("token_endpoint_auth_methods_supported") or ()),
            raw_config=document,
        )


@dataclass(frozen=True)
class Client:
    """Registered client bound to a provider.

    Only the ``authorization_code`` grant with response type ``code`` is
    used. With an ``HS*`` ID token algorithm the client secret doubles as
    the ID token verification key.
    """

    client_id: str
    client_secret: str
    redirect_uri: str
    metadata: ProviderMetadata
    scopes: tuple[str, ...] = ("openid",)
    id_token_signed_response_alg: str = "HS256"
    token_endpoint_auth_method: str = "client_secret_basic"
    clock_skew_seconds: int = 120
    response_type: str = "code"
    grant_type: str = "authorization_code"

    @property
    def uses_shared_secret(self) -> bool:
        """Whether ID tokens are verified with the client secret (HMAC)."""
        return self.id_token_signed_response_alg.startswith("HS")


@dataclass
class _CacheEntry:
    metadata: ProviderMetadata
    fetched_at: float


def discovery_url_for(issuer_url: str) -> str:
    """Return the well-known URL for an issuer (unchanged if already one)."""
    url = issuer_url.rstrip("/")
    if url.endswith(WELL_KNOWN_PATH):
        return url
    return f"{url}/{WELL_KNOWN_PATH}"


class ProviderConfig:
    """Resolves provider metadata and builds ``Client`` values.

    Discovery results are cached per issuer for ``discovery_ttl_seconds``.
    Two threads refreshing an expired entry at the same time both fetch
    and the last write wins, which is harmless.
    """

    def __init__(
        self,
        settings: OIDCSettings,
        protocol_logger: ProtocolLogger | None = None,
        transport: httpx.BaseTransport | None = None,
        clock: Any = time.monotonic,
    ) -> None:
        """Initialize the provider configuration.

        Args:
            settings: OIDC settings (issuer, client registration, timeouts).
            protocol_logger: Sink for provider HTTP exchanges.
            transport: Optional httpx transport, used by tests to fake the provider.
            clock: Monotonic clock used for cache expiry.
        """
        self.settings = settings
        self._protocol_logger = protocol_logger or ProtocolLogger()
        self._transport = transport
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._jwks_managers: dict[str, JWKSManager] = {}

    def http_client(self) -> LoggingClient:
        """Create an HTTP client for provider calls with the configured timeout."""
        return LoggingClient(
            protocol_logger=self._protocol_logger,
            timeout=self.settings.http_timeout_seconds,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    def discover(self, issuer_url: str | None = None) -> ProviderMetadata:
        """Return provider metadata, fetching it when the cache is empty or stale.

        Args:
            issuer_url: Issuer to discover. Defaults to the configured issuer.

        Raises:
            DiscoveryError: On network failure, non-2xx status or malformed document.
        """
        issuer_url = issuer_url or self.settings.issuer_url
        entry = self._cache.get(issuer_url)
        now = self._clock()
        if entry is not None and now - entry.fetched_at < self.settings.discovery_ttl_seconds:
            return entry.metadata

        metadata = self._fetch(issuer_url)
        self._cache[issuer_url] = _CacheEntry(metadata=metadata, fetched_at=now)
        self._check_capabilities(metadata)
        return metadata

    def invalidate(self, issuer_url: str | None = None) -> None:
        """Drop cached metadata and signing keys for one issuer, or all of them."""
        if issuer_url is None:
            self._cache.clear()
            self._jwks_managers.clear()
            return
        entry = self._cache.pop(issuer_url, None)
        if entry is not None and entry.metadata.jwks_uri:
            self._jwks_managers.pop(entry.metadata.jwks_uri, None)

    def jwks_manager(self, jwks_uri: str) -> JWKSManager:
        """Return the signing key cache for ``jwks_uri``, shared across callbacks."""
        manager = self._jwks_managers.get(jwks_uri)
        if manager is None:
            manager = JWKSManager(jwks_uri, timeout=self.settings.http_timeout_seconds)
            self._jwks_managers[jwks_uri] = manager
        return manager

    def client(self, metadata: ProviderMetadata | None = None) -> Client:
        """Bind the configured client registration to provider metadata."""
        settings = self.settings
        scopes = list(settings.scopes)
        if "openid" not in scopes:
            scopes.insert(0, "openid")
        return Client(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_uri,
            metadata=metadata or self.discover(),
            scopes=tuple(scopes),
            id_token_signed_response_alg=settings.id_token_signed_response_alg,
            token_endpoint_auth_method=settings.token_endpoint_auth_method,
            clock_skew_seconds=settings.clock_skew_seconds,
        )

    def _fetch(self, issuer_url: str) -> ProviderMetadata:
        discovery_url = discovery_url_for(issuer_url)
        logger.debug("Fetching OIDC discovery from %s", discovery_url)

        try:
            with self.http_client() as client:
                response = client.get(discovery_url)
                response.raise_for_status()
                document = response.json()
        except httpx.TimeoutException as e:
            raise DiscoveryError(f"Timeout fetching OIDC configuration from {discovery_url}") from e
        except httpx.HTTPStatusError as e:
            raise DiscoveryError(
                f"HTTP {e.response.status_code} fetching OIDC configuration from {discovery_url}",
                detail=e.response.text[:200],
            ) from e
        except httpx.RequestError as e:
            raise DiscoveryError(f"Request error fetching OIDC configuration: {e}") from e
        except ValueError as e:  # JSON decode error
            raise DiscoveryError(f"Invalid JSON in OIDC configuration: {e}") from e

        if not isinstance(document, dict):
            raise DiscoveryError(f"OIDC configuration at {discovery_url} is not a JSON object")

        metadata = ProviderMetadata.from_document(document, issuer_url)
        logger.info("Discovered provider %s", metadata.issuer)
        return metadata

    def _check_capabilities(self, metadata: ProviderMetadata) -> None:
        alg = self.settings.id_token_signed_response_alg
        supported_algs = metadata.id_token_signing_alg_values_supported
        if supported_algs and alg not in supported_algs:
            logger.warning(
                "Provider %s does not advertise ID token algorithm %s (supported: %s)",
                metadata.issuer,
                alg,
                ", ".join(supported_algs),
            )
        methods = metadata.code_challenge_methods_supported
        if methods and "S256" not in methods:
            logger.warning("Provider %s does not advertise PKCE S256 support", metadata.issuer)
