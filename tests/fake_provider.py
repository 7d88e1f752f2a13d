"""In-process identity provider for tests, served through httpx.MockTransport."""

from __future__ import annotations

import time
from typing import Any
from urllib.parse import parse_qs, parse_qsl, urlsplit

import httpx
import jwt

ISSUER = "https://idp.example.com"
CLIENT_ID = "test-client"
CLIENT_SECRET = "test-client-secret-0123456789abcdef"
REDIRECT_URI = "http://localhost/cb"


class FakeProvider:
    """Answers discovery and token requests and mints HS256 ID tokens."""

    def __init__(self, client_id: str = CLIENT_ID, client_secret: str = CLIENT_SECRET) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.nonce: str | None = None
        self.discovery_status = 200
        self.discovery_document: dict[str, Any] | None = None
        self.token_status = 200
        self.token_body: dict[str, Any] | None = None
        self.claim_overrides: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def discovery_calls(self) -> int:
        return sum(1 for r in self.requests if r.url.path.endswith("/openid-configuration"))

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/token"]

    def document(self) -> dict[str, Any]:
        return {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/authorize",
            "token_endpoint": f"{ISSUER}/token",
            "jwks_uri": f"{ISSUER}/jwks",
            "response_types_supported": ["code"],
            "id_token_signing_alg_values_supported": ["HS256", "RS256"],
            "code_challenge_methods_supported": ["S256"],
        }

    def id_token(self, **overrides: Any) -> str:
        now = int(time.time())
        claims: dict[str, Any] = {
            "iss": ISSUER,
            "sub": "user-123",
            "aud": self.client_id,
            "exp": now + 300,
            "iat": now,
        }
        if self.nonce is not None:
            claims["nonce"] = self.nonce
        claims.update(self.claim_overrides)
        claims.update(overrides)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(claims, self.client_secret, algorithm="HS256")

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/.well-known/openid-configuration":
            if self.discovery_status != 200:
                return httpx.Response(self.discovery_status, text="unavailable")
            return httpx.Response(200, json=self.discovery_document or self.document())
        if request.url.path == "/token":
            if self.token_status != 200:
                return httpx.Response(
                    self.token_status,
                    json={"error": "server_error", "error_description": "token endpoint failure"},
                )
            body = self.token_body
            if body is None:
                body = {
                    "access_token": "access-token-abc",
                    "token_type": "Bearer",
                    "expires_in": 3600,
                    "id_token": self.id_token(),
                }
            return httpx.Response(200, json=body)
        return httpx.Response(404)


def query_params(url: str) -> dict[str, str]:
    """Single-valued query parameters of a URL."""
    return dict(parse_qsl(urlsplit(url).query))


def form_params(request: httpx.Request) -> dict[str, str]:
    """Single-valued form parameters of a request body."""
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
