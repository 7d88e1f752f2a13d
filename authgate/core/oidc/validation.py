"""ID token verification.

Verifies the signature and standard claims of an ID token with PyJWT.
``HS*`` algorithms use the client secret as the key; any other configured
algorithm is verified against the provider's JWKS.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Any

import jwt
from jwt import PyJWKClient, PyJWKClientError

from authgate.core.errors import NonceMismatchError, TokenValidationError

if TYPE_CHECKING:
    from authgate.core.oidc.discovery import Client

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]

HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
ASYMMETRIC_ALGORITHMS = frozenset(
    {
        "RS256",
        "RS384",
        "RS512",  # RSA
        "ES256",
        "ES384",
        "ES512",  # ECDSA
        "PS256",
        "PS384",
        "PS512",  # RSA-PSS
        "EdDSA",  # Edwards-curve
    }
)


class JWKSManager:
    """Fetches and caches the provider's signing keys."""

    def __init__(self, jwks_uri: str, timeout: float = 10.0) -> None:
        """Initialize JWKS manager.

        Args:
            jwks_uri: URI to fetch JWKS from.
            timeout: HTTP timeout in seconds.
        """
        self.jwks_uri = jwks_uri
        self.timeout = timeout
        self._jwks_client: PyJWKClient | None = None

    def get_signing_key(self, token: str) -> Any:
        """Get the key matching the token's ``kid``.

        Raises:
            PyJWKClientError: If key cannot be found.
        """
        if not self._jwks_client:
            self._jwks_client = PyJWKClient(self.jwks_uri, timeout=int(self.timeout))
        return self._jwks_client.get_signing_key_from_jwt(token).key


class IdTokenVerifier:
    """Verifies ID tokens issued to a ``Client``."""

    def __init__(
        self,
        client: Client,
        jwks_manager: JWKSManager | None = None,
        jwks_timeout: float = 10.0,
    ) -> None:
        """Initialize the verifier.

        Args:
            client: Client registration with provider metadata.
            jwks_manager: Shared key cache for the provider's ``jwks_uri``. A
                private one is created when omitted.
            jwks_timeout: Timeout for JWKS fetches by a private manager.

        Raises:
            TokenValidationError: If the configured algorithm is not supported.
        """
        self.client = client
        self.algorithm = client.id_token_signed_response_alg
        if self.algorithm not in HMAC_ALGORITHMS | ASYMMETRIC_ALGORITHMS:
            raise TokenValidationError(f"Unsupported ID token algorithm '{self.algorithm}'")

        self._jwks_manager: JWKSManager | None = None
        if self.algorithm not in HMAC_ALGORITHMS:
            jwks_uri = client.metadata.jwks_uri
            if not jwks_uri:
                raise TokenValidationError(
                    f"Algorithm {self.algorithm} needs the provider's jwks_uri, which was not discovered"
                )
            self._jwks_manager = jwks_manager or JWKSManager(jwks_uri, timeout=jwks_timeout)

    def verify(self, id_token: str) -> dict[str, Any]:
        """Verify signature, expiry, issuer and audience.

        Args:
            id_token: Compact JWS ID token.

        Returns:
            The verified claims.

        Raises:
            TokenValidationError: On any signature or claim failure.
        """
        try:
            header = jwt.get_unverified_header(id_token)
        except jwt.exceptions.DecodeError as e:
            raise TokenValidationError(f"Invalid JWT format: {e}") from e

        alg = header.get("alg")
        if alg != self.algorithm:
            raise TokenValidationError(f"ID token signed with '{alg}', expected '{self.algorithm}'")

        try:
            claims: dict[str, Any] = jwt.decode(
                id_token,
                self._signing_key(id_token),
                algorithms=[self.algorithm],
                audience=self.client.client_id,
                issuer=self.client.metadata.issuer,
                leeway=self.client.clock_skew_seconds,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.exceptions.ExpiredSignatureError as e:
            raise TokenValidationError("ID token has expired") from e
        except jwt.exceptions.InvalidSignatureError as e:
            raise TokenValidationError("ID token signature verification failed") from e
        except jwt.exceptions.InvalidAudienceError as e:
            raise TokenValidationError(f"ID token audience does not include '{self.client.client_id}'") from e
        except jwt.exceptions.InvalidIssuerError as e:
            raise TokenValidationError(f"ID token issuer does not match '{self.client.metadata.issuer}'") from e
        except jwt.exceptions.MissingRequiredClaimError as e:
            raise TokenValidationError(f"ID token is missing required claim: {e.claim}") from e
        except jwt.exceptions.InvalidTokenError as e:
            raise TokenValidationError(f"Invalid ID token: {e}") from e

        aud = claims.get("aud")
        if isinstance(aud, list) and len(aud) > 1 and claims.get("azp") != self.client.client_id:
            raise TokenValidationError("ID token has multiple audiences but azp is not this client")

        return claims

    def _signing_key(self, id_token: str) -> Any:
        if self._jwks_manager is None:
            return self.client.client_secret
        try:
            return self._jwks_manager.get_signing_key(id_token)
        except PyJWKClientError as e:
            raise TokenValidationError(f"Could not find matching key in JWKS: {e}") from e


def verify_nonce(claims: dict[str, Any], expected_nonce: str) -> None:
    """Check the ID token ``nonce`` claim against the pending attempt.

    Raises:
        NonceMismatchError: If the claim is missing or different.
    """
    token_nonce = claims.get("nonce")
    if not isinstance(token_nonce, str) or not token_nonce:
        raise NonceMismatchError("ID token has no nonce claim")
    if not secrets.compare_digest(token_nonce.encode(), expected_nonce.encode()):
        raise NonceMismatchError("ID token nonce does not match this login attempt")
