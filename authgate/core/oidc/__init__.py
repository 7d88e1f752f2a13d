"""OIDC Authorization Code + PKCE building blocks."""

from authgate.core.oidc.authorization import AuthorizationRequest, AuthorizationRequestBuilder
from authgate.core.oidc.callback import CallbackValidator
from authgate.core.oidc.crypto import code_challenge, new_code_verifier, new_nonce, new_state
from authgate.core.oidc.discovery import Client, ProviderConfig, ProviderMetadata
from authgate.core.oidc.validation import IdTokenVerifier, JWKSManager, verify_nonce

__all__ = [
    # Artifacts
    "code_challenge",
    "new_code_verifier",
    "new_nonce",
    "new_state",
    # Provider
    "Client",
    "ProviderConfig",
    "ProviderMetadata",
    # Flow steps
    "AuthorizationRequest",
    "AuthorizationRequestBuilder",
    "CallbackValidator",
    "IdTokenVerifier",
    "JWKSManager",
    "verify_nonce",
]
