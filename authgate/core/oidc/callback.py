"""Callback validation and token exchange.

Turns the provider's redirect back into a verified ``TokenSet``. Each
step is a failure point and raises a ``CallbackError`` subclass; nothing
here touches the session.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from typing import Any

import httpx

from authgate.core.errors import (
    ProviderErrorResponse,
    StateMismatchError,
    TokenExchangeError,
)
from authgate.core.oidc.discovery import Client
from authgate.core.oidc.validation import IdTokenVerifier, JWKSManager, verify_nonce
from authgate.core.session import AwaitingCallback, TokenSet

logger = logging.getLogger(__name__)


class CallbackValidator:
    """Validates a callback against the pending login attempt."""

    def __init__(
        self,
        client: Client,
        http_client: httpx.Client,
        jwks_manager: JWKSManager | None = None,
    ) -> None:
        """Initialize the validator.

        Args:
            client: Client registration with provider metadata.
            http_client: Client used for the token request.
            jwks_manager: Shared signing key cache, for asymmetric ID tokens.
        """
        self.client = client
        self.http_client = http_client
        self.jwks_manager = jwks_manager

    def validate(self, pending: AwaitingCallback, params: Mapping[str, str]) -> TokenSet:
        """Run every callback check in order.

        Args:
            pending: The attempt stored in the session when the redirect was issued.
            params: Query parameters of the callback request.

        Returns:
            Token set with verified ID token claims.

        Raises:
            StateMismatchError: Missing or wrong ``state``.
            ProviderErrorResponse: The provider returned an OAuth2 ``error``.
            TokenExchangeError: The code could not be exchanged.
            TokenValidationError: The ID token is not valid for this client.
            NonceMismatchError: The ID token ``nonce`` is missing or wrong.
        """
        self.check_state(pending, params.get("state"))

        error = params.get("error")
        if error:
            raise ProviderErrorResponse(error, params.get("error_description"))

        code = params.get("code")
        if not code:
            raise TokenExchangeError("Callback did not include an authorization code")

        token_response = self.exchange_code(code, pending.code_verifier)

        claims = IdTokenVerifier(self.client, jwks_manager=self.jwks_manager).verify(token_response["id_token"])
        verify_nonce(claims, pending.nonce)

        return TokenSet(
            id_token=token_response["id_token"],
            access_token=token_response.get("access_token"),
            token_type=token_response.get("token_type", "Bearer"),
            expires_in=token_response.get("expires_in"),
            refresh_token=token_response.get("refresh_token"),
            scope=token_response.get("scope"),
            claims=claims,
            raw=token_response,
        )

    @staticmethod
    def check_state(pending: AwaitingCallback, returned_state: str | None) -> None:
        """Compare the returned ``state`` with the stored one."""
        if not returned_state:
            raise StateMismatchError("Callback is missing the state parameter")
        if not secrets.compare_digest(returned_state.encode(), pending.state.encode()):
            raise StateMismatchError("State parameter does not match this login attempt")

    def exchange_code(self, code: str, code_verifier: str) -> dict[str, Any]:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback.
            code_verifier: PKCE verifier stored with the pending attempt.

        Returns:
            Decoded token endpoint response, guaranteed to contain ``id_token``.
        """
        data: dict[str, str] = {
            "grant_type": self.client.grant_type,
            "code": code,
            "redirect_uri": self.client.redirect_uri,
            "code_verifier": code_verifier,
        }
        auth: httpx.BasicAuth | None = None
        if self.client.token_endpoint_auth_method == "client_secret_post":
            data["client_id"] = self.client.client_id
            data["client_secret"] = self.client.client_secret
        else:
            auth = httpx.BasicAuth(self.client.client_id, self.client.client_secret)

        token_endpoint = self.client.metadata.token_endpoint
        try:
            response = self.http_client.post(token_endpoint, data=data, auth=auth)
        except httpx.TimeoutException as e:
            raise TokenExchangeError(f"Timeout calling token endpoint {token_endpoint}") from e
        except httpx.HTTPError as e:
            raise TokenExchangeError(f"HTTP error during token exchange: {e}") from e

        if not response.is_success:
            raise TokenExchangeError(
                f"Token endpoint returned HTTP {response.status_code}{_oauth_error_suffix(response)}",
                status=response.status_code,
                detail=response.text[:200],
            )

        try:
            token_response = response.json()
        except ValueError as e:
            raise TokenExchangeError(f"Token endpoint returned invalid JSON: {e}") from e

        if not isinstance(token_response, dict):
            raise TokenExchangeError("Token endpoint response is not a JSON object")
        if not token_response.get("id_token"):
            raise TokenExchangeError("Token endpoint response does not contain an id_token")

        logger.debug("Token exchange succeeded (token_type=%s)", token_response.get("token_type"))
        return token_response


def _oauth_error_suffix(response: httpx.Response) -> str:
    """Format the OAuth2 error of a failed token response, if it has one."""
    try:
        body = response.json()
    except ValueError:
        return ""
    if not isinstance(body, dict) or not body.get("error"):
        return ""
    description = body.get("error_description")
    return f": {body['error']}" + (f" ({description})" if description else "")
