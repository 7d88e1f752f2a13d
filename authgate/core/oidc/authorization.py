"""Authorization request construction."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from authgate.core.oidc import crypto
from authgate.core.oidc.discovery import Client
from authgate.core.session import AwaitingCallback, utcnow


@dataclass(frozen=True)
class AuthorizationRequest:
    """A pending login attempt and the URL that starts it at the provider."""

    pending: AwaitingCallback
    authorization_url: str
    code_challenge: str


class AuthorizationRequestBuilder:
    """Builds the redirect to the provider's authorization endpoint.

    Each call generates fresh ``state``, ``nonce`` and PKCE values; the
    returned ``AwaitingCallback`` must be stored in the session before
    the redirect is sent.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    def build(self, original_url: str, now: datetime | None = None) -> AuthorizationRequest:
        """Create a new login attempt.

        Args:
            original_url: URL the user asked for, restored after login.
            now: Start time of the attempt (defaults to current UTC time).
        """
        pending = AwaitingCallback(
            state=crypto.new_state(),
            nonce=crypto.new_nonce(),
            code_verifier=crypto.new_code_verifier(),
            original_url=original_url,
            started_at=now or utcnow(),
        )
        challenge = crypto.code_challenge(pending.code_verifier)

        params = {
            "response_type": self.client.response_type,
            "client_id": self.client.client_id,
            "redirect_uri": self.client.redirect_uri,
            "scope": " ".join(self.client.scopes),
            "state": pending.state,
            "nonce": pending.nonce,
            "code_challenge": challenge,
            "code_challenge_method": crypto.CODE_CHALLENGE_METHOD,
        }

        return AuthorizationRequest(
            pending=pending,
            authorization_url=_append_query(self.client.metadata.authorization_endpoint, params),
            code_challenge=challenge,
        )


def _append_query(url: str, params: dict[str, str]) -> str:
    """Add parameters to a URL, keeping any query it already has."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))
