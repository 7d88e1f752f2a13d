"""Session state for a login.

A session is in exactly one of three states, each carrying only the
fields valid in that state:

- ``PreFlow``: nothing started yet.
- ``AwaitingCallback``: the browser was sent to the provider; holds the
  single-use ``state``, ``nonce`` and PKCE verifier.
- ``Authenticated``: tokens were validated; the flow artifacts are gone.

The state is stored under one key of the server-side session mapping as
a JSON-compatible dict.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

SESSION_KEY = "authgate.flow"


class FlowState(StrEnum):
    """Where a session is in the login flow."""

    PRE_FLOW = "pre_flow"
    AWAITING_CALLBACK = "awaiting_callback"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class TokenSet:
    """Tokens obtained from the token endpoint, with verified ID token claims."""

    id_token: str
    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = None
    scope: str | None = None
    claims: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def subject(self) -> str | None:
        """The ``sub`` claim of the ID token."""
        return self.claims.get("sub")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for session storage."""
        return {
            "id_token": self.id_token,
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
            "claims": self.claims,
            "raw": self.raw,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenSet:
        """Reconstruct from dictionary."""
        return cls(
            id_token=data["id_token"],
            access_token=data.get("access_token"),
            token_type=data.get("token_type", "Bearer"),
            expires_in=data.get("expires_in"),
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope"),
            claims=data.get("claims", {}),
            raw=data.get("raw", {}),
        )


@dataclass(frozen=True)
class PreFlow:
    """No login attempt in progress."""

    kind = FlowState.PRE_FLOW


@dataclass(frozen=True)
class AwaitingCallback:
    """Authorization redirect issued; waiting for the provider to send the browser back."""

    state: str
    nonce: str
    code_verifier: str
    original_url: str
    started_at: datetime
    consumed: bool = False

    kind = FlowState.AWAITING_CALLBACK

    def consume(self) -> AwaitingCallback:
        """Mark the artifacts as used by a callback."""
        return replace(self, consumed=True)

    def is_expired(self, now: datetime, timeout_seconds: int) -> bool:
        """Whether the attempt is older than ``timeout_seconds``."""
        return (now - self.started_at).total_seconds() > timeout_seconds


@dataclass(frozen=True)
class Authenticated:
    """Tokens validated; terminal state for a login."""

    token_set: TokenSet
    original_url: str
    authenticated_at: datetime

    kind = FlowState.AUTHENTICATED


SessionState = PreFlow | AwaitingCallback | Authenticated


def dump_state(state: SessionState) -> dict[str, Any]:
    """Serialize a session state to a JSON-compatible dict."""
    if isinstance(state, AwaitingCallback):
        return {
            "kind": state.kind.value,
            "state": state.state,
            "nonce": state.nonce,
            "code_verifier": state.code_verifier,
            "original_url": state.original_url,
            "started_at": state.started_at.isoformat(),
            "consumed": state.consumed,
        }
    if isinstance(state, Authenticated):
        return {
            "kind": state.kind.value,
            "token_set": state.token_set.to_dict(),
            "original_url": state.original_url,
            "authenticated_at": state.authenticated_at.isoformat(),
        }
    return {"kind": FlowState.PRE_FLOW.value}


def load_state(data: Any) -> SessionState:
    """Deserialize a session state; anything unreadable is ``PreFlow``."""
    if not isinstance(data, dict):
        return PreFlow()

    try:
        kind = FlowState(data.get("kind"))
        if kind is FlowState.AWAITING_CALLBACK:
            return AwaitingCallback(
                state=data["state"],
                nonce=data["nonce"],
                code_verifier=data["code_verifier"],
                original_url=data["original_url"],
                started_at=datetime.fromisoformat(data["started_at"]),
                consumed=bool(data.get("consumed", False)),
            )
        if kind is FlowState.AUTHENTICATED:
            return Authenticated(
                token_set=TokenSet.from_dict(data["token_set"]),
                original_url=data["original_url"],
                authenticated_at=datetime.fromisoformat(data["authenticated_at"]),
            )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning("Discarding unreadable session state: %s", e)
    return PreFlow()


class FlowSession:
    """Typed view over a session mapping (e.g. ``flask.session``)."""

    def __init__(self, mapping: MutableMapping[str, Any]) -> None:
        self._mapping = mapping

    @property
    def state(self) -> SessionState:
        """Current login state of the session."""
        return load_state(self._mapping.get(SESSION_KEY))

    @state.setter
    def state(self, value: SessionState) -> None:
        self._mapping[SESSION_KEY] = dump_state(value)

    @property
    def kind(self) -> FlowState:
        """Shortcut for ``state.kind``."""
        return self.state.kind

    @property
    def is_authenticated(self) -> bool:
        """Whether tokens have been validated for this session."""
        return isinstance(self.state, Authenticated)


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)
