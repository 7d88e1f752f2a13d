"""Login state machine.

``transition`` is a pure function from (state, event) to (state, effect)
and holds every rule of the flow. ``SessionStateMachine`` feeds it events
derived from inbound requests, performs the effects that need the network
(discovery, authorization URL building, callback validation) and writes
each new state to the session before returning or raising.

Two requests racing on the same session (for example two tabs mid-login)
are not serialized: the last write wins and the other leg then fails its
state check.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from authgate.core.errors import CallbackError, LoginExpiredError, StateMismatchError, TokenValidationError
from authgate.core.oidc.authorization import AuthorizationRequestBuilder
from authgate.core.oidc.callback import CallbackValidator
from authgate.core.oidc.discovery import ProviderConfig
from authgate.core.session import (
    Authenticated,
    AwaitingCallback,
    FlowSession,
    PreFlow,
    SessionState,
    TokenSet,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_FLOW_TIMEOUT_SECONDS = 600


class InvalidTransitionError(ValueError):
    """An event arrived in a state where it cannot happen."""


# --- Events ---


@dataclass(frozen=True)
class PageRequested:
    """Any request other than the provider callback."""

    url: str


@dataclass(frozen=True)
class CallbackReceived:
    """The provider redirected the browser back to the callback URL."""

    params: Mapping[str, str]
    at: datetime


@dataclass(frozen=True)
class AuthorizationIssued:
    """Fresh artifacts were generated and the authorization URL built."""

    pending: AwaitingCallback
    authorization_url: str


@dataclass(frozen=True)
class CallbackSucceeded:
    """The callback passed every check."""

    token_set: TokenSet
    at: datetime


@dataclass(frozen=True)
class CallbackFailed:
    """The callback failed a check."""

    error: CallbackError


Event = PageRequested | CallbackReceived | AuthorizationIssued | CallbackSucceeded | CallbackFailed


# --- Effects ---


@dataclass(frozen=True)
class PassThrough:
    """Hand the request to the application with the stored tokens."""

    token_set: TokenSet
    original_url: str


@dataclass(frozen=True)
class BeginAuthorization:
    """Start a new login attempt for ``original_url``."""

    original_url: str


@dataclass(frozen=True)
class ValidateCallback:
    """Validate callback parameters against the pending attempt."""

    pending: AwaitingCallback
    params: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Redirect:
    """Send the browser to ``location``."""

    location: str


@dataclass(frozen=True)
class Reject:
    """End the request with ``error``."""

    error: CallbackError


Effect = PassThrough | BeginAuthorization | ValidateCallback | Redirect | Reject
Outcome = Redirect | PassThrough


@dataclass(frozen=True)
class Transition:
    """Result of applying an event to a state."""

    state: SessionState
    effect: Effect


def transition(
    state: SessionState,
    event: Event,
    *,
    flow_timeout_seconds: int = DEFAULT_FLOW_TIMEOUT_SECONDS,
) -> Transition:
    """Apply one event to a session state.

    Args:
        state: Current session state.
        event: What just happened.
        flow_timeout_seconds: Maximum age of a pending attempt when its callback arrives.

    Returns:
        The next state and the effect to perform.

    Raises:
        InvalidTransitionError: If the event cannot occur in this state.
    """
    if isinstance(state, Authenticated) and isinstance(event, (PageRequested, CallbackReceived)):
        return Transition(state, PassThrough(state.token_set, state.original_url))

    if isinstance(event, PageRequested):
        # A new page request mid-flow starts over; the old artifacts become unusable
        return Transition(state, BeginAuthorization(event.url))

    if isinstance(event, CallbackReceived):
        if not isinstance(state, AwaitingCallback):
            return Transition(state, Reject(StateMismatchError("No login attempt is in progress for this session")))
        if state.consumed:
            return Transition(state, Reject(StateMismatchError("This login attempt has already been used")))
        if state.is_expired(event.at, flow_timeout_seconds):
            return Transition(
                state.consume(),
                Reject(LoginExpiredError(f"Login attempt expired after {flow_timeout_seconds} seconds")),
            )
        return Transition(state.consume(), ValidateCallback(state, event.params))

    if isinstance(event, AuthorizationIssued):
        if isinstance(state, Authenticated):
            raise InvalidTransitionError("Cannot start a login for an authenticated session")
        return Transition(event.pending, Redirect(event.authorization_url))

    if isinstance(state, AwaitingCallback):
        if isinstance(event, CallbackSucceeded):
            authenticated = Authenticated(
                token_set=event.token_set,
                original_url=state.original_url,
                authenticated_at=event.at,
            )
            return Transition(authenticated, Redirect(state.original_url))
        if isinstance(event, CallbackFailed):
            return Transition(state.consume(), Reject(event.error))

    raise InvalidTransitionError(f"{type(event).__name__} cannot occur in state {state.kind}")


@dataclass(frozen=True)
class InboundRequest:
    """What the state machine needs to know about an HTTP request."""

    url: str
    is_callback: bool = False
    params: Mapping[str, str] = field(default_factory=dict)


class SessionStateMachine:
    """Drives one session through the login flow, one request at a time."""

    def __init__(
        self,
        provider: ProviderConfig,
        flow_timeout_seconds: int = DEFAULT_FLOW_TIMEOUT_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the state machine.

        Args:
            provider: Provider configuration with the discovery cache.
            flow_timeout_seconds: Maximum age of a pending attempt.
            clock: Source of the current UTC time.
        """
        self.provider = provider
        self.flow_timeout_seconds = flow_timeout_seconds
        self._clock = clock

    def handle(self, session: FlowSession, request: InboundRequest) -> Outcome:
        """Process one inbound request.

        Returns:
            ``Redirect`` to send the browser somewhere, or ``PassThrough``
            for an authenticated session.

        Raises:
            DiscoveryError: Provider metadata unavailable (retryable).
            CallbackError: The callback was rejected; the session is not authenticated.
        """
        if request.is_callback:
            event: Event = CallbackReceived(params=request.params, at=self._clock())
        else:
            event = PageRequested(url=request.url)

        effect = self._apply(session, event)

        if isinstance(effect, BeginAuthorization):
            return self._begin_authorization(session, effect)
        if isinstance(effect, ValidateCallback):
            return self._validate_callback(session, effect)
        return self._finish(effect)

    def _begin_authorization(self, session: FlowSession, effect: BeginAuthorization) -> Outcome:
        client = self.provider.client()
        auth_request = AuthorizationRequestBuilder(client).build(effect.original_url, now=self._clock())
        event = AuthorizationIssued(auth_request.pending, auth_request.authorization_url)
        return self._finish(self._apply(session, event))

    def _validate_callback(self, session: FlowSession, effect: ValidateCallback) -> Outcome:
        client = self.provider.client()
        jwks_uri = client.metadata.jwks_uri
        jwks_manager = None
        if jwks_uri and not client.uses_shared_secret:
            jwks_manager = self.provider.jwks_manager(jwks_uri)
        try:
            with self.provider.http_client() as http_client:
                validator = CallbackValidator(client, http_client, jwks_manager=jwks_manager)
                token_set = validator.validate(effect.pending, effect.params)
        except CallbackError as e:
            logger.warning("Callback rejected (%s): %s", e.error_code, e.message)
            if isinstance(e, TokenValidationError):
                # Issuer or signing keys may have rotated; rediscover on the next login
                self.provider.invalidate()
            return self._finish(self._apply(session, CallbackFailed(e)))

        logger.info("Session authenticated (sub=%s)", token_set.subject)
        return self._finish(self._apply(session, CallbackSucceeded(token_set, at=self._clock())))

    def _apply(self, session: FlowSession, event: Event) -> Effect:
        current = session.state
        result = transition(current, event, flow_timeout_seconds=self.flow_timeout_seconds)
        if result.state != current:
            session.state = result.state
            logger.info(
                "Session %s -> %s on %s",
                current.kind,
                result.state.kind,
                type(event).__name__,
            )
        return result.effect

    @staticmethod
    def _finish(effect: Effect) -> Outcome:
        if isinstance(effect, Reject):
            raise effect.error
        if isinstance(effect, (Redirect, PassThrough)):
            return effect
        raise InvalidTransitionError(f"Unexpected effect {type(effect).__name__}")
