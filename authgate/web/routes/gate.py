"""Login gate routes.

Every path except the callback goes through ``gate``: authenticated
sessions pass through to the application, everything else is sent to the
provider. The provider sends the browser back to ``callback``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from flask import Blueprint, current_app, g, jsonify, redirect, request, session

from authgate.core.machine import InboundRequest, PassThrough, Redirect, SessionStateMachine
from authgate.core.session import FlowSession
from authgate.web.sessions import ServerSession

if TYPE_CHECKING:
    from werkzeug.wrappers import Response as WerkzeugResponse

gate_bp = Blueprint("gate", __name__)


def get_state_machine() -> SessionStateMachine:
    """Get the state machine from the app context."""
    return cast(SessionStateMachine, current_app.extensions["authgate"])


def requested_url() -> str:
    """Path and query of the current request, safe to redirect back to."""
    url = request.full_path if request.query_string else request.path
    if not url.startswith("/") or url.startswith("//") or url.startswith("/\\"):
        return "/"
    return url


def render_authenticated(outcome: PassThrough) -> WerkzeugResponse:
    """Downstream application view for an authenticated session.

    The validated tokens are exposed as ``g.token_set``.
    """
    g.token_set = outcome.token_set
    g.original_url = outcome.original_url
    return jsonify(
        {
            "authenticated": True,
            "subject": outcome.token_set.subject,
            "path": request.path,
            "original_url": outcome.original_url,
        }
    )


@gate_bp.route("/", defaults={"path": ""})
@gate_bp.route("/<path:path>")
def gate(path: str) -> WerkzeugResponse:
    """Entry point for every page: pass through or start a login."""
    outcome = get_state_machine().handle(FlowSession(session), InboundRequest(url=requested_url()))
    if isinstance(outcome, Redirect):
        return redirect(outcome.location)
    return render_authenticated(outcome)


def callback() -> WerkzeugResponse:
    """Handle the authorization callback from the provider."""
    inbound = InboundRequest(
        url=requested_url(),
        is_callback=True,
        params=request.args.to_dict(),
    )
    outcome = get_state_machine().handle(FlowSession(session), inbound)
    if isinstance(outcome, Redirect):
        # Login succeeded: the pre-login session id must not stay valid
        if isinstance(session, ServerSession):
            session.regenerate()
        return redirect(outcome.location)
    # Already authenticated: nothing to validate
    return redirect(outcome.original_url or "/")
