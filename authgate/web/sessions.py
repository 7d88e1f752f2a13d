"""Server-side sessions for Flask.

The browser only receives a signed, opaque session id; the session
content lives in a ``SessionStore`` keyed by that id. Expiry belongs to
the store.
"""

from __future__ import annotations

import secrets
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from flask.sessions import SessionInterface, SessionMixin
from itsdangerous import BadSignature, Signer
from werkzeug.datastructures import CallbackDict

if TYPE_CHECKING:
    from flask import Flask, Request, Response


class SessionStore(ABC):
    """Storage backend for session content."""

    @abstractmethod
    def get(self, sid: str) -> dict[str, Any] | None:
        """Return the session data, or None if unknown or expired."""

    @abstractmethod
    def set(self, sid: str, data: dict[str, Any]) -> None:
        """Persist session data."""

    @abstractmethod
    def delete(self, sid: str) -> None:
        """Remove a session."""


class MemorySessionStore(SessionStore):
    """In-process store with a sliding TTL.

    Suitable for a single server process; sessions are lost on restart.
    """

    def __init__(self, ttl_seconds: int = 4 * 60 * 60, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: dict[str, tuple[float, dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self._next_purge_at = clock() + ttl_seconds / 10

    def get(self, sid: str) -> dict[str, Any] | None:
        with self._lock:
            entry = self._data.get(sid)
            if entry is None:
                return None
            expires_at, data = entry
            if self._clock() >= expires_at:
                del self._data[sid]
                return None
            return dict(data)

    def set(self, sid: str, data: dict[str, Any]) -> None:
        now = self._clock()
        with self._lock:
            # Sessions that are never revisited are only dropped here
            if now >= self._next_purge_at:
                self._purge_locked(now)
            self._data[sid] = (now + self.ttl_seconds, dict(data))

    def delete(self, sid: str) -> None:
        with self._lock:
            self._data.pop(sid, None)

    def purge_expired(self) -> int:
        """Drop expired sessions and return how many were removed."""
        now = self._clock()
        with self._lock:
            return self._purge_locked(now)

    def _purge_locked(self, now: float) -> int:
        expired = [sid for sid, (expires_at, _) in self._data.items() if now >= expires_at]
        for sid in expired:
            del self._data[sid]
        self._next_purge_at = now + self.ttl_seconds / 10
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class ServerSession(CallbackDict, SessionMixin):  # type: ignore[type-arg]
    """Session object whose content is kept in a SessionStore."""

    def __init__(self, initial: dict[str, Any] | None = None, sid: str = "", new: bool = False) -> None:
        def on_update(self: ServerSession) -> None:
            self.modified = True

        super().__init__(initial, on_update)
        self.sid = sid
        self.new = new
        self.modified = False
        self.previous_sid: str | None = None

    def regenerate(self) -> None:
        """Move the content to a fresh session id.

        The old id stops working once the response is saved, so an id
        planted in the browser before login is useless afterwards.
        """
        if self.previous_sid is None:
            self.previous_sid = self.sid
        self.sid = secrets.token_urlsafe(32)
        self.modified = True


class ServerSideSessionInterface(SessionInterface):
    """Flask session interface backed by a SessionStore."""

    salt = "authgate-session"

    def __init__(self, store: SessionStore) -> None:
        self.store = store

    def _signer(self, app: Flask) -> Signer:
        return Signer(app.secret_key, salt=self.salt)  # type: ignore[arg-type]

    def open_session(self, app: Flask, request: Request) -> ServerSession:
        cookie = request.cookies.get(self.get_cookie_name(app))
        if cookie:
            try:
                sid = self._signer(app).unsign(cookie).decode("ascii")
            except BadSignature:
                sid = None
            if sid:
                data = self.store.get(sid)
                if data is not None:
                    return ServerSession(data, sid=sid)
        return ServerSession(sid=secrets.token_urlsafe(32), new=True)

    def save_session(self, app: Flask, session: ServerSession, response: Response) -> None:  # type: ignore[override]
        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if session.previous_sid is not None:
            self.store.delete(session.previous_sid)

        if not session:
            if session.modified and not session.new:
                self.store.delete(session.sid)
                response.delete_cookie(name, domain=domain, path=path)
            return

        if not (session.modified or session.new) and not self.should_set_cookie(app, session):
            return

        # Writing on every refreshed request keeps the store's TTL sliding
        self.store.set(session.sid, dict(session))
        response.set_cookie(
            name,
            self._signer(app).sign(session.sid).decode("ascii"),
            expires=self.get_expiration_time(app, session),
            httponly=self.get_cookie_httponly(app),
            domain=domain,
            path=path,
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
        )
        response.vary.add("Cookie")
