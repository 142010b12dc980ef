"""Server-side session storage kept in process memory.

The browser only receives a signed, random session ID; the session data
stays on the server. Sessions expire after a fixed time to live, checked when
a session is loaded. Data is lost on restart and not shared between
processes.
"""

import logging
import secrets
import threading
import time
from typing import Any

from flask import Flask, Request, Response
from flask.sessions import SessionInterface, SessionMixin
from itsdangerous import BadSignature, Signer
from werkzeug.datastructures import CallbackDict

logger = logging.getLogger(__name__)


class ServerSideSession(CallbackDict[str, Any], SessionMixin):
    """Session dict that tracks modification and knows its ID."""

    def __init__(self, initial: dict[str, Any] | None = None, sid: str | None = None) -> None:
        def on_update(session: "ServerSideSession") -> None:
            session.modified = True

        super().__init__(initial, on_update)
        self.sid = sid
        self.modified = False


class MemorySessionInterface(SessionInterface):
    """Flask session interface storing session data in a process-local dict."""

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self.ttl_seconds = ttl_seconds
        self._store: dict[str, tuple[float, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _signer(self, app: Flask) -> Signer | None:
        if not app.secret_key:
            return None
        return Signer(app.secret_key, salt="oidc-toolbox-session")

    def _load(self, sid: str) -> dict[str, Any] | None:
        now = time.monotonic()
        with self._lock:
            entry = self._store.get(sid)
            if entry is None:
                return None
            expires_at, data = entry
            if expires_at <= now:
                del self._store[sid]
                logger.debug("Session %s... expired", sid[:8])
                return None
            return dict(data)

    def _sweep(self, now: float) -> None:
        expired = [sid for sid, (expires_at, _) in self._store.items() if expires_at <= now]
        for sid in expired:
            del self._store[sid]

    def open_session(self, app: Flask, request: Request) -> ServerSideSession | None:
        signer = self._signer(app)
        if signer is None:
            return None

        cookie = request.cookies.get(self.get_cookie_name(app))
        if cookie:
            try:
                sid = signer.unsign(cookie).decode("utf-8")
            except BadSignature:
                logger.warning("Ignoring session cookie with invalid signature")
            else:
                data = self._load(sid)
                if data is not None:
                    return ServerSideSession(data, sid=sid)

        return ServerSideSession(sid=secrets.token_urlsafe(32))

    def save_session(
        self, app: Flask, session: SessionMixin, response: Response
    ) -> None:
        if not isinstance(session, ServerSideSession):
            raise RuntimeError(
                f"MemorySessionInterface cannot save a {type(session).__name__}"
            )

        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if not session:
            if session.modified:
                with self._lock:
                    self._store.pop(session.sid or "", None)
                response.delete_cookie(name, domain=domain, path=path)
            return

        if not self.should_set_cookie(app, session):
            return

        signer = self._signer(app)
        if signer is None or session.sid is None:
            raise RuntimeError("Cannot issue a session cookie without a secret key and session ID")

        now = time.monotonic()
        with self._lock:
            self._sweep(now)
            self._store[session.sid] = (now + self.ttl_seconds, dict(session))

        response.set_cookie(
            name,
            signer.sign(session.sid).decode("utf-8"),
            max_age=self.ttl_seconds,
            httponly=self.get_cookie_httponly(app),
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
            domain=domain,
            path=path,
        )

    def session_count(self) -> int:
        """Number of stored sessions, expired ones included until swept."""
        with self._lock:
            return len(self._store)
