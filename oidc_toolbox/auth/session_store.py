"""Session access for the login flow.

The flow only needs three operations on the user's session, see
``SessionBackend``. ``AuthStateStore`` keeps the transient per-attempt secrets
and ``IdentitySessionWriter`` commits the validated identity.
"""

import logging
from typing import Protocol

from flask import session as flask_session
from pydantic import ValidationError

from oidc_toolbox.auth.errors import (
    MissingStateError,
    SessionReadFailedError,
    SessionWriteFailedError,
)
from oidc_toolbox.auth.models import AuthAttemptState, IdentityAssertion

logger = logging.getLogger(__name__)


class SessionBackendError(Exception):
    """Raised when the session collaborator cannot read or write a value."""

    pass


class SessionBackend(Protocol):
    """Key/value view on a single user's session."""

    def get(self, key: str) -> bytes | None: ...

    def remove(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> None: ...


class FlaskSessionBackend:
    """SessionBackend over ``flask.session`` of the current request."""

    def get(self, key: str) -> bytes | None:
        return self._as_bytes(flask_session.get(key))

    def remove(self, key: str) -> bytes | None:
        return self._as_bytes(flask_session.pop(key, None))

    def set(self, key: str, value: bytes) -> None:
        try:
            flask_session[key] = value.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SessionBackendError(f"Value for '{key}' is not UTF-8: {e}") from e

    @staticmethod
    def _as_bytes(value: object) -> bytes | None:
        if value is None:
            return None
        if isinstance(value, bytes):
            return value
        if isinstance(value, str):
            return value.encode("utf-8")
        raise SessionBackendError(f"Unexpected session value type {type(value).__name__}")


class DictSessionBackend:
    """SessionBackend over a plain dict, for scripts and tests."""

    def __init__(self, data: dict[str, bytes] | None = None) -> None:
        self.data: dict[str, bytes] = data if data is not None else {}

    def get(self, key: str) -> bytes | None:
        return self.data.get(key)

    def remove(self, key: str) -> bytes | None:
        return self.data.pop(key, None)

    def set(self, key: str, value: bytes) -> None:
        self.data[key] = value


class AuthStateStore:
    """Stashes and consumes the AuthAttemptState of a user's session."""

    def __init__(self, session: SessionBackend, key: str) -> None:
        self._session = session
        self._key = key

    def save(self, state: AuthAttemptState) -> None:
        """Store the state, replacing any unconsumed previous attempt.

        Raises:
            SessionWriteFailedError: If the session rejects the value
        """
        try:
            self._session.set(self._key, state.model_dump_json().encode("utf-8"))
        except SessionBackendError as e:
            raise SessionWriteFailedError(str(e)) from e

    def take(self) -> AuthAttemptState:
        """Remove and return the stored state.

        The state is removed even when it cannot be decoded, so every stored
        attempt is consumed at most once.

        Raises:
            MissingStateError: If no decodable state is stored
            SessionReadFailedError: If the session cannot be read
        """
        try:
            raw = self._session.remove(self._key)
        except SessionBackendError as e:
            raise SessionReadFailedError(str(e)) from e

        if raw is None:
            raise MissingStateError()

        try:
            return AuthAttemptState.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding undecodable login state: %s", e)
            raise MissingStateError("State in user session could not be decoded") from e


class IdentitySessionWriter:
    """Commits the validated IdentityAssertion to the user's session."""

    def __init__(self, session: SessionBackend, key: str) -> None:
        self._session = session
        self._key = key

    def write(self, assertion: IdentityAssertion) -> None:
        try:
            self._session.set(self._key, assertion.model_dump_json().encode("utf-8"))
        except SessionBackendError as e:
            raise SessionWriteFailedError(str(e)) from e

    def read(self) -> IdentityAssertion | None:
        """Return the stored identity, or None when not logged in."""
        try:
            raw = self._session.get(self._key)
        except SessionBackendError as e:
            raise SessionReadFailedError(str(e)) from e

        if raw is None:
            return None

        try:
            return IdentityAssertion.model_validate_json(raw)
        except ValidationError as e:
            raise SessionReadFailedError(f"corrupt identity data: {e}") from e
