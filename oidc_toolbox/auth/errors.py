"""Errors raised while starting or finishing an OIDC login.

Every error carries a category that decides the HTTP status, the message that
is safe to show to the user agent and the severity used for the server log.
The exception message itself is only ever logged.
"""

import logging
from enum import Enum
from http import HTTPStatus

from oidc_toolbox.exceptions import BusinessLogicException

GENERIC_AUTH_FAILURE = "Authentication failed"


class LoginErrorCategory(Enum):
    """Failure classes of the login flow."""

    CALLER_INPUT = "caller_input"
    STATE_MISMATCH = "state_mismatch"
    UPSTREAM = "upstream"
    VERIFICATION = "verification"
    SESSION_IO = "session_io"

    @property
    def status_code(self) -> int:
        return _CATEGORY_STATUS[self]

    @property
    def log_level(self) -> int:
        return _CATEGORY_LOG_LEVEL[self]


_CATEGORY_STATUS = {
    LoginErrorCategory.CALLER_INPUT: HTTPStatus.BAD_REQUEST,
    LoginErrorCategory.STATE_MISMATCH: HTTPStatus.UNAUTHORIZED,
    LoginErrorCategory.UPSTREAM: HTTPStatus.BAD_GATEWAY,
    LoginErrorCategory.VERIFICATION: HTTPStatus.UNAUTHORIZED,
    LoginErrorCategory.SESSION_IO: HTTPStatus.INTERNAL_SERVER_ERROR,
}

# State mismatches are treated as a potential attack
_CATEGORY_LOG_LEVEL = {
    LoginErrorCategory.CALLER_INPUT: logging.WARNING,
    LoginErrorCategory.STATE_MISMATCH: logging.ERROR,
    LoginErrorCategory.UPSTREAM: logging.WARNING,
    LoginErrorCategory.VERIFICATION: logging.WARNING,
    LoginErrorCategory.SESSION_IO: logging.ERROR,
}


class LoginError(BusinessLogicException):
    """Base exception for login flow failures."""

    category: LoginErrorCategory = LoginErrorCategory.VERIFICATION
    public_message: str = GENERIC_AUTH_FAILURE

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message, error_code=error_code)


class InvalidCallbackParametersError(LoginError):
    """The provider redirect is missing or carries garbled parameters."""

    category = LoginErrorCategory.CALLER_INPUT

    def __init__(self, message: str) -> None:
        super().__init__(message, error_code="INVALID_CALLBACK_PARAMETERS")
        self.public_message = message


class MissingStateError(LoginError):
    """There is no (decodable) login attempt stored in the user's session."""

    category = LoginErrorCategory.CALLER_INPUT
    public_message = "Login session is missing or expired, please restart login"

    def __init__(self, message: str = "State is missing from user session") -> None:
        super().__init__(message, error_code="MISSING_STATE")


class InvalidStateError(LoginError):
    """The returned state does not match the CSRF token of the login attempt."""

    category = LoginErrorCategory.STATE_MISMATCH

    def __init__(self, message: str = "State in user session is invalid") -> None:
        super().__init__(message, error_code="INVALID_STATE")


class AuthorizationDeniedError(LoginError):
    """The provider redirected back with an error instead of a code."""

    def __init__(self, error: str, description: str | None = None) -> None:
        self.error = error
        self.description = description
        message = f"Provider returned error '{error}'"
        if description:
            message += f": {description}"
        super().__init__(message, error_code="AUTHORIZATION_DENIED")


class TokenExchangeFailedError(LoginError):
    """Requesting tokens from the provider's token endpoint failed."""

    category = LoginErrorCategory.UPSTREAM
    public_message = "Identity provider request failed, please restart login"

    def __init__(self, message: str) -> None:
        super().__init__(f"Failed to request token: {message}", error_code="TOKEN_EXCHANGE_FAILED")


class MissingIdTokenError(LoginError):
    """The token response did not include an ID token."""

    category = LoginErrorCategory.UPSTREAM
    public_message = "Identity provider request failed, please restart login"

    def __init__(self) -> None:
        super().__init__("Provider didn't respond with an ID token", error_code="MISSING_ID_TOKEN")


class InvalidIdTokenError(LoginError):
    """The ID token failed signature or claims verification."""

    def __init__(self, message: str) -> None:
        super().__init__(
            f"The ID token didn't pass the verification: {message}",
            error_code="INVALID_ID_TOKEN",
        )


class HashComputationFailedError(LoginError):
    """The access token hash cannot be computed for the ID token's algorithm."""

    def __init__(self, alg: str) -> None:
        self.alg = alg
        super().__init__(
            f"Couldn't generate the access token's hash for algorithm '{alg}'",
            error_code="HASH_COMPUTATION_FAILED",
        )


class InvalidAccessTokenHashError(LoginError):
    """The at_hash claim does not match the returned access token."""

    category = LoginErrorCategory.STATE_MISMATCH

    def __init__(self) -> None:
        super().__init__(
            "The access token's hash doesn't match", error_code="INVALID_ACCESS_TOKEN_HASH"
        )


class SessionWriteFailedError(LoginError):
    """Storing data in the user's session failed."""

    category = LoginErrorCategory.SESSION_IO
    public_message = "Internal server error"

    def __init__(self, message: str) -> None:
        super().__init__(
            f"Failed to write to user session: {message}", error_code="SESSION_WRITE_FAILED"
        )


class SessionReadFailedError(LoginError):
    """Reading data from the user's session failed."""

    category = LoginErrorCategory.SESSION_IO
    public_message = "Internal server error"

    def __init__(self, message: str) -> None:
        super().__init__(
            f"Failed to read from user session: {message}", error_code="SESSION_READ_FAILED"
        )
