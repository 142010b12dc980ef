"""Flask error handlers producing JSON error responses.

Login failures are answered with the category's status code and a public
message; the detailed exception message only goes to the server log.
"""

import logging
from http import HTTPStatus
from typing import Any

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from oidc_toolbox.auth.errors import LoginError, LoginErrorCategory
from oidc_toolbox.core.request_logging import get_current_correlation_id

logger = logging.getLogger(__name__)


def error_body(message: str, code: str | None = None) -> dict[str, Any]:
    """Build the JSON error body, including the request's correlation ID."""
    body: dict[str, Any] = {"error": message}
    if code is not None:
        body["code"] = code
    body["correlationId"] = get_current_correlation_id()
    return body


def register_error_handlers(app: Flask) -> None:
    """Register the JSON error handlers on the application."""

    @app.errorhandler(LoginError)
    def handle_login_error(error: LoginError) -> tuple[Any, int]:
        category = error.category
        logger.log(
            category.log_level,
            "Login failed [%s] (correlation id %s): %s",
            error.error_code,
            get_current_correlation_id(),
            error.message,
            exc_info=category is LoginErrorCategory.SESSION_IO,
        )
        return (
            jsonify(error_body(error.public_message, error.error_code)),
            category.status_code,
        )

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException) -> tuple[Any, int]:
        status = error.code or HTTPStatus.INTERNAL_SERVER_ERROR
        return jsonify(error_body(error.name)), status

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception) -> tuple[Any, int]:
        logger.exception("Unhandled error (correlation id %s)", get_current_correlation_id())
        return (
            jsonify(error_body("Internal server error", "INTERNAL_ERROR")),
            HTTPStatus.INTERNAL_SERVER_ERROR,
        )
