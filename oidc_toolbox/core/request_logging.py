"""Correlation IDs and per-request access log.

Every request gets a correlation ID, taken from the ``X-Request-ID`` header
when the client sends one. It is echoed in the response header and in JSON
error bodies, and included in the access log line written to the
``requests`` logger.
"""

import logging
import time
import uuid

from flask import Flask, Response, g, has_request_context, request

request_logger = logging.getLogger("requests")

REQUEST_ID_HEADER = "X-Request-ID"


def get_current_correlation_id() -> str | None:
    """Get the current request's correlation ID."""
    if not has_request_context():
        return None
    return getattr(g, "correlation_id", None)


def init_request_logging(app: Flask) -> None:
    """Register the correlation ID and access log hooks on the application."""

    @app.before_request
    def set_request_id() -> None:
        g.correlation_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        g.request_started = time.perf_counter()

    @app.after_request
    def log_request(response: Response) -> Response:
        correlation_id = get_current_correlation_id()
        if correlation_id:
            response.headers[REQUEST_ID_HEADER] = correlation_id

        started = getattr(g, "request_started", None)
        duration_ms = (time.perf_counter() - started) * 1000 if started else 0.0

        # Query strings are left out, they carry authorization codes
        request_logger.info(
            '%s "%s %s %s" %d %s %.1fms request_id=%s',
            request.remote_addr or "-",
            request.method,
            request.path,
            request.environ.get("SERVER_PROTOCOL", "HTTP/1.1"),
            response.status_code,
            response.content_length or "-",
            duration_ms,
            correlation_id or "-",
        )
        return response
