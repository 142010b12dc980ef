"""OIDC login routes for Flask applications."""

import logging

from dependency_injector.wiring import Provide, inject
from flask import Flask, Response, redirect, request
from pydantic import ValidationError

from oidc_toolbox.auth.callback import CallbackVerifier
from oidc_toolbox.auth.errors import InvalidCallbackParametersError
from oidc_toolbox.auth.login import LoginInitiator
from oidc_toolbox.auth.models import CallbackParams
from oidc_toolbox.auth.session_store import FlaskSessionBackend

logger = logging.getLogger(__name__)


def _parse_callback_params() -> CallbackParams:
    try:
        return CallbackParams.model_validate(request.args.to_dict())
    except ValidationError as e:
        fields = sorted(
            {str(error["loc"][0]) if error["loc"] else "code" for error in e.errors()}
        )
        raise InvalidCallbackParametersError(
            f"Invalid callback parameters: {', '.join(fields)}"
        ) from e


@inject
def login(
    login_initiator: LoginInitiator = Provide["login_initiator"],
) -> Response:
    """Redirect the user agent to the identity provider."""
    instruction = login_initiator.login(FlaskSessionBackend())
    return redirect(instruction.location, code=instruction.status_code)


@inject
def finish_login(
    callback_verifier: CallbackVerifier = Provide["callback_verifier"],
) -> Response:
    """Handle the identity provider's redirect back to the application."""
    params = _parse_callback_params()
    instruction = callback_verifier.finish_login(FlaskSessionBackend(), params)
    return redirect(instruction.location, code=instruction.status_code)


def register_auth_routes(app: Flask, redirect_path: str) -> None:
    """Register the login routes on the application.

    Routes registered:
    - GET /login - Start a login attempt
    - GET <redirect_path> - Finish the login attempt

    Args:
        app: The application to register routes on
        redirect_path: Path component of the configured redirect URL
    """
    app.add_url_rule("/login", "login", login, methods=["GET"])
    app.add_url_rule(redirect_path, "finish_login", finish_login, methods=["GET"])
