"""Index page showing the logged-in user's claims."""

from http import HTTPStatus
from typing import Any

from dependency_injector.wiring import Provide, inject
from flask import Blueprint, jsonify, redirect, url_for

from oidc_toolbox.auth.models import ProviderConfig
from oidc_toolbox.auth.session_store import FlaskSessionBackend, IdentitySessionWriter

index_bp = Blueprint("index", __name__)


@index_bp.route("/", methods=["GET"])
@inject
def index(
    provider_config: ProviderConfig = Provide["provider_config"],
) -> Any:
    """Show the ID token claims, or start a login when not logged in."""
    identity = IdentitySessionWriter(
        FlaskSessionBackend(), provider_config.session_keys.data
    ).read()

    if identity is None:
        return redirect(url_for("login"), code=HTTPStatus.TEMPORARY_REDIRECT)

    return jsonify(identity.public_view())
