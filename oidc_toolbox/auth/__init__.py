"""OIDC authorization code login flow."""

from oidc_toolbox.auth.callback import CallbackVerifier
from oidc_toolbox.auth.login import LoginInitiator
from oidc_toolbox.auth.models import (
    CallbackParams,
    IdentityAssertion,
    ProviderConfig,
    RedirectInstruction,
    SessionKeys,
)
from oidc_toolbox.auth.oidc_client import OIDCClient, OIDCDiscoveryError
from oidc_toolbox.auth.routes import register_auth_routes
from oidc_toolbox.auth.session_store import (
    DictSessionBackend,
    FlaskSessionBackend,
    IdentitySessionWriter,
    SessionBackend,
)

__all__ = [
    "CallbackVerifier",
    "LoginInitiator",
    "CallbackParams",
    "IdentityAssertion",
    "ProviderConfig",
    "RedirectInstruction",
    "SessionKeys",
    "OIDCClient",
    "OIDCDiscoveryError",
    "register_auth_routes",
    "DictSessionBackend",
    "FlaskSessionBackend",
    "IdentitySessionWriter",
    "SessionBackend",
]
