"""Pytest fixtures for the OIDC login flow tests.

The identity provider is simulated: discovery and token requests are served
by patching ``httpx.get``/``httpx.post``, and ID tokens are signed with a
locally generated RSA key that the patched ``PyJWKClient`` hands out.
"""

import time
from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from flask import Flask

from oidc_toolbox import create_app
from oidc_toolbox.auth.models import ProviderConfig
from oidc_toolbox.auth.oidc_client import OIDCClient, compute_access_token_hash
from oidc_toolbox.config import Settings
from tests.testing_utils import (
    AUTHORIZATION_ENDPOINT,
    CLIENT_ID,
    CLIENT_SECRET,
    ISSUER_URL,
    TOKEN_ENDPOINT,
    make_discovery_response,
)


@pytest.fixture
def test_settings() -> Settings:
    """Settings for a testing app talking to the simulated provider."""
    return Settings(
        secret_key="test-secret-key",
        flask_env="testing",
        debug=False,
        baseurl="http://localhost:5000",
        oidc_issuer_url=ISSUER_URL,
        oidc_client_id=CLIENT_ID,
        oidc_client_secret=CLIENT_SECRET,
        oidc_scopes=["openid", "profile", "email"],
        oidc_redirect_url="http://localhost:5000/finish_login",
        oidc_post_auth_url="/",
        session_backend="memory",
    )


@pytest.fixture
def provider_config(test_settings: Settings) -> ProviderConfig:
    return ProviderConfig.from_settings(test_settings)


# ---------------------------------------------------------------------------
# Identity provider fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_oidc_discovery() -> dict[str, Any]:
    """Mock OIDC discovery document for authentication tests."""
    return {
        "issuer": ISSUER_URL,
        "authorization_endpoint": AUTHORIZATION_ENDPOINT,
        "token_endpoint": TOKEN_ENDPOINT,
        "jwks_uri": f"{ISSUER_URL}/protocol/openid-connect/certs",
        "response_types_supported": ["code", "id_token", "code id_token"],
        "code_challenge_methods_supported": ["plain", "S256"],
        "id_token_signing_alg_values_supported": ["RS256", "ES256", "HS256"],
        "token_endpoint_auth_methods_supported": [
            "client_secret_basic",
            "client_secret_post",
        ],
    }


@pytest.fixture(scope="session")
def signing_key() -> rsa.RSAPrivateKey:
    """RSA key the simulated provider signs ID tokens with."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def generate_test_jwt(signing_key: rsa.RSAPrivateKey) -> Callable[..., str]:
    """Factory fixture to generate signed ID tokens.

    Claims default to a valid token for the test client; keyword arguments
    override or, when set to None, remove individual claims.
    """

    def _generate(
        nonce: str | None = "test-nonce",
        subject: str = "user-42",
        access_token: str | None = None,
        algorithm: str = "RS256",
        key: Any = None,
        **overrides: Any,
    ) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": ISSUER_URL,
            "sub": subject,
            "aud": CLIENT_ID,
            "exp": now + 3600,
            "iat": now,
            "nonce": nonce,
            "email": "test@example.com",
        }
        if access_token is not None:
            payload["at_hash"] = compute_access_token_hash(access_token, algorithm)
        payload.update(overrides)
        payload = {name: value for name, value in payload.items() if value is not None}

        return jwt.encode(
            payload,
            key if key is not None else signing_key,
            algorithm=algorithm,
            headers={"kid": "test-key-id"},
        )

    return _generate


@pytest.fixture
def patched_jwks(signing_key: rsa.RSAPrivateKey) -> Generator[MagicMock, None, None]:
    """Patch PyJWKClient to hand out the test signing key."""
    with patch("oidc_toolbox.auth.oidc_client.PyJWKClient") as mock_jwk_client_class:
        mock_jwk_client = MagicMock()
        mock_signing_key = MagicMock()
        mock_signing_key.key = signing_key.public_key()
        mock_jwk_client.get_signing_key_from_jwt.return_value = mock_signing_key
        mock_jwk_client_class.return_value = mock_jwk_client
        yield mock_jwk_client_class


@pytest.fixture
def build_oidc_client(
    provider_config: ProviderConfig,
    mock_oidc_discovery: dict[str, Any],
    patched_jwks: MagicMock,
) -> Callable[..., OIDCClient]:
    """Factory building an OIDCClient against the simulated provider."""

    def _build(
        config: ProviderConfig | None = None,
        discovery_doc: dict[str, Any] | None = None,
    ) -> OIDCClient:
        with patch("httpx.get") as mock_get:
            mock_get.return_value = make_discovery_response(
                discovery_doc if discovery_doc is not None else mock_oidc_discovery
            )
            return OIDCClient(config or provider_config)

    return _build


@pytest.fixture
def oidc_client(build_oidc_client: Callable[..., OIDCClient]) -> OIDCClient:
    return build_oidc_client()


# ---------------------------------------------------------------------------
# Application fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def app(
    test_settings: Settings,
    mock_oidc_discovery: dict[str, Any],
    patched_jwks: MagicMock,
) -> Generator[Flask, None, None]:
    """Create the Flask app with discovery served by the simulated provider."""
    with patch("httpx.get") as mock_get:
        mock_get.return_value = make_discovery_response(mock_oidc_discovery)
        application = create_app(test_settings)

    yield application

    application.container.unwire()


@pytest.fixture
def client(app: Flask) -> Any:
    return app.test_client()


@pytest.fixture
def container(app: Flask) -> Any:
    return app.container
