"""Data model of the OIDC login flow."""

from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from oidc_toolbox.config import Settings


class SessionKeys(BaseModel):
    """Keys under which the login flow stores its data in the user's session."""

    model_config = ConfigDict(frozen=True)

    request: str = "oidc_request"  # pending AuthAttemptState
    data: str = "oidc_data"  # resulting IdentityAssertion


class ProviderConfig(BaseModel):
    """Immutable provider and client configuration, shared by all logins."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str | None = None
    issuer_url: str
    scopes: frozenset[str] = frozenset({"openid"})
    redirect_url: str
    post_auth_url: str = "/"
    session_keys: SessionKeys = Field(default_factory=SessionKeys)
    allowed_signing_algs: frozenset[str] | None = None
    clock_skew_seconds: int = 30
    http_timeout_seconds: float = 10.0

    @property
    def discovery_url(self) -> str:
        return f"{self.issuer_url.rstrip('/')}/.well-known/openid-configuration"

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderConfig":
        signing_algs = None
        if settings.oidc_signing_algs is not None:
            signing_algs = frozenset(settings.oidc_signing_algs)

        return cls(
            client_id=settings.oidc_client_id or "",
            client_secret=settings.oidc_client_secret,
            issuer_url=settings.oidc_issuer_url or "",
            scopes=frozenset(settings.oidc_scopes) | {"openid"},
            redirect_url=settings.oidc_redirect_url,
            post_auth_url=settings.oidc_post_auth_url,
            session_keys=SessionKeys(
                request=settings.oidc_session_request_key,
                data=settings.oidc_session_data_key,
            ),
            allowed_signing_algs=signing_algs,
            clock_skew_seconds=settings.oidc_clock_skew_seconds,
            http_timeout_seconds=settings.oidc_http_timeout_seconds,
        )


@dataclass
class OIDCEndpoints:
    """OIDC provider metadata discovered from well-known configuration."""

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    jwks_uri: str
    signing_algs: frozenset[str]
    token_endpoint_auth_methods: frozenset[str]


@dataclass(frozen=True)
class AuthorizationRequest:
    """Freshly generated authorization URL and the secrets bound to it."""

    url: str
    csrf_token: str
    pkce_challenge: str
    pkce_verifier: str
    nonce: str


class AuthAttemptState(BaseModel):
    """Per-attempt secrets, stored in the session between login and callback."""

    csrf_token: str
    pkce_verifier: str = Field(min_length=43, max_length=128)
    nonce: str


class CallbackParams(BaseModel):
    """Untrusted query parameters of the provider's redirect."""

    state: str = Field(min_length=1)
    code: str | None = None
    error: str | None = None
    error_description: str | None = None

    @model_validator(mode="after")
    def _require_code_or_error(self) -> "CallbackParams":
        if not self.code and not self.error:
            raise ValueError("code is required")
        return self


class TokenResponse(BaseModel):
    """Token endpoint response."""

    model_config = ConfigDict(extra="allow")

    access_token: str = Field(min_length=1)
    token_type: str
    id_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
    scope: str | None = None


class IdTokenClaims(BaseModel):
    """Verified ID token claims."""

    model_config = ConfigDict(extra="allow")

    iss: str
    sub: str
    aud: str | list[str]
    exp: int | float
    iat: int | float
    nonce: str | None = None
    at_hash: str | None = None
    azp: str | None = None


class IdentityAssertion(BaseModel):
    """Validated login result stored in the user's session."""

    token: TokenResponse
    claims: IdTokenClaims

    def public_view(self) -> dict[str, Any]:
        """Claims safe to render back to the user (no tokens)."""
        return self.claims.model_dump(exclude_none=True)


@dataclass(frozen=True)
class RedirectInstruction:
    """Where to send the user agent next."""

    location: str
    status_code: int = HTTPStatus.FOUND
