"""OIDC client for the authorization code flow with PKCE."""

import base64
import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import parse_qsl, quote_plus, urlencode, urlsplit, urlunsplit

import httpx
import jwt
from jwt import PyJWKClient
from jwt.algorithms import get_default_algorithms
from prometheus_client import Histogram
from pydantic import ValidationError

from oidc_toolbox.auth.errors import (
    HashComputationFailedError,
    InvalidIdTokenError,
    TokenExchangeFailedError,
)
from oidc_toolbox.auth.models import (
    AuthorizationRequest,
    IdTokenClaims,
    OIDCEndpoints,
    ProviderConfig,
    TokenResponse,
)

logger = logging.getLogger(__name__)

TOKEN_EXCHANGE_DURATION_SECONDS = Histogram(
    "oidc_token_exchange_duration_seconds",
    "Duration of authorization code exchanges with the identity provider",
)

# Default when the provider doesn't advertise its ID token algorithms
# (OpenID Connect Discovery 1.0 §3)
_DEFAULT_SIGNING_ALGS = ["RS256"]

_DISCOVERY_MAX_RETRIES = 3

_HASH_BY_BITS: dict[str, Callable[..., Any]] = {
    "256": hashlib.sha256,
    "384": hashlib.sha384,
    "512": hashlib.sha512,
}


class OIDCClientError(Exception):
    """Base exception for OIDC client errors."""

    pass


class OIDCDiscoveryError(OIDCClientError):
    """Raised when the provider metadata cannot be discovered or is unusable."""

    pass


def _base64url_encode(value: bytes) -> str:
    return base64.urlsafe_b64encode(value).rstrip(b"=").decode("ascii")


def generate_pkce_challenge(code_verifier: str) -> str:
    """Generate the S256 PKCE code challenge for a verifier (RFC 7636 §4.2)."""
    return _base64url_encode(hashlib.sha256(code_verifier.encode("ascii")).digest())


def compute_access_token_hash(access_token: str, alg: str) -> str:
    """Compute the at_hash value of an access token (OpenID Connect Core §3.1.3.6).

    The hash function is the one used by the ID token's signing algorithm;
    the left-most half of the digest is base64url encoded.

    Raises:
        HashComputationFailedError: If the algorithm has no known hash function
    """
    if alg == "EdDSA":
        # Ed25519 signs with SHA-512
        hash_fn = hashlib.sha512
    elif alg[:2] in ("HS", "RS", "PS", "ES") and alg[2:] in _HASH_BY_BITS:
        hash_fn = _HASH_BY_BITS[alg[2:]]
    else:
        raise HashComputationFailedError(alg)

    digest = hash_fn(access_token.encode("utf-8")).digest()
    return _base64url_encode(digest[: len(digest) // 2])


def _append_query(url: str, params: dict[str, str]) -> str:
    """Add parameters to a URL, keeping the query it already has."""
    parts = urlsplit(url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend(params.items())
    return urlunsplit(parts._replace(query=urlencode(query)))


class OIDCClient:
    """OIDC client for the authorization code flow with PKCE.

    Handles the provider side of the login flow:
    1. Discover provider metadata at construction time
    2. Generate authorization URLs with fresh CSRF token, nonce and PKCE pair
    3. Exchange authorization codes for tokens
    4. Verify ID tokens against the provider's published keys

    Immutable after construction and safe to share between request threads.
    """

    def __init__(self, config: ProviderConfig) -> None:
        """Initialize OIDC client and discover the provider.

        Args:
            config: Provider and client configuration

        Raises:
            OIDCDiscoveryError: If the provider metadata cannot be discovered
        """
        self._config = config
        self._endpoints = self._discover_endpoints()
        self._jwks_client = PyJWKClient(
            self._endpoints.jwks_uri,
            cache_keys=True,
            timeout=config.http_timeout_seconds,
        )

        logger.info(
            "OIDCClient initialized for issuer %s (signing algorithms: %s)",
            self._endpoints.issuer,
            ", ".join(sorted(self._endpoints.signing_algs)),
        )

    @property
    def config(self) -> ProviderConfig:
        return self._config

    @property
    def endpoints(self) -> OIDCEndpoints:
        return self._endpoints

    def _discover_endpoints(self) -> OIDCEndpoints:
        """Discover OIDC endpoints from provider's well-known configuration."""
        discovery_url = self._config.discovery_url

        logger.info("Discovering OIDC endpoints from %s", discovery_url)

        for attempt in range(_DISCOVERY_MAX_RETRIES):
            try:
                response = httpx.get(
                    discovery_url, timeout=self._config.http_timeout_seconds
                )
                response.raise_for_status()
                document = response.json()
                break

            except (httpx.HTTPError, ValueError) as e:
                if attempt < _DISCOVERY_MAX_RETRIES - 1:
                    logger.warning(
                        "OIDC discovery attempt %d/%d failed: %s. Retrying...",
                        attempt + 1,
                        _DISCOVERY_MAX_RETRIES,
                        str(e),
                    )
                else:
                    logger.error(
                        "OIDC discovery failed after %d attempts: %s",
                        _DISCOVERY_MAX_RETRIES,
                        str(e),
                    )
                    raise OIDCDiscoveryError(
                        f"Failed to discover OIDC endpoints after "
                        f"{_DISCOVERY_MAX_RETRIES} attempts: {e}"
                    ) from e

        return self._parse_discovery_document(document)

    def _parse_discovery_document(self, document: Any) -> OIDCEndpoints:
        if not isinstance(document, dict):
            raise OIDCDiscoveryError("OIDC discovery document is not a JSON object")

        for field in ("issuer", "authorization_endpoint", "token_endpoint", "jwks_uri"):
            if not document.get(field):
                raise OIDCDiscoveryError(
                    f"OIDC discovery document missing required field: {field}"
                )

        issuer = str(document["issuer"])
        if issuer.rstrip("/") != self._config.issuer_url.rstrip("/"):
            raise OIDCDiscoveryError(
                f"OIDC discovery issuer mismatch: expected {self._config.issuer_url}, "
                f"got {issuer}"
            )

        response_types = document.get("response_types_supported")
        if response_types is not None and "code" not in response_types:
            raise OIDCDiscoveryError(
                f"Provider does not support the 'code' response type: {response_types}"
            )

        challenge_methods = document.get("code_challenge_methods_supported")
        if challenge_methods is not None and "S256" not in challenge_methods:
            raise OIDCDiscoveryError(
                f"Provider does not support the 'S256' code challenge method: "
                f"{challenge_methods}"
            )

        advertised = document.get("id_token_signing_alg_values_supported")
        if not advertised:
            logger.info(
                "No 'id_token_signing_alg_values_supported' in discovery document, "
                "defaulting to %s",
                _DEFAULT_SIGNING_ALGS,
            )
            advertised = _DEFAULT_SIGNING_ALGS

        # Never trust unsigned tokens, regardless of what the provider advertises
        signing_algs = {alg for alg in advertised if alg != "none"}
        if self._config.allowed_signing_algs is not None:
            signing_algs &= self._config.allowed_signing_algs
        supported_by_jwt = set(get_default_algorithms())
        signing_algs &= supported_by_jwt
        if not signing_algs:
            raise OIDCDiscoveryError(
                f"No acceptable ID token signing algorithm; provider advertises "
                f"{advertised}"
            )

        auth_methods = document.get("token_endpoint_auth_methods_supported") or [
            "client_secret_basic"
        ]

        return OIDCEndpoints(
            issuer=issuer,
            authorization_endpoint=str(document["authorization_endpoint"]),
            token_endpoint=str(document["token_endpoint"]),
            jwks_uri=str(document["jwks_uri"]),
            signing_algs=frozenset(signing_algs),
            token_endpoint_auth_methods=frozenset(auth_methods),
        )

    def build_authorization_request(
        self, scopes: Iterable[str] | None = None
    ) -> AuthorizationRequest:
        """Generate an authorization URL with fresh per-attempt secrets.

        Args:
            scopes: Scopes to request; defaults to the configured scopes.
                The openid scope is always requested.

        Returns:
            AuthorizationRequest with the URL, CSRF token, PKCE pair and nonce
        """
        csrf_token = secrets.token_urlsafe(32)
        nonce = secrets.token_urlsafe(32)
        # 32 random bytes encode to 43 characters, the RFC 7636 minimum
        pkce_verifier = secrets.token_urlsafe(32)
        pkce_challenge = generate_pkce_challenge(pkce_verifier)

        requested = set(scopes if scopes is not None else self._config.scopes)
        requested.discard("openid")
        scope = " ".join(["openid", *sorted(requested)])

        params = {
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_url,
            "response_type": "code",
            "scope": scope,
            "state": csrf_token,
            "code_challenge": pkce_challenge,
            "code_challenge_method": "S256",
            "nonce": nonce,
        }

        url = _append_query(self._endpoints.authorization_endpoint, params)

        logger.debug("Generated authorization URL with state=%s...", csrf_token[:8])

        return AuthorizationRequest(
            url=url,
            csrf_token=csrf_token,
            pkce_challenge=pkce_challenge,
            pkce_verifier=pkce_verifier,
            nonce=nonce,
        )

    def exchange_code(
        self,
        code: str,
        pkce_verifier: str,
        timeout: float | None = None,
    ) -> TokenResponse:
        """Exchange authorization code for tokens.

        Args:
            code: Authorization code from callback
            pkce_verifier: PKCE code verifier of the login attempt
            timeout: Seconds to wait for the provider; defaults to the
                configured HTTP timeout

        Returns:
            TokenResponse from the provider

        Raises:
            TokenExchangeFailedError: On network error, non-2xx status or a
                malformed response body
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self._config.redirect_url,
            "code_verifier": pkce_verifier,
        }

        auth: httpx.BasicAuth | None = None
        secret = self._config.client_secret
        if secret is None:
            data["client_id"] = self._config.client_id
        elif "client_secret_basic" in self._endpoints.token_endpoint_auth_methods:
            # RFC 6749 §2.3.1: credentials are form-encoded before Basic encoding
            auth = httpx.BasicAuth(
                quote_plus(self._config.client_id), quote_plus(secret)
            )
        else:
            data["client_id"] = self._config.client_id
            data["client_secret"] = secret

        if timeout is None:
            timeout = self._config.http_timeout_seconds

        started = time.perf_counter()
        try:
            response = httpx.post(
                self._endpoints.token_endpoint,
                data=data,
                auth=auth,
                headers={"Accept": "application/json"},
                timeout=timeout,
            )
            response.raise_for_status()
            token_data = response.json()

        except httpx.HTTPStatusError as e:
            error_detail = self._error_detail(e.response)
            logger.error(
                "Token exchange failed with status %d: %s",
                e.response.status_code,
                error_detail,
            )
            raise TokenExchangeFailedError(
                f"provider returned {e.response.status_code}: {error_detail}"
            ) from e

        except httpx.HTTPError as e:
            logger.error("Token exchange request failed: %s", str(e))
            raise TokenExchangeFailedError(str(e)) from e

        except ValueError as e:
            logger.error("Token response is not valid JSON: %s", str(e))
            raise TokenExchangeFailedError("token response is not valid JSON") from e

        finally:
            TOKEN_EXCHANGE_DURATION_SECONDS.observe(time.perf_counter() - started)

        try:
            tokens = TokenResponse.model_validate(token_data)
        except ValidationError as e:
            logger.error("Malformed token response: %s", str(e))
            raise TokenExchangeFailedError("malformed token response") from e

        logger.info("Successfully exchanged authorization code for tokens")

        return tokens

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        """Extract the OAuth error description from an error response."""
        try:
            error_data = response.json()
        except ValueError:
            return response.text[:200]

        if isinstance(error_data, dict):
            return str(
                error_data.get("error_description", error_data.get("error", error_data))
            )
        return str(error_data)

    def verify_id_token(self, id_token: str, nonce: str) -> tuple[IdTokenClaims, str]:
        """Verify the ID token's signature and claims.

        Args:
            id_token: Compact-serialized ID token
            nonce: Nonce generated when the login started

        Returns:
            Tuple of (verified claims, signing algorithm of the token)

        Raises:
            InvalidIdTokenError: If any check fails
        """
        try:
            header = jwt.get_unverified_header(id_token)
        except jwt.InvalidTokenError as e:
            raise InvalidIdTokenError(f"malformed token: {e}") from e

        alg = header.get("alg")
        if not isinstance(alg, str) or not alg or alg == "none":
            raise InvalidIdTokenError("token is not signed")
        if alg not in self._endpoints.signing_algs:
            raise InvalidIdTokenError(
                f"signing algorithm '{alg}' is not accepted "
                f"(accepted: {', '.join(sorted(self._endpoints.signing_algs))})"
            )

        key = self._signing_key(id_token, alg)

        try:
            claims = jwt.decode(
                id_token,
                key,
                algorithms=[alg],
                audience=self._config.client_id,
                issuer=self._endpoints.issuer,
                leeway=self._config.clock_skew_seconds,
                options={"require": ["iss", "sub", "aud", "exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise InvalidIdTokenError("token has expired") from e
        except jwt.InvalidAudienceError as e:
            raise InvalidIdTokenError("invalid token audience") from e
        except jwt.InvalidIssuerError as e:
            raise InvalidIdTokenError("invalid token issuer") from e
        except jwt.PyJWTError as e:
            raise InvalidIdTokenError(f"invalid token: {e}") from e

        azp = claims.get("azp")
        if azp is not None and azp != self._config.client_id:
            raise InvalidIdTokenError("authorized party does not match client id")

        token_nonce = claims.get("nonce")
        if not isinstance(token_nonce, str) or not hmac.compare_digest(
            token_nonce.encode("utf-8"), nonce.encode("utf-8")
        ):
            raise InvalidIdTokenError("nonce mismatch")

        try:
            return IdTokenClaims.model_validate(claims), alg
        except ValidationError as e:
            raise InvalidIdTokenError(f"malformed claims: {e}") from e

    def _signing_key(self, id_token: str, alg: str) -> Any:
        # OpenID Connect Core §10.1: MAC algorithms use the client secret
        if alg.startswith("HS"):
            if not self._config.client_secret:
                raise InvalidIdTokenError(
                    "token is signed with an HMAC algorithm but no client secret is configured"
                )
            return self._config.client_secret.encode("utf-8")

        try:
            return self._jwks_client.get_signing_key_from_jwt(id_token).key
        except jwt.PyJWTError as e:
            raise InvalidIdTokenError(f"failed to get signing key: {e}") from e
