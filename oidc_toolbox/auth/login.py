"""Start of the OIDC login flow."""

import logging
from http import HTTPStatus

from prometheus_client import Counter

from oidc_toolbox.auth.models import AuthAttemptState, ProviderConfig, RedirectInstruction
from oidc_toolbox.auth.oidc_client import OIDCClient
from oidc_toolbox.auth.session_store import AuthStateStore, SessionBackend

logger = logging.getLogger(__name__)

LOGIN_STARTED_TOTAL = Counter(
    "oidc_login_started_total",
    "Total login attempts redirected to the identity provider",
)


class LoginInitiator:
    """Builds the authorization request and records its secrets in the session."""

    def __init__(self, oidc_client: OIDCClient, config: ProviderConfig) -> None:
        self._oidc_client = oidc_client
        self._config = config

    def login(self, session: SessionBackend) -> RedirectInstruction:
        """Start a login attempt for the user owning ``session``.

        A previous attempt that was not finished yet is overwritten and can
        no longer be completed.

        Raises:
            SessionWriteFailedError: If the attempt cannot be recorded; no
                redirect must be issued in that case
        """
        request = self._oidc_client.build_authorization_request(self._config.scopes)

        AuthStateStore(session, self._config.session_keys.request).save(
            AuthAttemptState(
                csrf_token=request.csrf_token,
                pkce_verifier=request.pkce_verifier,
                nonce=request.nonce,
            )
        )

        LOGIN_STARTED_TOTAL.inc()
        logger.info("Redirecting to identity provider (state=%s...)", request.csrf_token[:8])

        return RedirectInstruction(request.url, HTTPStatus.TEMPORARY_REDIRECT)
