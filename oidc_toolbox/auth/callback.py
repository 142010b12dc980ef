"""Completion of the OIDC login flow on the provider's redirect.

``CallbackVerifier.finish_login`` runs its checks strictly in order and stops
at the first failure:

1. consume the stored login attempt
2. compare the returned state with the attempt's CSRF token
3. exchange the code (with the PKCE verifier) for tokens
4. require an ID token
5. verify the ID token's signature and claims, including the nonce
6. verify the at_hash claim against the access token, when present
7. store the identity in the session

Nothing is written under the session's data key before step 7.
"""

import hmac
import logging

from prometheus_client import Counter

from oidc_toolbox.auth.errors import (
    AuthorizationDeniedError,
    InvalidAccessTokenHashError,
    InvalidCallbackParametersError,
    InvalidStateError,
    LoginError,
    MissingIdTokenError,
)
from oidc_toolbox.auth.models import (
    CallbackParams,
    IdentityAssertion,
    ProviderConfig,
    RedirectInstruction,
)
from oidc_toolbox.auth.oidc_client import OIDCClient, compute_access_token_hash
from oidc_toolbox.auth.session_store import (
    AuthStateStore,
    IdentitySessionWriter,
    SessionBackend,
)

logger = logging.getLogger(__name__)

LOGIN_FINISHED_TOTAL = Counter(
    "oidc_login_finished_total",
    "Total login callbacks by outcome",
    ["outcome"],
)


class CallbackVerifier:
    """Validates the provider's redirect and establishes the authenticated session."""

    def __init__(
        self,
        oidc_client: OIDCClient,
        config: ProviderConfig,
        exchange_timeout: float | None = None,
    ) -> None:
        self._oidc_client = oidc_client
        self._config = config
        self._exchange_timeout = exchange_timeout

    def finish_login(
        self, session: SessionBackend, params: CallbackParams
    ) -> RedirectInstruction:
        """Finish the login attempt stored in ``session``.

        Raises:
            LoginError: Subclass describing the first failed check
        """
        try:
            assertion = self._verify(session, params)
            IdentitySessionWriter(session, self._config.session_keys.data).write(assertion)
        except LoginError as e:
            LOGIN_FINISHED_TOTAL.labels(outcome=e.error_code.lower()).inc()
            raise

        LOGIN_FINISHED_TOTAL.labels(outcome="success").inc()
        logger.info("Login finished for subject %s", assertion.claims.sub)

        return RedirectInstruction(self._config.post_auth_url)

    def _verify(self, session: SessionBackend, params: CallbackParams) -> IdentityAssertion:
        attempt = AuthStateStore(session, self._config.session_keys.request).take()

        if not hmac.compare_digest(
            params.state.encode("utf-8"), attempt.csrf_token.encode("utf-8")
        ):
            raise InvalidStateError()

        if params.error:
            raise AuthorizationDeniedError(params.error, params.error_description)

        if not params.code:
            raise InvalidCallbackParametersError("Invalid callback parameters: code")

        tokens = self._oidc_client.exchange_code(
            params.code, attempt.pkce_verifier, timeout=self._exchange_timeout
        )

        if not tokens.id_token:
            raise MissingIdTokenError()

        claims, alg = self._oidc_client.verify_id_token(tokens.id_token, attempt.nonce)

        # Binds the access token to the ID token; not every provider sends it
        if claims.at_hash is not None:
            actual = compute_access_token_hash(tokens.access_token, alg)
            if not hmac.compare_digest(actual.encode("ascii"), claims.at_hash.encode("utf-8")):
                raise InvalidAccessTokenHashError()

        return IdentityAssertion(token=tokens, claims=claims)
