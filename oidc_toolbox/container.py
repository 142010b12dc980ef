"""Application dependency injection container."""

from dependency_injector import containers, providers

from oidc_toolbox.auth.callback import CallbackVerifier
from oidc_toolbox.auth.login import LoginInitiator
from oidc_toolbox.auth.models import ProviderConfig
from oidc_toolbox.auth.oidc_client import OIDCClient
from oidc_toolbox.config import Settings


class AppContainer(containers.DeclarativeContainer):
    """Application service container.

    ``config`` must be overridden with the loaded Settings before any other
    provider is used.
    """

    # Configuration - must be overridden by app
    config = providers.Dependency(instance_of=Settings)

    # Immutable provider configuration derived from settings
    provider_config = providers.Singleton(ProviderConfig.from_settings, settings=config)

    # OIDC client; discovery runs on first use
    oidc_client = providers.Singleton(OIDCClient, config=provider_config)

    login_initiator = providers.Singleton(
        LoginInitiator,
        oidc_client=oidc_client,
        config=provider_config,
    )

    callback_verifier = providers.Singleton(
        CallbackVerifier,
        oidc_client=oidc_client,
        config=provider_config,
    )
