"""Flask application factory."""

import logging
from urllib.parse import urlsplit

from oidc_toolbox.config import Settings
from oidc_toolbox.core.flask_app import App

logger = logging.getLogger(__name__)


def create_app(settings: "Settings | None" = None) -> App:
    """Create and configure the Flask application.

    Args:
        settings: Optional settings instance (loaded from the environment if
            not provided)

    Returns:
        Configured Flask application instance

    Raises:
        ConfigurationError: If the settings are invalid
        OIDCDiscoveryError: If the identity provider cannot be discovered
    """
    app = App(__name__)

    # Load configuration
    if settings is None:
        settings = Settings.load()

    # Validate configuration before proceeding
    settings.validate_config()

    app.config.from_object(settings.to_flask_config())

    # Session storage; the cookie backend is Flask's default signed cookie
    if settings.session_backend == "memory":
        from oidc_toolbox.session.memory import MemorySessionInterface

        app.session_interface = MemorySessionInterface(
            ttl_seconds=settings.session_ttl_seconds
        )

    # Initialize service container
    from oidc_toolbox.container import AppContainer

    container = AppContainer()
    container.config.override(settings)

    container.wire(modules=["oidc_toolbox.auth.routes", "oidc_toolbox.api.index"])

    app.container = container

    # Discover the provider now so a misconfigured issuer fails startup
    container.oidc_client()

    # Initialize correlation ID tracking and access log
    from oidc_toolbox.core.request_logging import init_request_logging

    init_request_logging(app)

    # Register error handlers
    from oidc_toolbox.core.errors import register_error_handlers

    register_error_handlers(app)

    # Register login routes
    from oidc_toolbox.auth.routes import register_auth_routes

    register_auth_routes(app, urlsplit(settings.oidc_redirect_url).path or "/finish_login")

    # Register index page
    from oidc_toolbox.api.index import index_bp

    app.register_blueprint(index_bp)

    # Register metrics blueprint
    from oidc_toolbox.core.metrics import metrics_bp

    app.register_blueprint(metrics_bp)

    logger.info("Application created (session backend: %s)", settings.session_backend)

    return app
