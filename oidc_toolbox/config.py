"""Configuration management using Pydantic settings.

Two-layer configuration system:
1. Environment: Loads raw values from environment variables (UPPER_CASE)
2. Settings: Clean application settings with lowercase fields and derived values
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_DEFAULT_SECRET_KEY = "dev-secret-key-change-in-production"


class Environment(BaseSettings):
    """Raw environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Core ───────────────────────────────────────────────────────────

    SECRET_KEY: str = Field(default=_DEFAULT_SECRET_KEY)
    FLASK_ENV: str = Field(default="development")
    DEBUG: bool = Field(default=True)
    LOG_LEVEL: str = Field(default="INFO")
    BASEURL: str = Field(default="http://localhost:5000")

    # ── OIDC ───────────────────────────────────────────────────────────

    OIDC_ISSUER_URL: str | None = Field(default=None)
    OIDC_CLIENT_ID: str | None = Field(default=None)
    OIDC_CLIENT_SECRET: str | None = Field(default=None)
    OIDC_SCOPES: str = Field(default="openid profile email")
    OIDC_REDIRECT_PATH: str = Field(default="/finish_login")
    OIDC_POST_AUTH_URL: str = Field(default="/")
    OIDC_SESSION_REQUEST_KEY: str = Field(default="oidc_request")
    OIDC_SESSION_DATA_KEY: str = Field(default="oidc_data")
    OIDC_SIGNING_ALGS: str | None = Field(default=None)
    OIDC_CLOCK_SKEW_SECONDS: int = Field(default=30)
    OIDC_HTTP_TIMEOUT_SECONDS: float = Field(default=10.0)

    # ── Session ────────────────────────────────────────────────────────

    SESSION_BACKEND: str = Field(default="memory")
    SESSION_TTL_SECONDS: int = Field(default=3600)
    SESSION_COOKIE_NAME: str = Field(default="session")


class Settings(BaseModel):
    """Application settings with lowercase fields and derived values."""

    model_config = ConfigDict(from_attributes=True)

    # ── Core ───────────────────────────────────────────────────────────

    secret_key: str = _DEFAULT_SECRET_KEY
    flask_env: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    baseurl: str = "http://localhost:5000"

    # ── OIDC ───────────────────────────────────────────────────────────

    oidc_issuer_url: str | None = None
    oidc_client_id: str | None = None
    oidc_client_secret: str | None = None
    oidc_scopes: list[str] = Field(default=["openid", "profile", "email"])
    oidc_redirect_url: str = "http://localhost:5000/finish_login"
    oidc_post_auth_url: str = "/"
    oidc_session_request_key: str = "oidc_request"
    oidc_session_data_key: str = "oidc_data"
    oidc_signing_algs: list[str] | None = None
    oidc_clock_skew_seconds: int = 30
    oidc_http_timeout_seconds: float = 10.0

    # ── Session ────────────────────────────────────────────────────────

    session_backend: str = "memory"
    session_ttl_seconds: int = 3600
    session_cookie_name: str = "session"
    session_cookie_secure: bool = False

    @property
    def is_production(self) -> bool:
        return self.flask_env == "production"

    def to_flask_config(self) -> "FlaskConfig":
        return FlaskConfig(
            SECRET_KEY=self.secret_key,
            SESSION_COOKIE_NAME=self.session_cookie_name,
            SESSION_COOKIE_SECURE=self.session_cookie_secure,
            SESSION_COOKIE_HTTPONLY=True,
            SESSION_COOKIE_SAMESITE="Lax",
        )

    def validate_config(self) -> None:
        from oidc_toolbox.exceptions import ConfigurationError

        errors: list[str] = []

        if self.is_production and self.secret_key == _DEFAULT_SECRET_KEY:
            errors.append("SECRET_KEY must be set to a secure value in production")

        if not self.oidc_issuer_url:
            errors.append("OIDC_ISSUER_URL is required")
        if not self.oidc_client_id:
            errors.append("OIDC_CLIENT_ID is required")
        if self.session_backend not in ("memory", "cookie"):
            errors.append(
                f"SESSION_BACKEND must be 'memory' or 'cookie', got '{self.session_backend}'"
            )
        if self.oidc_signing_algs is not None and "none" in self.oidc_signing_algs:
            errors.append("OIDC_SIGNING_ALGS must not contain 'none'")

        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            )

    @classmethod
    def load(cls, env: "Environment | None" = None) -> "Settings":
        if env is None:
            env = Environment()

        baseurl = env.BASEURL.rstrip("/")

        # Scopes are space separated as on the wire
        scopes = [scope for scope in env.OIDC_SCOPES.split() if scope]

        signing_algs = None
        if env.OIDC_SIGNING_ALGS:
            signing_algs = [
                alg.strip() for alg in env.OIDC_SIGNING_ALGS.split(",") if alg.strip()
            ]

        redirect_path = env.OIDC_REDIRECT_PATH
        if redirect_path.startswith(("http://", "https://")):
            redirect_url = redirect_path
        else:
            redirect_url = f"{baseurl}/{redirect_path.lstrip('/')}"

        return cls(
            # Core
            secret_key=env.SECRET_KEY,
            flask_env=env.FLASK_ENV,
            debug=env.DEBUG,
            log_level=env.LOG_LEVEL.upper(),
            baseurl=baseurl,

            # OIDC
            oidc_issuer_url=env.OIDC_ISSUER_URL,
            oidc_client_id=env.OIDC_CLIENT_ID,
            oidc_client_secret=env.OIDC_CLIENT_SECRET or None,
            oidc_scopes=scopes,
            oidc_redirect_url=redirect_url,
            oidc_post_auth_url=env.OIDC_POST_AUTH_URL,
            oidc_session_request_key=env.OIDC_SESSION_REQUEST_KEY,
            oidc_session_data_key=env.OIDC_SESSION_DATA_KEY,
            oidc_signing_algs=signing_algs,
            oidc_clock_skew_seconds=env.OIDC_CLOCK_SKEW_SECONDS,
            oidc_http_timeout_seconds=env.OIDC_HTTP_TIMEOUT_SECONDS,

            # Session
            session_backend=env.SESSION_BACKEND,
            session_ttl_seconds=env.SESSION_TTL_SECONDS,
            session_cookie_name=env.SESSION_COOKIE_NAME,
            session_cookie_secure=baseurl.startswith("https://"),
        )


class FlaskConfig:
    """Flask-specific configuration for app.config.from_object()."""

    def __init__(
        self,
        SECRET_KEY: str,
        SESSION_COOKIE_NAME: str,
        SESSION_COOKIE_SECURE: bool,
        SESSION_COOKIE_HTTPONLY: bool,
        SESSION_COOKIE_SAMESITE: str,
    ) -> None:
        self.SECRET_KEY = SECRET_KEY
        self.SESSION_COOKIE_NAME = SESSION_COOKIE_NAME
        self.SESSION_COOKIE_SECURE = SESSION_COOKIE_SECURE
        self.SESSION_COOKIE_HTTPONLY = SESSION_COOKIE_HTTPONLY
        self.SESSION_COOKIE_SAMESITE = SESSION_COOKIE_SAMESITE
