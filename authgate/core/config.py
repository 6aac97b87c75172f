"""Application configuration loaded from environment variables.

Settings for the database, session tokens, verification links and outbound
email. Uses pydantic-settings for validation and .env file support.
"""

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
_INSECURE_DEFAULT_PASSWORD = "authgate_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "authgate"
    database_user: str = "authgate_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_echo: bool = False

    # API
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"

    # Session tokens
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "authgate"
    auth_audience: str = "authgate"
    session_ttl_minutes: int = 60

    # Password hashing
    bcrypt_rounds: int = 12

    # Verification links
    # Empty link_secret means links are signed with auth_secret.
    link_secret: SecretStr = SecretStr("")
    verification_link_ttl_minutes: int = 30
    backend_url: str = "http://localhost:8000"

    # Email (optional; delivery is skipped when no API key is configured)
    email_from: str = "noreply@authgate.local"
    resend_api_key: SecretStr = SecretStr("")

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def link_signing_key(self) -> bytes:
        """Key used to sign verification links."""
        secret = self.link_secret.get_secret_value() or self.auth_secret.get_secret_value()
        return secret.encode()

    @model_validator(mode="after")
    def check_security(self) -> "Settings":
        """Validate configuration invariants.

        Checks:
        - Session and link TTLs must be positive (all environments)
        - CORS must not use wildcard origin (all environments)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        """
        if self.session_ttl_minutes <= 0:
            msg = f"SESSION_TTL_MINUTES must be positive. Got: {self.session_ttl_minutes}"
            raise ValueError(msg)
        if self.verification_link_ttl_minutes <= 0:
            msg = (
                "VERIFICATION_LINK_TTL_MINUTES must be positive. "
                f"Got: {self.verification_link_ttl_minutes}"
            )
            raise ValueError(msg)

        if "*" in self.allowed_origins:
            msg = "ALLOWED_ORIGINS must not contain '*' (wildcard)."
            raise ValueError(msg)

        if self.environment == "production":
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters in production. Generate with: "
                    'python -c "import secrets; print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)

        return self


settings = Settings()
