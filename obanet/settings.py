"""Application settings and configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SUPPORTED_COUNTRIES = [
    "Germany",
    "France",
    "Netherlands",
    "Belgium",
    "Austria",
    "Switzerland",
    "UK",
    "USA",
    "Canada",
    "Australia",
    "Turkey",
    "Northern Cyprus",
    "Other",
]


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be overridden via environment variables.
    Example: DATABASE_URL, REDIS_URL, JWT_SECRET_KEY
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field("ObaNet API")
    app_version: str = Field("1.0.0")
    environment: str = Field("development")
    debug: bool = Field(False)
    host: str = Field("0.0.0.0")
    port: int = Field(8000)

    # Database settings
    database_url: str = Field(
        default="sqlite+aiosqlite:///./obanet.db",
        description="Database connection URL",
    )

    # Redis settings
    redis_url: str = Field("redis://localhost:6379/0")
    redis_socket_timeout: float = Field(
        default=0.5,
        description="Redis command timeout in seconds",
    )
    redis_connect_timeout: float = Field(
        default=1.0,
        description="Redis connect timeout in seconds",
    )

    # JWT settings
    jwt_secret_key: str = Field("fallback-secret-key-change-in-production")
    jwt_refresh_secret_key: str = Field("fallback-refresh-secret-change-in-production")
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(
        default=7 * 24 * 60,
        description="Access token lifetime in minutes",
    )
    refresh_token_expire_days: int = Field(
        default=30,
        description="Refresh token lifetime in days",
    )

    # Security settings
    bcrypt_rounds: int = Field(12)
    email_verification_expire_hours: int = Field(24)
    password_reset_expire_minutes: int = Field(30)
    rate_limit_enabled: bool = Field(True)

    # Session cache settings
    session_cache_ttl_seconds: int = Field(
        default=30 * 60,
        description="TTL of cached user profiles",
    )

    # Diaspora settings
    supported_countries: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SUPPORTED_COUNTRIES)
    )
    login_history_limit: int = Field(10)
    email_verification_bonus: int = Field(50)

    # CORS settings
    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"]
    )

    # Celery settings
    celery_broker_url: str = Field("redis://localhost:6379/1")
    celery_result_backend: str = Field("redis://localhost:6379/1")

    # Logging settings
    log_level: str = Field("INFO")
    log_format: str = Field(
        default="json",
        description="Log format (json or text)",
    )
    log_file: str = Field("logs/obanet.log")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production" and not self.debug

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.access_token_expire_minutes * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.refresh_token_expire_days * 24 * 60 * 60

    @property
    def database_is_sqlite(self) -> bool:
        """Check if using SQLite database."""
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Returns:
        Singleton settings instance
    """
    return Settings()
