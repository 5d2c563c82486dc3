"""Application settings and configuration."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: Optional[str] = None
    postgres_user: str = "tenantgate"
    postgres_password: Optional[str] = None
    postgres_host: str = "localhost"
    postgres_db: str = "tenantgate"
    postgres_port: int = 5432

    # API
    environment: str = "development"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    public_base_url: str = "http://localhost:8000"

    # Admin sessions
    auth_session_secret: Optional[str] = None  # Required, min 32 chars
    session_ttl_seconds: int = 60 * 60 * 24 * 30
    session_cookie_name: str = "tg_session"
    # Older deployments wrote these names; tried after session_cookie_name
    legacy_session_cookie_names: list[str] = ["tg_admin_session_v1", "__Secure-tg_session"]

    # Mobile keys and provisioning
    mobile_api_key_secret: Optional[str] = None  # Required, min 32 chars
    mobile_provision_token_secret: Optional[str] = None  # Falls back to mobile_api_key_secret
    mobile_api_key_header: str = "x-api-key"

    # Rate limiting
    rate_limit_backend: str = "memory"  # memory, redis
    redis_url: str = "redis://localhost:6379/0"
    mobile_rate_limit_per_minute: int = 120
    login_rate_limit_per_minute: int = 10
    redeem_rate_limit_per_minute: int = 10

    # Startup
    verify_schema_on_startup: bool = True

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    # CORS
    cors_origins: list[str] = ["http://localhost:3000"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password or ''}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() in ("development", "dev", "test")

    @property
    def session_cookie_candidates(self) -> list[str]:
        """Cookie names tried, in order, when reading a session."""
        names = [self.session_cookie_name]
        for name in self.legacy_session_cookie_names:
            if name and name not in names:
                names.append(name)
        return names

    def validate_production_settings(self):
        """Validate settings for production environment."""
        if not self.is_development:
            if not self.auth_session_secret or len(self.auth_session_secret.strip()) < 32:
                raise ValueError(
                    "AUTH_SESSION_SECRET is required outside development (min 32 chars)."
                )
            if not self.mobile_api_key_secret or len(self.mobile_api_key_secret.strip()) < 32:
                raise ValueError(
                    "MOBILE_API_KEY_SECRET is required outside development (min 32 chars)."
                )
            if "*" in self.cors_origins and self.cors_allow_credentials:
                raise ValueError(
                    "CORS_ORIGINS=* cannot be combined with credentialed requests in production."
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
