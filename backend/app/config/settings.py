"""
Application Settings for CoachBridge

Centralized configuration using Pydantic Settings with .env support.
Every external credential is optional: a missing key disables the
collaborator that needs it instead of failing at startup.
"""

from functools import lru_cache
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Collaborators:
    - Stripe: subscription billing, hosted checkout, signed webhooks
    - Supabase: identity (JWT) and the Postgres database
    """

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_api_version: str = "2024-06-20"

    # Supabase Configuration (accepts NEXT_PUBLIC_* names from the web app)
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None
    next_public_supabase_url: Optional[str] = None
    next_public_supabase_anon_key: Optional[str] = None

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS / redirects
    frontend_url: str = "http://localhost:3000"
    allowed_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Session cookie carrying the Supabase access token (fallback to bearer)
    session_cookie_name: str = "sb-access-token"

    # Database Configuration (SQLModel/SQLAlchemy)
    supabase_password: Optional[str] = None
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def normalize_supabase_keys(self) -> "Settings":
        """Fall back to the browser-side Supabase names when the server ones are unset."""
        if not self.supabase_url and self.next_public_supabase_url:
            self.supabase_url = self.next_public_supabase_url

        if not self.supabase_anon_key and self.next_public_supabase_anon_key:
            self.supabase_anon_key = self.next_public_supabase_anon_key

        if self.supabase_url:
            self.supabase_url = self.supabase_url.rstrip("/")

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    @property
    def is_payments_configured(self) -> bool:
        """Stripe secret and webhook signing secret are both present."""
        return bool(self.stripe_secret_key and self.stripe_webhook_secret)

    @property
    def is_identity_configured(self) -> bool:
        """Supabase URL plus a key usable for token verification."""
        if not self.supabase_url or "placeholder" in self.supabase_url:
            return False
        return bool(self.supabase_anon_key or self.supabase_jwt_secret)

    @property
    def is_database_configured(self) -> bool:
        """Either an explicit DATABASE_URL or a derivable Supabase connection."""
        return bool(self.database_url or (self.supabase_url and self.supabase_password))


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
