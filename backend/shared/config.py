"""
Centralized configuration for the marketplace backend.

All settings are loaded from environment variables with sensible defaults.
Module-specific settings should be namespaced (e.g., STRIPE_*, SUPABASE_*).
"""

from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationMissingError


# Settings that must be present before the API accepts traffic.
REQUIRED_SETTINGS = (
    "stripe_secret_key",
    "stripe_webhook_secret",
    "supabase_url",
    "supabase_service_role_key",
    "supabase_jwt_secret",
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Yoga Marketplace API"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False

    # CORS settings
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:8080"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""
    supabase_jwt_secret: str = ""
    supabase_timeout_seconds: float = 10.0
    supabase_db_url: str = ""  # Direct Postgres URL, used by run_migrations.py only

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_timeout_seconds: float = 15.0
    stripe_max_network_retries: int = 2
    currency: str = "usd"

    # Catalog overrides: JSON objects mapping package/tier id -> Stripe price id
    stripe_credit_price_ids: dict[str, str] = {}
    stripe_membership_price_ids: dict[str, str] = {}
    stripe_custom_credit_price_id: Optional[str] = None

    # Frontend URLs (for checkout redirects)
    frontend_url: str = "http://localhost:5173"

    # OTP
    otp_hash_secret: str = ""
    otp_ttl_seconds: int = 600
    otp_resend_cooldown_seconds: int = 60
    otp_max_attempts: int = 5

    # Feature Flags
    enable_billing: bool = True


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


def validate_required_settings(settings: Settings) -> None:
    """
    Fail fast when a required secret is missing.

    Raises:
        ConfigurationMissingError: listing every missing setting name
    """
    missing = [
        name.upper() for name in REQUIRED_SETTINGS if not getattr(settings, name)
    ]
    if missing:
        raise ConfigurationMissingError(missing)
