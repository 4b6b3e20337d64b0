# SPDX-FileCopyrightText: 2026 Andrew Grimberg <tykeal@bardicgrove.org>
# SPDX-License-Identifier: Apache-2.0
"""Application configuration using Pydantic settings."""

from functools import lru_cache

from pydantic import Field
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
    database_url: str = Field(
        default="sqlite:///./data/tripfluence.db",
        description="Database URL (sqlite or postgresql)",
    )

    # Security
    encryption_key: str = Field(
        default="",
        description="Fernet encryption key for stored OAuth tokens",
    )

    # Public site
    public_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL of the public site, used for sitemap and robots",
    )

    # Booking holds
    hold_expiry_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="Hours an approved request is held awaiting payment",
    )

    # Idempotency
    idempotency_ttl_seconds: int = Field(
        default=24 * 60 * 60,
        ge=60,
        description="Seconds an idempotent response is replayed",
    )

    # Outgoing webhooks
    webhook_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Timeout for a single webhook delivery",
    )

    # Social / event providers
    facebook_app_id: str = Field(default="", description="Facebook app ID")
    facebook_app_secret: str = Field(default="", description="Facebook app secret")
    google_client_id: str = Field(default="", description="Google OAuth client ID")
    google_client_secret: str = Field(
        default="", description="Google OAuth client secret"
    )
    eventbrite_client_id: str = Field(default="", description="Eventbrite client ID")
    eventbrite_client_secret: str = Field(
        default="", description="Eventbrite client secret"
    )
    meetup_client_id: str = Field(default="", description="Meetup client ID")
    meetup_client_secret: str = Field(default="", description="Meetup client secret")

    # Payment providers
    stripe_secret_key: str = Field(default="", description="Stripe secret key")
    razorpay_key_id: str = Field(default="", description="Razorpay key ID")
    razorpay_key_secret: str = Field(default="", description="Razorpay key secret")

    # Background jobs
    scheduler_enabled: bool = Field(
        default=True,
        description="Run background jobs (hold expiry, token refresh, event sync)",
    )

    # Application mode
    expose_docs: bool = Field(
        default=False,
        description="Serve OpenAPI docs at /docs and /redoc",
    )

    # Server configuration
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=8000,
        description="Server port",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    def has_stripe(self) -> bool:
        """Check if Stripe is configured."""
        return bool(self.stripe_secret_key)

    def has_razorpay(self) -> bool:
        """Check if Razorpay is configured."""
        return bool(self.razorpay_key_id and self.razorpay_key_secret)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Application settings instance.
    """
    return Settings()
