"""Application settings using Pydantic for environment-based configuration."""
from decimal import Decimal
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Stripe Configuration
    stripe_secret_key: str = Field(..., description="Stripe secret API key (sk_test_...)")
    stripe_api_version: str = Field(default="2023-10-16", description="Stripe API version")
    checkout_success_url: str = Field(
        default="http://localhost:5000/success?source={CHECKOUT_SESSION_ID}",
        description="Redirect after a paid checkout; keeps Stripe's session placeholder",
    )
    checkout_cancel_url: str = Field(
        default="http://localhost:5000/error", description="Redirect after a cancelled checkout"
    )
    checkout_currency: str = Field(default="usd", description="Checkout currency code")
    gateway_failure_threshold: int = Field(
        default=5, description="Consecutive Stripe failures before the circuit opens"
    )
    gateway_reset_timeout: float = Field(
        default=60.0, description="Seconds the circuit stays open before a trial call"
    )

    # Database Configuration
    database_url: str = Field(..., description="Database connection URL")
    database_pool_size: int = Field(default=20, description="Database connection pool size")
    database_max_overflow: int = Field(default=50, description="Max database connection overflow")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Redis Configuration
    redis_url: str = Field(..., description="Redis connection URL")
    rankings_key: str = Field(default="rankings", description="Sorted set holding the leaderboard")

    # Mail Configuration
    smtp_host: str = Field(default="localhost", description="SMTP relay host")
    smtp_port: int = Field(default=1025, description="SMTP relay port")
    smtp_timeout: float = Field(default=10.0, description="SMTP connect/send timeout (seconds)")
    mail_from: str = Field(default="no-reply@ambassador.local", description="Sender address")
    admin_email: str = Field(default="admin@admin.com", description="Platform operator address")

    # Revenue policy
    platform_revenue_rate: Decimal = Field(
        default=Decimal("0.10"), description="Share of each line total kept by the platform"
    )

    # Application Configuration
    app_name: str = Field(default="ambassador-orders", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=True, description="Render logs as JSON (false: console)")
    debug: bool = Field(default=False, description="Debug mode")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")
    api_workers: int = Field(default=4, description="Number of API workers")
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5000",
        description="CORS allowed origins (comma-separated)"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("stripe_secret_key")
    @classmethod
    def validate_stripe_key(cls, v: str) -> str:
        """Validate that Stripe secret key has a known prefix."""
        if not v.startswith("sk_test_") and not v.startswith("sk_live_"):
            raise ValueError(
                "Invalid Stripe secret key format. Must start with 'sk_test_' or 'sk_live_'"
            )
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("platform_revenue_rate")
    @classmethod
    def validate_platform_rate(cls, v: Decimal) -> Decimal:
        """The platform rate is a fraction of the line total."""
        if v < 0 or v > 1:
            raise ValueError("platform_revenue_rate must be between 0 and 1")
        return v

    @field_validator("checkout_currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        if len(v) != 3:
            raise ValueError("Currency must be 3-letter code")
        return v.lower()

    def get_allowed_origins_list(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins.split(",")]

    @property
    def is_test_mode(self) -> bool:
        """Check if using Stripe test mode."""
        return self.stripe_secret_key.startswith("sk_test_")


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
