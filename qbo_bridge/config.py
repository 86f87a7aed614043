"""
Application Configuration

Uses pydantic-settings for environment variable loading with validation.
All configuration is centralized here for easy management.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

QBO_SANDBOX_BASE_URL = "https://sandbox-quickbooks.api.intuit.com"
QBO_PRODUCTION_BASE_URL = "https://quickbooks.api.intuit.com"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables can be set directly or via .env file.
    Variable names match the field names case-insensitively
    (e.g. QBO_CLIENT_ID -> qbo_client_id).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    debug: bool = Field(
        default=False,
        description="Enable debug mode (echoes SQL)"
    )

    # ==========================================================================
    # Server
    # ==========================================================================
    host: str = Field(
        default="0.0.0.0",
        description="Server host"
    )

    port: int = Field(
        default=3000,
        description="Server port"
    )

    # ==========================================================================
    # Database (PostgreSQL)
    # ==========================================================================
    database_url: str = Field(
        ...,
        description="PostgreSQL connection URL"
    )

    database_pool_size: int = Field(
        default=5,
        description="Database connection pool size"
    )

    database_max_overflow: int = Field(
        default=10,
        description="Max overflow connections beyond pool size"
    )

    # ==========================================================================
    # QuickBooks Online OAuth
    # ==========================================================================
    qbo_client_id: str = Field(
        ...,
        description="Intuit OAuth client ID"
    )

    qbo_client_secret: SecretStr = Field(
        ...,
        description="Intuit OAuth client secret"
    )

    qbo_redirect_uri: str = Field(
        ...,
        description="OAuth redirect URI registered with Intuit"
    )

    qbo_env: Literal["sandbox", "production"] = Field(
        default="sandbox",
        description="Which QuickBooks API base URL company lookups use"
    )

    qbo_webhook_verifier_token: SecretStr = Field(
        ...,
        description="Shared verifier token used to sign webhook payloads"
    )

    qbo_integration_id: str | None = Field(
        default=None,
        description="Fixed integration id (falls back to the OAuth state parameter when unset)"
    )

    # ==========================================================================
    # Token refresher
    # ==========================================================================
    refresh_skew_minutes: int = Field(
        default=5,
        gt=0,
        description="Refresh tokens expiring within this many minutes"
    )

    refresh_batch_limit: int = Field(
        default=50,
        gt=0,
        description="Maximum number of tokens refreshed per tick"
    )

    refresh_interval_minutes: int = Field(
        default=10,
        gt=0,
        description="Minutes between refresher ticks"
    )

    refresh_request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for each request to the Intuit token endpoint"
    )

    @field_validator("database_url")
    @classmethod
    def use_async_driver(cls, value: str) -> str:
        """Point plain postgres URLs at the asyncpg driver."""
        for prefix in ("postgres://", "postgresql://"):
            if value.startswith(prefix):
                return "postgresql+asyncpg://" + value[len(prefix):]
        return value

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field
    @property
    def qbo_api_base_url(self) -> str:
        """QuickBooks API base URL for the selected environment."""
        if self.qbo_env == "production":
            return QBO_PRODUCTION_BASE_URL
        return QBO_SANDBOX_BASE_URL

    @computed_field
    @property
    def is_production(self) -> bool:
        """Check if talking to the production QuickBooks environment."""
        return self.qbo_env == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
