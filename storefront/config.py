"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Largest number of writes the document store accepts in one atomic batch
MAX_SYNC_BATCH_SIZE = 500


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 10
    database_max_overflow: int = 5
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    run_migrations_on_startup: bool = False

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Storefront Admin API"
    api_version: str = "0.1.0"
    api_description: str = "Catalog, IAP product and purchase administration"

    # Admin authorization
    ADMIN_JWT_SECRET: str = ""  # generate with: openssl rand -hex 32
    admin_jwt_expire_hours: int = 24
    ADMIN_BOOTSTRAP_EMAILS: str = ""  # Comma-separated emails granted the admin role

    @property
    def admin_bootstrap_emails(self) -> list[str]:
        """Get normalized list of emails that bootstrap as admins."""
        emails = []
        for email in self.ADMIN_BOOTSTRAP_EMAILS.split(","):
            email = email.strip().lower()
            if email and email not in emails:
                emails.append(email)
        return emails

    # Google Play Developer API
    GOOGLE_PLAY_PACKAGE_NAME: str = "com.assetdoor.app"
    # Service account: raw JSON, base64 encoded JSON, or path to a JSON key file
    GOOGLE_PLAY_SERVICE_ACCOUNT: str = ""
    google_play_timeout_seconds: int = 30

    # IAP catalog sync
    sync_batch_size: int = MAX_SYNC_BATCH_SIZE
    sync_interval_seconds: int = 60
    preferred_currencies: str = "INR,USD,EUR"  # Display price lookup order

    @property
    def preferred_currency_list(self) -> list[str]:
        """Get preferred display currencies in lookup order."""
        return [c.strip().upper() for c in self.preferred_currencies.split(",") if c.strip()]

    @property
    def effective_sync_batch_size(self) -> int:
        """Sync batch size clamped to the store's batch limit."""
        return max(1, min(self.sync_batch_size, MAX_SYNC_BATCH_SIZE))

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "storefront-admin-api"
    environment: str = "production"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.sync_batch_size <= 0:
            errors.append(f"SYNC_BATCH_SIZE must be positive, got: {self.sync_batch_size}")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
