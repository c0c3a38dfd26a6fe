# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for the
attendance notification service. Settings are loaded from environment
variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from src.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.rate_limit.max_per_minute)
    10
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Database configuration for templates and notification history.

    Attributes:
        url: Async SQLAlchemy connection URL.
        pool_size: Connection pool size (ignored for SQLite).
        max_overflow: Maximum overflow connections (ignored for SQLite).
        echo: Log emitted SQL statements.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        extra="ignore",
    )

    url: str = "sqlite+aiosqlite:///./academy_notifications.db"
    pool_size: int = 10
    max_overflow: int = 20
    echo: bool = False

    @property
    def is_sqlite(self) -> bool:
        """Check whether the configured backend is SQLite."""
        return self.url.startswith("sqlite")


class RateLimitSettings(BaseSettings):
    """Outbound message rate limiting.

    Attributes:
        max_per_minute: Successful sends allowed in any 60 second window.
        max_per_hour: Successful sends allowed in any 60 minute window.
        max_per_day: Successful sends allowed in any 24 hour window.
        cooldown_seconds: Minimum gap after the last successful send.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_RATE_",
        extra="ignore",
    )

    max_per_minute: int = Field(default=10, gt=0)
    max_per_hour: int = Field(default=100, gt=0)
    max_per_day: int = Field(default=500, gt=0)
    cooldown_seconds: float = Field(default=2.0, ge=0.0)

    @model_validator(mode="after")
    def validate_window_order(self) -> Self:
        """Ensure wider windows allow at least as many sends as narrower ones.

        Raises:
            ValueError: If the hourly cap is below the per-minute cap or the
                daily cap is below the hourly cap.
        """
        if self.max_per_hour < self.max_per_minute:
            raise ValueError("max_per_hour must be >= max_per_minute")
        if self.max_per_day < self.max_per_hour:
            raise ValueError("max_per_day must be >= max_per_hour")
        return self


class RetrySettings(BaseSettings):
    """Retry policy for transient delivery failures.

    Attributes:
        max_attempts: Attempts per operation, including the first one.
        base_delay: Delay before the second attempt, in seconds.
        max_delay: Upper bound for any single backoff delay, in seconds.
        backoff_multiplier: Growth factor between consecutive delays.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_RETRY_",
        extra="ignore",
    )

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0)
    max_delay: float = Field(default=30.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class HealthSettings(BaseSettings):
    """Thresholds for the delivery health report.

    Attributes:
        critical_error_rate: Error rate (percent) above which status is CRITICAL.
        warning_error_rate: Error rate (percent) above which status is WARNING.
        min_retry_success_rate: Retry success rate (percent) below which
            status is WARNING.
        critical_category_count: Errors of one category in 24h that make
            the category critical.
        min_operations: Operations needed before error rates are trusted.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_HEALTH_",
        extra="ignore",
    )

    critical_error_rate: float = 50.0
    warning_error_rate: float = 20.0
    min_retry_success_rate: float = 50.0
    critical_category_count: int = 10
    min_operations: int = 5


class TemplateSettings(BaseSettings):
    """Message template configuration.

    Attributes:
        cache_ttl_seconds: Freshness window for cached template reads.
        academy_name: Value of the {academyName} variable.
        contact_phone: Value of the {contactPhone} variable.
        max_message_length: Longest message the transport accepts.
    """

    model_config = SettingsConfigDict(
        env_prefix="TEMPLATE_",
        extra="ignore",
    )

    cache_ttl_seconds: int = 300
    academy_name: str = "Academia Musical El Sistema"
    contact_phone: str = "+58 (XXX) XXX-XXXX"
    max_message_length: int = 4096


class PhoneSettings(BaseSettings):
    """Guardian phone number rules.

    Attributes:
        country_code: International dialing code without the plus sign.
    """

    model_config = SettingsConfigDict(
        env_prefix="PHONE_",
        extra="ignore",
    )

    country_code: str = "58"


class NotificationSettings(BaseSettings):
    """Batch behaviour of the notification service.

    Attributes:
        timezone: IANA timezone of the academy, used for the sending window
            and for the current date when a batch names none.
        enforce_sending_window: Block real sends between 23:00 and 06:00.
        bulk_phone_threshold: Phone count above which a batch is flagged
            as bulk.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        extra="ignore",
    )

    timezone: str = "America/Caracas"
    enforce_sending_window: bool = True
    bulk_phone_threshold: int = 50


class WhatsAppSettings(BaseSettings):
    """WhatsApp gateway configuration.

    Attributes:
        api_url: Base URL of the messaging gateway.
        api_token: Bearer token for the gateway.
        timeout: Request timeout in seconds.
        enabled: Whether real messages are sent. When disabled the
            service runs every batch as a dry run.
    """

    model_config = SettingsConfigDict(
        env_prefix="WHATSAPP_",
        extra="ignore",
    )

    api_url: str = "http://localhost:3002"
    api_token: SecretStr = SecretStr("")
    timeout: float = 30.0
    enabled: bool = False


class CORSSettings(BaseSettings):
    """CORS configuration for API.

    Attributes:
        origins: Comma-separated list of allowed origins.
        allow_credentials: Whether to allow credentials.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed HTTP headers.
    """

    model_config = SettingsConfigDict(
        env_prefix="CORS_",
        extra="ignore",
    )

    origins: str = "http://localhost:3000,http://localhost:5173"
    allow_credentials: bool = True
    allow_methods: list[str] = ["*"]
    allow_headers: list[str] = ["*"]

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into a list."""
        return [origin.strip() for origin in self.origins.split(",") if origin.strip()]


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        database: Template and history database settings.
        rate_limit: Outbound rate limiting.
        retry: Retry policy for deliveries.
        health: Health report thresholds.
        templates: Template engine settings.
        phone: Phone validation settings.
        notifications: Batch behaviour settings.
        whatsapp: WhatsApp gateway settings.
        cors: CORS settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "DEBUG"

    # Subsettings - loaded with their own env prefixes
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    health: HealthSettings = Field(default_factory=HealthSettings)
    templates: TemplateSettings = Field(default_factory=TemplateSettings)
    phone: PhoneSettings = Field(default_factory=PhoneSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    whatsapp: WhatsAppSettings = Field(default_factory=WhatsAppSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with live delivery but
                no gateway token.
        """
        if self.environment == "production" and self.whatsapp.enabled:
            if not self.whatsapp.api_token.get_secret_value():
                raise ValueError(
                    "WhatsApp gateway token must be set when delivery is enabled "
                    "in production. Set WHATSAPP_API_TOKEN environment variable."
                )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
