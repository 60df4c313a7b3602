"""
Grocery Storefront Analytics
Centralized Configuration Management

This module provides configuration management using Pydantic settings with
environment variable support, validation, and type safety.
"""

from functools import lru_cache
from typing import Optional, List
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalyticsSettings(BaseSettings):
    """Order and customer aggregation defaults"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    timezone: str = Field(default="Asia/Kolkata", description="Timezone used to derive local order dates")
    default_range_days: int = Field(default=7, ge=1, description="Default analytics window in days")
    top_products_limit: int = Field(default=5, ge=1, description="Entries in the top products ranking")
    top_cities_limit: int = Field(default=6, ge=1, description="Entries in the city revenue ranking")

    # Bucket labels for missing values
    unknown_city: str = Field(default="Unknown City", description="City bucket for orders without a city")
    other_category: str = Field(default="Other", description="Category bucket for uncategorised items")
    default_inventory_category: str = Field(default="vegetables", description="Inventory category for uncategorised items")
    unknown_product: str = Field(default="Unknown Product", description="Label for items without a title")
    unknown_customer: str = Field(default="Unknown User", description="Label for orders without a customer name")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Reject timezone names the tz database does not know"""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {v}") from e
        return v


class TrackingSettings(BaseSettings):
    """User activity tracking limits"""

    model_config = SettingsConfigDict(env_prefix="TRACKING_")

    max_order_history: int = Field(default=50, ge=1, description="Orders kept in a user's history")
    max_view_history: int = Field(default=100, ge=1, description="Product interactions kept")
    max_search_history: int = Field(default=30, ge=1, description="Search queries kept")
    max_cart_history: int = Field(default=50, ge=1, description="Cart actions kept")
    max_journey_length: int = Field(default=50, ge=1, description="Page visits kept in the user journey")


class ExportSettings(BaseSettings):
    """Report export configuration"""

    model_config = SettingsConfigDict(env_prefix="EXPORT_")

    output_path: str = Field(default="./data/exports", description="Directory for exported reports")
    currency_symbol: str = Field(default="₹", description="Currency symbol used in CSV exports")


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="grocery-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    exports: ExportSettings = Field(default_factory=ExportSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


# Convenience function for accessing settings
settings = get_settings()
