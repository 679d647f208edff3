"""
Centralized configuration for the sales analytics service.

This module provides a single source of truth for all configuration values.
Configuration is loaded from environment variables with sensible defaults.

Usage:
    from analytics.config import config

    threshold = config.reports.bulk_threshold
    cooldown = config.forecast.cooldown_seconds
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class DatabaseConfig:
    """DuckDB analytics store configuration."""

    path: Path = field(
        default_factory=lambda: Path(
            os.getenv("ANALYTICS_DB_PATH", str(BASE_DIR / "data" / "analytics.duckdb"))
        )
    )
    query_timeout: float = field(
        default_factory=lambda: float(os.getenv("QUERY_TIMEOUT_SECONDS", "30"))
    )


@dataclass(frozen=True)
class ReportConfig:
    """Sales report configuration."""

    # Invoices at or above this amount count as bulk orders
    bulk_threshold: float = field(
        default_factory=lambda: float(os.getenv("BULK_ORDER_THRESHOLD", "10000"))
    )
    top_n: int = 10


@dataclass(frozen=True)
class ForecastConfig:
    """AI forecast configuration."""

    anthropic_api_key: str = field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""))
    model: str = field(
        default_factory=lambda: os.getenv("FORECAST_MODEL", "claude-sonnet-4-20250514")
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv("FORECAST_TIMEOUT_SECONDS", "60"))
    )
    cooldown_seconds: int = field(
        default_factory=lambda: int(os.getenv("FORECAST_COOLDOWN_SECONDS", "10"))
    )
    max_tokens: int = 2000
    default_historical_months: int = 36
    max_historical_months: int = 60
    allowed_periods: tuple = (1, 3, 6)


@dataclass(frozen=True)
class WebConfig:
    """Web API configuration."""

    host: str = field(default_factory=lambda: os.getenv("WEB_HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: int(os.getenv("WEB_PORT", "8080")))

    # Rate limiting
    reports_rate_limit: str = "30/minute"
    forecast_rate_limit: str = "5/minute"


@dataclass(frozen=True)
class LoggingConfig:
    """Logging configuration."""

    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = field(default_factory=lambda: os.getenv("LOG_FORMAT", "text"))

    @property
    def json_format(self) -> bool:
        return self.format == "json"


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""

    version: str = "1.0.0"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    reports: ReportConfig = field(default_factory=ReportConfig)
    forecast: ForecastConfig = field(default_factory=ForecastConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Global config instance
config = AppConfig()


VERSION = config.version


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def validate_config(require_forecast: bool = False, app_config: AppConfig = None) -> None:
    """
    Validate that all required configuration is present.

    Call this on application startup to fail fast with clear error messages
    instead of cryptic runtime failures.

    Args:
        require_forecast: If True, the Anthropic API key must be set
        app_config: Configuration to check (defaults to the global instance)

    Raises:
        ConfigurationError: If required configuration is missing
    """
    cfg = app_config or config
    errors = []

    if cfg.reports.bulk_threshold < 0:
        errors.append("BULK_ORDER_THRESHOLD must not be negative")

    if cfg.forecast.cooldown_seconds < 0:
        errors.append("FORECAST_COOLDOWN_SECONDS must not be negative")

    if cfg.forecast.request_timeout <= 0:
        errors.append("FORECAST_TIMEOUT_SECONDS must be positive")

    if cfg.database.query_timeout <= 0:
        errors.append("QUERY_TIMEOUT_SECONDS must be positive")

    if require_forecast and not cfg.forecast.anthropic_api_key:
        errors.append("ANTHROPIC_API_KEY is required but not set")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ConfigurationError(error_msg)
