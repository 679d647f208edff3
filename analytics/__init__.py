"""
Core library for the sales & customer analytics service.

This package contains the reporting and forecasting logic used by web/:
- periods: Period resolution for annual, monthly and weekly reports
- attribution: Per-invoice revenue attribution
- aggregator / sources: Metrics aggregation over raw rows or monthly rollups
- bulk_average: Bulk-order average sanity filter
- forecast: Forecast orchestration with cooldown and failure classification
- config: Centralized configuration
"""

# Import in dependency order
from analytics.exceptions import (
    ValidationError,
    InvalidPeriod,
    InvalidMonth,
    InvalidWeek,
    QueryTimeoutError,
    ForecastError,
    ForecastUnavailable,
    RateLimited,
    QuotaExceeded,
    InvalidForecastResponse,
    ForecastUnknownError,
    CooldownActive,
)

from analytics.periods import (
    resolve_period,
    available_weeks,
    days_in_month,
)

from analytics.attribution import attribute, attribute_invoices
from analytics.bulk_average import sanitize_bulk_average
from analytics.aggregator import aggregate_invoices, combine_rollups, MetricsAggregator
from analytics.forecast import ForecastOrchestrator, CooldownTracker, ForecastState

from analytics.config import config

__all__ = [
    # Exceptions
    "ValidationError",
    "InvalidPeriod",
    "InvalidMonth",
    "InvalidWeek",
    "QueryTimeoutError",
    "ForecastError",
    "ForecastUnavailable",
    "RateLimited",
    "QuotaExceeded",
    "InvalidForecastResponse",
    "ForecastUnknownError",
    "CooldownActive",
    # Periods
    "resolve_period",
    "available_weeks",
    "days_in_month",
    # Aggregation
    "attribute",
    "attribute_invoices",
    "sanitize_bulk_average",
    "aggregate_invoices",
    "combine_rollups",
    "MetricsAggregator",
    # Forecast
    "ForecastOrchestrator",
    "CooldownTracker",
    "ForecastState",
    # Config
    "config",
]
