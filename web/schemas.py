"""
Pydantic request and response models for API endpoints.

Provides type-safe models with automatic validation and documentation.
"""
from typing import Optional, List, Dict, Any, Union
from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════════════════════
# COMMON MODELS
# ═══════════════════════════════════════════════════════════════════════════════

class ErrorResponse(BaseModel):
    """Error envelope shared by every endpoint."""
    success: bool = False
    error: str
    details: Optional[str] = None
    kind: Optional[str] = None


# ═══════════════════════════════════════════════════════════════════════════════
# HEALTH CHECK
# ═══════════════════════════════════════════════════════════════════════════════

class DateRange(BaseModel):
    min: Optional[str] = None
    max: Optional[str] = None


class StoreStats(BaseModel):
    """DuckDB statistics."""
    status: str
    latency_ms: Optional[float] = None
    invoices: Optional[int] = None
    invoice_items: Optional[int] = None
    customers: Optional[int] = None
    products: Optional[int] = None
    rollup_months: Optional[int] = None
    date_range: Optional[DateRange] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(description="Service status: healthy or degraded")
    version: str = Field(description="Application version")
    uptime_seconds: int = Field(description="Uptime in seconds")
    correlation_id: Optional[str] = Field(None, description="Request correlation ID")
    duckdb: StoreStats
    forecast_available: bool = Field(description="Whether the forecast model is configured")


class TimingStats(BaseModel):
    """Timing statistics for an operation."""
    count: int
    avg_ms: float
    min_ms: float
    max_ms: float
    p50_ms: Optional[float] = None


class MetricsResponse(BaseModel):
    """Application metrics response."""
    uptime_seconds: int
    correlation_id: Optional[str] = None
    requests: Dict[str, int] = Field(default_factory=dict)
    errors: Dict[str, int] = Field(default_factory=dict)
    timing: Dict[str, TimingStats] = Field(default_factory=dict)


# ═══════════════════════════════════════════════════════════════════════════════
# REPORTS
# ═══════════════════════════════════════════════════════════════════════════════

class ReportResponse(BaseModel):
    """Aggregated metrics for one period."""
    success: bool = True
    data: Dict[str, Any]


class OptionsResponse(BaseModel):
    """Selector options (years, month names or week numbers)."""
    success: bool = True
    data: List[str]


class RollupRefreshResponse(BaseModel):
    success: bool = True
    year: int
    months_written: int = Field(description="Months with invoices that were rolled up")


# ═══════════════════════════════════════════════════════════════════════════════
# FORECAST
# ═══════════════════════════════════════════════════════════════════════════════

# Raw values are validated by analytics.validators so bad input maps to 400

class ForecastRequest(BaseModel):
    """Sales forecast request."""
    period: Union[int, str, None] = Field(None, description="Months to forecast: 1, 3 or 6")
    historicalMonths: Union[int, str, None] = Field(
        None, description="History window in months (default 36)"
    )


class CustomerBulkForecastRequest(BaseModel):
    """Customer bulk-order forecast request."""
    period: Union[int, str, None] = Field(None, description="Months to forecast: 1, 3 or 6")
    historicalMonths: Union[int, str, None] = Field(
        None, description="History window in months (default 36)"
    )


class HistoryResponse(BaseModel):
    """Monthly history series, oldest month first."""
    success: bool = True
    data: List[Dict[str, Any]]
