"""
Report and forecast service.

Glue between the HTTP routes and the analytics core: resolves selectors,
picks the metrics source, loads history and runs forecasts. Every function
takes its collaborators as arguments so routes can inject them.
"""
from typing import Any, Dict, List, Optional

from analytics.aggregator import MetricsAggregator
from analytics.config import config
from analytics.exceptions import ValidationError
from analytics.forecast import ForecastAttempt, ForecastOrchestrator
from analytics.models import ForecastMetric, HistoricalMonth, MetricsSourceKind
from analytics.observability import get_logger, timed
from analytics.periods import available_weeks, resolve_period
from analytics.validators import (
    validate_forecast_period,
    validate_historical_months,
    validate_year,
)

logger = get_logger(__name__)


def parse_source(value: Optional[str]) -> Optional[MetricsSourceKind]:
    """
    Parse the optional ?source= override.

    Raises:
        ValidationError: If value is not raw or rollup
    """
    if value is None or value == "":
        return None
    try:
        return MetricsSourceKind(value.lower())
    except ValueError:
        raise ValidationError(
            "source",
            f"Must be one of: {', '.join(kind.value for kind in MetricsSourceKind)}",
            value
        )


async def build_report(
    aggregator: MetricsAggregator,
    year: Any,
    month: Optional[str] = None,
    week: Any = None,
    source: Optional[str] = None,
) -> Dict[str, Any]:
    """Resolve the selector and aggregate it into the report payload."""
    period = resolve_period(year, month, week)
    prefer = parse_source(source)
    result = await aggregator.aggregate(period, prefer)
    return result.to_dict()


# ─── Selector options ────────────────────────────────────────────────────────

async def list_years(store) -> List[str]:
    return await store.get_available_years()


async def list_months(store, year: Any) -> List[str]:
    return await store.get_available_months(validate_year(year))


def list_weeks(year: Any, month: str) -> List[str]:
    """Week numbers as strings, matching the selector dropdown values."""
    return [str(week) for week in available_weeks(year, month)]


@timed("refresh_rollups", warn_threshold_ms=10000)
async def refresh_rollups(store, year: Any) -> int:
    year_num = validate_year(year)
    return await store.refresh_rollups(year_num, config.reports.bulk_threshold)


# ─── History & forecasts ─────────────────────────────────────────────────────

async def load_history(store, months: Any = None) -> List[HistoricalMonth]:
    """
    Trailing monthly history ending at the latest month with invoices.

    Raises:
        ValidationError: If months is outside the allowed window
    """
    if months is None or months == "":
        months = config.forecast.default_historical_months
    months = validate_historical_months(
        months, max_value=config.forecast.max_historical_months, field="months"
    )
    return await store.get_monthly_history(months, config.reports.bulk_threshold)


async def run_forecast(
    orchestrator: ForecastOrchestrator,
    store,
    period: Any,
    historical_months: Any = None,
    metric: ForecastMetric = ForecastMetric.REVENUE,
    client_key: str = "default",
) -> ForecastAttempt:
    """
    Load history and run one forecast.

    Raises:
        ValidationError: Bad period or history length
        CooldownActive: The client is still cooling down
    """
    if historical_months is None or historical_months == "":
        historical_months = config.forecast.default_historical_months
    months = validate_historical_months(
        historical_months, max_value=config.forecast.max_historical_months
    )

    # Validate and check cooldown before touching the store
    period = validate_forecast_period(period, config.forecast.allowed_periods)
    orchestrator.cooldown.check(client_key)
    history = await store.get_monthly_history(months, config.reports.bulk_threshold)

    attempt = await orchestrator.run(period, history, metric, client_key)
    logger.info(
        f"Forecast {attempt.state.value}",
        extra={"metric": metric.value, "client": client_key, "kind": attempt.kind}
    )
    return attempt
