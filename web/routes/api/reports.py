"""Summary report endpoints: annual, monthly, weekly metrics and selector options."""
from typing import Any, Awaitable, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import ORJSONResponse

from analytics.aggregator import MetricsAggregator
from analytics.exceptions import ValidationError
from web.config import REPORTS_RATE_LIMIT
from web.schemas import ErrorResponse, OptionsResponse, ReportResponse, RollupRefreshResponse
from web.services import report_service
from ._deps import limiter, get_logger, get_aggregator, get_analytics_store

router = APIRouter(
    prefix="/reports",
    tags=["reports"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
logger = get_logger(__name__)


async def _respond(label: str, pending: Awaitable[Any]):
    """
    Await a report computation and wrap it in the response envelope.

    Validation errors propagate to the app-level 400 handler; anything else
    becomes a 500 naming what failed.
    """
    try:
        data = await pending
    except ValidationError:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch {label}: {e}", exc_info=True)
        return ORJSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": f"Failed to fetch {label}",
                "details": str(e),
            }
        )
    return {"success": True, "data": data}


@router.get("/annual/{year}", response_model=ReportResponse)
@limiter.limit(REPORTS_RATE_LIMIT)
async def get_annual_report(
    request: Request,
    year: str,
    source: Optional[str] = Query(None, description="Force raw or rollup aggregation"),
    aggregator: MetricsAggregator = Depends(get_aggregator),
):
    """Metrics for a full calendar year."""
    return await _respond(
        "annual summary data",
        report_service.build_report(aggregator, year, source=source),
    )


@router.get("/monthly/{year}/{month}", response_model=ReportResponse)
@limiter.limit(REPORTS_RATE_LIMIT)
async def get_monthly_report(
    request: Request,
    year: str,
    month: str,
    source: Optional[str] = Query(None, description="Force raw or rollup aggregation"),
    aggregator: MetricsAggregator = Depends(get_aggregator),
):
    """Metrics for one month, e.g. /monthly/2024/March."""
    return await _respond(
        "monthly report data",
        report_service.build_report(aggregator, year, month, source=source),
    )


@router.get("/weekly/{year}/{month}/{week}", response_model=ReportResponse)
@limiter.limit(REPORTS_RATE_LIMIT)
async def get_weekly_report(
    request: Request,
    year: str,
    month: str,
    week: str,
    source: Optional[str] = Query(None, description="Force raw or rollup aggregation"),
    aggregator: MetricsAggregator = Depends(get_aggregator),
):
    """Metrics for one week-of-month (1-5)."""
    return await _respond(
        "weekly report data",
        report_service.build_report(aggregator, year, month, week, source=source),
    )


@router.get("/metrics", response_model=ReportResponse)
@limiter.limit(REPORTS_RATE_LIMIT)
async def get_period_metrics(
    request: Request,
    year: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    week: Optional[str] = Query(None),
    source: Optional[str] = Query(None, description="Force raw or rollup aggregation"),
    aggregator: MetricsAggregator = Depends(get_aggregator),
):
    """Metrics for any selector: year, year+month or year+month+week."""
    return await _respond(
        "report data",
        report_service.build_report(aggregator, year, month, week, source=source),
    )


# ─── Selector options ────────────────────────────────────────────────────────

@router.get("/years", response_model=OptionsResponse)
@limiter.limit(REPORTS_RATE_LIMIT)
async def get_available_years(request: Request, store=Depends(get_analytics_store)):
    """Years with data, newest first."""
    return await _respond("available years", report_service.list_years(store))


@router.get("/years/{year}/months", response_model=OptionsResponse)
@limiter.limit(REPORTS_RATE_LIMIT)
async def get_available_months(request: Request, year: str, store=Depends(get_analytics_store)):
    """Month names with data in a year, latest month first."""
    return await _respond("available months", report_service.list_months(store, year))


@router.get("/years/{year}/months/{month}/weeks", response_model=OptionsResponse)
@limiter.limit(REPORTS_RATE_LIMIT)
async def get_available_weeks(request: Request, year: str, month: str):
    """Week numbers that exist in the month, from calendar length alone."""
    return {"success": True, "data": report_service.list_weeks(year, month)}


@router.post("/rollups/{year}", response_model=RollupRefreshResponse)
@limiter.limit("5/minute")
async def refresh_rollups(request: Request, year: str, store=Depends(get_analytics_store)):
    """Rebuild the monthly fact tables of a year from raw invoices."""
    try:
        written = await report_service.refresh_rollups(store, year)
    except ValidationError:
        raise
    except Exception as e:
        logger.error(f"Rollup refresh failed for {year}: {e}", exc_info=True)
        return ORJSONResponse(
            status_code=500,
            content={"success": False, "error": "Failed to refresh rollups", "details": str(e)}
        )
    return {"success": True, "year": int(year), "months_written": written}
