"""Historical series and AI forecast endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import ORJSONResponse

from analytics.exceptions import CooldownActive, ValidationError
from analytics.forecast import ForecastOrchestrator
from analytics.models import ForecastMetric
from web.config import FORECAST_RATE_LIMIT, REPORTS_RATE_LIMIT
from web.schemas import (
    CustomerBulkForecastRequest, ErrorResponse, ForecastRequest, HistoryResponse,
)
from web.services import report_service
from ._deps import (
    limiter, get_logger,
    get_analytics_store, get_orchestrator, get_client_key,
)

router = APIRouter(
    prefix="/analytics",
    tags=["forecast"],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
logger = get_logger(__name__)


async def _history(store, months: Optional[str], label: str):
    try:
        history = await report_service.load_history(store, months)
    except ValidationError:
        raise
    except Exception as e:
        logger.error(f"Failed to fetch {label}: {e}", exc_info=True)
        return ORJSONResponse(
            status_code=500,
            content={"success": False, "error": f"Failed to fetch {label}", "details": str(e)}
        )
    return {"success": True, "data": [month.to_dict() for month in history]}


@router.get("/historical-sales", response_model=HistoryResponse)
@limiter.limit(REPORTS_RATE_LIMIT)
async def get_historical_sales(
    request: Request,
    months: Optional[str] = Query(None, description="Trailing months (1-60, default 36)"),
    store=Depends(get_analytics_store),
):
    """Monthly revenue, orders and units for the trailing window."""
    return await _history(store, months, "historical sales data")


@router.get("/historical-customer-data", response_model=HistoryResponse)
@limiter.limit(REPORTS_RATE_LIMIT)
async def get_historical_customer_data(
    request: Request,
    months: Optional[str] = Query(None, description="Trailing months (1-60, default 36)"),
    store=Depends(get_analytics_store),
):
    """Monthly bulk-order count and amount for the trailing window."""
    return await _history(store, months, "historical customer data")


async def _forecast(orchestrator, store, body, metric: ForecastMetric, client_key: str):
    try:
        attempt = await report_service.run_forecast(
            orchestrator, store, body.period, body.historicalMonths, metric, client_key,
        )
    except (ValidationError, CooldownActive):
        raise
    except Exception as e:
        logger.error(f"Forecast failed before reaching the model: {e}", exc_info=True)
        return ORJSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Failed to load historical data",
                "details": str(e),
                "kind": "unknown",
                "suggestions": [],
            }
        )

    if not attempt.succeeded:
        return ORJSONResponse(status_code=500, content=attempt.to_dict())
    return attempt.to_dict()


@router.post("/forecast")
@limiter.limit(FORECAST_RATE_LIMIT)
async def create_sales_forecast(
    request: Request,
    body: ForecastRequest,
    orchestrator: ForecastOrchestrator = Depends(get_orchestrator),
    store=Depends(get_analytics_store),
    client_key: str = Depends(get_client_key),
):
    """Forecast monthly sales revenue for the next 1, 3 or 6 months."""
    return await _forecast(orchestrator, store, body, ForecastMetric.REVENUE, client_key)


@router.post("/customer-bulk-forecast")
@limiter.limit(FORECAST_RATE_LIMIT)
async def create_customer_bulk_forecast(
    request: Request,
    body: CustomerBulkForecastRequest,
    orchestrator: ForecastOrchestrator = Depends(get_orchestrator),
    store=Depends(get_analytics_store),
    client_key: str = Depends(get_client_key),
):
    """Forecast monthly bulk-order amount for the next 1, 3 or 6 months."""
    return await _forecast(orchestrator, store, body, ForecastMetric.BULK_AMOUNT, client_key)
