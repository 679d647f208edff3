"""
HTTP middleware for the analytics API.

RequestLoggingMiddleware tags each request with a correlation ID, logs it and
records per-route counts and timings. RequestTimeoutMiddleware caps how long
a report or forecast request may run.
"""
import asyncio
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from analytics.config import config
from analytics.observability import (
    get_logger,
    generate_correlation_id,
    set_correlation_id,
    get_correlation_id,
    metrics,
)

logger = get_logger(__name__)

QUIET_PATHS = {"/api/health", "/api/metrics", "/", "/docs", "/openapi.json"}

# Report queries get a margin over the store's own query timeout
REPORT_TIMEOUT = config.database.query_timeout + 5.0
FORECAST_TIMEOUT = config.forecast.request_timeout + config.database.query_timeout
# One rebuild aggregates twelve months
ROLLUP_TIMEOUT = config.database.query_timeout * 12

FORECAST_PATHS = {
    "/api/analytics/forecast",
    "/api/analytics/customer-bulk-forecast",
}
ROLLUP_PREFIX = "/api/reports/rollups/"


def request_timeout_for(path: str) -> float:
    """Time budget in seconds for one request to path."""
    if path in FORECAST_PATHS:
        return FORECAST_TIMEOUT
    if path.startswith(ROLLUP_PREFIX):
        return ROLLUP_TIMEOUT
    return REPORT_TIMEOUT


def route_label(request: Request) -> str:
    """
    Metrics key for a request, e.g. "GET /api/reports/monthly/{year}/{month}".

    Uses the matched route template so every period shares one counter;
    unmatched requests fall back to the raw path.
    """
    route = request.scope.get("route")
    path = getattr(route, "path", None) or request.url.path
    return f"{request.method} {path}"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Correlation IDs, request logs and per-route metrics."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Request-ID") or generate_correlation_id()
        set_correlation_id(correlation_id)

        path = request.url.path
        quiet = path in QUIET_PATHS
        request_info = {
            "method": request.method,
            "path": path,
            "client": request.headers.get("X-Client-ID")
            or (request.client.host if request.client else "unknown"),
        }
        if not quiet:
            logger.debug(f"{request.method} {path}", extra=request_info)

        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Unhandled error on {request.method} {path}: {e}",
                extra={**request_info, "duration_ms": round((time.perf_counter() - start) * 1000, 2)},
                exc_info=True,
            )
            metrics.record_error(type(e).__name__)
            raise
        duration_ms = (time.perf_counter() - start) * 1000

        response.headers["X-Request-ID"] = correlation_id

        label = route_label(request)
        metrics.record_request(label)
        metrics.record_timing(label, duration_ms)
        if response.status_code >= 400:
            metrics.record_error(f"HTTP_{response.status_code}")

        if not quiet:
            log = logger.info if response.status_code < 400 else logger.warning
            log(
                f"{label} -> {response.status_code}",
                extra={
                    **request_info,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                }
            )
        return response


class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    """Answers 504 when a request outlives its time budget."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        timeout = request_timeout_for(path)
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Request timed out after {timeout}s: {request.method} {path}",
                extra={"method": request.method, "path": path, "timeout": timeout}
            )
            metrics.record_error("REQUEST_TIMEOUT")
            return JSONResponse(
                status_code=504,
                content={
                    "success": False,
                    "error": "Request timed out",
                    "details": f"Request exceeded {timeout}s (correlation id {get_correlation_id()})",
                    "kind": "timeout",
                }
            )
