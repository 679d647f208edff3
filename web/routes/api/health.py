"""Health check, metrics, and DuckDB stats endpoints."""
import asyncio
import time

from fastapi import APIRouter, Depends, Request

from analytics.llm_client import get_llm_client
from analytics.observability import get_correlation_id, metrics, Timer
from web.config import VERSION
from web.schemas import HealthResponse, MetricsResponse
from ._deps import limiter, get_analytics_store, get_logger, START_TIME

router = APIRouter()
logger = get_logger(__name__)

# Health check stats cache (60 second TTL) with coroutine-safe lock
_stats_cache: dict = {"data": None, "expires_at": 0}
_stats_cache_lock = asyncio.Lock()
_STATS_CACHE_TTL = 60


@router.get("/health", response_model=HealthResponse)
@limiter.limit("60/minute")
async def health_check(request: Request, store=Depends(get_analytics_store)):
    """Health check endpoint for Docker/load balancer monitoring."""
    uptime_seconds = int(time.time() - START_TIME)

    now = time.time()
    async with _stats_cache_lock:
        if _stats_cache["data"] and now < _stats_cache["expires_at"]:
            store_stats = _stats_cache["data"]
            store_status = "connected"
            db_latency_ms = 0.0
        else:
            db_latency_ms = None
            try:
                with Timer("health_check_db") as timer:
                    store_stats = await store.get_stats()
                store_status = "connected"
                db_latency_ms = round(timer.elapsed_ms, 2)
                _stats_cache["data"] = store_stats
                _stats_cache["expires_at"] = now + _STATS_CACHE_TTL
            except Exception as e:
                logger.warning(f"Health check store stats failed: {e}")
                store_stats = None
                store_status = f"error: {e}"

    return {
        "status": "healthy" if store_stats else "degraded",
        "version": VERSION,
        "uptime_seconds": uptime_seconds,
        "correlation_id": get_correlation_id(),
        "duckdb": {
            "status": store_status,
            "latency_ms": db_latency_ms,
            **{k: v for k, v in (store_stats or {}).items() if k != "total_queries"}
        },
        "forecast_available": get_llm_client().is_available,
    }


@router.get("/duckdb/stats")
@limiter.limit("60/minute")
async def get_duckdb_stats(request: Request, store=Depends(get_analytics_store)):
    """Get DuckDB analytics store statistics."""
    try:
        stats = await store.get_stats()
        return {"status": "connected", **stats}
    except Exception as e:
        return {"status": "error", "error": str(e)}


@router.get("/metrics", response_model=MetricsResponse)
@limiter.limit("60/minute")
async def get_metrics_endpoint(request: Request):
    """Get application metrics."""
    return {
        "uptime_seconds": int(time.time() - START_TIME),
        "correlation_id": get_correlation_id(),
        **metrics.get_stats(),
    }
