"""
FastAPI web application for sales & customer analytics.
"""
from fastapi import FastAPI, Request
from fastapi.responses import ORJSONResponse, JSONResponse
from starlette.middleware.gzip import GZipMiddleware

from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from analytics.config import config, validate_config, ConfigurationError
from analytics.exceptions import CooldownActive, QueryTimeoutError, ValidationError
from analytics.llm_client import get_llm_client
from analytics.observability import setup_logging, get_logger, metrics
from analytics.store import get_store, close_store
from web.config import VERSION, WEB_HOST, WEB_PORT
from web.routes.api import router as api_router
from web.routes.api._deps import limiter
from web.middleware import RequestLoggingMiddleware, RequestTimeoutMiddleware

# Configure structured logging
# Use JSON format in production (LOG_FORMAT=json), human-readable otherwise
setup_logging(level=config.logging.level, json_format=config.logging.json_format)
logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Sales Analytics",
    description="Sales & customer analytics reports and AI forecasts",
    version=VERSION,
    default_response_class=ORJSONResponse
)

# Add rate limiter to app state
app.state.limiter = limiter


# Custom rate limit exceeded handler
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)}")
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": "Rate limit exceeded",
            "details": "Too many requests. Please try again later.",
            "retry_after": exc.detail
        }
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    metrics.record_error(exc.kind)
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": exc.message,
            "kind": exc.kind,
            "details": str(exc),
        }
    )


@app.exception_handler(CooldownActive)
async def cooldown_handler(request: Request, exc: CooldownActive):
    return JSONResponse(
        status_code=429,
        content={
            "success": False,
            "error": str(exc),
            "kind": exc.kind,
            "remainingSeconds": exc.remaining_whole_seconds,
        },
        headers={"Retry-After": str(exc.remaining_whole_seconds)},
    )


@app.exception_handler(QueryTimeoutError)
async def query_timeout_handler(request: Request, exc: QueryTimeoutError):
    logger.error(f"Query timeout on {request.url.path}: {exc.query}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Failed to fetch data",
            "details": f"Query timed out after {exc.timeout}s",
        }
    )


# Add request logging middleware (adds correlation IDs and timing)
app.add_middleware(RequestLoggingMiddleware)

# Add request timeout middleware (prevents long-running requests)
# Must be AFTER logging so correlation_id is set when timeout fires
app.add_middleware(RequestTimeoutMiddleware)

# Add Gzip compression (min 500 bytes to compress)
app.add_middleware(GZipMiddleware, minimum_size=500)

# Include routers
app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    logger.info("Sales analytics starting...")

    # Validate configuration early - fail fast with clear errors
    try:
        validate_config(require_forecast=False)
        logger.info("Configuration validated")
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        raise SystemExit(1)

    if not get_llm_client().is_available:
        logger.warning("ANTHROPIC_API_KEY not set - forecasts will report model_unavailable")

    logger.info("Initializing DuckDB analytics store...")
    try:
        store = await get_store()
        stats = await store.get_stats()
        logger.info(
            f"DuckDB ready: {stats['invoices']} invoices, "
            f"{stats['products']} products, "
            f"{stats['rollup_months']} rollup months"
        )
    except Exception as e:
        logger.error(f"DuckDB initialization failed: {e}", exc_info=True)
        raise  # Fail fast - DuckDB is required

    logger.info("Sales analytics ready")


@app.on_event("shutdown")
async def shutdown_event():
    try:
        await close_store()
        logger.info("DuckDB closed")
    except Exception as e:
        logger.warning(f"Error closing DuckDB: {e}")
    logger.info("Sales analytics stopped")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web.main:app", host=WEB_HOST, port=WEB_PORT)
