"""Shared dependencies for API route modules."""
import logging
import time
from typing import Optional

from fastapi import Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from analytics.aggregator import MetricsAggregator
from analytics.exceptions import ValidationError
from analytics.forecast import CooldownTracker, ForecastOrchestrator
from analytics.llm_client import get_llm_client
from analytics.sources import RawInvoiceSource, RollupSource
from analytics.store import AnalyticsStore, get_store

# Shared limiter instance
limiter = Limiter(key_func=get_remote_address)

# Shared logger factory
def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

# Track startup time for uptime calculation
START_TIME = time.time()


# ─── Injectable collaborators (overridden in tests) ─────────────────────────

async def get_analytics_store() -> AnalyticsStore:
    return await get_store()


async def get_aggregator(store: AnalyticsStore = Depends(get_analytics_store)) -> MetricsAggregator:
    """Rollup source first so it wins for monthly/annual periods it covers."""
    return MetricsAggregator([RollupSource(store), RawInvoiceSource(store)])


_orchestrator: Optional[ForecastOrchestrator] = None


def get_orchestrator() -> ForecastOrchestrator:
    """Singleton orchestrator; its cooldown tracker outlives single requests."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ForecastOrchestrator(get_llm_client(), CooldownTracker())
    return _orchestrator


def get_client_key(request: Request) -> str:
    """Cooldown identity: X-Client-ID header, else remote address."""
    return request.headers.get("X-Client-ID") or get_remote_address(request)


__all__ = [
    "limiter",
    "get_logger",
    "START_TIME",
    "ValidationError",
    "get_analytics_store",
    "get_aggregator",
    "get_orchestrator",
    "get_client_key",
]
