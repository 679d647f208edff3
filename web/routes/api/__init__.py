"""
API routes split by domain.

Each sub-module defines its own APIRouter which is composed
into the top-level router exposed by this package.
"""
from fastapi import APIRouter

from .health import router as health_router
from .reports import router as reports_router
from .forecast import router as forecast_router

router = APIRouter(tags=["api"])

router.include_router(health_router)
router.include_router(reports_router)
router.include_router(forecast_router)
