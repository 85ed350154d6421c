"""
API routes split by domain.

Each sub-module defines its own APIRouter which is composed
into the top-level router exposed by this package.
"""
from fastapi import APIRouter

from .health import router as health_router
from .retention import router as retention_router
from .tiers import router as tiers_router
from .kpis import router as kpis_router
from .exports import router as exports_router

router = APIRouter(tags=["api"])

router.include_router(health_router)
router.include_router(retention_router)
router.include_router(tiers_router)
router.include_router(kpis_router)
router.include_router(exports_router)
