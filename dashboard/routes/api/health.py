"""Health check and metrics endpoint."""
import time

from fastapi import APIRouter, Request

from analytics.observability import get_correlation_id, metrics, Timer
from dashboard.config import VERSION
from dashboard.schemas import HealthResponse
from ._deps import limiter, report_service, get_logger, START_TIME

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health", response_model=HealthResponse)
@limiter.limit("60/minute")
async def health_check(request: Request):
    """Health check endpoint for Docker/load balancer monitoring."""
    uptime_seconds = int(time.time() - START_TIME)

    db_latency_ms = None
    try:
        with Timer("health_check_db") as timer:
            store_stats = await report_service.store_stats()
        store_status = "connected"
        db_latency_ms = round(timer.elapsed_ms, 2)
    except Exception as e:
        logger.warning(f"Health check store query failed: {e}")
        store_stats = None
        store_status = f"error: {e}"

    return {
        "status": "healthy" if store_stats is not None else "degraded",
        "version": VERSION,
        "uptime_seconds": uptime_seconds,
        "correlation_id": get_correlation_id(),
        "store": {
            "status": store_status,
            "latency_ms": db_latency_ms,
            **(store_stats or {}),
        },
        "metrics": metrics.get_stats(),
    }
