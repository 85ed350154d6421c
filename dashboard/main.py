"""
FastAPI web application for the member analytics dashboard.
"""
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.gzip import GZipMiddleware

from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from analytics.config import validate_config, ConfigurationError
from analytics.exceptions import (
    AuthorizationError,
    BatchFetchError,
    StoreConnectionError,
    StoreError,
    ValidationError,
)
from analytics.observability import setup_logging, get_logger, get_correlation_id
from analytics.store import close_source
from dashboard.config import VERSION, WEB_HOST, WEB_PORT
from dashboard.middleware import RequestLoggingMiddleware, RequestTimeoutMiddleware
from dashboard.routes import api
from dashboard.routes.api._deps import limiter
from dashboard.schemas import ErrorEnvelope
from dashboard.services import report_service

# LOG_FORMAT=json in production, human-readable otherwise
setup_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Member Analytics Dashboard",
    description="Retention, churn, tier movement and KPI reports",
    version=VERSION,
    default_response_class=ORJSONResponse
)

app.state.limiter = limiter


def _failure(status_code: int, error: str, field: Optional[str] = None, **extra) -> ORJSONResponse:
    body = ErrorEnvelope(error=error, field=field, correlation_id=get_correlation_id())
    return ORJSONResponse(status_code=status_code, content={**body.model_dump(), **extra})


# ═══════════════════════════════════════════════════════════════════════════════
# EXCEPTION HANDLERS
# ═══════════════════════════════════════════════════════════════════════════════

@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)}")
    return _failure(429, "Too many requests. Please try again later.", retry_after=exc.detail)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _failure(400, str(exc), field=exc.field)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = str(first.get("loc", ["", ""])[-1]) if first else None
    return _failure(400, f"{field}: {first.get('msg', 'Invalid request')}", field=field)


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    return _failure(403, str(exc))


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(
        f"Store error on {request.url.path}: {exc}",
        extra={"error_type": type(exc).__name__}
    )
    if isinstance(exc, (StoreConnectionError, BatchFetchError)):
        return _failure(503, "Data store unavailable. Please try again later.")
    return _failure(500, "Failed to load report data")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _failure(exc.status_code, str(exc.detail))


# ═══════════════════════════════════════════════════════════════════════════════
# MIDDLEWARE & ROUTES
# ═══════════════════════════════════════════════════════════════════════════════

# Request logging (adds correlation IDs and timing)
app.add_middleware(RequestLoggingMiddleware)

# Must be AFTER logging so correlation_id is set when timeout fires
app.add_middleware(RequestTimeoutMiddleware)

# Gzip compression (min 500 bytes to compress)
app.add_middleware(GZipMiddleware, minimum_size=500)

app.include_router(api.router, prefix="/api")


@app.on_event("startup")
async def startup_event():
    logger.info("Member analytics dashboard starting...")

    # Fail fast with clear errors
    try:
        validate_config()
        logger.info("Configuration validated")
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}")
        raise SystemExit(1)

    stats = await report_service.store_stats()
    logger.info(
        f"Row store ready: {stats.get('member_transactions', 0)} transaction rows, "
        f"{stats.get('new_registrations', 0)} registration rows"
    )


@app.on_event("shutdown")
async def shutdown_event():
    try:
        close_source()
        logger.info("Row store closed")
    except Exception as e:
        logger.warning(f"Error closing row store: {e}")
    logger.info("Member analytics dashboard stopped")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("dashboard.main:app", host=WEB_HOST, port=WEB_PORT)
