"""
Request middleware: correlation IDs, access logging, metrics and timeouts.
"""
import asyncio
import logging
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from analytics.observability import (
    add_log_context,
    clear_log_context,
    generate_correlation_id,
    get_correlation_id,
    get_logger,
    metrics,
    set_correlation_id,
)
from dashboard.config import REQUEST_TIMEOUT
from dashboard.schemas import ErrorEnvelope

logger = get_logger(__name__)

HEALTH_PATHS = ("/api/health", "/health")

# Exports render whole periods
EXPORT_PREFIXES = ("/api/export/",)
EXPORT_TIMEOUT = 120.0


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with a correlation ID (honouring X-Request-ID), puts
    method and path into the log context, and records count, timing and
    error status in `metrics`. Health checks are not logged.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = request.headers.get("X-Request-ID") or generate_correlation_id()
        set_correlation_id(correlation_id)

        method, path = request.method, request.url.path
        endpoint = f"{method} {path}"
        quiet = path in HEALTH_PATHS
        add_log_context(method=method, path=path)

        started = time.perf_counter()
        try:
            if not quiet:
                client = request.client.host if request.client else "unknown"
                logger.info(f"-> {endpoint}", extra={"client_ip": client})
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Unhandled error on {endpoint}: {e}", exc_info=True)
            metrics.record_error(type(e).__name__)
            clear_log_context()
            raise
        finally:
            duration_ms = (time.perf_counter() - started) * 1000
            metrics.record_request(endpoint)
            metrics.record_timing(endpoint, duration_ms)

        response.headers["X-Request-ID"] = correlation_id
        response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        if response.status_code >= 400:
            metrics.record_error(f"HTTP_{response.status_code}")
        if not quiet:
            logger.log(
                logging.INFO if response.status_code < 400 else logging.WARNING,
                f"<- {endpoint} {response.status_code}",
                extra={"status_code": response.status_code, "duration_ms": round(duration_ms, 2)}
            )

        clear_log_context()
        return response


class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    """
    Answer 504 with the failure envelope when a request overruns.

    The engine never writes, so an abandoned report leaves nothing behind.
    """

    def __init__(self, app, timeout: Optional[float] = None):
        super().__init__(app)
        self.timeout = timeout or REQUEST_TIMEOUT

    def timeout_for(self, path: str) -> float:
        if path.startswith(EXPORT_PREFIXES):
            return max(self.timeout, EXPORT_TIMEOUT)
        return self.timeout

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in HEALTH_PATHS:
            return await call_next(request)

        timeout = self.timeout_for(path)
        try:
            return await asyncio.wait_for(call_next(request), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Timed out after {timeout}s: {request.method} {path}", extra={"timeout": timeout})
            metrics.record_error("REQUEST_TIMEOUT")
            body = ErrorEnvelope(
                error=f"Request exceeded {timeout}s timeout",
                correlation_id=get_correlation_id(),
            )
            return JSONResponse(status_code=504, content=body.model_dump())
