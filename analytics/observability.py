"""
Observability for the analytics engine: logging, correlation IDs, timings, counters.

Usage:
    from analytics.observability import setup_logging, get_logger, correlation_context

    # In app startup (reads LOG_LEVEL / LOG_FORMAT when not given):
    setup_logging()

    # In modules:
    logger = get_logger(__name__)

    # Around a unit of work:
    with correlation_context(request_id):
        logger.info("Building retention report", extra={"brand": brand})
"""
import functools
import inspect
import json
import logging
import os
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_log_context: ContextVar[Dict[str, Any]] = ContextVar("log_context", default={})

# Attributes every LogRecord has; anything else came from `extra=`
_STANDARD_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime",
}

# Third-party loggers kept at WARNING unless asked otherwise
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "watchfiles")


# ═══════════════════════════════════════════════════════════════════════════════
# CORRELATION IDS AND LOG CONTEXT
# ═══════════════════════════════════════════════════════════════════════════════

def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def generate_correlation_id() -> str:
    return uuid.uuid4().hex[:8]


class correlation_context:
    """
    Scope a correlation ID to a block.

    The previous ID is restored on exit. Work handed to asyncio.to_thread
    inside the block sees the same ID because the context is copied.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self._token = None

    def __enter__(self) -> str:
        self._token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, *exc) -> None:
        _correlation_id.reset(self._token)


def add_log_context(**fields) -> None:
    """Attach fields to every log line emitted in the current context."""
    _log_context.set({**_log_context.get(), **fields})


def clear_log_context() -> None:
    _log_context.set({})


def _context_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Log context plus the record's own `extra=` fields (record wins)."""
    fields = dict(_log_context.get())
    for key, value in vars(record).items():
        if key not in _STANDARD_RECORD_ATTRS and not key.startswith("_"):
            fields[key] = value
    return fields


# ═══════════════════════════════════════════════════════════════════════════════
# FORMATTERS
# ═══════════════════════════════════════════════════════════════════════════════

class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        correlation_id = get_correlation_id()
        if correlation_id:
            entry["correlation_id"] = correlation_id
        entry.update(_context_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """TIMESTAMP - LEVEL - LOGGER [CORRELATION_ID] - MESSAGE | fields"""

    def format(self, record: logging.LogRecord) -> str:
        correlation_id = get_correlation_id()
        parts = [
            datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
            f"{record.levelname:8}",
            record.name + (f" [{correlation_id}]" if correlation_id else ""),
            record.getMessage(),
        ]
        line = " - ".join(parts)

        fields = _context_fields(record)
        if fields:
            line = f"{line} | {fields}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: Optional[str] = None,
    json_format: Optional[bool] = None,
    include_libs: bool = False
) -> None:
    """
    Configure root logging.

    Args:
        level: Log level name; defaults to LOG_LEVEL or INFO
        json_format: JSON output; defaults to LOG_FORMAT == "json"
        include_libs: Leave third-party loggers at the root level
    """
    level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "text").lower() == "json"

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level, logging.INFO))

    if not include_libs:
        for name in _QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# ═══════════════════════════════════════════════════════════════════════════════
# TIMING
# ═══════════════════════════════════════════════════════════════════════════════

class Timer:
    """
    Time a block and record the sample in `metrics`.

    With a logger, the duration is also logged: at DEBUG normally, at
    WARNING once it exceeds warn_threshold_ms.

    Usage:
        with Timer("health_check_db") as t:
            stats = source.get_stats()
        t.elapsed_ms
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None, warn_threshold_ms: float = 1000):
        self.name = name
        self.logger = logger
        self.warn_threshold_ms = warn_threshold_ms
        self.elapsed_ms: float = 0.0
        self._start: float = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
        metrics.record_timing(self.name, self.elapsed_ms)
        if self.logger is not None:
            slow = self.elapsed_ms > self.warn_threshold_ms
            self.logger.log(
                logging.WARNING if slow else logging.DEBUG,
                f"{self.name} {'slow' if slow else 'completed'}",
                extra={"duration_ms": round(self.elapsed_ms, 2)}
            )


def timed(name: Optional[str] = None, warn_threshold_ms: float = 1000):
    """
    Decorator: run a sync or async function inside a Timer.

    The sample is recorded even when the function raises.
    """
    def decorator(func: Callable) -> Callable:
        def make_timer() -> Timer:
            return Timer(name or func.__name__, get_logger(func.__module__), warn_threshold_ms)

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                with make_timer():
                    return await func(*args, **kwargs)
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            with make_timer():
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator


# ═══════════════════════════════════════════════════════════════════════════════
# METRICS COLLECTOR
# ═══════════════════════════════════════════════════════════════════════════════

_FETCH_COUNTERS = ("pages", "rows", "failed_batches", "truncated")

# p95 is only meaningful with enough samples
_P95_MIN_SAMPLES = 20


def _timing_summary(samples: List[float]) -> Dict[str, Any]:
    ordered = sorted(samples)
    count = len(ordered)
    return {
        "count": count,
        "avg_ms": round(sum(ordered) / count, 2),
        "min_ms": round(ordered[0], 2),
        "max_ms": round(ordered[-1], 2),
        "p50_ms": round(ordered[count // 2], 2),
        "p95_ms": round(ordered[int(count * 0.95)], 2) if count >= _P95_MIN_SAMPLES else None,
    }


class MetricsCollector:
    """
    In-process counters for requests, errors, fetches and timings.

    Timing samples are kept per operation, newest `max_samples` only.
    """

    def __init__(self, max_samples: int = 100):
        self._max_samples = max_samples
        self.reset()

    def reset(self) -> None:
        self._requests: Dict[str, int] = {}
        self._errors: Dict[str, int] = {}
        self._fetch: Dict[str, int] = dict.fromkeys(_FETCH_COUNTERS, 0)
        self._timings: Dict[str, List[float]] = {}

    def record_request(self, endpoint: str) -> None:
        self._requests[endpoint] = self._requests.get(endpoint, 0) + 1

    def record_error(self, error_type: str) -> None:
        self._errors[error_type] = self._errors.get(error_type, 0) + 1

    def record_fetch(self, pages: int = 0, rows: int = 0, failed_batches: int = 0, truncated: bool = False) -> None:
        """Add the outcome of one fetch to the running totals."""
        self._fetch["pages"] += pages
        self._fetch["rows"] += rows
        self._fetch["failed_batches"] += failed_batches
        self._fetch["truncated"] += int(bool(truncated))

    def record_timing(self, operation: str, duration_ms: float) -> None:
        samples = self._timings.setdefault(operation, [])
        samples.append(duration_ms)
        del samples[:-self._max_samples]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "requests": dict(self._requests),
            "errors": dict(self._errors),
            "fetch": dict(self._fetch),
            "timing": {op: _timing_summary(s) for op, s in self._timings.items() if s},
        }


metrics = MetricsCollector()
