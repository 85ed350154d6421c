"""Shared dependencies for API route modules."""
import time
from typing import List, Optional

from fastapi import Header
from slowapi import Limiter
from slowapi.util import get_remote_address

from analytics.access import parse_allowed_brands
from analytics.observability import get_logger
from analytics.periods import resolve_window
from analytics.validators import validate_movement_type
from dashboard.config import RATE_LIMIT, RATE_LIMIT_ENABLED, EXPORT_RATE_LIMIT
from dashboard.services import report_service

# Shared limiter instance
limiter = Limiter(key_func=get_remote_address, enabled=RATE_LIMIT_ENABLED)

# Track startup time for uptime calculation
START_TIME = time.time()


def get_allowed_brands(
    x_user_allowed_brands: Optional[str] = Header(None, alias="X-User-Allowed-Brands"),
) -> Optional[List[str]]:
    """Caller's brand restriction from the auth proxy; None means unrestricted."""
    return parse_allowed_brands(x_user_allowed_brands)


__all__ = [
    "limiter",
    "START_TIME",
    "RATE_LIMIT",
    "EXPORT_RATE_LIMIT",
    "get_allowed_brands",
    "get_logger",
    "resolve_window",
    "validate_movement_type",
    "report_service",
]
