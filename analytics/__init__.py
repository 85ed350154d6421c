"""
Member analytics library.

This package contains the reporting logic used by the dashboard API:
- exceptions: Custom exception hierarchy
- validators: Input validation functions
- fetcher: Batched, ordered row retrieval
- cohort / lifecycle / movement: Member aggregation and classification
- reports: Report assembly
- config: Centralized configuration
"""

# Import in dependency order
from analytics.exceptions import (
    AnalyticsError,
    StoreError,
    StoreConnectionError,
    StoreQueryError,
    StoreDataError,
    BatchFetchError,
    ValidationError,
    AuthorizationError,
)

from analytics.validators import (
    validate_date_string,
    validate_date_range,
    validate_year,
    validate_month,
    validate_limit,
    validate_brand_name,
    validate_movement_type,
)

from analytics.pagination import (
    OffsetPaginator,
    PaginationInfo,
)

from analytics.fetcher import BatchedFetcher, FetchResult
from analytics.reports import ReportEngine
from analytics.config import config

__all__ = [
    # Exceptions
    "AnalyticsError",
    "StoreError",
    "StoreConnectionError",
    "StoreQueryError",
    "StoreDataError",
    "BatchFetchError",
    "ValidationError",
    "AuthorizationError",
    # Validators
    "validate_date_string",
    "validate_date_range",
    "validate_year",
    "validate_month",
    "validate_limit",
    "validate_brand_name",
    "validate_movement_type",
    # Pagination
    "OffsetPaginator",
    "PaginationInfo",
    # Fetching and reports
    "BatchedFetcher",
    "FetchResult",
    "ReportEngine",
    # Config
    "config",
]
