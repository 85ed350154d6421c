"""
Custom exception hierarchy for member analytics operations.

Exception Hierarchy:
    AnalyticsError (base)
    └── StoreError
        ├── StoreConnectionError  - Network/timeout issues (recoverable)
        ├── StoreQueryError       - Store rejected the query
        ├── StoreDataError        - Unexpected row shape
        └── BatchFetchError       - Every sub-batch of a keyed fetch failed

    ValidationError               - Input validation failed
    AuthorizationError            - Brand outside the caller's allowed list
"""
from typing import Any, List, Optional


class AnalyticsError(Exception):
    """Base exception for all analytics-related errors."""

    def __init__(self, message: str, details: str = None):
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class StoreError(AnalyticsError):
    """Base for errors raised at the row store boundary."""


class StoreConnectionError(StoreError):
    """
    Store unreachable or timed out.

    These are typically recoverable with retry.
    """

    def __init__(self, message: str, details: str = None, retry_after: int = None):
        super().__init__(message, details)
        self.retry_after = retry_after


class StoreQueryError(StoreError):
    """
    Store rejected the query.

    Retrying the same query will not help.
    """

    def __init__(self, message: str, details: str = None, table: str = None):
        super().__init__(message, details)
        self.table = table


class StoreDataError(StoreError):
    """
    Store returned rows in a shape we don't understand.
    """

    def __init__(self, message: str, details: str = None, expected: str = None, got: str = None):
        super().__init__(message, details)
        self.expected = expected
        self.got = got


class BatchFetchError(StoreError):
    """
    Every sub-batch of a keyed fetch failed and no rows were obtained.
    """

    def __init__(self, message: str, details: str = None, failed_batches: int = 0):
        super().__init__(message, details)
        self.failed_batches = failed_batches


class ValidationError(Exception):
    """
    Input validation failed.

    Raised before any data is fetched.
    """

    def __init__(self, field: str, message: str, value: Any = None):
        self.field = field
        self.message = message
        self.value = value
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value!r})"
        return f"{self.field}: {self.message}"


class AuthorizationError(Exception):
    """Requested brand is outside the caller's allowed brands."""

    def __init__(self, brand: str, allowed: Optional[List[str]] = None):
        self.brand = brand
        self.allowed = list(allowed or [])
        super().__init__(f"You do not have access to brand {brand}")
