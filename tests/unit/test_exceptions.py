"""
Tests for analytics.exceptions module.
"""
import pytest

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


class TestAnalyticsError:
    """Tests for base AnalyticsError."""

    def test_message_only(self):
        """Error with message only."""
        error = AnalyticsError("Something went wrong")
        assert str(error) == "Something went wrong"
        assert error.message == "Something went wrong"
        assert error.details is None

    def test_message_with_details(self):
        """Error with message and details."""
        error = AnalyticsError("Store failed", "timeout after 30s")
        assert str(error) == "Store failed: timeout after 30s"
        assert error.details == "timeout after 30s"

    def test_inheritance(self):
        """AnalyticsError should inherit from Exception."""
        error = AnalyticsError("test")
        assert isinstance(error, Exception)


class TestStoreErrors:
    """Tests for the store error family."""

    def test_connection_error_retry_after(self):
        """Connection error keeps retry_after."""
        error = StoreConnectionError("Store unavailable", retry_after=5)
        assert error.retry_after == 5
        assert isinstance(error, StoreError)
        assert isinstance(error, AnalyticsError)

    def test_query_error_table(self):
        """Query error keeps the table name."""
        error = StoreQueryError("Query failed", "bad column", table="member_transactions")
        assert error.table == "member_transactions"
        assert "bad column" in str(error)

    def test_data_error_expected_got(self):
        """Data error describes the shape mismatch."""
        error = StoreDataError("Unexpected shape", expected="list", got="dict")
        assert error.expected == "list"
        assert error.got == "dict"

    def test_batch_fetch_error_count(self):
        """Batch error records how many sub-batches failed."""
        error = BatchFetchError("All sub-batches failed", failed_batches=3)
        assert error.failed_batches == 3
        assert isinstance(error, StoreError)

    def test_catch_by_base(self):
        """All store errors can be caught as StoreError."""
        for error in (
            StoreConnectionError("a"),
            StoreQueryError("b"),
            StoreDataError("c"),
            BatchFetchError("d"),
        ):
            with pytest.raises(StoreError):
                raise error


class TestValidationError:
    """Tests for ValidationError."""

    def test_with_value(self):
        """Message includes the offending value."""
        error = ValidationError("year", "Must be an integer", "abc")
        assert str(error) == "year: Must be an integer (got: 'abc')"
        assert error.field == "year"
        assert error.value == "abc"

    def test_without_value(self):
        """Message without a value."""
        error = ValidationError("month", "Month is required")
        assert str(error) == "month: Month is required"

    def test_not_a_store_error(self):
        """Validation failures are not store failures."""
        assert not isinstance(ValidationError("f", "m"), StoreError)


class TestAuthorizationError:
    """Tests for AuthorizationError."""

    def test_message_names_brand(self):
        """Message names the refused brand."""
        error = AuthorizationError("BetaWin", ["AlphaBet"])
        assert str(error) == "You do not have access to brand BetaWin"
        assert error.brand == "BetaWin"
        assert error.allowed == ["AlphaBet"]

    def test_allowed_defaults_empty(self):
        error = AuthorizationError("BetaWin")
        assert error.allowed == []
