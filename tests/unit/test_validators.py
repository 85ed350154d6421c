"""
Tests for analytics.validators module.
"""
import pytest
from datetime import date

from analytics.exceptions import ValidationError
from analytics.models import MonthKey, MovementType
from analytics.validators import (
    ALL,
    validate_date_string,
    validate_date_range,
    validate_year,
    validate_month,
    require_concrete_month,
    validate_brand_name,
    validate_limit,
    validate_page,
    validate_movement_type,
)


class TestValidateDateString:
    """Tests for validate_date_string function."""

    def test_valid_date(self):
        """Valid date string should return date object."""
        assert validate_date_string("2025-03-15") == date(2025, 3, 15)

    def test_invalid_format(self):
        """Invalid format should raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            validate_date_string("15-03-2025")
        assert "Invalid date format" in str(exc_info.value)

    def test_invalid_date(self):
        """Feb 30 doesn't exist."""
        with pytest.raises(ValidationError):
            validate_date_string("2025-02-30")

    def test_empty_string(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_date_string("")
        assert "required" in str(exc_info.value).lower()

    def test_non_string(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_date_string(12345)
        assert "string" in str(exc_info.value).lower()


class TestValidateDateRange:
    """Tests for validate_date_range function."""

    def test_valid_range(self):
        start, end = validate_date_range("2025-03-01", "2025-03-31")
        assert start == date(2025, 3, 1)
        assert end == date(2025, 3, 31)

    def test_same_day(self):
        start, end = validate_date_range("2025-03-01", "2025-03-01")
        assert start == end

    def test_start_after_end(self):
        """Reversed range is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            validate_date_range("2025-03-31", "2025-03-01")
        assert "before or equal" in str(exc_info.value)

    def test_range_too_long(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_date_range("2020-01-01", "2025-01-01")
        assert "cannot exceed" in str(exc_info.value)

    def test_prefix_in_field_name(self):
        """Prefix identifies which period was wrong."""
        with pytest.raises(ValidationError) as exc_info:
            validate_date_range("bad", "2025-03-01", prefix="a_")
        assert exc_info.value.field == "a_start_date"


class TestValidateYear:
    """Tests for validate_year function."""

    def test_int(self):
        assert validate_year(2025) == 2025

    def test_numeric_string(self):
        assert validate_year(" 2025 ") == 2025

    def test_missing(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_year(None)
        assert "required" in str(exc_info.value)

    def test_out_of_range(self):
        with pytest.raises(ValidationError):
            validate_year(1999)

    def test_not_numeric(self):
        with pytest.raises(ValidationError):
            validate_year("twenty")

    def test_bool_rejected(self):
        with pytest.raises(ValidationError):
            validate_year(True)


class TestValidateMonth:
    """Tests for validate_month function."""

    @pytest.mark.parametrize("value,expected", [
        ("March", 3),
        ("mar", 3),
        ("DECEMBER", 12),
        ("3", 3),
        (11, 11),
    ])
    def test_names_and_numbers(self, value, expected):
        assert validate_month(value) == expected

    def test_all(self):
        """ALL is accepted when allowed."""
        assert validate_month("all") == ALL

    def test_all_not_allowed(self):
        with pytest.raises(ValidationError):
            validate_month("ALL", allow_all=False)

    def test_out_of_range_number(self):
        with pytest.raises(ValidationError):
            validate_month(13)

    def test_unknown_name(self):
        with pytest.raises(ValidationError):
            validate_month("Smarch")

    def test_missing(self):
        with pytest.raises(ValidationError):
            validate_month("")


class TestRequireConcreteMonth:
    """Tests for require_concrete_month function."""

    def test_valid(self):
        assert require_concrete_month("2025", "March") == MonthKey(2025, 3)

    def test_all_month_rejected(self):
        """Reports comparing with the prior month need a concrete month."""
        with pytest.raises(ValidationError) as exc_info:
            require_concrete_month(2025, "ALL")
        assert exc_info.value.field == "month"

    def test_missing_month_rejected(self):
        with pytest.raises(ValidationError):
            require_concrete_month(2025, None)

    def test_missing_year_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            require_concrete_month(None, "March")
        assert exc_info.value.field == "year"


class TestValidateBrandName:
    """Tests for validate_brand_name function."""

    def test_valid_brand(self):
        assert validate_brand_name("  AlphaBet ") == "AlphaBet"

    def test_empty_and_all(self):
        """Empty and ALL mean no brand filter."""
        assert validate_brand_name(None) is None
        assert validate_brand_name("") is None
        assert validate_brand_name("ALL") is None

    def test_brand_with_allowed_punctuation(self):
        assert validate_brand_name("Lucky-8 & Co.") == "Lucky-8 & Co."

    def test_too_long(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_brand_name("A" * 101)
        assert "Cannot exceed" in str(exc_info.value)

    def test_invalid_characters(self):
        with pytest.raises(ValidationError):
            validate_brand_name("Brand; DROP TABLE")


class TestValidateLimit:
    """Tests for validate_limit and validate_page."""

    def test_valid_limit(self):
        assert validate_limit(100) == 100

    def test_zero_limit(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_limit(0)
        assert "at least 1" in str(exc_info.value)

    def test_exceeds_max(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_limit(1001)
        assert "Cannot exceed" in str(exc_info.value)

    def test_page(self):
        assert validate_page(3) == 3

    def test_page_zero(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_page(0)
        assert exc_info.value.field == "page"


class TestValidateMovementType:
    """Tests for validate_movement_type function."""

    def test_valid(self):
        assert validate_movement_type("upgrade") is MovementType.UPGRADE

    def test_all_means_no_filter(self):
        assert validate_movement_type("ALL") is None
        assert validate_movement_type(None) is None

    def test_invalid(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_movement_type("SIDEWAYS")
        assert "Must be one of" in str(exc_info.value)
