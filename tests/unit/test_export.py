"""
Tests for analytics.export module.
"""
import csv
import io
import pytest
from datetime import date

from analytics.exceptions import ValidationError
from analytics.export import (
    BOM,
    EXPORT_COLUMNS,
    column_header,
    format_value,
    render_csv,
    render_report,
)
from analytics.models import MovementType


def parse(text: str):
    assert text.startswith(BOM)
    return list(csv.reader(io.StringIO(text[len(BOM):])))


class TestFormatValue:
    """Tests for format_value."""

    def test_missing_values(self):
        assert format_value(None) == "-"
        assert format_value("") == "-"
        assert format_value("   ") == "-"
        assert format_value(float("nan")) == "-"

    def test_numbers(self):
        assert format_value(3) == "3"
        assert format_value(120.0) == "120"
        assert format_value(66.66666) == "66.67"
        assert format_value(-12.5) == "-12.50"

    def test_other_types(self):
        assert format_value(date(2025, 3, 5)) == "2025-03-05"
        assert format_value(MovementType.UPGRADE) == "UPGRADE"
        assert format_value(True) == "true"


class TestRenderCsv:
    """Tests for render_csv and render_report."""

    def test_header_row(self):
        assert column_header("deposit_amount") == "DEPOSIT AMOUNT"
        rows = parse(render_csv([], ["user_name", "net_profit"]))
        assert rows == [["USER NAME", "NET PROFIT"]]

    def test_quoting(self):
        """Commas, quotes and newlines survive a round through a csv reader."""
        records = [{"user_name": 'Lee, "Ace"\nJr', "net_profit": 10.5}]
        rows = parse(render_csv(records, ["user_name", "net_profit"]))
        assert rows[1] == ['Lee, "Ace"\nJr', "10.50"]

    def test_text_quoted_numbers_bare(self):
        """Every text cell is quoted; numbers are not."""
        records = [{"user_name": 'Ace "the" Lee', "status": None, "active_days": 3, "net_profit": 10.5}]
        text = render_csv(records, ["user_name", "status", "active_days", "net_profit"], bom=False)

        assert text.splitlines() == [
            '"USER NAME","STATUS","ACTIVE DAYS","NET PROFIT"',
            '"Ace ""the"" Lee","-",3,10.50',
        ]

    def test_without_bom(self):
        assert not render_csv([], ["a"], bom=False).startswith(BOM)

    def test_report_column_order(self):
        records = [{"userkey": "u1", "movement_type": "UPGRADE", "tier_change": 1, "extra": "ignored"}]
        rows = parse(render_report("tier-movement", records))

        assert rows[0] == [column_header(c) for c in EXPORT_COLUMNS["tier-movement"]]
        assert rows[1][0] == "u1"
        assert rows[1][1] == "-"
        assert rows[1][-1] == "1"
        assert "ignored" not in rows[1]

    def test_unknown_report(self):
        with pytest.raises(ValidationError) as exc_info:
            render_report("deposits", [])
        assert exc_info.value.field == "report"
