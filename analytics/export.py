"""
CSV export of report records.

Each report type has a fixed column order. Null or blank values render as
"-", non-integer numbers with two decimals. Every text cell is quoted and
its quotes doubled; numbers are written bare.
"""
import csv
import io
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from analytics.exceptions import ValidationError

PLACEHOLDER = "-"
BOM = "\ufeff"

EXPORT_COLUMNS: Dict[str, List[str]] = {
    "retention": [
        "user_name",
        "unique_code",
        "status",
        "last_deposit_date",
        "active_days",
        "deposit_cases",
        "deposit_amount",
        "withdraw_cases",
        "withdraw_amount",
        "bonus",
        "net_profit",
    ],
    "churn": [
        "user_name",
        "unique_code",
        "member_type",
        "first_deposit_date",
        "last_deposit_date",
        "days_inactive",
        "active_days",
        "deposit_cases",
        "deposit_amount",
        "withdraw_cases",
        "withdraw_amount",
        "net_profit",
        "winrate",
    ],
    "tier-movement": [
        "userkey",
        "unique_code",
        "line",
        "movement_type",
        "from_tier_name",
        "to_tier_name",
        "tier_change",
    ],
}


def column_header(column: str) -> str:
    return column.upper().replace("_", " ")


def format_value(value: Any) -> str:
    if value is None:
        return PLACEHOLDER
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value != value:
            return PLACEHOLDER
        if value.is_integer():
            return str(int(value))
        return f"{value:.2f}"
    if isinstance(value, date):
        return value.isoformat()
    text = str(value)
    return text if text.strip() else PLACEHOLDER


def _cell(value: Any) -> Any:
    """Formatted cell; numbers stay numeric so the writer leaves them unquoted."""
    text = format_value(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool) and text != PLACEHOLDER:
        return Decimal(text)
    return text


def render_csv(records: Iterable[Mapping[str, Any]], columns: Sequence[str], bom: bool = True) -> str:
    """Render records as CSV text with a header row."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n", quoting=csv.QUOTE_NONNUMERIC)
    writer.writerow([column_header(c) for c in columns])
    for record in records:
        writer.writerow([_cell(record.get(c)) for c in columns])
    return (BOM if bom else "") + output.getvalue()


def render_report(report_type: str, records: Iterable[Mapping[str, Any]]) -> str:
    try:
        columns = EXPORT_COLUMNS[report_type]
    except KeyError:
        raise ValidationError(
            "report",
            f"Must be one of: {', '.join(sorted(EXPORT_COLUMNS))}",
            report_type,
        )
    return render_csv(records, columns)
