"""CSV export endpoint for retention, churn and tier-movement reports."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from analytics.exceptions import ValidationError
from analytics.export import EXPORT_COLUMNS
from ._deps import (
    limiter, EXPORT_RATE_LIMIT, get_allowed_brands, get_logger,
    report_service, resolve_window, validate_movement_type,
)

router = APIRouter(prefix="/export", tags=["export"])
logger = get_logger(__name__)


@router.get("/{report}")
@limiter.limit(EXPORT_RATE_LIMIT)
async def export_report_csv(
    request: Request,
    report: str,
    year: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    a_year: Optional[str] = Query(None),
    a_month: Optional[str] = Query(None),
    a_start_date: Optional[str] = Query(None),
    a_end_date: Optional[str] = Query(None),
    b_year: Optional[str] = Query(None),
    b_month: Optional[str] = Query(None),
    b_start_date: Optional[str] = Query(None),
    b_end_date: Optional[str] = Query(None),
    movement_type: Optional[str] = Query(None),
    brand: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    allowed_brands: Optional[List[str]] = Depends(get_allowed_brands),
):
    """Export the full record set of a report as a CSV download."""
    if report not in EXPORT_COLUMNS:
        raise ValidationError("report", f"Must be one of: {', '.join(sorted(EXPORT_COLUMNS))}", report)

    scope = {"brand": brand, "allowed_brands": allowed_brands, "currency": currency}
    if report == "retention":
        window = resolve_window(year, month, start_date, end_date)
        content = await report_service.export_report(report, window=window, **scope)
        label = f"{window.start}_{window.end}"
    elif report == "churn":
        content = await report_service.export_report(report, year=year, month=month, **scope)
        label = f"{year}_{month}"
    else:
        period_a = resolve_window(a_year, a_month, a_start_date, a_end_date, prefix="a_")
        period_b = resolve_window(b_year, b_month, b_start_date, b_end_date, prefix="b_")
        content = await report_service.export_report(
            report,
            period_a=period_a,
            period_b=period_b,
            movement_type=validate_movement_type(movement_type),
            **scope,
        )
        label = f"{period_a.start}_{period_b.end}"

    filename = f"{report}_{label}.csv"
    return StreamingResponse(
        iter([content]),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
