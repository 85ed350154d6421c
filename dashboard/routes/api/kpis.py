"""Monthly KPI endpoint."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from dashboard.schemas import ObjectEnvelope
from ._deps import limiter, RATE_LIMIT, get_allowed_brands, report_service

router = APIRouter(tags=["kpis"])


@router.get("/kpis", response_model=ObjectEnvelope)
@limiter.limit(RATE_LIMIT)
async def get_kpis(
    request: Request,
    year: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    brand: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    allowed_brands: Optional[List[str]] = Depends(get_allowed_brands),
):
    """Month KPIs with the previous month, MoM deltas and daily averages."""
    data = await report_service.kpi_summary(
        year=year,
        month=month,
        brand=brand,
        allowed_brands=allowed_brands,
        currency=currency,
    )
    return {"success": True, "data": data}
