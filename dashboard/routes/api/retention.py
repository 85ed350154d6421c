"""Customer retention, lifecycle summary and churn endpoints."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from dashboard.schemas import ListEnvelope, ObjectEnvelope
from ._deps import (
    limiter, RATE_LIMIT, get_allowed_brands, get_logger,
    report_service, resolve_window,
)

router = APIRouter(tags=["retention"])
logger = get_logger(__name__)


@router.get("/retention", response_model=ListEnvelope)
@limiter.limit(RATE_LIMIT)
async def get_retention(
    request: Request,
    year: Optional[str] = Query(None, description="Four-digit year"),
    month: Optional[str] = Query(None, description="Month name, number, or ALL"),
    start_date: Optional[str] = Query(None, description="Range start (YYYY-MM-DD), overrides year/month"),
    end_date: Optional[str] = Query(None, description="Range end (YYYY-MM-DD)"),
    brand: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="Filter by lifecycle status"),
    page: int = Query(1),
    limit: int = Query(100),
    allowed_brands: Optional[List[str]] = Depends(get_allowed_brands),
):
    """Active members of the period with totals; status is set for single months."""
    window = resolve_window(year, month, start_date, end_date)
    result = await report_service.customer_retention(
        window=window,
        brand=brand,
        allowed_brands=allowed_brands,
        currency=currency,
        page=page,
        limit=limit,
        status=status,
    )
    return {"success": True, **result}


@router.get("/retention/days", response_model=ObjectEnvelope)
@limiter.limit(RATE_LIMIT)
async def get_retention_by_days(
    request: Request,
    year: Optional[str] = Query(None),
    month: Optional[str] = Query(None, description="Month name, number, or ALL"),
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
    brand: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    include_members: bool = Query(True, description="Include per-member rows in each bucket"),
    allowed_brands: Optional[List[str]] = Depends(get_allowed_brands),
):
    """Active members bucketed by active days, with KPIs per bucket."""
    window = resolve_window(year, month, start_date, end_date)
    data = await report_service.retention_by_active_days(
        window=window,
        brand=brand,
        allowed_brands=allowed_brands,
        currency=currency,
        include_members=include_members,
    )
    return {"success": True, "data": data}


@router.get("/retention/summary", response_model=ObjectEnvelope)
@limiter.limit(RATE_LIMIT)
async def get_retention_summary(
    request: Request,
    year: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    brand: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    allowed_brands: Optional[List[str]] = Depends(get_allowed_brands),
):
    """Lifecycle counts and rates for a month against the month before."""
    data = await report_service.lifecycle_summary(
        year=year,
        month=month,
        brand=brand,
        allowed_brands=allowed_brands,
        currency=currency,
    )
    return {"success": True, "data": data}


@router.get("/retention/month-max-date", response_model=ObjectEnvelope)
@limiter.limit(RATE_LIMIT)
async def get_month_max_date(
    request: Request,
    year: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    brand: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    allowed_brands: Optional[List[str]] = Depends(get_allowed_brands),
):
    """Latest date with data in a month."""
    data = await report_service.month_max_date(
        year=year,
        month=month,
        brand=brand,
        allowed_brands=allowed_brands,
        currency=currency,
    )
    return {"success": True, "data": data}


@router.get("/churn", response_model=ListEnvelope)
@limiter.limit(RATE_LIMIT)
async def get_churn(
    request: Request,
    year: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    brand: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    page: int = Query(1),
    limit: int = Query(100),
    allowed_brands: Optional[List[str]] = Depends(get_allowed_brands),
):
    """Members active last month who did not deposit this month."""
    result = await report_service.churned_members(
        year=year,
        month=month,
        brand=brand,
        allowed_brands=allowed_brands,
        currency=currency,
        page=page,
        limit=limit,
    )
    return {"success": True, **result}
