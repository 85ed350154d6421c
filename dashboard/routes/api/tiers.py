"""Tier movement endpoints: summary/matrix and the filtered customer list."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from analytics.exceptions import ValidationError
from analytics.tiers import TIER_NAMES
from dashboard.schemas import ListEnvelope, ObjectEnvelope
from ._deps import (
    limiter, RATE_LIMIT, get_allowed_brands, get_logger,
    report_service, resolve_window, validate_movement_type,
)

router = APIRouter(prefix="/tiers", tags=["tiers"])
logger = get_logger(__name__)


class PeriodParams:
    """Period A ("from") and period B ("to"), each a month or a date range."""

    def __init__(
        self,
        a_year: Optional[str] = Query(None, description="Period A year"),
        a_month: Optional[str] = Query(None, description="Period A month or ALL"),
        a_start_date: Optional[str] = Query(None),
        a_end_date: Optional[str] = Query(None),
        b_year: Optional[str] = Query(None, description="Period B year"),
        b_month: Optional[str] = Query(None, description="Period B month or ALL"),
        b_start_date: Optional[str] = Query(None),
        b_end_date: Optional[str] = Query(None),
    ):
        self.period_a = resolve_window(a_year, a_month, a_start_date, a_end_date, prefix="a_")
        self.period_b = resolve_window(b_year, b_month, b_start_date, b_end_date, prefix="b_")


def _validate_tier(value: Optional[int], field: str) -> Optional[int]:
    if value is None:
        return None
    if value not in TIER_NAMES:
        raise ValidationError(field, f"Must be between {min(TIER_NAMES)} and {max(TIER_NAMES)}", value)
    return value


@router.get("/movement", response_model=ObjectEnvelope)
@limiter.limit(RATE_LIMIT)
async def get_tier_movement(
    request: Request,
    periods: PeriodParams = Depends(),
    brand: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    allowed_brands: Optional[List[str]] = Depends(get_allowed_brands),
):
    """Movement summary cards, transition matrix and top movers."""
    data = await report_service.tier_movement(
        period_a=periods.period_a,
        period_b=periods.period_b,
        brand=brand,
        allowed_brands=allowed_brands,
        currency=currency,
    )
    return {"success": True, "data": data}


@router.get("/movement/customers", response_model=ListEnvelope)
@limiter.limit(RATE_LIMIT)
async def get_tier_movement_customers(
    request: Request,
    periods: PeriodParams = Depends(),
    brand: Optional[str] = Query(None),
    currency: Optional[str] = Query(None),
    movement_type: Optional[str] = Query(None, description="UPGRADE, DOWNGRADE, STABLE, NEW, CHURNED or ALL"),
    from_tier: Optional[int] = Query(None),
    to_tier: Optional[int] = Query(None),
    page: int = Query(1),
    limit: int = Query(100),
    allowed_brands: Optional[List[str]] = Depends(get_allowed_brands),
):
    """Members behind a matrix cell or summary card."""
    result = await report_service.tier_movement_customers(
        period_a=periods.period_a,
        period_b=periods.period_b,
        brand=brand,
        allowed_brands=allowed_brands,
        currency=currency,
        movement_type=validate_movement_type(movement_type),
        from_tier=_validate_tier(from_tier, "from_tier"),
        to_tier=_validate_tier(to_tier, "to_tier"),
        page=page,
        limit=limit,
    )
    return {"success": True, **result}
