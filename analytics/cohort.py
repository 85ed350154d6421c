"""
Cohort aggregation: raw rows to one summary per member for a period window.
"""
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from analytics.models import (
    SUMMED_FIELDS,
    PeriodWindow,
    TransactionRow,
    UserCohortSummary,
)
from analytics.observability import get_logger
from analytics.tiers import tier_from_label

logger = get_logger(__name__)

MinDateLookup = Callable[[List[str]], Dict[str, date]]


def normalize_rows(records: Iterable[dict]) -> List[TransactionRow]:
    """Convert store records to TransactionRows, dropping those without a userkey."""
    rows = []
    discarded = 0
    for record in records:
        row = TransactionRow.from_store(record)
        if row is None:
            discarded += 1
            continue
        rows.append(row)
    if discarded:
        logger.debug(f"Discarded {discarded} rows without userkey")
    return rows


def _in_scope(
    row: TransactionRow,
    window: PeriodWindow,
    brand: Optional[str],
    allowed_brands: Optional[Sequence[str]],
) -> bool:
    if not window.contains(row.date):
        return False
    if brand is not None and row.line != brand:
        return False
    if allowed_brands and row.line not in allowed_brands:
        return False
    return True


def aggregate_cohort(
    rows: Iterable[TransactionRow],
    window: PeriodWindow,
    brand: Optional[str] = None,
    allowed_brands: Optional[Sequence[str]] = None,
    per_brand: bool = False,
    min_date_lookup: Optional[MinDateLookup] = None,
) -> List[UserCohortSummary]:
    """
    One UserCohortSummary per userkey (or userkey + brand) for the window.

    Args:
        rows: Normalised rows; rows outside the window or brand scope are skipped
        window: Inclusive period
        brand: Only rows of this brand
        allowed_brands: Only rows of these brands
        per_brand: Group by (userkey, line) instead of userkey
        min_date_lookup: Called once with the userkeys that have no
            first_deposit_date in any row; returns their all-time earliest
            deposit date

    Returns:
        Summaries sorted by userkey (then brand)
    """
    grouped: Dict[Tuple[str, Optional[str]], UserCohortSummary] = {}

    for row in rows:
        if not _in_scope(row, window, brand, allowed_brands):
            continue
        summary = UserCohortSummary.from_row(row, tier_from_label(row.tier_label), per_brand)
        existing = grouped.get(summary.key)
        grouped[summary.key] = summary if existing is None else existing.merge(summary)

    summaries = sorted(grouped.values(), key=lambda s: (s.userkey, s.line or ""))
    return fill_first_deposit_dates(summaries, min_date_lookup)


def fill_first_deposit_dates(
    summaries: List[UserCohortSummary],
    min_date_lookup: Optional[MinDateLookup],
) -> List[UserCohortSummary]:
    """Repair missing first_deposit_date values from an all-time lookup."""
    missing = sorted({s.userkey for s in summaries if s.first_deposit_date is None})
    if not missing or min_date_lookup is None:
        return summaries

    found = min_date_lookup(missing)
    still_missing = [k for k in missing if k not in found]
    if still_missing:
        logger.info(
            f"{len(still_missing)} members have no deposit date on record",
            extra={"members": len(still_missing)}
        )

    return [
        s.with_first_deposit_date(found.get(s.userkey)) if s.first_deposit_date is None else s
        for s in summaries
    ]


def combine_cohorts(*cohorts: Iterable[UserCohortSummary]) -> List[UserCohortSummary]:
    """Merge cohorts built from separate batches of the same period."""
    grouped: Dict[Tuple[str, Optional[str]], UserCohortSummary] = {}
    for cohort in cohorts:
        for summary in cohort:
            existing = grouped.get(summary.key)
            grouped[summary.key] = summary if existing is None else existing.merge(summary)
    return sorted(grouped.values(), key=lambda s: (s.userkey, s.line or ""))


def active_members(summaries: Iterable[UserCohortSummary]) -> List[UserCohortSummary]:
    """Members with at least one deposit in the window."""
    return [s for s in summaries if s.is_active]


def cohort_totals(summaries: Iterable[UserCohortSummary]) -> Dict[str, float]:
    """Field sums over a cohort, plus member and active-day counts."""
    totals: Dict[str, float] = {name: 0 for name in SUMMED_FIELDS}
    members = 0
    active = 0
    active_days = 0
    for summary in summaries:
        members += 1
        for name in SUMMED_FIELDS:
            totals[name] += getattr(summary, name)
        if summary.is_active:
            active += 1
        active_days += summary.active_days
    totals["members"] = members
    totals["active_members"] = active
    totals["active_days"] = active_days
    return totals


# ─── Active-day buckets ──────────────────────────────────────────────────────

# Most engaged first; seven or more active days share one bucket
ACTIVE_DAY_BUCKETS = ("7+ Days", "6 Days", "5 Days", "4 Days", "3 Days", "2 Days", "1 Day")


def active_day_bucket(active_days: int) -> Optional[str]:
    """Bucket name for a member's active-day count; None when inactive."""
    if active_days <= 0:
        return None
    if active_days >= 7:
        return ACTIVE_DAY_BUCKETS[0]
    return "1 Day" if active_days == 1 else f"{active_days} Days"


def bucket_by_active_days(summaries: Iterable[UserCohortSummary]) -> Dict[str, List[UserCohortSummary]]:
    """Active members grouped by active-day bucket; every bucket is present."""
    buckets: Dict[str, List[UserCohortSummary]] = {name: [] for name in ACTIVE_DAY_BUCKETS}
    for summary in summaries:
        name = active_day_bucket(summary.active_days)
        if name is not None:
            buckets[name].append(summary)
    return buckets
