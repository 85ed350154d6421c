"""
Report assembly.

ReportEngine wires the fetcher, cohort aggregation, lifecycle and tier
movement into the reports served by the API. It is synchronous and keeps no
state between calls; every report is recomputed from the rows present at
query time.
"""
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from analytics.access import BrandScope, resolve_brand_scope
from analytics.cohort import (
    active_members,
    aggregate_cohort,
    bucket_by_active_days,
    cohort_totals,
    combine_cohorts,
    fill_first_deposit_dates,
    normalize_rows,
)
from analytics.config import AppConfig, config
from analytics.export import render_report
from analytics.fetcher import BatchedFetcher
from analytics.lifecycle import LifecycleResult, classify_lifecycle
from analytics.metrics import (
    atv,
    conversion_rate,
    deposit_per_user,
    derive_metrics,
    ggr,
    ggr_per_user,
    net_profit,
    percentage,
    pure_member,
    winrate,
)
from analytics.models import (
    LifecycleStatus,
    MonthKey,
    MovementType,
    NewDepositorPolicy,
    PeriodWindow,
    UserCohortSummary,
)
from analytics.movement import (
    build_transition_matrix,
    calculate_movements,
    summarize_movements,
    top_movers,
)
from analytics.observability import get_logger, timed
from analytics.pagination import paginate_records
from analytics.periods import daily_average, elapsed_days, mom_deltas
from analytics.store import RowQuery, RowSource
from analytics.tiers import tier_name
from analytics.validators import (
    require_concrete_month,
    validate_brand_name,
    validate_limit,
    validate_page,
)

logger = get_logger(__name__)

TRANSACTIONS = "member_transactions"
REGISTRATIONS = "new_registrations"

MOVEMENT_COLUMNS = (
    "row_id", "userkey", "unique_code", "line", "date",
    "deposit_cases", "first_deposit_date", "tier_name",
)

# KPI keys that are daily-averaged for the running month
DAILY_AVERAGE_KEYS = (
    "active_member",
    "new_depositor",
    "deposit_cases",
    "deposit_amount",
    "withdraw_cases",
    "withdraw_amount",
    "ggr",
    "net_profit",
)


def _sort_retention(records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: (-r["active_days"], -r["net_profit"]))


class ReportEngine:
    """
    Builds report payloads from a RowSource.

    Usage:
        engine = ReportEngine(get_source())
        page = engine.customer_retention(2025, "March", page=1, limit=50)
    """

    def __init__(
        self,
        source: RowSource,
        fetcher: Optional[BatchedFetcher] = None,
        app_config: Optional[AppConfig] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self.config = app_config or config
        self.source = source
        self.fetcher = fetcher or BatchedFetcher(source, self.config.fetch)
        self.policy = NewDepositorPolicy(self.config.analytics.new_depositor_policy)
        self._today = today or date.today

    # ─── Query building ──────────────────────────────────────────────────────

    def _scoped_query(self, table: str, scope: BrandScope, currency: Optional[str]) -> RowQuery:
        query = RowQuery(table)
        if currency:
            query = query.eq("currency", currency)
        return scope.apply(query)

    def _period_query(self, window: PeriodWindow, scope: BrandScope, currency: Optional[str]) -> RowQuery:
        query = self._scoped_query(TRANSACTIONS, scope, currency)
        if window.month_key is not None:
            representation = self.config.store.table(TRANSACTIONS).month_representation
            return (
                query
                .eq("year", window.month_key.year)
                .eq("month", window.month_key.store_value(representation))
            )
        return query.between("date", window.start, window.end)

    def _min_date_lookup(self, scope: BrandScope, currency: Optional[str]):
        base = self._scoped_query(TRANSACTIONS, scope, currency)
        return lambda keys: self.fetcher.fetch_min_deposit_dates(base, keys)

    def _cohort(
        self,
        window: PeriodWindow,
        scope: BrandScope,
        currency: Optional[str],
        active_only: bool = False,
        columns: Sequence[str] = (),
    ) -> List[UserCohortSummary]:
        query = self._period_query(window, scope, currency)
        if active_only:
            query = query.gt("deposit_cases", 0)
        if columns:
            query = query.select(*columns)
        # Each page is folded into its own cohort; raw rows never accumulate
        page_cohorts = [
            aggregate_cohort(normalize_rows(page), window)
            for page in self.fetcher.iter_pages(query)
        ]
        return fill_first_deposit_dates(
            combine_cohorts(*page_cohorts),
            self._min_date_lookup(scope, currency),
        )

    def _scope(self, brand: Optional[str], allowed_brands: Optional[Sequence[str]]) -> BrandScope:
        return resolve_brand_scope(validate_brand_name(brand), allowed_brands)

    def _lifecycle(
        self, month_key: MonthKey, scope: BrandScope, currency: Optional[str]
    ) -> Tuple[List[UserCohortSummary], List[UserCohortSummary], LifecycleResult]:
        current = self._cohort(PeriodWindow.for_month(month_key), scope, currency)
        prior = self._cohort(PeriodWindow.for_month(month_key.previous()), scope, currency)
        return current, prior, classify_lifecycle(prior, current, month_key, self.policy)

    # ─── Retention ───────────────────────────────────────────────────────────

    def retention_records(
        self,
        window: PeriodWindow,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Active members of the window with totals and metrics.

        Status is only assigned when the window is a single calendar month.
        """
        scope = self._scope(brand, allowed_brands)
        current = active_members(self._cohort(window, scope, currency))

        lifecycle = None
        if window.month_key is not None:
            prior = self._cohort(PeriodWindow.for_month(window.month_key.previous()), scope, currency)
            lifecycle = classify_lifecycle(prior, current, window.month_key, self.policy)

        records = []
        for summary in current:
            status = lifecycle.status_of(summary.userkey) if lifecycle else None
            records.append({
                **summary.to_dict(),
                **derive_metrics(summary),
                "status": status.value if status else None,
            })
        return _sort_retention(records)

    @timed("report_customer_retention")
    def customer_retention(
        self,
        window: PeriodWindow,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
        page: int = 1,
        limit: int = 100,
        status: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Paginated retention list, optionally filtered by status."""
        page = validate_page(page)
        limit = validate_limit(limit)
        records = self.retention_records(window, brand, allowed_brands, currency)
        if status:
            wanted = status.strip().upper()
            records = [r for r in records if (r["status"] or "").upper() == wanted]
        data, info = paginate_records(records, page, limit)
        return {"data": data, "pagination": info.to_dict()}

    @timed("report_retention_by_active_days")
    def retention_by_active_days(
        self,
        window: PeriodWindow,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
        include_members: bool = True,
    ) -> Dict[str, Any]:
        """
        Active members bucketed by active days (7+ down to 1) with KPIs per bucket.

        Each `*_percentage` is the bucket's share of the same total over all
        buckets; `atv_percentage` compares the bucket's ATV with the overall ATV.
        """
        scope = self._scope(brand, allowed_brands)
        buckets = bucket_by_active_days(active_members(self._cohort(window, scope, currency)))
        overall = cohort_totals(s for members in buckets.values() for s in members)
        overall_atv = atv(overall["deposit_amount"], overall["deposit_cases"])
        overall_ggr = ggr(overall["deposit_amount"], overall["withdraw_amount"])

        categories = []
        for name, members in buckets.items():
            totals = cohort_totals(members)
            bucket_atv = atv(totals["deposit_amount"], totals["deposit_cases"])
            bucket_ggr = ggr(totals["deposit_amount"], totals["withdraw_amount"])
            category = {
                "category": name,
                "active_players": totals["members"],
                "percentage": percentage(totals["members"], overall["members"]),
                "atv": bucket_atv,
                "atv_percentage": percentage(bucket_atv, overall_atv),
                "ggr": bucket_ggr,
                "ggr_percentage": percentage(bucket_ggr, overall_ggr),
            }
            for field in ("deposit_cases", "deposit_amount", "withdraw_cases", "withdraw_amount", "bonus"):
                category[field] = totals[field]
                category[f"{field}_percentage"] = percentage(totals[field], overall[field])
            if include_members:
                category["members"] = _sort_retention([
                    {**s.to_dict(), **derive_metrics(s)} for s in members
                ])
            categories.append(category)

        return {
            "period": window.to_dict(),
            "totalMembers": overall["members"],
            "categories": categories,
        }

    @timed("report_lifecycle_summary")
    def lifecycle_summary(
        self,
        year,
        month,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Lifecycle counts and rates for a concrete month."""
        month_key = require_concrete_month(year, month)
        scope = self._scope(brand, allowed_brands)
        _, _, lifecycle = self._lifecycle(month_key, scope, currency)
        return {**lifecycle.to_dict(), "policy": self.policy.value}

    # ─── Churn ───────────────────────────────────────────────────────────────

    def churn_records(
        self,
        year,
        month,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Members active in the previous month but not in this one.

        Details come from the previous month's cohort.
        """
        month_key = require_concrete_month(year, month)
        scope = self._scope(brand, allowed_brands)
        _, prior, lifecycle = self._lifecycle(month_key, scope, currency)

        reference = min(self._today(), month_key.last_day)
        records = []
        for summary in prior:
            if summary.userkey not in lifecycle.churned:
                continue
            last = summary.last_deposit_date
            records.append({
                **summary.to_dict(),
                "status": LifecycleStatus.CHURNED.value,
                "member_type": lifecycle.churned_age[summary.userkey].value,
                "days_inactive": (reference - last).days if last else None,
                "winrate": winrate(ggr(summary.deposit_amount, summary.withdraw_amount), summary.deposit_amount),
                "atv": atv(summary.deposit_amount, summary.deposit_cases),
            })
        return sorted(records, key=lambda r: -r["net_profit"])

    @timed("report_churned_members")
    def churned_members(
        self,
        year,
        month,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
        page: int = 1,
        limit: int = 100,
    ) -> Dict[str, Any]:
        page = validate_page(page)
        limit = validate_limit(limit)
        records = self.churn_records(year, month, brand, allowed_brands, currency)
        data, info = paginate_records(records, page, limit)
        return {"data": data, "pagination": info.to_dict()}

    # ─── Tier movement ───────────────────────────────────────────────────────

    def _movements(
        self,
        period_a: PeriodWindow,
        period_b: PeriodWindow,
        scope: BrandScope,
        currency: Optional[str],
    ):
        cohort_a = self._cohort(period_a, scope, currency, active_only=True, columns=MOVEMENT_COLUMNS)
        cohort_b = self._cohort(period_b, scope, currency, active_only=True, columns=MOVEMENT_COLUMNS)

        tiers_a = {s.userkey: s.tier for s in cohort_a}
        tiers_b = {s.userkey: s.tier for s in cohort_b}
        details = {s.userkey: (s.unique_code, ", ".join(sorted(s.brands)) or None) for s in cohort_a}
        details.update({s.userkey: (s.unique_code, ", ".join(sorted(s.brands)) or None) for s in cohort_b})

        # Members new to period B who had deposited before it are reactivations
        returning = {
            s.userkey for s in cohort_b
            if s.userkey not in tiers_a
            and s.first_deposit_date is not None
            and s.first_deposit_date < period_b.start
        }
        return calculate_movements(tiers_a, tiers_b, details, returning)

    @timed("report_tier_movement")
    def tier_movement(
        self,
        period_a: PeriodWindow,
        period_b: PeriodWindow,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Movement summary, transition matrix and top movers between two periods."""
        scope = self._scope(brand, allowed_brands)
        movements = self._movements(period_a, period_b, scope, currency)
        upgrades, downgrades = top_movers(movements, self.config.analytics.top_movers_limit)

        return {
            "periodA": period_a.to_dict(),
            "periodB": period_b.to_dict(),
            "summary": summarize_movements(movements),
            "matrix": build_transition_matrix(movements).to_dict(),
            "topUpgrades": [self._movement_record(m) for m in upgrades],
            "topDowngrades": [self._movement_record(m) for m in downgrades],
        }

    @staticmethod
    def _movement_record(movement) -> Dict[str, Any]:
        return {
            **movement.to_dict(),
            "from_tier_name": tier_name(movement.from_tier),
            "to_tier_name": tier_name(movement.to_tier),
        }

    def movement_customer_records(
        self,
        period_a: PeriodWindow,
        period_b: PeriodWindow,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
        movement_type: Optional[MovementType] = None,
        from_tier: Optional[int] = None,
        to_tier: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Filtered movement list, enriched with each member's period totals.

        Totals are fetched for the filtered members only, by userkey.
        """
        scope = self._scope(brand, allowed_brands)
        movements = [
            m for m in self._movements(period_a, period_b, scope, currency)
            if (movement_type is None or m.movement_type is movement_type)
            and (from_tier is None or m.from_tier == from_tier)
            and (to_tier is None or m.to_tier == to_tier)
        ]
        if not movements:
            return []

        span = PeriodWindow(min(period_a.start, period_b.start), max(period_a.end, period_b.end))
        query = self._scoped_query(TRANSACTIONS, scope, currency).between("date", span.start, span.end)
        result = self.fetcher.fetch_by_keys(query, "userkey", [m.userkey for m in movements])
        rows = normalize_rows(result.rows)
        totals_a = {s.userkey: s for s in aggregate_cohort(rows, period_a)}
        totals_b = {s.userkey: s for s in aggregate_cohort(rows, period_b)}

        records = []
        for movement in movements:
            a = totals_a.get(movement.userkey)
            b = totals_b.get(movement.userkey)
            records.append({
                **self._movement_record(movement),
                "user_name": (b or a).user_name if (b or a) else None,
                "period_a_deposit_amount": a.deposit_amount if a else 0.0,
                "period_b_deposit_amount": b.deposit_amount if b else 0.0,
                "period_a_net_profit": a.net_profit if a else 0.0,
                "period_b_net_profit": b.net_profit if b else 0.0,
                "period_b_active_days": b.active_days if b else 0,
            })
        return records

    @timed("report_tier_movement_customers")
    def tier_movement_customers(
        self,
        period_a: PeriodWindow,
        period_b: PeriodWindow,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
        movement_type: Optional[MovementType] = None,
        from_tier: Optional[int] = None,
        to_tier: Optional[int] = None,
        page: int = 1,
        limit: int = 100,
    ) -> Dict[str, Any]:
        page = validate_page(page)
        limit = validate_limit(limit)
        records = self.movement_customer_records(
            period_a, period_b, brand, allowed_brands, currency,
            movement_type, from_tier, to_tier,
        )
        data, info = paginate_records(records, page, limit)
        return {"data": data, "pagination": info.to_dict()}

    # ─── KPIs ────────────────────────────────────────────────────────────────

    def _new_registrations(self, month_key: MonthKey, scope: BrandScope, currency: Optional[str]) -> int:
        representation = self.config.store.table(REGISTRATIONS).month_representation
        query = (
            self._scoped_query(REGISTRATIONS, scope, currency)
            .eq("year", month_key.year)
            .eq("month", month_key.store_value(representation))
            .select("row_id", "date", "new_register")
        )
        result = self.fetcher.fetch_all(query)
        return sum(int(row.get("new_register") or 0) for row in result.rows)

    def _month_kpis(
        self,
        cohort: List[UserCohortSummary],
        new_depositors: int,
        new_registrations: int,
    ) -> Dict[str, Any]:
        totals = cohort_totals(cohort)
        active = totals["active_members"]
        ggr_value = ggr(totals["deposit_amount"], totals["withdraw_amount"])
        kpis = {
            "active_member": active,
            "new_depositor": new_depositors,
            "new_register": new_registrations,
            "pure_member": pure_member(active, new_depositors),
            "deposit_cases": totals["deposit_cases"],
            "deposit_amount": totals["deposit_amount"],
            "withdraw_cases": totals["withdraw_cases"],
            "withdraw_amount": totals["withdraw_amount"],
            "bonus": totals["bonus"],
            "add_transaction": totals["add_transaction"],
            "deduct_transaction": totals["deduct_transaction"],
            "valid_bet_amount": totals["valid_bet_amount"],
            "net_profit": net_profit(
                totals["deposit_amount"],
                totals["withdraw_amount"],
                totals["add_transaction"],
                totals["deduct_transaction"],
            ),
            "conversion_rate": conversion_rate(new_depositors, new_registrations),
            "ggr_per_user": ggr_per_user(ggr_value, active),
            "deposit_per_user": deposit_per_user(totals["deposit_amount"], active),
        }
        kpis.update(derive_metrics({**totals, "net_profit": kpis["net_profit"]}))
        return kpis

    @timed("report_kpi_summary")
    def kpi_summary(
        self,
        year,
        month,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Month KPIs, the previous month's, MoM deltas and daily averages."""
        month_key = require_concrete_month(year, month)
        prior_key = month_key.previous()
        scope = self._scope(brand, allowed_brands)

        current, prior, lifecycle = self._lifecycle(month_key, scope, currency)
        before_prior = self._cohort(PeriodWindow.for_month(prior_key.previous()), scope, currency)
        prior_lifecycle = classify_lifecycle(before_prior, prior, prior_key, self.policy)

        current_kpis = self._month_kpis(
            current,
            lifecycle.count(LifecycleStatus.NEW),
            self._new_registrations(month_key, scope, currency),
        )
        current_kpis.update(churn_rate=lifecycle.churn_rate, retention_rate=lifecycle.retention_rate)
        previous_kpis = self._month_kpis(
            prior,
            prior_lifecycle.count(LifecycleStatus.NEW),
            self._new_registrations(prior_key, scope, currency),
        )
        previous_kpis.update(churn_rate=prior_lifecycle.churn_rate, retention_rate=prior_lifecycle.retention_rate)

        latest = self.fetcher.fetch_latest_date(self._period_query(PeriodWindow.for_month(month_key), scope, currency))
        days = elapsed_days(month_key, latest, self._today())

        return {
            "month": str(month_key),
            "previousMonth": str(prior_key),
            "current": current_kpis,
            "previous": previous_kpis,
            "mom": mom_deltas(current_kpis, previous_kpis),
            "elapsedDays": days,
            "latestDataDate": latest.isoformat() if latest else None,
            "dailyAverage": {
                key: daily_average(current_kpis[key], days, month_key) for key in DAILY_AVERAGE_KEYS
            },
        }

    def month_max_date(
        self,
        year,
        month,
        brand: Optional[str] = None,
        allowed_brands: Optional[Sequence[str]] = None,
        currency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Latest date with data for a month."""
        month_key = require_concrete_month(year, month)
        scope = self._scope(brand, allowed_brands)
        latest = self.fetcher.fetch_latest_date(
            self._period_query(PeriodWindow.for_month(month_key), scope, currency)
        )
        return {"month": str(month_key), "max_date": latest.isoformat() if latest else None}

    # ─── Export ──────────────────────────────────────────────────────────────

    def export_csv(self, report_type: str, records: List[Dict[str, Any]]) -> str:
        logger.info(f"Exporting {len(records)} {report_type} records")
        return render_report(report_type, records)
