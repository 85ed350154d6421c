"""
Pytest configuration and shared fixtures.
"""
import pytest
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from analytics.config import FetchConfig
from analytics.exceptions import StoreQueryError
from analytics.fetcher import BatchedFetcher, sort_rows
from analytics.models import MonthKey
from analytics.reports import ReportEngine
from analytics.store import DuckDBRowSource, RowQuery


REPORT_TODAY = date(2025, 4, 15)


def member_record(userkey: str, day: date, line: str = "AlphaBet", **fields) -> Dict[str, Any]:
    """A member_transactions record with year/month derived from the date."""
    record = {
        "userkey": userkey,
        "unique_code": f"UC-{userkey}",
        "user_name": f"user_{userkey}",
        "line": line,
        "currency": "MYR",
        "date": day,
        "year": day.year,
        "month": MonthKey(day.year, day.month).name,
        "deposit_cases": 0,
        "deposit_amount": 0.0,
        "withdraw_cases": 0,
        "withdraw_amount": 0.0,
        "bonus": 0.0,
        "add_transaction": 0.0,
        "deduct_transaction": 0.0,
        "valid_bet_amount": 0.0,
        "net_profit": 0.0,
        "first_deposit_date": None,
        "last_deposit_date": None,
        "tier_name": None,
    }
    record.update(fields)
    return record


class ListRowSource:
    """In-memory RowSource enforcing the same caps as the real store."""

    def __init__(
        self,
        rows: List[Dict[str, Any]],
        max_rows_per_request: int = 1000,
        max_in_values: int = 1000,
        fail_on: Optional[Callable[[RowQuery], Optional[Exception]]] = None,
    ):
        self.rows = [dict(r, row_id=r.get("row_id", i)) for i, r in enumerate(rows, start=1)]
        self.max_rows_per_request = max_rows_per_request
        self.max_in_values = max_in_values
        self.fail_on = fail_on
        self.queries: List[RowQuery] = []

    @staticmethod
    def _matches(row: Dict[str, Any], f) -> bool:
        value = row.get(f.column)
        if f.op == "eq":
            return value == f.value
        if f.op == "in":
            return value in f.value
        if f.op == "not_null":
            return value is not None
        if value is None:
            return False
        if f.op == "gt":
            return value > f.value
        if f.op == "gte":
            return value >= f.value
        if f.op == "lt":
            return value < f.value
        if f.op == "lte":
            return value <= f.value
        raise StoreQueryError("Unsupported filter operator", f.op)

    def fetch(self, query: RowQuery) -> List[Dict[str, Any]]:
        self.queries.append(query)
        if self.fail_on is not None:
            error = self.fail_on(query)
            if error is not None:
                raise error

        for f in query.filters:
            if f.op == "in" and len(f.value) > self.max_in_values:
                raise StoreQueryError("IN list exceeds store limit", str(len(f.value)))

        matched = [r for r in self.rows if all(self._matches(r, f) for f in query.filters)]
        ordered = sort_rows(matched, query.ordering)
        limit = self.max_rows_per_request
        if query.limit is not None:
            limit = min(query.limit, limit)
        page = ordered[query.offset:query.offset + limit]
        if query.columns:
            return [{c: r.get(c) for c in query.columns} for r in page]
        return [dict(r) for r in page]


@pytest.fixture
def make_record() -> Callable[..., Dict[str, Any]]:
    """Factory for member_transactions records."""
    return member_record


@pytest.fixture
def list_source() -> Callable[..., ListRowSource]:
    """Factory for in-memory row sources."""
    return ListRowSource


@pytest.fixture
def scenario_records() -> List[Dict[str, Any]]:
    """
    Two months of activity.

    February 2025: u1 (Tier 3), u2 (Super VIP, first deposit this month), u5 (Tier 2).
    March 2025: u1 retained and upgraded, u3 new depositor, u4 reactivated,
    u5 retained and downgraded, u6 a withdrawal-only row (not active).
    """
    return [
        # February
        member_record("u1", date(2025, 2, 10), deposit_cases=1, deposit_amount=100.0,
                      net_profit=100.0, first_deposit_date=date(2024, 6, 1), tier_name="Tier 3"),
        member_record("u2", date(2025, 2, 12), deposit_cases=3, deposit_amount=900.0,
                      withdraw_cases=1, withdraw_amount=300.0, net_profit=600.0,
                      first_deposit_date=date(2025, 2, 12), tier_name="Super VIP"),
        member_record("u5", date(2025, 2, 20), line="BetaWin", deposit_cases=1, deposit_amount=80.0,
                      net_profit=80.0, first_deposit_date=date(2024, 11, 11), tier_name="Tier 2"),
        # March
        member_record("u1", date(2025, 3, 5), deposit_cases=2, deposit_amount=200.0,
                      withdraw_cases=1, withdraw_amount=50.0, net_profit=150.0,
                      first_deposit_date=date(2024, 6, 1), tier_name="Tier 4"),
        member_record("u1", date(2025, 3, 6), deposit_cases=1, deposit_amount=100.0,
                      net_profit=100.0, first_deposit_date=date(2024, 6, 1), tier_name="Tier 4"),
        member_record("u3", date(2025, 3, 10), deposit_cases=1, deposit_amount=50.0,
                      net_profit=50.0, first_deposit_date=date(2025, 3, 10), tier_name="Regular"),
        member_record("u4", date(2025, 3, 15), deposit_cases=1, deposit_amount=500.0,
                      withdraw_cases=1, withdraw_amount=100.0, net_profit=400.0,
                      first_deposit_date=date(2024, 1, 5), tier_name="Tier 1"),
        member_record("u5", date(2025, 3, 20), line="BetaWin", deposit_cases=1, deposit_amount=80.0,
                      net_profit=80.0, first_deposit_date=date(2024, 11, 11), tier_name="Regular"),
        member_record("u6", date(2025, 3, 22), line="BetaWin", withdraw_cases=1,
                      withdraw_amount=20.0, net_profit=-20.0),
    ]


@pytest.fixture
def registration_records() -> List[Dict[str, Any]]:
    return [
        {"line": "AlphaBet", "currency": "MYR", "date": date(2025, 2, 1), "year": 2025, "month": 2, "new_register": 2},
        {"line": "AlphaBet", "currency": "MYR", "date": date(2025, 3, 1), "year": 2025, "month": 3, "new_register": 4},
        {"line": "BetaWin", "currency": "MYR", "date": date(2025, 3, 1), "year": 2025, "month": 3, "new_register": 1},
    ]


@pytest.fixture
def memory_source():
    """Connected in-memory DuckDB source with small caps to force paging."""
    source = DuckDBRowSource(":memory:", max_rows_per_request=3, max_in_values=2)
    source.connect()
    yield source
    source.close()


@pytest.fixture
def seeded_source(memory_source, scenario_records, registration_records):
    memory_source.load_rows("member_transactions", scenario_records)
    memory_source.load_rows("new_registrations", registration_records)
    return memory_source


@pytest.fixture
def small_fetch_config() -> FetchConfig:
    return FetchConfig(
        page_size=3,
        safety_ceiling=100_000,
        in_batch_size=2,
        in_crossover=5000,
        retry_attempts=1,
        retry_base_delay=0.0,
    )


@pytest.fixture
def engine(seeded_source, small_fetch_config) -> ReportEngine:
    """Report engine over the seeded store, with a fixed 'today'."""
    return ReportEngine(
        seeded_source,
        fetcher=BatchedFetcher(seeded_source, small_fetch_config, sleep=lambda _: None),
        today=lambda: REPORT_TODAY,
    )
