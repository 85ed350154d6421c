"""
Integration tests for analytics/store.py

Runs against an in-memory DuckDB database.
"""
import pytest
from datetime import date

from analytics.exceptions import StoreConnectionError, StoreDataError, StoreQueryError
from analytics.store import DuckDBRowSource, RowQuery


class TestBuildSql:
    """Tests for RowQuery to SQL translation."""

    def test_filters_are_parameters(self, memory_source):
        query = (
            RowQuery("member_transactions")
            .select("userkey", "date")
            .eq("line", "AlphaBet")
            .between("date", date(2025, 3, 1), date(2025, 3, 31))
            .order("date", descending=True)
        )
        sql, params = memory_source.build_sql(query)

        assert sql.startswith('SELECT "userkey", "date" FROM member_transactions WHERE')
        assert '"line" = ?' in sql
        assert '"date" >= ?' in sql
        assert 'ORDER BY "date" DESC NULLS LAST' in sql
        assert params == ["AlphaBet", date(2025, 3, 1), date(2025, 3, 31)]

    def test_unknown_column_rejected(self, memory_source):
        with pytest.raises(StoreQueryError) as exc_info:
            memory_source.build_sql(RowQuery("member_transactions").eq("line; DROP TABLE x", 1))
        assert exc_info.value.table == "member_transactions"

    def test_unknown_table_rejected(self, memory_source):
        with pytest.raises(StoreQueryError):
            memory_source.build_sql(RowQuery("members"))

    def test_in_list_cap(self, memory_source):
        """The fixture store accepts at most two IN values."""
        with pytest.raises(StoreQueryError):
            memory_source.build_sql(RowQuery("member_transactions").in_("userkey", ["a", "b", "c"]))

    def test_empty_in_matches_nothing(self, seeded_source):
        rows = seeded_source.fetch(RowQuery("member_transactions").in_("userkey", []))
        assert rows == []

    def test_limit_never_exceeds_cap(self, memory_source):
        sql, _ = memory_source.build_sql(RowQuery("member_transactions").range(6, 500))
        assert sql.endswith("LIMIT 3 OFFSET 6")


class TestFetch:
    """Tests for DuckDBRowSource.fetch."""

    def test_rows_capped_per_request(self, seeded_source):
        rows = seeded_source.fetch(RowQuery("member_transactions"))
        assert len(rows) == 3

    def test_filters_and_projection(self, seeded_source):
        query = (
            RowQuery("member_transactions")
            .select("userkey", "deposit_amount")
            .eq("month", "March")
            .eq("line", "BetaWin")
            .order("userkey")
        )
        rows = seeded_source.fetch(query)

        assert rows == [
            {"userkey": "u5", "deposit_amount": 80.0},
            {"userkey": "u6", "deposit_amount": 0.0},
        ]

    def test_dates_and_nulls_round_trip(self, seeded_source):
        rows = seeded_source.fetch(
            RowQuery("member_transactions").select("date", "first_deposit_date").eq("userkey", "u6")
        )
        assert rows == [{"date": date(2025, 3, 22), "first_deposit_date": None}]

    def test_registration_month_is_numeric(self, seeded_source):
        rows = seeded_source.fetch(
            RowQuery("new_registrations").select("new_register").eq("year", 2025).eq("month", 3).order("line")
        )
        assert [r["new_register"] for r in rows] == [4, 1]

    def test_not_connected(self):
        source = DuckDBRowSource(":memory:")
        with pytest.raises(StoreConnectionError):
            source.fetch(RowQuery("member_transactions"))


class TestLoadAndStats:
    """Tests for load_rows and get_stats."""

    def test_row_ids_assigned(self, seeded_source):
        rows = seeded_source.fetch(RowQuery("member_transactions").select("row_id").order("row_id"))
        assert [r["row_id"] for r in rows] == [1, 2, 3]

    def test_empty_load(self, memory_source):
        assert memory_source.load_rows("member_transactions", []) == 0

    def test_load_rejects_non_mappings(self, memory_source):
        with pytest.raises(StoreDataError):
            memory_source.load_rows("member_transactions", [["u1"]])

    def test_stats(self, seeded_source):
        seeded_source.fetch(RowQuery("member_transactions"))
        stats = seeded_source.get_stats()

        assert stats["member_transactions"] == 9
        assert stats["new_registrations"] == 3
        assert stats["total_queries"] >= 1

    def test_close_is_idempotent(self):
        source = DuckDBRowSource(":memory:")
        source.connect()
        source.close()
        source.close()
        assert not source.is_connected
