"""
Row store boundary.

The engine talks to the store through RowQuery (equality/range/IN filters,
ordering, offset+limit) and a RowSource that executes it. DuckDBRowSource
is the concrete store; it enforces a per-request row cap and an IN-list cap
the same way a hosted relational API would, so the fetcher has to page.
"""
import threading
from dataclasses import dataclass, replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import duckdb
import pandas as pd

from analytics.config import config
from analytics.exceptions import StoreConnectionError, StoreDataError, StoreQueryError
from analytics.observability import get_logger

logger = get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# QUERY DESCRIPTION
# ═══════════════════════════════════════════════════════════════════════════════

_SQL_OPERATORS = {
    "eq": "=",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


@dataclass(frozen=True)
class Filter:
    column: str
    op: str  # eq, gt, gte, lt, lte, in, not_null
    value: Any = None


@dataclass(frozen=True)
class RowQuery:
    """
    Immutable description of a row query.

    Builder methods return a new query, so a base query can be shared
    between the pages and sub-batches derived from it.
    """
    table: str
    columns: Tuple[str, ...] = ()
    filters: Tuple[Filter, ...] = ()
    ordering: Tuple[Tuple[str, bool], ...] = ()  # (column, descending)
    offset: int = 0
    limit: Optional[int] = None

    def select(self, *columns: str) -> "RowQuery":
        return replace(self, columns=tuple(columns))

    def _where(self, column: str, op: str, value: Any = None) -> "RowQuery":
        return replace(self, filters=self.filters + (Filter(column, op, value),))

    def eq(self, column: str, value: Any) -> "RowQuery":
        return self._where(column, "eq", value)

    def gt(self, column: str, value: Any) -> "RowQuery":
        return self._where(column, "gt", value)

    def gte(self, column: str, value: Any) -> "RowQuery":
        return self._where(column, "gte", value)

    def lt(self, column: str, value: Any) -> "RowQuery":
        return self._where(column, "lt", value)

    def lte(self, column: str, value: Any) -> "RowQuery":
        return self._where(column, "lte", value)

    def in_(self, column: str, values: Sequence[Any]) -> "RowQuery":
        return self._where(column, "in", tuple(values))

    def not_null(self, column: str) -> "RowQuery":
        return self._where(column, "not_null")

    def order(self, column: str, descending: bool = False) -> "RowQuery":
        return replace(self, ordering=self.ordering + ((column, descending),))

    def range(self, offset: int, limit: int) -> "RowQuery":
        return replace(self, offset=offset, limit=limit)

    def between(self, column: str, start: date, end: date) -> "RowQuery":
        return self.gte(column, start).lte(column, end)

    def has_order_on(self, column: str) -> bool:
        return any(col == column for col, _ in self.ordering)


class RowSource(Protocol):
    """What the fetcher needs from a store."""

    max_rows_per_request: int
    max_in_values: int

    def fetch(self, query: RowQuery) -> List[Dict[str, Any]]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# SCHEMA
# ═══════════════════════════════════════════════════════════════════════════════

SCHEMAS: Dict[str, Dict[str, str]] = {
    "member_transactions": {
        "row_id": "BIGINT",
        "userkey": "VARCHAR",
        "unique_code": "VARCHAR",
        "user_name": "VARCHAR",
        "line": "VARCHAR",
        "currency": "VARCHAR",
        "date": "DATE",
        "year": "INTEGER",
        "month": "VARCHAR",
        "deposit_cases": "INTEGER",
        "deposit_amount": "DOUBLE",
        "withdraw_cases": "INTEGER",
        "withdraw_amount": "DOUBLE",
        "bonus": "DOUBLE",
        "add_transaction": "DOUBLE",
        "deduct_transaction": "DOUBLE",
        "valid_bet_amount": "DOUBLE",
        "net_profit": "DOUBLE",
        "first_deposit_date": "DATE",
        "last_deposit_date": "DATE",
        "tier_name": "VARCHAR",
    },
    "new_registrations": {
        "row_id": "BIGINT",
        "line": "VARCHAR",
        "currency": "VARCHAR",
        "date": "DATE",
        "year": "INTEGER",
        "month": "INTEGER",
        "new_register": "INTEGER",
    },
}

_NUMERIC_TYPES = ("INTEGER", "BIGINT", "DOUBLE")


def _quote(identifier: str) -> str:
    return f'"{identifier}"'


def _load_value(value: Any, sql_type: str) -> Any:
    """Normalise a value for the bulk-load frame."""
    if sql_type in _NUMERIC_TYPES:
        return 0 if value is None or value == "" else value
    if isinstance(value, date):
        return value.isoformat()
    if value == "":
        return None
    return value


# ═══════════════════════════════════════════════════════════════════════════════
# DUCKDB SOURCE
# ═══════════════════════════════════════════════════════════════════════════════

class DuckDBRowSource:
    """
    DuckDB-backed RowSource.

    DuckDB connections are not safe for concurrent use, so all access goes
    through one lock with a fresh cursor per statement.
    """

    def __init__(
        self,
        db_path: str = None,
        max_rows_per_request: int = None,
        max_in_values: int = None,
    ):
        self.db_path = db_path or config.store.db_path
        self.max_rows_per_request = max_rows_per_request or config.store.max_rows_per_request
        self.max_in_values = max_in_values or config.store.max_in_values
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()
        self._total_queries = 0

    # ─── Connection ──────────────────────────────────────────────────────────

    def connect(self) -> None:
        """Open the database and create tables if needed."""
        with self._lock:
            if self.is_connected:
                return
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._connection = duckdb.connect(str(self.db_path))
            except duckdb.Error as e:
                raise StoreConnectionError("Failed to open analytics store", str(e)) from e
            self._init_schema()
            logger.info(f"DuckDB connected: {self.db_path}")

    def close(self) -> None:
        with self._lock:
            if self.is_connected:
                self._connection.close()
                self._connection = None
                logger.info("DuckDB connection closed")

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def _init_schema(self) -> None:
        for table, columns in SCHEMAS.items():
            sequence = f"{table}_row_id_seq"
            self._connection.execute(f"CREATE SEQUENCE IF NOT EXISTS {sequence}")
            column_sql = ",\n                ".join(
                f"{_quote(name)} {sql_type} DEFAULT nextval('{sequence}') PRIMARY KEY"
                if name == "row_id" else f"{_quote(name)} {sql_type}"
                for name, sql_type in columns.items()
            )
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                {column_sql}
                )
            """)
        self._connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_member_tx_period ON member_transactions (year, month, line)"
        )
        self._connection.execute(
            "CREATE INDEX IF NOT EXISTS idx_member_tx_userkey ON member_transactions (userkey)"
        )

    def _require_connection(self) -> duckdb.DuckDBPyConnection:
        if not self.is_connected:
            raise StoreConnectionError("Analytics store is not connected")
        return self._connection

    # ─── Queries ─────────────────────────────────────────────────────────────

    def _columns_for(self, table: str) -> Dict[str, str]:
        try:
            return SCHEMAS[table]
        except KeyError:
            raise StoreQueryError("Unknown table", table, table=table)

    def build_sql(self, query: RowQuery) -> Tuple[str, List[Any]]:
        """
        Translate a RowQuery into SQL with ? placeholders.

        Identifiers are checked against the table schema; values are always
        bound as parameters.
        """
        schema = self._columns_for(query.table)

        def check(column: str) -> str:
            if column not in schema:
                raise StoreQueryError("Unknown column", column, table=query.table)
            return _quote(column)

        columns = query.columns or tuple(schema)
        select_sql = ", ".join(check(c) for c in columns)

        where: List[str] = []
        params: List[Any] = []
        for f in query.filters:
            column = check(f.column)
            if f.op == "in":
                if len(f.value) > self.max_in_values:
                    raise StoreQueryError(
                        "IN list exceeds store limit",
                        f"{len(f.value)} values > {self.max_in_values}",
                        table=query.table,
                    )
                if not f.value:
                    where.append("FALSE")
                else:
                    where.append(f"{column} IN ({', '.join('?' for _ in f.value)})")
                    params.extend(f.value)
            elif f.op == "not_null":
                where.append(f"{column} IS NOT NULL")
            elif f.op in _SQL_OPERATORS:
                where.append(f"{column} {_SQL_OPERATORS[f.op]} ?")
                params.append(f.value)
            else:
                raise StoreQueryError("Unsupported filter operator", f.op, table=query.table)

        sql = f"SELECT {select_sql} FROM {query.table}"
        if where:
            sql += " WHERE " + " AND ".join(where)
        if query.ordering:
            sql += " ORDER BY " + ", ".join(
                f"{check(column)} {'DESC' if descending else 'ASC'} NULLS LAST"
                for column, descending in query.ordering
            )

        # The store never returns more than its per-request cap
        limit = self.max_rows_per_request
        if query.limit is not None:
            limit = min(int(query.limit), limit)
        sql += f" LIMIT {int(limit)} OFFSET {int(query.offset)}"
        return sql, params

    def fetch(self, query: RowQuery) -> List[Dict[str, Any]]:
        """Execute a query and return rows as dicts."""
        sql, params = self.build_sql(query)
        with self._lock:
            connection = self._require_connection()
            cursor = connection.cursor()
            try:
                result = cursor.execute(sql, params)
                names = [d[0] for d in result.description]
                rows = result.fetchall()
            except (duckdb.IOException, duckdb.ConnectionException) as e:
                raise StoreConnectionError(f"Store unavailable while reading {query.table}", str(e)) from e
            except duckdb.Error as e:
                raise StoreQueryError(f"Query on {query.table} failed", str(e), table=query.table) from e
            finally:
                cursor.close()
            self._total_queries += 1
        return [dict(zip(names, row)) for row in rows]

    # ─── Loading ─────────────────────────────────────────────────────────────

    def load_rows(self, table: str, records: Iterable[Dict[str, Any]]) -> int:
        """
        Bulk insert records through a registered pandas DataFrame.

        Returns:
            Number of rows inserted
        """
        schema = self._columns_for(table)
        columns = [c for c in schema if c != "row_id"]
        records = list(records)
        if not records:
            return 0

        for record in records:
            if not isinstance(record, dict):
                raise StoreDataError("Load record is not a mapping", expected="dict", got=type(record).__name__)

        frame = pd.DataFrame(
            [{c: _load_value(r.get(c), schema[c]) for c in columns} for r in records],
            columns=columns,
        )
        column_sql = ", ".join(_quote(c) for c in columns)
        select_sql = ", ".join(f"CAST({_quote(c)} AS {schema[c]})" for c in columns)

        with self._lock:
            connection = self._require_connection()
            connection.register("load_frame", frame)
            try:
                connection.execute(
                    f"INSERT INTO {table} ({column_sql}) SELECT {select_sql} FROM load_frame"
                )
            except duckdb.Error as e:
                raise StoreQueryError(f"Bulk load into {table} failed", str(e), table=table) from e
            finally:
                connection.unregister("load_frame")

        logger.info(f"Loaded {len(records)} rows into {table}")
        return len(records)

    def get_stats(self) -> Dict[str, Any]:
        """Row counts per table, for health checks."""
        stats: Dict[str, Any] = {"total_queries": self._total_queries}
        with self._lock:
            connection = self._require_connection()
            for table in SCHEMAS:
                stats[table] = connection.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        return stats


# Singleton instance
_source_instance: Optional[DuckDBRowSource] = None
_source_lock = threading.Lock()


def get_source() -> DuckDBRowSource:
    """Get the shared DuckDB row source (connected on first use)."""
    global _source_instance
    with _source_lock:
        if _source_instance is None:
            source = DuckDBRowSource()
            source.connect()
            _source_instance = source
    return _source_instance


def close_source() -> None:
    global _source_instance
    with _source_lock:
        if _source_instance is not None:
            _source_instance.close()
            _source_instance = None
