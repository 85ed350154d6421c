"""
Batched fetching on top of a RowSource.

The store caps rows per request and values per IN list. BatchedFetcher pages
past the row cap with a deterministic order, splits large key lists into
sub-batches (or, above a crossover size, scans the superset and filters in
memory) and returns one flat, ordered collection.
"""
import time
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from analytics.config import FetchConfig, config
from analytics.exceptions import BatchFetchError, StoreError
from analytics.models import parse_date
from analytics.observability import get_logger, metrics
from analytics.pagination import OffsetPaginator
from analytics.resilience import RetryConfig, retry_call
from analytics.store import RowQuery, RowSource

logger = get_logger(__name__)

DEFAULT_ORDER = (("date", True),)
TIEBREAKER = "row_id"

STRATEGY_SINGLE = "single"
STRATEGY_IN_BATCHES = "in_batches"
STRATEGY_IN_MEMORY = "in_memory"


@dataclass
class FetchResult:
    """Rows from a batched fetch plus how they were obtained."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    strategy: str = STRATEGY_SINGLE
    pages: int = 0
    batches: int = 0
    failed_batches: int = 0
    truncated: bool = False

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)


def sort_rows(rows: List[Dict[str, Any]], ordering: Sequence[Tuple[str, bool]]) -> List[Dict[str, Any]]:
    """
    Stable multi-column sort matching the store's ORDER BY ... NULLS LAST.
    """
    result = list(rows)
    for column, descending in reversed(tuple(ordering)):
        present = [r for r in result if r.get(column) is not None]
        missing = [r for r in result if r.get(column) is None]
        present.sort(key=lambda r: r[column], reverse=descending)
        result = present + missing
    return result


def chunked(items: Sequence[Any], size: int) -> Iterator[List[Any]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class BatchedFetcher:
    """
    Fetches complete row collections from a RowSource.

    Usage:
        fetcher = BatchedFetcher(source)
        result = fetcher.fetch_all(query)
        result = fetcher.fetch_by_keys(query, "userkey", keys)
    """

    def __init__(
        self,
        source: RowSource,
        fetch_config: Optional[FetchConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.source = source
        self.config = fetch_config or config.fetch
        self.retry_config = retry_config or RetryConfig.from_fetch_config(self.config)
        self._sleep = sleep

    @property
    def page_size(self) -> int:
        """Configured page size, never above the store's per-request cap."""
        return max(1, min(self.config.page_size, self.source.max_rows_per_request))

    @property
    def in_batch_size(self) -> int:
        return max(1, min(self.config.in_batch_size, self.source.max_in_values))

    def ordered(self, query: RowQuery) -> RowQuery:
        """Query with a fully deterministic order (date desc by default, row_id tiebreaker)."""
        if not query.ordering:
            query = replace(query, ordering=DEFAULT_ORDER)
        if not query.has_order_on(TIEBREAKER):
            query = query.order(TIEBREAKER)
        return query

    def _fetch_page(self, query: RowQuery) -> List[Dict[str, Any]]:
        return retry_call(
            self.source.fetch,
            query,
            config=self.retry_config,
            sleep=self._sleep,
        )

    def _paginator(self, max_rows: Optional[int] = None) -> OffsetPaginator:
        return OffsetPaginator(
            self._fetch_page,
            page_size=self.page_size,
            max_rows=self.config.safety_ceiling if max_rows is None else max_rows,
        )

    def iter_pages(
        self,
        query: RowQuery,
        paginator: Optional[OffsetPaginator] = None,
    ) -> Iterator[List[Dict[str, Any]]]:
        """
        Lazy, restartable sequence of ordered pages.

        Fetch metrics are recorded here only when the caller did not supply
        its own paginator; callers that do record their own totals.
        """
        standalone = paginator is None
        paginator = paginator or self._paginator()
        rows = 0
        for page in paginator.paginate(self.ordered(query)):
            rows += len(page)
            yield page
        if standalone:
            metrics.record_fetch(pages=paginator.pages_fetched, rows=rows, truncated=paginator.truncated)

    def fetch_all(self, query: RowQuery) -> FetchResult:
        """Every row matching the query, in query order."""
        paginator = self._paginator()
        rows: List[Dict[str, Any]] = []
        for page in self.iter_pages(query, paginator):
            rows.extend(page)

        result = FetchResult(
            rows=rows,
            strategy=STRATEGY_SINGLE,
            pages=paginator.pages_fetched,
            batches=1,
            truncated=paginator.truncated,
        )
        metrics.record_fetch(pages=result.pages, rows=len(rows), truncated=result.truncated)
        return result

    def fetch_by_keys(self, query: RowQuery, column: str, keys: Iterable[Any]) -> FetchResult:
        """
        Rows matching the query whose `column` is one of `keys`.

        Up to the crossover size, keys are sent as IN-list sub-batches; above
        it, the unfiltered superset is fetched once and filtered in memory.

        Raises:
            BatchFetchError: If every sub-batch failed and no rows were obtained
        """
        unique_keys = list(dict.fromkeys(k for k in keys if k is not None and k != ""))
        query = self.ordered(query)

        if not unique_keys:
            return FetchResult(strategy=STRATEGY_IN_BATCHES)

        if len(unique_keys) > self.config.in_crossover:
            logger.info(
                f"{len(unique_keys)} keys exceed crossover of {self.config.in_crossover}; filtering in memory",
                extra={"table": query.table, "keys": len(unique_keys)}
            )
            superset = self.fetch_all(query)
            key_set = set(unique_keys)
            return replace(
                superset,
                rows=[row for row in superset.rows if row.get(column) in key_set],
                strategy=STRATEGY_IN_MEMORY,
            )

        batches = list(chunked(unique_keys, self.in_batch_size))
        rows: List[Dict[str, Any]] = []
        pages = 0
        failed = 0
        truncated = False
        last_error: Optional[StoreError] = None

        ceiling = self.config.safety_ceiling
        for index, batch in enumerate(batches, start=1):
            remaining = ceiling - len(rows)
            if remaining <= 0:
                truncated = True
                logger.warning(
                    f"Safety ceiling of {ceiling} rows reached on {query.table}; "
                    f"skipping {len(batches) - index + 1} remaining sub-batches",
                    extra={"table": query.table, "max_rows": ceiling}
                )
                break

            paginator = self._paginator(max_rows=remaining)
            batch_rows: List[Dict[str, Any]] = []
            try:
                for page in self.iter_pages(query.in_(column, batch), paginator):
                    batch_rows.extend(page)
            except StoreError as e:
                # Partial rows from a failed batch are discarded
                failed += 1
                last_error = e
                logger.error(
                    f"Sub-batch {index}/{len(batches)} failed: {e}",
                    extra={"table": query.table, "batch": index, "keys": len(batch)}
                )
                continue
            finally:
                pages += paginator.pages_fetched

            rows.extend(batch_rows)
            truncated = truncated or paginator.truncated

        metrics.record_fetch(pages=pages, rows=len(rows), failed_batches=failed, truncated=truncated)

        if failed == len(batches) and not rows:
            raise BatchFetchError(
                f"All {failed} sub-batches failed for {query.table}",
                str(last_error) if last_error else None,
                failed_batches=failed,
            )

        if failed:
            logger.warning(
                f"{failed}/{len(batches)} sub-batches failed; returning partial result",
                extra={"table": query.table, "rows": len(rows)}
            )

        return FetchResult(
            rows=sort_rows(rows, query.ordering),
            strategy=STRATEGY_IN_BATCHES,
            pages=pages,
            batches=len(batches),
            failed_batches=failed,
            truncated=truncated,
        )

    def fetch_latest_date(self, query: RowQuery) -> Optional[date]:
        """Most recent non-null date matching the query."""
        latest = replace(
            query.not_null("date"),
            ordering=(("date", True), (TIEBREAKER, False)),
        ).select("date").range(0, 1)
        rows = self._fetch_page(latest)
        return parse_date(rows[0]["date"]) if rows else None

    def fetch_min_deposit_dates(self, scope_query: RowQuery, keys: Iterable[str]) -> Dict[str, date]:
        """
        All-time earliest deposit date per userkey.

        scope_query carries the brand/currency scope but no period filter.
        """
        query = (
            scope_query
            .gt("deposit_cases", 0)
            .select("userkey", "date", TIEBREAKER)
            .order("date")
        )
        result = self.fetch_by_keys(query, "userkey", keys)

        earliest: Dict[str, date] = {}
        for row in result.rows:
            row_date = parse_date(row.get("date"))
            userkey = row.get("userkey")
            if row_date is None or not userkey:
                continue
            if userkey not in earliest or row_date < earliest[userkey]:
                earliest[userkey] = row_date
        return earliest
