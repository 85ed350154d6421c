"""
Pagination helpers.

OffsetPaginator walks a store query in offset/limit windows. paginate_records
slices an already-computed result list for list endpoints.
"""

import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from analytics.exceptions import StoreDataError
from analytics.observability import get_logger
from analytics.store import RowQuery

logger = get_logger(__name__)


class OffsetPaginator:
    """
    Paginator for offset/limit row queries.

    Handles:
    - Automatic page iteration until a short page
    - A safety ceiling on total rows
    - Response validation

    Usage:
        paginator = OffsetPaginator(source.fetch, page_size=5000)

        for page in paginator.paginate(query):
            for row in page:
                process(row)

    Each paginate() call starts again from offset 0, so the paginator is
    restartable; `truncated` describes the most recent run.
    """

    def __init__(
        self,
        fetch_func: Callable[[RowQuery], List[Dict[str, Any]]],
        page_size: int = 5000,
        max_rows: Optional[int] = None,
    ):
        """
        Initialize paginator.

        Args:
            fetch_func: Function that executes one RowQuery (e.g., source.fetch)
            page_size: Rows per page
            max_rows: Safety ceiling on total rows (None = unlimited)
        """
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self.fetch_func = fetch_func
        self.page_size = page_size
        self.max_rows = max_rows
        self.truncated = False
        self.pages_fetched = 0

    def paginate(self, query: RowQuery) -> Iterator[List[Dict[str, Any]]]:
        """
        Iterate through all pages of a query.

        Yields:
            List of row dicts for each non-empty page

        Raises:
            StoreDataError: If a page is not a list
        """
        self.truncated = False
        self.pages_fetched = 0
        offset = 0

        while True:
            limit = self.page_size
            if self.max_rows is not None:
                limit = min(limit, self.max_rows - offset)

            page = self.fetch_func(query.range(offset, limit))
            self.pages_fetched += 1

            if not isinstance(page, list):
                raise StoreDataError(
                    "Store page is not a list",
                    expected="list",
                    got=type(page).__name__
                )

            if page:
                yield page

            if len(page) < limit:
                break

            offset += len(page)

            if self.max_rows is not None and offset >= self.max_rows:
                self.truncated = True
                logger.warning(
                    f"Safety ceiling of {self.max_rows} rows reached on {query.table}; result truncated",
                    extra={"table": query.table, "max_rows": self.max_rows}
                )
                break


@dataclass(frozen=True)
class PaginationInfo:
    current_page: int
    total_pages: int
    total_records: int
    records_per_page: int

    @property
    def has_next_page(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev_page(self) -> bool:
        return self.current_page > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
            "totalRecords": self.total_records,
            "recordsPerPage": self.records_per_page,
            "hasNextPage": self.has_next_page,
            "hasPrevPage": self.has_prev_page,
        }


def paginate_records(records: Sequence[Any], page: int, limit: int) -> Tuple[List[Any], PaginationInfo]:
    """
    Slice an already filtered result list.

    Counts always describe the filtered list that was passed in.
    """
    total = len(records)
    total_pages = math.ceil(total / limit) if total else 0
    start = (page - 1) * limit
    info = PaginationInfo(
        current_page=page,
        total_pages=total_pages,
        total_records=total,
        records_per_page=limit,
    )
    return list(records[start:start + limit]), info
