"""
Report service for the dashboard API.

The ReportEngine is synchronous (DuckDB calls block), so every report runs
in a worker thread via asyncio.to_thread. The correlation ID context is
copied into the thread, so engine logs carry the request's ID.
"""
import asyncio
import threading
from typing import Any, Dict, List, Optional

from analytics.reports import ReportEngine
from analytics.store import get_source

_engine: Optional[ReportEngine] = None
_engine_lock = threading.Lock()


def get_engine() -> ReportEngine:
    """Get the shared engine, built over the shared row source on first use."""
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = ReportEngine(get_source())
    return _engine


def set_engine(engine: Optional[ReportEngine]) -> None:
    """Replace the shared engine (None resets to lazy construction)."""
    global _engine
    with _engine_lock:
        _engine = engine


async def customer_retention(**kwargs) -> Dict[str, Any]:
    return await asyncio.to_thread(get_engine().customer_retention, **kwargs)


async def retention_by_active_days(**kwargs) -> Dict[str, Any]:
    return await asyncio.to_thread(get_engine().retention_by_active_days, **kwargs)


async def lifecycle_summary(**kwargs) -> Dict[str, Any]:
    return await asyncio.to_thread(get_engine().lifecycle_summary, **kwargs)


async def month_max_date(**kwargs) -> Dict[str, Any]:
    return await asyncio.to_thread(get_engine().month_max_date, **kwargs)


async def churned_members(**kwargs) -> Dict[str, Any]:
    return await asyncio.to_thread(get_engine().churned_members, **kwargs)


async def tier_movement(**kwargs) -> Dict[str, Any]:
    return await asyncio.to_thread(get_engine().tier_movement, **kwargs)


async def tier_movement_customers(**kwargs) -> Dict[str, Any]:
    return await asyncio.to_thread(get_engine().tier_movement_customers, **kwargs)


async def kpi_summary(**kwargs) -> Dict[str, Any]:
    return await asyncio.to_thread(get_engine().kpi_summary, **kwargs)


async def export_report(report_type: str, **kwargs) -> str:
    """Collect the full (unpaginated) record set of a report and render it as CSV."""
    engine = get_engine()

    def build() -> str:
        if report_type == "retention":
            records: List[Dict[str, Any]] = engine.retention_records(**kwargs)
        elif report_type == "churn":
            records = engine.churn_records(**kwargs)
        else:
            records = engine.movement_customer_records(**kwargs)
        return engine.export_csv(report_type, records)

    return await asyncio.to_thread(build)


async def store_stats() -> Dict[str, Any]:
    """Row counts from the engine's source, for health checks."""
    source = get_engine().source
    get_stats = getattr(source, "get_stats", None)
    if get_stats is None:
        return {}
    return await asyncio.to_thread(get_stats)
