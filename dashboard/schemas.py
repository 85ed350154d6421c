"""
Pydantic response models for API endpoints.

Every report endpoint answers with an envelope: success plus data on the
happy path, success=False plus error otherwise. List endpoints add
pagination computed on the filtered result set.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════════════════════════════
# ENVELOPES
# ═══════════════════════════════════════════════════════════════════════════════

class PaginationResponse(BaseModel):
    """Pagination metadata for list endpoints."""
    currentPage: int = Field(description="Current page (1-based)")
    totalPages: int = Field(description="Total number of pages")
    totalRecords: int = Field(description="Records after filtering")
    recordsPerPage: int = Field(description="Page size")
    hasNextPage: bool
    hasPrevPage: bool


class ListEnvelope(BaseModel):
    """Paginated list response."""
    success: bool = True
    data: List[Dict[str, Any]] = Field(default_factory=list)
    pagination: PaginationResponse


class ObjectEnvelope(BaseModel):
    """Single report object response."""
    success: bool = True
    data: Dict[str, Any]


class ErrorEnvelope(BaseModel):
    """Failure response."""
    success: bool = False
    error: str = Field(description="Human-readable error message")
    field: Optional[str] = Field(None, description="Offending parameter, for validation errors")
    correlation_id: Optional[str] = Field(None, description="Request correlation ID")


# ═══════════════════════════════════════════════════════════════════════════════
# HEALTH CHECK
# ═══════════════════════════════════════════════════════════════════════════════

class StoreStats(BaseModel):
    """Row store statistics."""
    status: str
    latency_ms: Optional[float] = None
    member_transactions: Optional[int] = None
    new_registrations: Optional[int] = None
    total_queries: Optional[int] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(description="Service status: healthy or degraded")
    version: str = Field(description="Application version")
    uptime_seconds: int = Field(description="Uptime in seconds")
    correlation_id: Optional[str] = Field(None, description="Request correlation ID")
    store: StoreStats
    metrics: Dict[str, Any] = Field(default_factory=dict, description="Request and fetch metrics")
