"""
Brand access scoping.

Callers may present a list of brands they are allowed to see. A request for
a brand outside that list is refused, never silently filtered to nothing.
"""
import json
from dataclasses import dataclass
from typing import List, Optional, Sequence

from analytics.exceptions import AuthorizationError, ValidationError
from analytics.observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BrandScope:
    """
    Resolved brand filter for a request.

    brand set: equality filter on that brand.
    brands set: IN filter (caller restricted, asked for all brands).
    neither: no brand filter.
    """
    brand: Optional[str] = None
    brands: Optional[tuple] = None

    def apply(self, query, column: str = "line"):
        """Add this scope's filter to a RowQuery."""
        if self.brand is not None:
            return query.eq(column, self.brand)
        if self.brands is not None:
            return query.in_(column, list(self.brands))
        return query


def parse_allowed_brands(header_value: Optional[str]) -> Optional[List[str]]:
    """
    Parse the allowed-brands header (a JSON array of brand names).

    Returns None when the header is absent or empty (unrestricted caller).
    """
    if header_value is None or not header_value.strip():
        return None
    try:
        parsed = json.loads(header_value)
    except json.JSONDecodeError:
        raise ValidationError("x-user-allowed-brands", "Must be a JSON array", header_value)
    if parsed is None:
        return None
    if not isinstance(parsed, list) or not all(isinstance(b, str) for b in parsed):
        raise ValidationError("x-user-allowed-brands", "Must be a JSON array of strings", header_value)
    brands = [b.strip() for b in parsed if b.strip()]
    return brands or None


def resolve_brand_scope(brand: Optional[str], allowed_brands: Optional[Sequence[str]] = None) -> BrandScope:
    """
    Combine the requested brand with the caller's allowed brands.

    Args:
        brand: Requested brand, or None for all brands
        allowed_brands: Caller restriction; None or empty means unrestricted

    Raises:
        AuthorizationError: If brand is not in a non-empty allowed list
    """
    if not allowed_brands:
        return BrandScope(brand=brand)

    if brand is None:
        return BrandScope(brands=tuple(allowed_brands))

    if brand not in allowed_brands:
        logger.warning(
            "Brand access refused",
            extra={"brand": brand, "allowed_brands": list(allowed_brands)}
        )
        raise AuthorizationError(brand, list(allowed_brands))

    return BrandScope(brand=brand)
