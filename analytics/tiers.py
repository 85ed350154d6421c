"""
Tier classification.

Tiers are numbered 1 (best) to 7 (regular). Labels in the store are free
text; only exact names match (case and surrounding whitespace ignored).
"""
from typing import Dict, Mapping, Optional

TIER_NAMES: Dict[int, str] = {
    1: "Super VIP",
    2: "Tier 5",
    3: "Tier 4",
    4: "Tier 3",
    5: "Tier 2",
    6: "Tier 1",
    7: "Regular",
}

REGULAR_TIER = 7
ORDERED_TIERS = tuple(sorted(TIER_NAMES))

_LABEL_LOOKUP = {name.casefold(): number for number, name in TIER_NAMES.items()}


def tier_from_label(label: Optional[str]) -> Optional[int]:
    """Tier number for a label, or None when the label is blank or unknown."""
    if not label:
        return None
    return _LABEL_LOOKUP.get(label.strip().casefold())


def tier_name(tier: Optional[int]) -> Optional[str]:
    if tier is None:
        return None
    return TIER_NAMES.get(tier, f"Tier {tier}")


def best_tier(a: Optional[int], b: Optional[int]) -> Optional[int]:
    """Better (lower-numbered) of two tiers; an unmatched tier never wins."""
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def comparison_tier(tiers: Mapping[str, Optional[int]], userkey: str) -> int:
    """Tier used when comparing periods: unmatched users are regular."""
    tier = tiers.get(userkey)
    return REGULAR_TIER if tier is None else tier
