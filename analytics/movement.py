"""
Tier movement between two periods.

Tier 1 is best, so tier_change = tier_a - tier_b is positive for an upgrade.
"""
from dataclasses import dataclass, field
from typing import Any, Collection, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from analytics.metrics import percentage
from analytics.models import MovementRecord, MovementType
from analytics.tiers import ORDERED_TIERS, comparison_tier, tier_name

NEW_ORIGIN = "NEW"

Origin = Union[int, str]


def calculate_movements(
    tiers_a: Mapping[str, Optional[int]],
    tiers_b: Mapping[str, Optional[int]],
    details: Optional[Mapping[str, Tuple[Optional[str], Optional[str]]]] = None,
    returning: Optional[Collection[str]] = None,
) -> List[MovementRecord]:
    """
    One MovementRecord per member present in period A, period B or both.

    Args:
        tiers_a: userkey -> tier for period A ("from"); None means regular
        tiers_b: userkey -> tier for period B ("to")
        details: userkey -> (unique_code, line) for display
        returning: Members known to have deposited before period B; their
            NEW movements are flagged as reactivations

    Returns:
        Period B members in B order, then members only in A, in A order
    """
    details = details or {}
    returning = returning or ()
    movements: List[MovementRecord] = []

    def describe(userkey: str) -> Dict[str, Optional[str]]:
        unique_code, line = details.get(userkey, (None, None))
        return {"unique_code": unique_code, "line": line}

    for userkey in tiers_b:
        to_tier = comparison_tier(tiers_b, userkey)
        if userkey not in tiers_a:
            movements.append(MovementRecord(
                userkey=userkey,
                movement_type=MovementType.NEW,
                to_tier=to_tier,
                reactivated=userkey in returning,
                **describe(userkey),
            ))
            continue

        from_tier = comparison_tier(tiers_a, userkey)
        change = from_tier - to_tier
        if change > 0:
            movement_type = MovementType.UPGRADE
        elif change < 0:
            movement_type = MovementType.DOWNGRADE
        else:
            movement_type = MovementType.STABLE
        movements.append(MovementRecord(
            userkey=userkey,
            movement_type=movement_type,
            from_tier=from_tier,
            to_tier=to_tier,
            tier_change=change,
            **describe(userkey),
        ))

    for userkey in tiers_a:
        if userkey in tiers_b:
            continue
        movements.append(MovementRecord(
            userkey=userkey,
            movement_type=MovementType.CHURNED,
            from_tier=comparison_tier(tiers_a, userkey),
            **describe(userkey),
        ))

    return movements


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSITION MATRIX
# ═══════════════════════════════════════════════════════════════════════════════

def _empty_row() -> Dict[int, int]:
    return {tier: 0 for tier in ORDERED_TIERS}


@dataclass
class TransitionMatrix:
    """
    Counts of members per (origin, destination tier).

    Origins are tiers 1..7 plus NEW. Churned members have no destination;
    they are counted per origin tier in churned_out and stay out of cells.
    """
    cells: Dict[Origin, Dict[int, int]] = field(default_factory=dict)
    upgrades: Dict[int, Dict[int, int]] = field(default_factory=dict)
    downgrades: Dict[int, Dict[int, int]] = field(default_factory=dict)
    stable: Dict[int, Dict[int, int]] = field(default_factory=dict)
    churned_out: Dict[int, int] = field(default_factory=dict)

    @property
    def origins(self) -> Tuple[Origin, ...]:
        return ORDERED_TIERS + (NEW_ORIGIN,)

    def total_out(self, origin: Origin) -> int:
        return sum(self.cells[origin].values())

    def total_in(self, tier: int) -> int:
        return sum(self.cells[origin][tier] for origin in self.origins)

    @property
    def grand_total(self) -> int:
        return sum(self.total_out(origin) for origin in self.origins)

    def to_dict(self) -> Dict[str, Any]:
        rows = []
        for origin in self.origins:
            row = {
                "fromTier": origin,
                "fromTierName": tier_name(origin) if origin != NEW_ORIGIN else "New",
                "totalOut": self.total_out(origin),
                "churnedOut": self.churned_out.get(origin, 0) if origin != NEW_ORIGIN else 0,
                "cells": {str(tier): count for tier, count in self.cells[origin].items()},
            }
            if origin != NEW_ORIGIN:
                row["cellsDetail"] = {
                    str(tier): {
                        "up": self.upgrades[origin][tier],
                        "down": self.downgrades[origin][tier],
                        "stable": self.stable[origin][tier],
                        "total": self.cells[origin][tier],
                    }
                    for tier in ORDERED_TIERS
                }
            rows.append(row)

        return {
            "rows": rows,
            "totalInRow": {
                "label": "Total In",
                "cells": {str(tier): self.total_in(tier) for tier in ORDERED_TIERS},
                "total": self.grand_total,
            },
            "grandTotal": self.grand_total,
            "totalChurned": sum(self.churned_out.values()),
            "tierOrder": [{"tier": tier, "name": tier_name(tier)} for tier in ORDERED_TIERS],
        }


def build_transition_matrix(movements: Sequence[MovementRecord]) -> TransitionMatrix:
    matrix = TransitionMatrix(
        cells={origin: _empty_row() for origin in ORDERED_TIERS + (NEW_ORIGIN,)},
        upgrades={tier: _empty_row() for tier in ORDERED_TIERS},
        downgrades={tier: _empty_row() for tier in ORDERED_TIERS},
        stable={tier: _empty_row() for tier in ORDERED_TIERS},
        churned_out={tier: 0 for tier in ORDERED_TIERS},
    )

    for movement in movements:
        if movement.movement_type is MovementType.CHURNED:
            matrix.churned_out[movement.from_tier] += 1
            continue
        if movement.movement_type is MovementType.NEW:
            matrix.cells[NEW_ORIGIN][movement.to_tier] += 1
            continue

        origin, to_tier = movement.from_tier, movement.to_tier
        matrix.cells[origin][to_tier] += 1
        if movement.movement_type is MovementType.UPGRADE:
            matrix.upgrades[origin][to_tier] += 1
        elif movement.movement_type is MovementType.DOWNGRADE:
            matrix.downgrades[origin][to_tier] += 1
        else:
            matrix.stable[origin][to_tier] += 1

    return matrix


# ═══════════════════════════════════════════════════════════════════════════════
# SUMMARY & TOP MOVERS
# ═══════════════════════════════════════════════════════════════════════════════

def top_movers(
    movements: Sequence[MovementRecord],
    limit: int = 20,
) -> Tuple[List[MovementRecord], List[MovementRecord]]:
    """
    Biggest upgrades (tier_change desc) and downgrades (tier_change asc).

    sorted() is stable, so ties keep input order.
    """
    upgrades = sorted(
        (m for m in movements if m.movement_type is MovementType.UPGRADE),
        key=lambda m: -m.tier_change,
    )
    downgrades = sorted(
        (m for m in movements if m.movement_type is MovementType.DOWNGRADE),
        key=lambda m: m.tier_change,
    )
    return upgrades[:limit], downgrades[:limit]


def summarize_movements(movements: Sequence[MovementRecord]) -> Dict[str, Any]:
    """Counts per movement type with their share of all movements."""
    total = len(movements)
    counts = {movement_type: 0 for movement_type in MovementType}
    reactivated = 0
    for movement in movements:
        counts[movement.movement_type] += 1
        if movement.movement_type is MovementType.NEW and movement.reactivated:
            reactivated += 1
    new_members = counts[MovementType.NEW] - reactivated

    def card(count: int, label: str) -> Dict[str, Any]:
        return {"count": count, "percentage": percentage(count, total), "label": label}

    return {
        "totalMovements": total,
        "totalUpgrades": counts[MovementType.UPGRADE],
        "totalDowngrades": counts[MovementType.DOWNGRADE],
        "totalStable": counts[MovementType.STABLE],
        "totalNew": counts[MovementType.NEW],
        "totalReactivation": reactivated,
        "totalChurned": counts[MovementType.CHURNED],
        "upgradesCard": card(counts[MovementType.UPGRADE], "Upgrades"),
        "downgradesCard": card(counts[MovementType.DOWNGRADE], "Downgrades"),
        "stableCard": card(counts[MovementType.STABLE], "Stable"),
        "newMemberCard": card(new_members, "New Member"),
        "reactivationCard": card(reactivated, "Reactivation"),
        "churnedCard": card(counts[MovementType.CHURNED], "Churned"),
    }
