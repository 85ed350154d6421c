"""
Tests for analytics.movement module.
"""
import pytest

from analytics.models import MovementRecord, MovementType
from analytics.movement import (
    NEW_ORIGIN,
    build_transition_matrix,
    calculate_movements,
    summarize_movements,
    top_movers,
)


@pytest.fixture
def tiers():
    """Period A and B tiers: u1 up, u5 down, u7 stable, u3/u4 new, u2 churned."""
    tiers_a = {"u1": 4, "u2": 1, "u5": 5, "u7": 2}
    tiers_b = {"u1": 3, "u3": 7, "u4": 6, "u5": 7, "u7": 2}
    return tiers_a, tiers_b


class TestCalculateMovements:
    """Tests for calculate_movements."""

    def test_one_record_per_member(self, tiers):
        tiers_a, tiers_b = tiers
        movements = calculate_movements(tiers_a, tiers_b)

        assert len(movements) == len(set(tiers_a) | set(tiers_b))
        assert [m.userkey for m in movements] == ["u1", "u3", "u4", "u5", "u7", "u2"]

    def test_types_and_changes(self, tiers):
        """tier_change = from - to; positive is an upgrade."""
        tiers_a, tiers_b = tiers
        by_key = {m.userkey: m for m in calculate_movements(tiers_a, tiers_b)}

        assert by_key["u1"].movement_type is MovementType.UPGRADE
        assert by_key["u1"].tier_change == 1
        assert by_key["u5"].movement_type is MovementType.DOWNGRADE
        assert by_key["u5"].tier_change == -2
        assert by_key["u7"].movement_type is MovementType.STABLE
        assert by_key["u7"].tier_change == 0

    def test_new_and_churned(self, tiers):
        tiers_a, tiers_b = tiers
        by_key = {m.userkey: m for m in calculate_movements(tiers_a, tiers_b)}

        assert by_key["u3"].movement_type is MovementType.NEW
        assert by_key["u3"].from_tier is None
        assert by_key["u3"].to_tier == 7
        assert by_key["u2"].movement_type is MovementType.CHURNED
        assert by_key["u2"].from_tier == 1
        assert by_key["u2"].to_tier is None

    def test_missing_tier_compares_as_regular(self):
        """An unmatched tier in either period compares as 7."""
        movements = calculate_movements({"u1": None}, {"u1": 5})
        assert movements[0].movement_type is MovementType.UPGRADE
        assert movements[0].tier_change == 2

    def test_reactivated_flag(self, tiers):
        tiers_a, tiers_b = tiers
        by_key = {m.userkey: m for m in calculate_movements(tiers_a, tiers_b, returning={"u4"})}

        assert by_key["u4"].reactivated is True
        assert by_key["u3"].reactivated is False

    def test_details(self):
        movements = calculate_movements({}, {"u1": 2}, details={"u1": ("UC-1", "AlphaBet")})
        assert movements[0].unique_code == "UC-1"
        assert movements[0].line == "AlphaBet"


class TestTransitionMatrix:
    """Tests for build_transition_matrix."""

    def test_cells(self, tiers):
        tiers_a, tiers_b = tiers
        matrix = build_transition_matrix(calculate_movements(tiers_a, tiers_b))

        assert matrix.cells[4][3] == 1
        assert matrix.cells[5][7] == 1
        assert matrix.cells[2][2] == 1
        assert matrix.cells[NEW_ORIGIN][7] == 1
        assert matrix.cells[NEW_ORIGIN][6] == 1
        assert matrix.upgrades[4][3] == 1
        assert matrix.downgrades[5][7] == 1
        assert matrix.stable[2][2] == 1

    def test_churned_kept_out_of_cells(self, tiers):
        """Churned members have no destination; they are counted per origin."""
        tiers_a, tiers_b = tiers
        matrix = build_transition_matrix(calculate_movements(tiers_a, tiers_b))

        assert matrix.total_out(1) == 0
        assert matrix.churned_out[1] == 1

    def test_totals_consistent(self, tiers):
        """Row totals, column totals and the grand total agree."""
        tiers_a, tiers_b = tiers
        movements = calculate_movements(tiers_a, tiers_b)
        matrix = build_transition_matrix(movements)

        non_churned = sum(1 for m in movements if m.movement_type is not MovementType.CHURNED)
        assert matrix.grand_total == non_churned
        assert sum(matrix.total_in(t) for t in range(1, 8)) == matrix.grand_total

    def test_to_dict_uses_string_keys(self, tiers):
        tiers_a, tiers_b = tiers
        data = build_transition_matrix(calculate_movements(tiers_a, tiers_b)).to_dict()

        assert len(data["rows"]) == 8
        row = next(r for r in data["rows"] if r["fromTier"] == 4)
        assert row["fromTierName"] == "Tier 3"
        assert row["cells"]["3"] == 1
        assert row["cellsDetail"]["3"] == {"up": 1, "down": 0, "stable": 0, "total": 1}
        new_row = data["rows"][-1]
        assert new_row["fromTier"] == "NEW"
        assert "cellsDetail" not in new_row
        assert data["totalInRow"]["label"] == "Total In"
        assert data["totalInRow"]["cells"]["7"] == 2
        assert data["grandTotal"] == 5
        assert data["totalChurned"] == 1


class TestSummaryAndTopMovers:
    """Tests for summarize_movements and top_movers."""

    def test_summary_cards(self, tiers):
        tiers_a, tiers_b = tiers
        summary = summarize_movements(calculate_movements(tiers_a, tiers_b, returning={"u4"}))

        assert summary["totalMovements"] == 6
        assert summary["totalNew"] == 2
        assert summary["totalReactivation"] == 1
        assert summary["newMemberCard"] == {"count": 1, "percentage": pytest.approx(100 / 6), "label": "New Member"}
        assert summary["churnedCard"]["count"] == 1
        assert summary["stableCard"]["label"] == "Stable"

    def test_empty_summary(self):
        summary = summarize_movements([])
        assert summary["totalMovements"] == 0
        assert summary["upgradesCard"]["percentage"] == 0.0

    def test_top_movers_order_and_limit(self):
        movements = [
            MovementRecord("a", MovementType.UPGRADE, 7, 6, 1),
            MovementRecord("b", MovementType.UPGRADE, 7, 1, 6),
            MovementRecord("c", MovementType.UPGRADE, 5, 3, 2),
            MovementRecord("d", MovementType.DOWNGRADE, 1, 7, -6),
            MovementRecord("e", MovementType.DOWNGRADE, 3, 4, -1),
            MovementRecord("f", MovementType.STABLE, 3, 3, 0),
        ]
        upgrades, downgrades = top_movers(movements, limit=2)

        assert [m.userkey for m in upgrades] == ["b", "c"]
        assert [m.userkey for m in downgrades] == ["d", "e"]

    def test_top_movers_ties_keep_input_order(self):
        movements = [
            MovementRecord("x", MovementType.UPGRADE, 3, 2, 1),
            MovementRecord("y", MovementType.UPGRADE, 4, 3, 1),
        ]
        upgrades, _ = top_movers(movements)
        assert [m.userkey for m in upgrades] == ["x", "y"]
