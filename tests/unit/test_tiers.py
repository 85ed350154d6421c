"""
Tests for analytics.tiers module.
"""
from datetime import date

from analytics.cohort import aggregate_cohort
from analytics.models import MonthKey, PeriodWindow, TransactionRow
from analytics.tiers import (
    REGULAR_TIER,
    best_tier,
    comparison_tier,
    tier_from_label,
    tier_name,
)


class TestTierFromLabel:
    """Tests for tier_from_label."""

    def test_exact_names(self):
        assert tier_from_label("Super VIP") == 1
        assert tier_from_label("Tier 5") == 2
        assert tier_from_label("Tier 1") == 6
        assert tier_from_label("Regular") == 7

    def test_case_and_whitespace_ignored(self):
        assert tier_from_label("  super vip ") == 1

    def test_unknown_and_blank(self):
        """Partial or unknown labels do not match."""
        assert tier_from_label("VIP") is None
        assert tier_from_label("Tier 9") is None
        assert tier_from_label("") is None
        assert tier_from_label(None) is None


class TestTierNames:
    """Tests for tier_name."""

    def test_tier_name(self):
        assert tier_name(1) == "Super VIP"
        assert tier_name(None) is None


class TestBestTier:
    """Tests for best_tier, the per-period classification and comparison_tier."""

    def _row(self, userkey, label):
        return TransactionRow(userkey=userkey, date=date(2025, 3, 1), tier_label=label)

    def test_best_tier_wins(self):
        """A member's tier is the lowest number across their rows."""
        rows = [
            self._row("u1", "Tier 2"),
            self._row("u1", "Tier 4"),
            self._row("u2", "Regular"),
        ]
        cohort = aggregate_cohort(rows, PeriodWindow.for_month(MonthKey(2025, 3)))
        assert {s.userkey: s.tier for s in cohort} == {"u1": 3, "u2": 7}

    def test_unmatched_labels_never_win(self):
        rows = [self._row("u1", "Gold"), self._row("u1", "Tier 1"), self._row("u2", None)]
        cohort = aggregate_cohort(rows, PeriodWindow.for_month(MonthKey(2025, 3)))
        assert {s.userkey: s.tier for s in cohort} == {"u1": 6, "u2": None}

    def test_best_tier(self):
        assert best_tier(3, 5) == 3
        assert best_tier(None, 4) == 4
        assert best_tier(2, None) == 2
        assert best_tier(None, None) is None

    def test_comparison_tier_defaults_to_regular(self):
        """Missing or unmatched tiers compare as regular."""
        tiers = {"u1": 2, "u2": None}
        assert comparison_tier(tiers, "u1") == 2
        assert comparison_tier(tiers, "u2") == REGULAR_TIER
        assert comparison_tier(tiers, "u3") == REGULAR_TIER
