"""
Tests for analytics.lifecycle module.
"""
import pytest
from datetime import date
from typing import Optional

from analytics.lifecycle import classify_lifecycle
from analytics.models import (
    LifecycleStatus,
    MemberAge,
    MonthKey,
    NewDepositorPolicy,
    UserCohortSummary,
)

MARCH = MonthKey(2025, 3)


def active(userkey: str, first: Optional[date], deposit_cases: int = 1) -> UserCohortSummary:
    return UserCohortSummary(userkey=userkey, deposit_cases=deposit_cases, first_deposit_date=first)


@pytest.fixture
def cohorts():
    """February and March cohorts covering every lifecycle status."""
    prior = [
        active("u1", date(2024, 6, 1)),
        active("u2", date(2025, 2, 12)),
        active("u5", date(2024, 11, 11)),
        active("idle", date(2024, 1, 1), deposit_cases=0),
    ]
    current = [
        active("u1", date(2024, 6, 1)),
        active("u3", date(2025, 3, 10)),
        active("u4", date(2024, 1, 5)),
        active("u5", date(2024, 11, 11)),
        active("u6", None, deposit_cases=0),
    ]
    return prior, current


class TestClassifyLifecycle:
    """Tests for classify_lifecycle."""

    def test_sets(self, cohorts):
        prior, current = cohorts
        result = classify_lifecycle(prior, current, MARCH)

        assert result.retained == {"u1", "u5"}
        assert result.churned == {"u2"}
        assert result.new == {"u3"}
        assert result.reactivation == {"u4"}

    def test_inactive_members_ignored(self, cohorts):
        """Members without deposits are neither prior nor current actives."""
        prior, current = cohorts
        result = classify_lifecycle(prior, current, MARCH)

        assert "idle" not in result.prior_active
        assert "u6" not in result.current_active
        assert result.status_of("u6") is None

    def test_partition_of_current(self, cohorts):
        """Every current active member has exactly one status."""
        prior, current = cohorts
        result = classify_lifecycle(prior, current, MARCH)

        assert set(result.statuses) == result.current_active
        assert result.new | result.retained | result.reactivation == result.current_active
        assert result.churned | result.retained == result.prior_active

    def test_statuses(self, cohorts):
        prior, current = cohorts
        result = classify_lifecycle(prior, current, MARCH)

        assert result.status_of("u1") is LifecycleStatus.RETENTION
        assert result.status_of("u3") is LifecycleStatus.NEW
        assert result.status_of("u4") is LifecycleStatus.REACTIVATION
        assert result.status_of("u2") is LifecycleStatus.CHURNED

    def test_churned_member_age(self, cohorts):
        """Churned members who first deposited in the prior month are NEW MEMBER."""
        prior, current = cohorts
        result = classify_lifecycle(prior, current, MARCH)
        assert result.churned_age == {"u2": MemberAge.NEW_MEMBER}

    def test_rates(self, cohorts):
        prior, current = cohorts
        result = classify_lifecycle(prior, current, MARCH)

        assert result.churn_rate == pytest.approx(100 / 3)
        assert result.retention_rate == pytest.approx(200 / 3)

    def test_new_takes_precedence_over_retention(self):
        """A member in both months whose first deposit is this month is NEW."""
        prior = [active("u1", date(2025, 3, 2))]
        current = [active("u1", date(2025, 3, 2))]
        result = classify_lifecycle(prior, current, MARCH)

        assert result.status_of("u1") is LifecycleStatus.NEW
        assert result.count(LifecycleStatus.RETENTION) == 0

    def test_previous_period_policy(self, cohorts):
        """With the previous-period policy, a first deposit last month counts as new."""
        prior, current = cohorts
        current = current + [active("u2", date(2025, 2, 12))]
        result = classify_lifecycle(prior, current, MARCH, NewDepositorPolicy.PREVIOUS_PERIOD)

        assert result.new == {"u2"}
        assert result.status_of("u3") is LifecycleStatus.REACTIVATION

    def test_first_deposit_missing_is_not_new(self):
        result = classify_lifecycle([], [active("u9", None)], MARCH)
        assert result.status_of("u9") is LifecycleStatus.REACTIVATION

    def test_empty_cohorts(self):
        result = classify_lifecycle([], [], MARCH)
        assert result.churn_rate == 0.0
        assert result.to_dict()["active_members"] == 0

    def test_to_dict(self, cohorts):
        prior, current = cohorts
        data = classify_lifecycle(prior, current, MARCH).to_dict()

        assert data["month"] == "2025-03"
        assert data["previous_month"] == "2025-02"
        assert data["active_members"] == 4
        assert data["previous_active_members"] == 3
        assert data["new_depositors"] == 1
        assert data["retention"] == 2
        assert data["reactivation"] == 1
        assert data["churned"] == 1
        assert data["churned_new_members"] == 1
        assert data["churned_old_members"] == 0
