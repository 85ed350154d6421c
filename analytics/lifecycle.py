"""
Lifecycle classification of members by comparing a month with the month before.

    churned      = prior - current
    retained     = prior & current
    new          = current members whose first deposit falls in the policy month
    reactivation = current - new - retained

Per-member status precedence: NEW > RETENTION > REACTIVATION.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, FrozenSet, Iterable, Optional

from analytics.metrics import churn_rate, retention_rate
from analytics.models import (
    LifecycleStatus,
    MemberAge,
    MonthKey,
    NewDepositorPolicy,
    UserCohortSummary,
)


def _first_deposit_by_member(cohort: Iterable[UserCohortSummary]) -> Dict[str, Optional[date]]:
    """Active members of a cohort with their earliest known first deposit."""
    members: Dict[str, Optional[date]] = {}
    for summary in cohort:
        if not summary.is_active:
            continue
        known = members.get(summary.userkey)
        candidate = summary.first_deposit_date
        if summary.userkey not in members or (candidate is not None and (known is None or candidate < known)):
            members[summary.userkey] = candidate
    return members


@dataclass(frozen=True)
class LifecycleResult:
    current_month: MonthKey
    prior_month: MonthKey
    churned: FrozenSet[str] = frozenset()
    retained: FrozenSet[str] = frozenset()
    new: FrozenSet[str] = frozenset()
    reactivation: FrozenSet[str] = frozenset()
    prior_active: FrozenSet[str] = frozenset()
    current_active: FrozenSet[str] = frozenset()
    statuses: Dict[str, LifecycleStatus] = field(default_factory=dict)
    churned_age: Dict[str, MemberAge] = field(default_factory=dict)

    def status_of(self, userkey: str) -> Optional[LifecycleStatus]:
        if userkey in self.statuses:
            return self.statuses[userkey]
        if userkey in self.churned:
            return LifecycleStatus.CHURNED
        return None

    def count(self, status: LifecycleStatus) -> int:
        if status is LifecycleStatus.CHURNED:
            return len(self.churned)
        return sum(1 for s in self.statuses.values() if s is status)

    @property
    def churn_rate(self) -> float:
        return churn_rate(len(self.churned), len(self.prior_active))

    @property
    def retention_rate(self) -> float:
        return retention_rate(len(self.retained), len(self.prior_active))

    def to_dict(self) -> Dict:
        return {
            "month": str(self.current_month),
            "previous_month": str(self.prior_month),
            "active_members": len(self.current_active),
            "previous_active_members": len(self.prior_active),
            "new_depositors": self.count(LifecycleStatus.NEW),
            "retention": self.count(LifecycleStatus.RETENTION),
            "reactivation": self.count(LifecycleStatus.REACTIVATION),
            "churned": len(self.churned),
            "churned_new_members": sum(1 for a in self.churned_age.values() if a is MemberAge.NEW_MEMBER),
            "churned_old_members": sum(1 for a in self.churned_age.values() if a is MemberAge.OLD_MEMBER),
            "churn_rate": self.churn_rate,
            "retention_rate": self.retention_rate,
        }


def classify_lifecycle(
    prior: Iterable[UserCohortSummary],
    current: Iterable[UserCohortSummary],
    current_month: MonthKey,
    policy: NewDepositorPolicy = NewDepositorPolicy.CURRENT_PERIOD,
) -> LifecycleResult:
    """
    Compare two cohorts of the same brand scope.

    Args:
        prior: Cohort of the month before current_month
        current: Cohort of current_month
        current_month: The month being reported
        policy: Which month a first deposit must fall in to count as NEW
    """
    prior_month = current_month.previous()
    new_month = current_month if policy is NewDepositorPolicy.CURRENT_PERIOD else prior_month

    prior_members = _first_deposit_by_member(prior)
    current_members = _first_deposit_by_member(current)
    prior_keys = frozenset(prior_members)
    current_keys = frozenset(current_members)

    retained = prior_keys & current_keys
    churned = prior_keys - current_keys
    new = frozenset(k for k, first in current_members.items() if new_month.contains(first))
    reactivation = current_keys - new - retained

    statuses: Dict[str, LifecycleStatus] = {}
    for userkey in current_keys:
        if userkey in new:
            statuses[userkey] = LifecycleStatus.NEW
        elif userkey in retained:
            statuses[userkey] = LifecycleStatus.RETENTION
        else:
            statuses[userkey] = LifecycleStatus.REACTIVATION

    churned_age = {
        userkey: MemberAge.NEW_MEMBER if prior_month.contains(prior_members[userkey]) else MemberAge.OLD_MEMBER
        for userkey in churned
    }

    return LifecycleResult(
        current_month=current_month,
        prior_month=prior_month,
        churned=churned,
        retained=retained,
        new=new,
        reactivation=reactivation,
        prior_active=prior_keys,
        current_active=current_keys,
        statuses=statuses,
        churned_age=churned_age,
    )
