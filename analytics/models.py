"""
Type-safe data models for member transaction analytics.

Raw store rows are normalised exactly once, in TransactionRow.from_store.
Everything downstream works on these types, never on raw dicts.
"""
import calendar
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from analytics.exceptions import StoreDataError, ValidationError
from analytics.tiers import best_tier


# ═══════════════════════════════════════════════════════════════════════════════
# ENUMS
# ═══════════════════════════════════════════════════════════════════════════════

class MovementType(str, Enum):
    """Tier movement between two periods."""
    UPGRADE = "UPGRADE"
    DOWNGRADE = "DOWNGRADE"
    STABLE = "STABLE"
    NEW = "NEW"
    CHURNED = "CHURNED"


class LifecycleStatus(str, Enum):
    """Member status when comparing a month with the month before it."""
    NEW = "NEW DEPOSITOR"
    RETENTION = "RETENTION"
    REACTIVATION = "REACTIVATION"
    CHURNED = "CHURNED"


class MemberAge(str, Enum):
    """Label for churned members: did they first deposit in the prior month?"""
    NEW_MEMBER = "NEW MEMBER"
    OLD_MEMBER = "OLD MEMBER"


class NewDepositorPolicy(str, Enum):
    """Which month a first deposit must fall in for a member to count as NEW."""
    CURRENT_PERIOD = "current"
    PREVIOUS_PERIOD = "previous"


# ═══════════════════════════════════════════════════════════════════════════════
# MONTH KEY
# ═══════════════════════════════════════════════════════════════════════════════

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)
_MONTH_LOOKUP = {name.lower(): i for i, name in enumerate(MONTH_NAMES, start=1)}
_MONTH_LOOKUP.update({name[:3].lower(): i for i, name in enumerate(MONTH_NAMES, start=1)})


@dataclass(frozen=True, order=True)
class MonthKey:
    """
    A calendar month.

    Tables disagree on how they store the month column (name vs number), so
    every conversion goes through this type.
    """
    year: int
    month: int

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValidationError("month", "must be between 1 and 12", self.month)

    @classmethod
    def from_name(cls, year: int, name: str) -> "MonthKey":
        number = _MONTH_LOOKUP.get(str(name).strip().lower())
        if number is None:
            raise ValidationError("month", "invalid month name", name)
        return cls(int(year), number)

    @classmethod
    def from_number(cls, year: int, number: int) -> "MonthKey":
        return cls(int(year), int(number))

    @property
    def name(self) -> str:
        return MONTH_NAMES[self.month - 1]

    @property
    def first_day(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def last_day(self) -> date:
        return date(self.year, self.month, self.days)

    @property
    def days(self) -> int:
        return calendar.monthrange(self.year, self.month)[1]

    def previous(self) -> "MonthKey":
        if self.month == 1:
            return MonthKey(self.year - 1, 12)
        return MonthKey(self.year, self.month - 1)

    def next(self) -> "MonthKey":
        if self.month == 12:
            return MonthKey(self.year + 1, 1)
        return MonthKey(self.year, self.month + 1)

    def contains(self, value: Optional[date]) -> bool:
        return value is not None and value.year == self.year and value.month == self.month

    def store_value(self, representation: str):
        """Month column value for a table using the given representation."""
        if representation == "name":
            return self.name
        if representation == "number":
            return self.month
        raise ValueError(f"Unknown month representation: {representation!r}")

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


# ═══════════════════════════════════════════════════════════════════════════════
# PERIOD WINDOW
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PeriodWindow:
    """Inclusive date range; month windows also remember their MonthKey."""
    start: date
    end: date
    month_key: Optional[MonthKey] = None

    def __post_init__(self):
        if self.start > self.end:
            raise ValidationError("end_date", "must not be before start_date", self.end.isoformat())

    @classmethod
    def for_month(cls, month_key: MonthKey) -> "PeriodWindow":
        return cls(month_key.first_day, month_key.last_day, month_key)

    @classmethod
    def for_year(cls, year: int) -> "PeriodWindow":
        return cls(date(year, 1, 1), date(year, 12, 31))

    def resolve(self) -> Tuple[date, date]:
        return self.start, self.end

    def contains(self, value: Optional[date]) -> bool:
        return value is not None and self.start <= value <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def to_dict(self) -> Dict[str, Any]:
        return {"start_date": self.start.isoformat(), "end_date": self.end.isoformat()}


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSACTION ROW
# ═══════════════════════════════════════════════════════════════════════════════

def parse_date(value: Any) -> Optional[date]:
    """Parse a store date value; blank or unparseable input yields None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _to_float(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return 0.0
    # NaN from the store counts as missing
    return number if number == number else 0.0


def _to_int(value: Any) -> int:
    return int(round(_to_float(value)))


def _to_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class TransactionRow:
    """One member's activity on one day, for one brand."""
    userkey: str
    date: date
    unique_code: Optional[str] = None
    user_name: Optional[str] = None
    line: Optional[str] = None
    currency: Optional[str] = None
    year: Optional[int] = None
    month: Optional[str] = None  # month name, as stored
    deposit_cases: int = 0
    deposit_amount: float = 0.0
    withdraw_cases: int = 0
    withdraw_amount: float = 0.0
    bonus: float = 0.0
    add_transaction: float = 0.0
    deduct_transaction: float = 0.0
    valid_bet_amount: float = 0.0
    net_profit: float = 0.0
    first_deposit_date: Optional[date] = None
    last_deposit_date: Optional[date] = None
    tier_label: Optional[str] = None
    row_id: Optional[int] = None

    @classmethod
    def from_store(cls, record: Dict[str, Any]) -> Optional["TransactionRow"]:
        """
        Build a row from a store record.

        Returns None for records without a userkey; those are discarded.

        Raises:
            StoreDataError: If the record is not a mapping or has no usable date
        """
        if not isinstance(record, dict):
            raise StoreDataError(
                "Store record is not a mapping",
                expected="dict",
                got=type(record).__name__,
            )

        userkey = _to_text(record.get("userkey"))
        if userkey is None:
            return None

        row_date = parse_date(record.get("date"))
        if row_date is None:
            raise StoreDataError(
                f"Row for {userkey} has no valid date",
                details=repr(record.get("date")),
            )

        year = record.get("year")
        return cls(
            userkey=userkey,
            date=row_date,
            unique_code=_to_text(record.get("unique_code")),
            user_name=_to_text(record.get("user_name")),
            line=_to_text(record.get("line")),
            currency=_to_text(record.get("currency")),
            year=_to_int(year) if year not in (None, "") else None,
            month=_to_text(record.get("month")),
            deposit_cases=_to_int(record.get("deposit_cases")),
            deposit_amount=_to_float(record.get("deposit_amount")),
            withdraw_cases=_to_int(record.get("withdraw_cases")),
            withdraw_amount=_to_float(record.get("withdraw_amount")),
            bonus=_to_float(record.get("bonus")),
            add_transaction=_to_float(record.get("add_transaction")),
            deduct_transaction=_to_float(record.get("deduct_transaction")),
            valid_bet_amount=_to_float(record.get("valid_bet_amount")),
            net_profit=_to_float(record.get("net_profit")),
            first_deposit_date=parse_date(record.get("first_deposit_date")),
            last_deposit_date=parse_date(record.get("last_deposit_date")),
            tier_label=_to_text(record.get("tier_name", record.get("tier_label"))),
            row_id=_to_int(record["row_id"]) if record.get("row_id") is not None else None,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# USER COHORT SUMMARY
# ═══════════════════════════════════════════════════════════════════════════════

SUMMED_FIELDS = (
    "deposit_cases",
    "deposit_amount",
    "withdraw_cases",
    "withdraw_amount",
    "bonus",
    "add_transaction",
    "deduct_transaction",
    "valid_bet_amount",
    "net_profit",
)


def _min_date(a: Optional[date], b: Optional[date]) -> Optional[date]:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def _max_date(a: Optional[date], b: Optional[date]) -> Optional[date]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


@dataclass(frozen=True)
class UserCohortSummary:
    """
    One member's totals for a period window.

    Summaries are values: merge() returns a new summary and is associative,
    so a cohort built in one pass equals one built from split batches.
    """
    userkey: str
    line: Optional[str] = None  # set when aggregating per userkey + brand
    unique_code: Optional[str] = None
    user_name: Optional[str] = None
    deposit_cases: int = 0
    deposit_amount: float = 0.0
    withdraw_cases: int = 0
    withdraw_amount: float = 0.0
    bonus: float = 0.0
    add_transaction: float = 0.0
    deduct_transaction: float = 0.0
    valid_bet_amount: float = 0.0
    net_profit: float = 0.0
    active_dates: FrozenSet[date] = field(default_factory=frozenset)
    first_deposit_date: Optional[date] = None
    last_deposit_date: Optional[date] = None
    tier: Optional[int] = None
    brands: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_row(cls, row: TransactionRow, tier: Optional[int] = None, per_brand: bool = False) -> "UserCohortSummary":
        """Summary for a single row; tier is the row's classified tier."""
        return cls(
            userkey=row.userkey,
            line=row.line if per_brand else None,
            unique_code=row.unique_code,
            user_name=row.user_name,
            **{name: getattr(row, name) for name in SUMMED_FIELDS},
            active_dates=frozenset([row.date]) if row.deposit_cases > 0 else frozenset(),
            first_deposit_date=row.first_deposit_date,
            # a deposit on the row's own date is also a deposit date
            last_deposit_date=_max_date(
                row.last_deposit_date, row.date if row.deposit_cases > 0 else None
            ),
            tier=tier,
            brands=frozenset([row.line]) if row.line else frozenset(),
        )

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return self.userkey, self.line

    @property
    def active_days(self) -> int:
        return len(self.active_dates)

    @property
    def is_active(self) -> bool:
        return self.deposit_cases > 0

    def merge(self, other: "UserCohortSummary") -> "UserCohortSummary":
        if other.key != self.key:
            raise ValueError(f"Cannot merge summaries for {self.key} and {other.key}")
        return replace(
            self,
            unique_code=self.unique_code or other.unique_code,
            user_name=self.user_name or other.user_name,
            **{name: getattr(self, name) + getattr(other, name) for name in SUMMED_FIELDS},
            active_dates=self.active_dates | other.active_dates,
            first_deposit_date=_min_date(self.first_deposit_date, other.first_deposit_date),
            last_deposit_date=_max_date(self.last_deposit_date, other.last_deposit_date),
            tier=best_tier(self.tier, other.tier),
            brands=self.brands | other.brands,
        )

    def with_first_deposit_date(self, value: Optional[date]) -> "UserCohortSummary":
        return replace(self, first_deposit_date=value)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view (dates as ISO strings, brands sorted)."""
        data = {
            "userkey": self.userkey,
            "unique_code": self.unique_code,
            "user_name": self.user_name,
            "line": self.line if self.line else (", ".join(sorted(self.brands)) or None),
            **{name: getattr(self, name) for name in SUMMED_FIELDS},
            "active_days": self.active_days,
            "first_deposit_date": self.first_deposit_date.isoformat() if self.first_deposit_date else None,
            "last_deposit_date": self.last_deposit_date.isoformat() if self.last_deposit_date else None,
            "tier": self.tier,
        }
        return data


# ═══════════════════════════════════════════════════════════════════════════════
# MOVEMENT RECORD
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MovementRecord:
    """How one member's tier changed between period A and period B."""
    userkey: str
    movement_type: MovementType
    from_tier: Optional[int] = None
    to_tier: Optional[int] = None
    tier_change: int = 0
    unique_code: Optional[str] = None
    line: Optional[str] = None
    # For NEW movements: True when the member deposited before period B
    reactivated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userkey": self.userkey,
            "unique_code": self.unique_code,
            "line": self.line,
            "movement_type": self.movement_type.value,
            "from_tier": self.from_tier,
            "to_tier": self.to_tier,
            "tier_change": self.tier_change,
            "reactivated": self.reactivated,
        }
