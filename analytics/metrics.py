"""
Derived business metrics.

Pure functions over summed fields. Every division goes through safe_divide,
which returns 0 when the denominator is zero or the result is not finite.
"""
import math
from typing import Any, Dict, Mapping


def safe_divide(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    result = numerator / denominator
    return result if math.isfinite(result) else 0.0


def percentage(numerator: float, denominator: float) -> float:
    return safe_divide(numerator, denominator) * 100


def atv(deposit_amount: float, deposit_cases: float) -> float:
    """Average transaction value."""
    return safe_divide(deposit_amount, deposit_cases)


def purchase_frequency(deposit_cases: float, active_days: float) -> float:
    return safe_divide(deposit_cases, active_days)


def ggr(deposit_amount: float, withdraw_amount: float) -> float:
    """Gross gaming revenue."""
    return deposit_amount - withdraw_amount


def net_profit(
    deposit_amount: float,
    withdraw_amount: float,
    add_transaction: float = 0.0,
    deduct_transaction: float = 0.0,
) -> float:
    return deposit_amount + add_transaction - deduct_transaction - withdraw_amount


def winrate(ggr_value: float, deposit_amount: float) -> float:
    return percentage(ggr_value, deposit_amount)


def withdrawal_rate(withdraw_cases: float, deposit_cases: float) -> float:
    return percentage(withdraw_cases, deposit_cases)


def hold_percentage(net_profit_value: float, valid_bet_amount: float) -> float:
    return percentage(net_profit_value, valid_bet_amount)


def conversion_rate(new_depositors: float, new_registrations: float) -> float:
    return percentage(new_depositors, new_registrations)


def pure_member(active_members: int, new_depositors: int) -> int:
    """Active members who are not new depositors."""
    return max(active_members - new_depositors, 0)


def ggr_per_user(ggr_value: float, active_members: float) -> float:
    return safe_divide(ggr_value, active_members)


def deposit_per_user(deposit_amount: float, active_members: float) -> float:
    return safe_divide(deposit_amount, active_members)


def churn_rate(churned: int, prior_active: int) -> float:
    return percentage(churned, prior_active)


def retention_rate(retained: int, prior_active: int) -> float:
    return percentage(retained, prior_active)


def derive_metrics(values: Mapping[str, Any]) -> Dict[str, float]:
    """
    Metric bundle for a summary or a totals mapping.

    Accepts anything with the summed fields (and active_days) either as
    attributes or as mapping keys.
    """
    def get(name: str) -> float:
        if isinstance(values, Mapping):
            return values.get(name, 0) or 0
        return getattr(values, name, 0) or 0

    deposit_amount = get("deposit_amount")
    ggr_value = ggr(deposit_amount, get("withdraw_amount"))
    return {
        "atv": atv(deposit_amount, get("deposit_cases")),
        "pf": purchase_frequency(get("deposit_cases"), get("active_days")),
        "ggr": ggr_value,
        "winrate": winrate(ggr_value, deposit_amount),
        "withdrawal_rate": withdrawal_rate(get("withdraw_cases"), get("deposit_cases")),
        "hold_percentage": hold_percentage(get("net_profit"), get("valid_bet_amount")),
    }
