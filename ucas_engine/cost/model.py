"""
Cost Model: the arithmetic shared by every action type and provider.

Pure functions over numeric inputs. Nothing here raises: missing or unknown
input degrades to a documented default (0 cost, 0 savings, neutral risk).

    monthly_cost   = unit_price x usage (x 720 for hourly units)
    savings        = max(0, current - new)
    risk_score     = clamp(0.3*p99 + 0.4*availability + 0.3*(1 - idle), 0, 1)
    priority_score = savings x (1 - risk) / max(difficulty, 1)
"""

from typing import Optional

import structlog

from ucas_engine.models.resource import UsageMetrics

logger = structlog.get_logger()

HOURS_PER_MONTH = 24 * 30                   # Fixed approximation, not calendar-accurate
DAYS_PER_MONTH = 30

HOURLY_UNITS = frozenset({"hour", "slot"})
DIRECT_UNITS = frozenset({"GB", "request", "GB-month"})

AVAILABILITY_WEIGHTS = {
    "high": 0.5,
    "medium": 0.3,
    "low": 0.1,
}
DEFAULT_AVAILABILITY_POLICY = "medium"
NEUTRAL_RISK = 0.5


def monthly_cost(
    unit_price: Optional[float],
    usage: Optional[float],
    unit: Optional[str],
) -> float:
    """
    Monthly cost of `usage` units at `unit_price`.

    For hourly units `usage` is the always-on equivalent fraction or count
    for the period, not raw hours.
    """
    if unit_price is None or usage is None:
        return 0.0
    if unit in HOURLY_UNITS:
        return unit_price * usage * HOURS_PER_MONTH
    if unit in DIRECT_UNITS:
        return unit_price * usage
    logger.warning("unknown_billing_unit", unit=unit)
    return 0.0


def savings(current: Optional[float], new: Optional[float]) -> float:
    """Savings from moving current -> new. Never negative."""
    if current is None or new is None:
        return 0.0
    return max(0.0, current - new)


def availability_weight(policy: Optional[str]) -> float:
    key = (policy or DEFAULT_AVAILABILITY_POLICY).lower()
    return AVAILABILITY_WEIGHTS.get(key, AVAILABILITY_WEIGHTS[DEFAULT_AVAILABILITY_POLICY])


def risk_score(metrics: Optional[UsageMetrics], availability_policy: Optional[str] = None) -> float:
    """
    Risk of applying a change, in [0, 1]. Higher is riskier.

    Peaky resources (high p99), strict availability policies and resources
    that are rarely idle all push risk up. No metrics at all gives 0.5.
    """
    if metrics is None:
        return NEUTRAL_RISK

    risk = 0.0
    if metrics.p99 is not None:
        risk += 0.3 * metrics.p99
    risk += 0.4 * availability_weight(availability_policy)
    if metrics.idle_ratio is not None:
        risk += 0.3 * (1.0 - metrics.idle_ratio)

    return min(1.0, max(0.0, risk))


def priority_score(
    savings_amount: Optional[float],
    risk: Optional[float],
    difficulty: Optional[int] = 1,
) -> float:
    """Savings weighted by confidence and divided by effort (difficulty 1-5)."""
    if savings_amount is None or risk is None:
        return 0.0
    factor = difficulty if difficulty is not None and difficulty > 0 else 1
    return savings_amount * (1.0 - risk) / factor


# --- Action-specific shortcuts ---

def off_hours_savings(hourly_price: Optional[float], daily_off_hours: Optional[float]) -> float:
    """(daily_off_hours / 24) x hourly_price x 30."""
    if hourly_price is None or daily_off_hours is None:
        return 0.0
    return (daily_off_hours / 24.0) * hourly_price * DAYS_PER_MONTH


def commitment_savings(
    on_demand_price: Optional[float],
    commit_price: Optional[float],
    commit_level: Optional[float],
    usage: Optional[float],
    unit: Optional[str],
) -> float:
    """Savings from covering `commit_level` of usage at the committed price."""
    if None in (on_demand_price, commit_price, commit_level, usage):
        return 0.0
    current = monthly_cost(on_demand_price, usage, unit)
    new = (
        monthly_cost(commit_price, usage * commit_level, unit)
        + monthly_cost(on_demand_price, usage * (1.0 - commit_level), unit)
    )
    return savings(current, new)


def storage_lifecycle_savings(
    current_tier_price: Optional[float],
    target_tier_price: Optional[float],
    size_gb: Optional[float],
) -> float:
    """Savings from moving `size_gb` to a cheaper storage tier."""
    if None in (current_tier_price, target_tier_price, size_gb):
        return 0.0
    return savings(
        monthly_cost(current_tier_price, size_gb, "GB-month"),
        monthly_cost(target_tier_price, size_gb, "GB-month"),
    )
