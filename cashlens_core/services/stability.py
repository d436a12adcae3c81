"""
Cash flow stability index: how predictable monthly net cash flow is, used as a
proxy for financial resilience.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from cashlens_core.domain.models import (
    CashFlowStabilityResult,
    MonthlyAggregate,
    RecurringSplit,
    StabilityConfig,
    TransactionInput,
    VolatilitySources,
)
from cashlens_core.services import stats

logger = logging.getLogger(__name__)

_RATING_TEXT = {
    "Very Stable": "Cash flow is highly predictable with minimal variation.",
    "Stable": "Cash flow shows minor variations but remains generally consistent.",
    "Moderate": "Cash flow has noticeable fluctuations. Consider building a larger emergency fund buffer.",
    "Volatile": (
        "Cash flow varies significantly month-to-month. "
        "Budget conservatively using your lowest income months."
    ),
}


def calculate_cash_flow_cv(net_cash_flows: Sequence[float]) -> Optional[float]:
    return stats.coefficient_of_variation(net_cash_flows)


def calculate_stability_index(net_cash_flows: Sequence[float], non_recurring_ratio: float) -> int:
    """
    100 x (1 - min(1, CV)) x (1 - non_recurring_ratio), clamped to 0-100.
    A negative mean net cash flow always scores 0.
    """
    if len(net_cash_flows) < 2:
        return 0
    if stats.mean(net_cash_flows) < 0:
        return 0
    cv = stats.coefficient_of_variation(net_cash_flows)
    if cv is None:
        return 0

    raw = 100 * (1 - min(1.0, cv)) * (1 - non_recurring_ratio)
    return stats.round_half_up(stats.clamp(raw, 0, 100))


def get_stability_rating(index: int, config: Optional[StabilityConfig] = None) -> str:
    config = config or StabilityConfig()
    if index >= config.very_stable_index:
        return "Very Stable"
    if index >= config.stable_index:
        return "Stable"
    if index >= config.moderate_index:
        return "Moderate"
    return "Volatile"


def probability_of_negative_cash_flow(avg: float, std_dev: float) -> float:
    """P(net < 0) for one month under a normal model: Phi(-mean / stddev), 3 decimals."""
    if std_dev == 0:
        return 0.0 if avg >= 0 else 1.0
    return round(stats.standard_normal_cdf(-avg / std_dev), 3)


def estimate_recurring_split(monthly: Sequence[MonthlyAggregate], min_months: int = 3) -> RecurringSplit:
    """
    Rough recurring share of expenses: recurring ~ max(0, mean - stddev) of monthly
    expenses. Prefer feeding detected patterns through recurring.recurring_split.
    """
    if len(monthly) < min_months:
        return RecurringSplit(0.0, 0.0, 0.0, 1.0)

    expenses = [m.expenses for m in monthly]
    avg = stats.mean(expenses)
    recurring = max(0.0, avg - stats.standard_deviation(expenses))
    ratio = recurring / avg if avg > 0 else 0.0
    return RecurringSplit(
        recurring_expenses=round(recurring, 2),
        non_recurring_expenses=round(avg - recurring, 2),
        recurring_ratio=round(ratio, 2),
        non_recurring_ratio=round(1 - ratio, 2),
    )


def assess_stability_confidence(month_count: int, config: Optional[StabilityConfig] = None) -> str:
    config = config or StabilityConfig()
    if month_count < config.min_months:
        return "insufficient"
    if month_count >= config.high_confidence_months:
        return "high"
    if month_count >= config.medium_confidence_months:
        return "medium"
    return "low"


def generate_stability_explanation(
    rating: str,
    cv: Optional[float],
    probability_negative: Optional[float],
    config: Optional[StabilityConfig] = None,
) -> str:
    config = config or StabilityConfig()
    explanation = _RATING_TEXT.get(rating, "")
    if cv is not None and cv > config.high_volatility_cv:
        explanation += f" Coefficient of variation ({cv * 100:.1f}%) indicates high volatility."
    if probability_negative is not None and probability_negative > config.negative_probability_note:
        explanation += (
            f" There's a {probability_negative * 100:.0f}% chance of negative cash flow in any given month."
        )
    return explanation


def analyze_cash_flow_stability(
    transactions: Iterable[TransactionInput],
    config: Optional[StabilityConfig] = None,
    recurring: Optional[RecurringSplit] = None,
) -> CashFlowStabilityResult:
    """
    Stability over the last lookback_months calendar months with activity.
    Pass `recurring` (from recurring.recurring_split) to replace the built-in
    mean-minus-stddev estimate of the recurring expense share.
    """
    config = config or StabilityConfig()
    items = stats.ensure_within_limit(transactions, config.max_transactions)
    monthly = stats.get_sorted_monthly_aggregates(items)[-config.lookback_months :]

    confidence = assess_stability_confidence(len(monthly), config)
    if confidence == "insufficient":
        return CashFlowStabilityResult(
            stability_index=0,
            rating="Volatile",
            coefficient_of_variation=None,
            mean_net_cash_flow=0.0,
            std_dev_net_cash_flow=0.0,
            recurring_ratio=0.0,
            probability_negative_3_months=None,
            confidence=confidence,
            explanation=(
                f"Need at least {config.min_months} months of data for stability analysis. "
                f"Currently have {len(monthly)}."
            ),
        )

    net = [m.net for m in monthly]
    avg = stats.mean(net)
    std_dev = stats.standard_deviation(net)
    cv = calculate_cash_flow_cv(net)

    split = recurring or estimate_recurring_split(monthly, config.min_months)
    index = calculate_stability_index(net, split.non_recurring_ratio)
    rating = get_stability_rating(index, config)
    probability = probability_of_negative_cash_flow(avg, std_dev)
    logger.debug("stability over %d months: index=%d cv=%s", len(monthly), index, cv)

    return CashFlowStabilityResult(
        stability_index=index,
        rating=rating,
        coefficient_of_variation=round(cv, 3) if cv is not None else None,
        mean_net_cash_flow=round(avg, 2),
        std_dev_net_cash_flow=round(std_dev, 2),
        recurring_ratio=split.recurring_ratio,
        probability_negative_3_months=probability,
        confidence=confidence,
        explanation=generate_stability_explanation(rating, cv, probability, config),
    )


def analyze_volatility_sources(
    monthly: Sequence[MonthlyAggregate],
    config: Optional[StabilityConfig] = None,
) -> VolatilitySources:
    """Attribute volatility to income, expenses, both or neither by each series' CV."""
    config = config or StabilityConfig()
    if len(monthly) < config.min_months:
        return VolatilitySources(None, None, "neither", "Insufficient data to analyze volatility sources.")

    income_cv = stats.coefficient_of_variation([m.income for m in monthly])
    expense_cv = stats.coefficient_of_variation([m.expenses for m in monthly])
    threshold = config.volatility_source_cv
    income_volatile = income_cv is not None and income_cv > threshold
    expense_volatile = expense_cv is not None and expense_cv > threshold

    if income_volatile and expense_volatile:
        source, explanation = "both", "Both income and expenses show significant variation."
    elif income_volatile:
        source = "income"
        explanation = "Income is the primary source of cash flow volatility. Expenses are relatively stable."
    elif expense_volatile:
        source = "expenses"
        explanation = "Expenses are the primary source of cash flow volatility. Income is relatively stable."
    else:
        source, explanation = "neither", "Both income and expenses are relatively stable."

    return VolatilitySources(
        income_volatility=round(income_cv * 100, 1) if income_cv is not None else None,
        expense_volatility=round(expense_cv * 100, 1) if expense_cv is not None else None,
        primary_source=source,
        explanation=explanation,
    )
