"""
Budget variance: planned versus actual spending per category, month-end
surplus, year-to-date tracking and history-based budget suggestions.
"""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from cashlens_core.domain.models import (
    BudgetConfig,
    BudgetLine,
    BudgetSuggestion,
    CategoryVariance,
    MonthlyAmount,
    MonthlyBudgetReport,
    SeasonalityProfile,
    TransactionInput,
    YearToDateCategory,
    YearToDateReport,
)
from cashlens_core.services import stats

logger = logging.getLogger(__name__)


def calculate_budget_variance(budget: float, actual: float) -> float:
    """(actual - budget) / budget x 100; inf for spend against a zero budget, 0 when both are 0."""
    if budget == 0:
        return math.inf if actual > 0 else 0.0
    return (actual - budget) / budget * 100


def classify_variance_status(variance: float, config: Optional[BudgetConfig] = None) -> str:
    config = config or BudgetConfig()
    band = config.on_track_band * 100
    if not math.isfinite(variance) or variance > band:
        return "Over Budget"
    if variance < -band:
        return "Under Budget"
    return "On Track"


def is_red_flag(variance: float, config: Optional[BudgetConfig] = None) -> bool:
    """Over-spending beyond the threshold; under-spending is never flagged."""
    config = config or BudgetConfig()
    if not math.isfinite(variance):
        return True
    return variance > config.red_flag_threshold * 100


def calculate_month_surplus(income: float, expenses: float) -> float:
    return income - expenses


def calculate_category_variance(
    category: str,
    budgeted: float,
    actual: float,
    config: Optional[BudgetConfig] = None,
) -> CategoryVariance:
    config = config or BudgetConfig()
    variance = calculate_budget_variance(budgeted, actual)
    return CategoryVariance(
        category=category,
        budgeted=round(budgeted, 2),
        actual=round(actual, 2),
        variance_pct=round(variance, 1) if math.isfinite(variance) else variance,
        variance_amount=round(actual - budgeted, 2),
        status=classify_variance_status(variance, config),
        is_red_flag=is_red_flag(variance, config),
    )


def _monthly_amount(line: BudgetLine) -> float:
    return line.amount / 12 if line.period == "annual" else line.amount


def generate_category_variance_report(
    budgets: Sequence[BudgetLine],
    actuals: Mapping[str, float],
    config: Optional[BudgetConfig] = None,
) -> List[CategoryVariance]:
    """
    Budgeted categories plus categories with spend but no budget (always red
    flagged). Excluded categories are skipped. Largest overspend first.
    """
    config = config or BudgetConfig()
    excluded = set(config.excluded_categories)
    budgeted = {line.category for line in budgets}

    results = [
        calculate_category_variance(line.category, _monthly_amount(line), actuals.get(line.category, 0.0), config)
        for line in budgets
        if line.category not in excluded
    ]
    results.extend(
        calculate_category_variance(category, 0.0, actual, config)
        for category, actual in actuals.items()
        if category not in excluded and category not in budgeted
    )
    return sorted(results, key=lambda c: c.variance_amount, reverse=True)


def generate_monthly_budget_report(
    month: str,
    budgets: Sequence[BudgetLine],
    transactions: Iterable[TransactionInput],
    income: Optional[float] = None,
    config: Optional[BudgetConfig] = None,
) -> MonthlyBudgetReport:
    """
    Report for one YYYY-MM month. Income defaults to the month's income
    transactions; annual budget lines count for a twelfth.
    """
    config = config or BudgetConfig()
    items = stats.ensure_within_limit(transactions, config.max_transactions)
    month_items = [t for t in items if stats.month_key(t.date) == month]

    actuals = stats.aggregate_by_category(month_items, "expense")
    categories = generate_category_variance_report(budgets, actuals, config)

    excluded = set(config.excluded_categories)
    total_budgeted = sum(_monthly_amount(line) for line in budgets if line.category not in excluded)
    total_actual = sum(c.actual for c in categories)
    total_variance = calculate_budget_variance(total_budgeted, total_actual)
    if income is None:
        income = sum(t.magnitude for t in month_items if t.kind == "income")

    logger.debug("budget report %s: %d categories", month, len(categories))
    return MonthlyBudgetReport(
        month=month,
        total_budgeted=round(total_budgeted, 2),
        total_actual=round(total_actual, 2),
        total_variance=round(total_variance, 1) if math.isfinite(total_variance) else 0.0,
        surplus=round(calculate_month_surplus(income, total_actual), 2),
        red_flag_count=sum(1 for c in categories if c.is_red_flag),
        categories=tuple(categories),
    )


def get_ytd_tracking(
    budgets: Sequence[BudgetLine],
    transactions: Iterable[TransactionInput],
    as_of: dt.date,
    year: Optional[int] = None,
    config: Optional[BudgetConfig] = None,
) -> YearToDateReport:
    """
    Year-to-date budget versus actual. For the year of `as_of` the months elapsed
    are as_of.month; earlier years count all twelve, later years none.
    """
    config = config or BudgetConfig()
    year = year if year is not None else as_of.year
    if year == as_of.year:
        months_elapsed = as_of.month
    elif year < as_of.year:
        months_elapsed = 12
    else:
        months_elapsed = 0

    items = stats.ensure_within_limit(transactions, config.max_transactions)
    year_items = [t for t in items if t.date.year == year]
    actuals = stats.aggregate_by_category(year_items, "expense")

    excluded = set(config.excluded_categories)
    categories: List[YearToDateCategory] = []
    ytd_budgeted = 0.0
    for line in budgets:
        if line.category in excluded:
            continue
        annual = line.amount if line.period == "annual" else line.amount * 12
        ytd_budget = annual / 12 * months_elapsed
        ytd_budgeted += ytd_budget
        actual = actuals.get(line.category, 0.0)
        categories.append(
            YearToDateCategory(
                variance=calculate_category_variance(line.category, ytd_budget, actual, config),
                ytd_actual=round(actual, 2),
                annual_budget=round(annual, 2),
            )
        )

    ytd_actual = sum(c.ytd_actual for c in categories)
    ytd_variance = calculate_budget_variance(ytd_budgeted, ytd_actual)
    projected = ytd_actual / months_elapsed * 12 if months_elapsed else 0.0

    return YearToDateReport(
        year=year,
        months_elapsed=months_elapsed,
        ytd_budgeted=round(ytd_budgeted, 2),
        ytd_actual=round(ytd_actual, 2),
        ytd_variance=round(ytd_variance, 1) if math.isfinite(ytd_variance) else 0.0,
        projected_year_end=round(projected, 2),
        categories=tuple(sorted(categories, key=lambda c: c.variance.variance_amount, reverse=True)),
    )


def detect_seasonality(
    monthly_amounts: Sequence[MonthlyAmount],
    config: Optional[BudgetConfig] = None,
) -> SeasonalityProfile:
    """Calendar-month factors versus the overall mean; seasonal when max - min factor exceeds the swing."""
    config = config or BudgetConfig()
    if len(monthly_amounts) < config.seasonality_min_months:
        return SeasonalityProfile(has_seasonal=False, factors={})

    by_calendar_month: Dict[int, List[float]] = {}
    for point in monthly_amounts:
        calendar_month = int(point.month.split("-")[1])
        by_calendar_month.setdefault(calendar_month, []).append(point.amount)

    overall = stats.mean([p.amount for p in monthly_amounts])
    factors = {
        m: (stats.mean(amounts) / overall if overall > 0 else 1.0)
        for m, amounts in sorted(by_calendar_month.items())
    }
    swing = max(factors.values()) - min(factors.values())
    return SeasonalityProfile(
        has_seasonal=swing > config.seasonality_swing,
        factors={m: round(f, 3) for m, f in factors.items()},
    )


def seasonally_adjusted_budget(base_budget: float, target_month: int, profile: SeasonalityProfile) -> float:
    """Scale a base budget by the calendar month's factor (1.0 when unknown)."""
    return round(base_budget * profile.factors.get(target_month, 1.0), 2)


def _round_to_increment(value: float, increment: float) -> float:
    return stats.round_half_up(value / increment) * increment


def suggest_initial_budget(
    transactions: Iterable[TransactionInput],
    category: str,
    config: Optional[BudgetConfig] = None,
) -> BudgetSuggestion:
    """First budget for a category from its average monthly spend, rounded to the nearest increment."""
    config = config or BudgetConfig()
    items = stats.ensure_within_limit(transactions, config.max_transactions)
    expenses = [t for t in items if t.category == category and t.kind == "expense"]
    if not expenses:
        return BudgetSuggestion(category, 0.0, "low", 0, "No historical data for this category")

    monthly: Dict[str, float] = {}
    for t in expenses:
        key = stats.month_key(t.date)
        monthly[key] = monthly.get(key, 0.0) + t.magnitude

    month_count = len(monthly)
    suggested = _round_to_increment(stats.mean(list(monthly.values())), config.rounding_increment)

    if month_count >= config.suggestion_lookback_months:
        confidence, note = "high", f"Based on {month_count} months of data"
    elif month_count >= config.suggestion_min_months:
        confidence, note = "medium", f"Based on {month_count} months - more data will improve accuracy"
    else:
        confidence = "low"
        note = f"Only {month_count} month{'s' if month_count != 1 else ''} of data - budget may need adjustment"

    return BudgetSuggestion(
        category=category,
        suggested=round(suggested, 2),
        confidence=confidence,
        months_observed=month_count,
        note=note,
    )
