"""
Recurring transaction detection: subscriptions, bills and paychecks found by
rule-based temporal pattern matching over merchant/category groups.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from cashlens_core.domain.models import (
    DuplicateMatch,
    MonthlyAggregate,
    PatternMatch,
    PeriodMatch,
    RecurringConfig,
    RecurringPattern,
    RecurringSplit,
    RecurringTotal,
    TransactionInput,
)
from cashlens_core.services import stats

logger = logging.getLogger(__name__)

UNKNOWN_PERIOD = "Unknown"
CONFIRMED = "Confirmed"
UNCONFIRMED = "Unconfirmed"

GroupKey = Tuple[str, str]  # (normalized merchant, category)


def identify_period(interval_days: float, config: Optional[RecurringConfig] = None) -> PeriodMatch:
    """Match a median interval against the period windows; first window to match wins."""
    config = config or RecurringConfig()
    for window in config.period_windows:
        if window.matches(interval_days):
            return PeriodMatch(window.name, window.tolerance_days, window.expected_days)
    return PeriodMatch(UNKNOWN_PERIOD, 0, 0)


def _window_for(period: str, config: RecurringConfig) -> Optional[PeriodMatch]:
    for window in config.period_windows:
        if window.name == period:
            return PeriodMatch(window.name, window.tolerance_days, window.expected_days)
    return None


def group_transactions_by_merchant(
    transactions: Iterable[TransactionInput],
    config: Optional[RecurringConfig] = None,
) -> Dict[GroupKey, List[TransactionInput]]:
    """
    Group by (normalized merchant, category), then merge fuzzy-matching merchants
    within the same category.

    The merge is a single greedy pass over the sorted group keys: the first key
    absorbs every later key it matches, and absorbed keys are skipped. This is a
    heuristic and can over- or under-merge; sorting only makes it deterministic.
    """
    config = config or RecurringConfig()
    groups: Dict[GroupKey, List[TransactionInput]] = {}
    for t in transactions:
        key = (stats.normalize_text(t.description), t.category)
        groups.setdefault(key, []).append(t)

    keys = sorted(groups)
    merged: Dict[GroupKey, List[TransactionInput]] = {}
    absorbed = set()
    for key in keys:
        if key in absorbed:
            continue
        merchant, category = key
        members = list(groups[key])
        for other in keys:
            if other == key or other in absorbed:
                continue
            other_merchant, other_category = other
            if category == other_category and stats.is_similar_merchant(
                merchant, other_merchant, config.fuzzy_max_distance
            ):
                members.extend(groups[other])
                absorbed.add(other)
        absorbed.add(key)
        merged[key] = members
    return merged


def filter_outliers(
    transactions: Sequence[TransactionInput],
    tolerance: float = 0.15,
    z_threshold: float = 2.0,
) -> List[TransactionInput]:
    """
    Drop amounts that are both more than z_threshold standard deviations and more
    than tolerance (fractional) away from the group mean. Groups under 3 are kept.
    """
    if len(transactions) < 3:
        return list(transactions)

    amounts = [t.magnitude for t in transactions]
    avg = stats.mean(amounts)
    std_dev = stats.standard_deviation(amounts)

    kept = []
    for t in transactions:
        deviation = abs(t.magnitude - avg)
        z_score = deviation / std_dev if std_dev > 0 else 0.0
        percent_diff = deviation / avg if avg > 0 else 0.0
        if z_score <= z_threshold or percent_diff <= tolerance:
            kept.append(t)
    return kept


def calculate_confidence(consistency: float, amount_variance_coeff: float) -> int:
    """consistency x (1 - min(1, amount CV)), scaled to 0-100."""
    raw = consistency * (1 - min(1.0, amount_variance_coeff))
    return stats.round_half_up(raw * 100)


def detect_recurring_patterns(
    transactions: Iterable[TransactionInput],
    config: Optional[RecurringConfig] = None,
) -> List[RecurringPattern]:
    """
    1. group by merchant/category (with fuzzy merge)
    2. filter amount outliers
    3. day gaps between consecutive occurrences, median gap
    4. classify the period from the median gap
    5. consistency = share of gaps within tolerance of the expected interval
    6. confidence from consistency and amount variance
    7. Confirmed / Unconfirmed, or drop the group
    8. project the next date from the median gap
    """
    config = config or RecurringConfig()
    items = stats.ensure_within_limit(transactions, config.max_transactions)
    results: List[RecurringPattern] = []

    for key, members in group_transactions_by_merchant(items, config).items():
        if len(members) < config.min_occurrences_unconfirmed:
            continue

        survivors = filter_outliers(members, config.amount_tolerance, config.outlier_z)
        if len(survivors) < config.min_occurrences_unconfirmed:
            continue

        ordered = sorted(survivors, key=lambda t: t.date)
        intervals = [stats.days_between(a.date, b.date) for a, b in zip(ordered, ordered[1:])]
        if not intervals:
            continue

        median_interval = stats.median(intervals)
        match = identify_period(median_interval, config)
        if match.period == UNKNOWN_PERIOD:
            logger.debug("no period for %s (median gap %.1f days)", key, median_interval)
            continue

        consistent = sum(1 for gap in intervals if abs(gap - match.expected_interval) <= match.tolerance)
        consistency = consistent / len(intervals)

        amounts = [t.magnitude for t in ordered]
        avg_amount = stats.mean(amounts)
        amount_cv = stats.standard_deviation(amounts) / avg_amount if avg_amount > 0 else 0.0
        confidence = calculate_confidence(consistency, amount_cv)

        if consistency < config.min_consistency:
            continue
        if len(ordered) >= config.min_occurrences_confirmed:
            status = CONFIRMED
        elif len(ordered) >= config.min_occurrences_unconfirmed:
            status = UNCONFIRMED
        else:
            continue

        last = ordered[-1].date
        results.append(
            RecurringPattern(
                merchant=ordered[0].description,
                category=key[1],
                kind=ordered[0].kind,
                avg_amount=round(avg_amount, 2),
                period=match.period,
                confidence=confidence,
                status=status,
                last_occurrence=last,
                next_expected=stats.add_days(last, stats.round_half_up(median_interval)),
                occurrences=len(ordered),
                consistency=round(consistency, 3),
                median_interval_days=round(median_interval, 1),
                transactions=tuple(ordered),
            )
        )

    logger.debug("detected %d recurring patterns from %d transactions", len(results), len(items))
    return sorted(results, key=lambda p: p.confidence, reverse=True)


def matches_pattern(
    transaction: TransactionInput,
    pattern: RecurringPattern,
    config: Optional[RecurringConfig] = None,
) -> PatternMatch:
    """Check whether a new transaction fits an already detected pattern."""
    config = config or RecurringConfig()
    if not stats.is_similar_merchant(transaction.description, pattern.merchant, config.fuzzy_max_distance):
        return PatternMatch(False, "Merchant name does not match")

    if transaction.category != pattern.category:
        return PatternMatch(False, "Category does not match")

    amount_diff = abs(transaction.magnitude - pattern.avg_amount)
    percent_diff = amount_diff / pattern.avg_amount if pattern.avg_amount > 0 else 0.0
    if percent_diff > config.amount_tolerance:
        return PatternMatch(False, f"Amount differs by {percent_diff * 100:.1f}%")

    days_off = stats.days_between(transaction.date, pattern.next_expected)
    window = _window_for(pattern.period, config)
    tolerance = window.tolerance if window else 3
    if days_off > tolerance * 2:
        return PatternMatch(False, f"Date is {days_off} days from expected")

    return PatternMatch(True, "Transaction matches expected pattern")


def detect_duplicates(transactions: Iterable[TransactionInput]) -> List[DuplicateMatch]:
    """Same normalized merchant, same rounded amount, same calendar day: later ones are duplicates of the first."""
    duplicates: List[DuplicateMatch] = []
    seen: Dict[Tuple[str, str, str], TransactionInput] = {}
    for t in transactions:
        day = stats.as_date(t.date).isoformat()
        key = (stats.normalize_text(t.description), f"{t.magnitude:.2f}", day)
        first = seen.get(key)
        if first is not None:
            duplicates.append(DuplicateMatch(transaction=t, duplicate_of=first))
        else:
            seen[key] = t
    return duplicates


def _monthly_equivalent(pattern: RecurringPattern, config: RecurringConfig) -> float:
    return pattern.avg_amount * config.monthly_factors.get(pattern.period, 1.0)


def calculate_recurring_total(
    patterns: Iterable[RecurringPattern],
    config: Optional[RecurringConfig] = None,
) -> RecurringTotal:
    """Monthly-equivalent sum of confirmed patterns."""
    config = config or RecurringConfig()
    monthly = sum(_monthly_equivalent(p, config) for p in patterns if p.status == CONFIRMED)
    return RecurringTotal(monthly=round(monthly, 2), annual=round(monthly * 12, 2))


def recurring_split(
    patterns: Iterable[RecurringPattern],
    monthly: Sequence[MonthlyAggregate],
    config: Optional[RecurringConfig] = None,
) -> RecurringSplit:
    """
    Share of average monthly expenses covered by confirmed recurring expense
    patterns, in the form the stability analyzer accepts.
    """
    config = config or RecurringConfig()
    expense_patterns = [p for p in patterns if p.kind == "expense"]
    recurring = calculate_recurring_total(expense_patterns, config).monthly
    avg_expenses = stats.mean([m.expenses for m in monthly])
    if avg_expenses <= 0:
        return RecurringSplit(0.0, 0.0, 0.0, 1.0)

    recurring = min(recurring, avg_expenses)
    ratio = recurring / avg_expenses
    return RecurringSplit(
        recurring_expenses=round(recurring, 2),
        non_recurring_expenses=round(avg_expenses - recurring, 2),
        recurring_ratio=round(ratio, 2),
        non_recurring_ratio=round(1 - ratio, 2),
    )
