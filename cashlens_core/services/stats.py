"""
Shared numeric helpers: descriptive statistics, date arithmetic, monthly
aggregation and merchant-name matching. Every function is pure.
"""

from __future__ import annotations

import datetime as dt
import math
import re
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from rapidfuzz.distance import Levenshtein

from cashlens_core.domain.exceptions import InputLimitExceededError
from cashlens_core.domain.models import MonthlyAggregate, MonthlyAmount, TransactionInput

# ---------------------------------------------------------------------------
# Descriptive statistics
# ---------------------------------------------------------------------------


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def standard_deviation(values: Sequence[float]) -> float:
    """Population standard deviation (n denominator)."""
    if len(values) == 0:
        return 0.0
    return float(np.std(values))


def median(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.median(values))


def coefficient_of_variation(values: Sequence[float]) -> Optional[float]:
    """stddev / |mean|; None with fewer than two values or a zero mean."""
    if len(values) < 2:
        return None
    avg = mean(values)
    if avg == 0:
        return None
    return standard_deviation(values) / abs(avg)


def percentile(values: Sequence[float], p: float) -> float:
    """Percentile (0-100) with linear interpolation between ranks; input need not be sorted."""
    if len(values) == 0:
        return 0.0
    return float(np.percentile(np.asarray(values, dtype=float), p))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def round_half_up(value: float) -> int:
    """Nearest integer with .5 going up; the builtin round() goes to even."""
    return int(math.floor(value + 0.5))


# Abramowitz & Stegun 7.1.26
_ERF_A = (0.254829592, -0.284496736, 1.421413741, -1.453152027, 1.061405429)
_ERF_P = 0.3275911


def erf(x: float) -> float:
    """Polynomial error function approximation, |error| <= 1.5e-7."""
    sign = -1.0 if x < 0 else 1.0
    x = abs(x)
    a1, a2, a3, a4, a5 = _ERF_A
    t = 1.0 / (1.0 + _ERF_P * x)
    y = 1.0 - (((((a5 * t + a4) * t) + a3) * t + a2) * t + a1) * t * math.exp(-x * x)
    return sign * y


def standard_normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + erf(z / math.sqrt(2.0)))


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def as_date(value: dt.date) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    return value


def month_key(value: dt.date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def add_days(value: dt.date, days: int) -> dt.date:
    return as_date(value) + dt.timedelta(days=days)


def days_between(first: dt.date, second: dt.date) -> int:
    return abs((as_date(second) - as_date(first)).days)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def ensure_within_limit(transactions: Iterable[TransactionInput], limit: int) -> List[TransactionInput]:
    """Materialise the input once and enforce the configured size limit."""
    items = list(transactions)
    if len(items) > limit:
        raise InputLimitExceededError(f"{len(items)} transactions exceed the configured limit of {limit}")
    return items


def _frame(transactions: Iterable[TransactionInput]) -> pd.DataFrame:
    rows = [
        {
            "date": t.date,
            "amount": abs(t.amount),
            "kind": t.kind,
            "category": t.category,
        }
        for t in transactions
        if t.kind != "transfer"
    ]
    df = pd.DataFrame(rows, columns=["date", "amount", "kind", "category"])
    if not df.empty:
        df["month"] = pd.to_datetime(df["date"]).dt.to_period("M").astype(str)
    return df


def aggregate_by_month(transactions: Iterable[TransactionInput]) -> Dict[str, MonthlyAggregate]:
    df = _frame(transactions)
    if df.empty:
        return {}

    totals = df.groupby(["month", "kind"])["amount"].sum().unstack(fill_value=0.0)
    counts = df.groupby("month").size()
    income = totals["income"] if "income" in totals else pd.Series(0.0, index=totals.index)
    expenses = totals["expense"] if "expense" in totals else pd.Series(0.0, index=totals.index)

    return {
        month: MonthlyAggregate(
            month=month,
            income=float(income[month]),
            expenses=float(expenses[month]),
            transaction_count=int(counts[month]),
        )
        for month in totals.index
    }


def get_sorted_monthly_aggregates(transactions: Iterable[TransactionInput]) -> List[MonthlyAggregate]:
    monthly = aggregate_by_month(transactions)
    return [monthly[m] for m in sorted(monthly)]


def aggregate_by_category(transactions: Iterable[TransactionInput], kind: str = "expense") -> Dict[str, float]:
    """Sum absolute amounts per category; kind is "income", "expense" or "all"."""
    df = _frame(transactions)
    if df.empty:
        return {}
    if kind != "all":
        df = df[df["kind"] == kind]
    return {str(cat): float(total) for cat, total in df.groupby("category", sort=False)["amount"].sum().items()}


def monthly_amounts_for_category(transactions: Iterable[TransactionInput], category: str) -> List[MonthlyAmount]:
    df = _frame(transactions)
    if df.empty:
        return []
    subset = df[df["category"] == category]
    if subset.empty:
        return []
    monthly = subset.groupby("month")["amount"].sum().sort_index()
    return [MonthlyAmount(month=str(month), amount=float(amount)) for month, amount in monthly.items()]


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------

_SINGLE_QUOTES = re.compile("[‘’‖�\u0092\u0091'`´ʼʻˈˊ]")
_DOUBLE_QUOTES = re.compile("[“”\u0093\u0094\"„‟]")
_DASHES = re.compile("[–—―\u0096\u0097]")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


def normalize_text(text: str) -> str:
    """Lower-case and fold typographic quotes/dashes for consistent grouping keys."""
    text = (text or "").lower()
    text = _SINGLE_QUOTES.sub("'", text)
    text = _DOUBLE_QUOTES.sub('"', text)
    text = _DASHES.sub("-", text)
    return text.strip()


def normalize_merchant(text: str) -> str:
    return _NON_ALNUM.sub("", (text or "").lower())


def levenshtein_distance(a: str, b: str) -> int:
    return int(Levenshtein.distance(a.lower(), b.lower()))


def is_similar_merchant(a: str, b: str, max_distance: int = 2) -> bool:
    """
    Fuzzy merchant match after stripping case and punctuation:
    equal, one contained in the other, or within max_distance edits.
    """
    a_norm = normalize_merchant(a)
    b_norm = normalize_merchant(b)
    if a_norm == b_norm:
        return True
    # An empty name would be "contained" in everything
    if not a_norm or not b_norm:
        return False
    if a_norm in b_norm or b_norm in a_norm:
        return True
    return levenshtein_distance(a_norm, b_norm) <= max_distance
