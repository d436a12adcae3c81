from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from cashlens_core.domain.exceptions import InvalidConfigurationError
from cashlens_core.domain.models import (
    ConfidenceInterval,
    ForecastConfig,
    ForecastResult,
    MonthlyAmount,
    SmoothingFit,
    TransactionInput,
)
from cashlens_core.services import stats

logger = logging.getLogger(__name__)

# Ordered from least to most trustworthy; the total takes the first one present.
CONFIDENCE_ORDER = ("insufficient", "low", "medium", "high")


def _check_constant(name: str, value: float) -> None:
    if not 0 < value <= 1:
        raise InvalidConfigurationError(f"{name} must be in (0, 1], got {value}")


def simple_exponential_smoothing(values: Sequence[float], alpha: float = 0.3) -> SmoothingFit:
    """Level-only smoothing seeded with the mean of the first three values."""
    _check_constant("alpha", alpha)
    if len(values) == 0:
        return SmoothingFit(forecast=0.0, smoothed=())
    if len(values) < 3:
        return SmoothingFit(forecast=stats.mean(values), smoothed=tuple(values))

    smoothed = [stats.mean(values[:3])]
    for value in values[1:]:
        smoothed.append(alpha * value + (1 - alpha) * smoothed[-1])
    return SmoothingFit(forecast=max(0.0, smoothed[-1]), smoothed=tuple(smoothed))


def holts_linear_smoothing(
    values: Sequence[float],
    alpha: float = 0.3,
    beta: float = 0.1,
    horizon_months: int = 1,
) -> SmoothingFit:
    """
    Double exponential smoothing. Level starts at the mean of the first half,
    trend at the half-to-half change spread over the first half's length.
    """
    _check_constant("alpha", alpha)
    _check_constant("beta", beta)
    if len(values) < 3:
        return SmoothingFit(forecast=stats.mean(values), smoothed=tuple(values))

    half = len(values) // 2
    first, second = values[:half], values[half:]
    level = stats.mean(first)
    trend = (stats.mean(second) - level) / max(len(first), 1)

    smoothed = [level]
    for value in values[1:]:
        previous_level = level
        level = alpha * value + (1 - alpha) * (level + trend)
        trend = beta * (level - previous_level) + (1 - beta) * trend
        smoothed.append(level)

    forecast = level + horizon_months * trend
    return SmoothingFit(forecast=max(0.0, forecast), smoothed=tuple(smoothed), trend=trend)


def holt_winters_smoothing(
    values: Sequence[float],
    alpha: float = 0.3,
    beta: float = 0.1,
    gamma: float = 0.1,
    season_length: int = 12,
    horizon_months: int = 1,
) -> SmoothingFit:
    """
    Triple exponential smoothing with multiplicative seasonality. Shorter series
    than one season fall back to Holt's method with flat (1.0) seasonal indices.
    """
    _check_constant("gamma", gamma)
    if len(values) < season_length:
        holt = holts_linear_smoothing(values, alpha, beta, horizon_months)
        return SmoothingFit(
            forecast=holt.forecast,
            smoothed=holt.smoothed,
            trend=holt.trend,
            seasonal_indices=(1.0,) * season_length,
        )
    _check_constant("alpha", alpha)
    _check_constant("beta", beta)

    first_season = values[:season_length]
    first_mean = stats.mean(first_season)
    seasonal = [v / first_mean if first_mean > 0 else 1.0 for v in first_season]

    level = first_mean
    trend = 0.0
    if len(values) > season_length:
        trend = (stats.mean(values[season_length : season_length * 2]) - first_mean) / season_length

    smoothed: List[float] = []
    for t, value in enumerate(values):
        idx = t % season_length
        previous_index = seasonal[idx]
        # A month with zero spend in the first season would zero its index forever
        divisor = previous_index if previous_index > 0 else 1.0

        previous_level = level
        level = alpha * (value / divisor) + (1 - alpha) * (level + trend)
        trend = beta * (level - previous_level) + (1 - beta) * trend
        if level > 0:
            seasonal[idx] = gamma * (value / level) + (1 - gamma) * previous_index
        smoothed.append(level * previous_index)

    future_idx = (len(values) + horizon_months - 1) % season_length
    forecast = (level + horizon_months * trend) * seasonal[future_idx]
    return SmoothingFit(
        forecast=max(0.0, forecast),
        smoothed=tuple(smoothed),
        trend=trend,
        seasonal_indices=tuple(seasonal),
    )


def calculate_confidence_interval(
    actual: Sequence[float],
    smoothed: Sequence[float],
    forecast: float,
    z_multiplier: float = 1.96,
    fallback_band: float = 0.5,
) -> ConfidenceInterval:
    """forecast ± z * stddev(actual - smoothed); a ±fallback_band band when residuals are unusable."""
    if len(actual) != len(smoothed) or len(actual) < 2:
        return ConfidenceInterval(
            lower=max(0.0, forecast * (1 - fallback_band)),
            upper=forecast * (1 + fallback_band),
        )

    residuals = [a - s for a, s in zip(actual, smoothed)]
    spread = z_multiplier * stats.standard_deviation(residuals)
    return ConfidenceInterval(lower=max(0.0, forecast - spread), upper=forecast + spread)


def assess_forecast_confidence(cv: Optional[float], config: Optional[ForecastConfig] = None) -> str:
    config = config or ForecastConfig()
    if cv is None:
        return "insufficient"
    if cv < config.high_confidence_cv:
        return "high"
    if cv < config.medium_confidence_cv:
        return "medium"
    return "low"


def detect_trend(values: Sequence[float], threshold: float = 0.10) -> str:
    """Compare the mean of the first half with the second half."""
    if len(values) < 3:
        return "stable"

    midpoint = len(values) // 2
    first_mean = stats.mean(values[:midpoint])
    second_mean = stats.mean(values[midpoint:])
    if first_mean == 0:
        return "stable"

    change = (second_mean - first_mean) / first_mean
    if change > threshold:
        return "increasing"
    if change < -threshold:
        return "decreasing"
    return "stable"


def _blend(forecast: float, override: Optional[float], weight: float) -> float:
    if override is None:
        return forecast
    return (1 - weight) * forecast + weight * override


def _rounded_history(history: Iterable[MonthlyAmount]) -> tuple:
    return tuple(MonthlyAmount(month=m.month, amount=round(m.amount, 2)) for m in history)


def _forecast_from_history(
    category: str,
    history: List[MonthlyAmount],
    config: ForecastConfig,
    override: Optional[float],
) -> ForecastResult:
    values = [m.amount for m in history]

    if not values:
        return ForecastResult(
            category=category,
            forecast=0.0,
            interval=ConfidenceInterval(0.0, 0.0),
            confidence="insufficient",
            trend="stable",
            monthly_history=(),
            method="insufficient_data",
        )

    if len(values) < config.min_months_for_smoothing:
        forecast = max(0.0, _blend(stats.mean(values), override, config.override_weight))
        band = config.simple_average_band
        return ForecastResult(
            category=category,
            forecast=round(forecast, 2),
            interval=ConfidenceInterval(round(forecast * (1 - band), 2), round(forecast * (1 + band), 2)),
            confidence="low",
            trend="stable",
            monthly_history=_rounded_history(history),
            method="simple_average",
        )

    if len(values) >= config.season_length:
        fit = holt_winters_smoothing(
            values, config.alpha, config.beta, config.gamma, config.season_length, config.horizon_months
        )
    else:
        fit = holts_linear_smoothing(values, config.alpha, config.beta, config.horizon_months)

    forecast = max(0.0, _blend(fit.forecast, override, config.override_weight))
    interval = calculate_confidence_interval(
        values, fit.smoothed, forecast, config.z_multiplier, config.simple_average_band
    )

    return ForecastResult(
        category=category,
        forecast=round(forecast, 2),
        interval=ConfidenceInterval(round(interval.lower, 2), round(interval.upper, 2)),
        confidence=assess_forecast_confidence(stats.coefficient_of_variation(values), config),
        trend=detect_trend(values, config.trend_threshold),
        monthly_history=_rounded_history(history),
        method="exponential_smoothing",
    )


def forecast_category(
    transactions: Iterable[TransactionInput],
    category: str,
    config: Optional[ForecastConfig] = None,
    override: Optional[float] = None,
) -> ForecastResult:
    """
    Next-month spend for one category. Method by months of history:
    - fewer than 3: simple average, low confidence, ±50% band
    - 3 to 11: Holt's linear trend
    - 12 or more: Holt-Winters seasonal
    An override, when given, is blended in with config.override_weight.
    """
    config = config or ForecastConfig()
    items = stats.ensure_within_limit(transactions, config.max_transactions)
    history = stats.monthly_amounts_for_category(items, category)
    result = _forecast_from_history(category, history, config, override)
    logger.debug("forecast %s: %s over %d months", category, result.method, len(history))
    return result


def forecast_all_categories(
    transactions: Iterable[TransactionInput],
    config: Optional[ForecastConfig] = None,
    overrides: Optional[Mapping[str, float]] = None,
) -> List[ForecastResult]:
    """Forecast every expense category independently, largest forecast first."""
    config = config or ForecastConfig()
    overrides = overrides or {}
    items = stats.ensure_within_limit(transactions, config.max_transactions)

    categories: Dict[str, None] = {}
    for t in items:
        if t.kind == "expense":
            categories.setdefault(t.category, None)

    results = [
        _forecast_from_history(c, stats.monthly_amounts_for_category(items, c), config, overrides.get(c))
        for c in categories
    ]
    return sorted(results, key=lambda r: r.forecast, reverse=True)


def forecast_total_expenses(
    transactions: Iterable[TransactionInput],
    config: Optional[ForecastConfig] = None,
    overrides: Optional[Mapping[str, float]] = None,
) -> ForecastResult:
    """Sum of category forecasts and bounds; the least confident category sets the total's confidence."""
    config = config or ForecastConfig()
    forecasts = forecast_all_categories(transactions, config, overrides)

    if not forecasts:
        return _forecast_from_history("Total", [], config, None)

    present = {f.confidence for f in forecasts}
    confidence = next(level for level in CONFIDENCE_ORDER if level in present)

    totals: Dict[str, float] = {}
    for f in forecasts:
        for point in f.monthly_history:
            totals[point.month] = totals.get(point.month, 0.0) + point.amount
    history = tuple(MonthlyAmount(month=m, amount=round(totals[m], 2)) for m in sorted(totals))

    methods = {f.method for f in forecasts}
    method = "exponential_smoothing" if "exponential_smoothing" in methods else "simple_average"

    return ForecastResult(
        category="Total",
        forecast=round(sum(f.forecast for f in forecasts), 2),
        interval=ConfidenceInterval(
            lower=round(sum(f.interval.lower for f in forecasts), 2),
            upper=round(sum(f.interval.upper for f in forecasts), 2),
        ),
        confidence=confidence,
        trend=detect_trend([m.amount for m in history], config.trend_threshold),
        monthly_history=history,
        method=method,
    )
