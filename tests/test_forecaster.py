import datetime as dt

import pytest

from cashlens_core.domain.exceptions import InvalidConfigurationError
from cashlens_core.domain.models import ForecastConfig, TransactionInput
from cashlens_core.services import forecaster


def _history(category: str, amounts, start_year: int = 2023):
    """One expense per month, starting January of start_year."""
    transactions = []
    for i, amount in enumerate(amounts):
        year, month = start_year + i // 12, i % 12 + 1
        transactions.append(
            TransactionInput(
                id=f"{category}-{i}",
                date=dt.date(year, month, 10),
                description=category,
                category=category,
                amount=-amount,
                kind="expense",
            )
        )
    return transactions


def test_no_history_is_insufficient():
    result = forecaster.forecast_category([], "Food")
    assert result.method == "insufficient_data"
    assert result.confidence == "insufficient"
    assert result.forecast == 0.0


def test_short_history_uses_simple_average():
    result = forecaster.forecast_category(_history("Food", [100, 200]), "Food")
    assert result.method == "simple_average"
    assert result.confidence == "low"
    assert result.trend == "stable"
    assert result.forecast == 150.0
    assert (result.interval.lower, result.interval.upper) == (75.0, 225.0)
    assert len(result.monthly_history) == 2


def test_override_is_blended():
    result = forecaster.forecast_category(_history("Food", [100, 100]), "Food", override=200)
    assert result.forecast == pytest.approx(140.0)


def test_declining_series_never_forecasts_negative():
    result = forecaster.forecast_category(_history("Travel", [1000, 800, 600, 400, 200, 50]), "Travel")
    assert result.method == "exponential_smoothing"
    assert result.forecast >= 0
    assert result.interval.lower >= 0
    assert result.trend == "decreasing"


def test_seasonal_history_uses_holt_winters():
    amounts = [100 + (200 if i % 12 == 11 else 0) for i in range(24)]
    result = forecaster.forecast_category(_history("Gifts", amounts), "Gifts")
    assert result.method == "exponential_smoothing"
    assert result.forecast >= 0
    assert result.interval.lower <= result.forecast <= result.interval.upper


def test_smoothing_models():
    flat = forecaster.holts_linear_smoothing([100.0] * 6)
    assert flat.forecast == pytest.approx(100.0)
    assert flat.trend == pytest.approx(0.0)

    ses = forecaster.simple_exponential_smoothing([10, 20, 30, 40])
    assert ses.forecast == pytest.approx(28.1)
    assert len(ses.smoothed) == 4

    short = forecaster.holt_winters_smoothing([50, 60, 70, 80])
    assert short.seasonal_indices == (1.0,) * 12
    assert len(short.smoothed) == 4


def test_holt_winters_survives_zero_months():
    amounts = [0 if i % 12 == 0 else 120 for i in range(24)]
    fit = forecaster.holt_winters_smoothing(amounts)
    assert fit.forecast >= 0
    assert len(fit.seasonal_indices) == 12


def test_confidence_interval_fallback_and_residuals():
    fallback = forecaster.calculate_confidence_interval([1.0], [1.0], 100.0)
    assert (fallback.lower, fallback.upper) == (50.0, 150.0)

    exact = forecaster.calculate_confidence_interval([10, 20], [10, 20], 15.0)
    assert (exact.lower, exact.upper) == (15.0, 15.0)


def test_assess_confidence_and_trend():
    assert forecaster.assess_forecast_confidence(None) == "insufficient"
    assert forecaster.assess_forecast_confidence(0.1) == "high"
    assert forecaster.assess_forecast_confidence(0.3) == "medium"
    assert forecaster.assess_forecast_confidence(0.5) == "low"

    assert forecaster.detect_trend([100, 100, 130, 130]) == "increasing"
    assert forecaster.detect_trend([200, 200, 100, 100]) == "decreasing"
    assert forecaster.detect_trend([100, 100, 100]) == "stable"
    assert forecaster.detect_trend([100, 130]) == "stable"


def test_total_takes_lowest_confidence_and_sums():
    transactions = _history("Rent", [1000] * 6) + _history("Food", [100, 300])
    per_category = forecaster.forecast_all_categories(transactions)
    assert [f.category for f in per_category] == ["Rent", "Food"]

    total = forecaster.forecast_total_expenses(transactions)
    assert total.category == "Total"
    assert total.confidence == "low"
    assert total.forecast == pytest.approx(sum(f.forecast for f in per_category))
    assert total.interval.upper == pytest.approx(sum(f.interval.upper for f in per_category))
    assert [m.month for m in total.monthly_history] == [
        "2023-01", "2023-02", "2023-03", "2023-04", "2023-05", "2023-06"
    ]
    assert total.monthly_history[0].amount == 1100.0


def test_total_without_expenses_is_insufficient():
    total = forecaster.forecast_total_expenses([])
    assert total.method == "insufficient_data"
    assert total.confidence == "insufficient"


def test_invalid_smoothing_constants_raise():
    with pytest.raises(InvalidConfigurationError):
        ForecastConfig(alpha=0)
    with pytest.raises(InvalidConfigurationError):
        forecaster.simple_exponential_smoothing([1, 2, 3], alpha=1.5)
