import datetime as dt

import pytest

from cashlens_core.domain.exceptions import InputLimitExceededError
from cashlens_core.domain.models import TransactionInput
from cashlens_core.services import stats


def _txn(date: dt.date, amount: float, kind: str, category: str = "General") -> TransactionInput:
    return TransactionInput(id=f"{date}-{amount}", date=date, description="x", category=category, amount=amount, kind=kind)


def test_population_standard_deviation_and_mean():
    values = [2, 4, 4, 4, 5, 5, 7, 9]
    assert stats.mean(values) == 5.0
    assert stats.standard_deviation(values) == pytest.approx(2.0)
    assert stats.mean([]) == 0.0
    assert stats.standard_deviation([]) == 0.0


def test_percentile_interpolates_between_ranks():
    assert stats.percentile([4, 1, 3, 2], 25) == pytest.approx(1.75)
    assert stats.percentile([10, 20, 30, 40, 50], 50) == pytest.approx(30.0)
    assert stats.percentile([], 50) == 0.0


def test_coefficient_of_variation_edge_cases():
    assert stats.coefficient_of_variation([5]) is None
    assert stats.coefficient_of_variation([-1, 1]) is None
    assert stats.coefficient_of_variation([10, 20]) == pytest.approx(5 / 15)


def test_normal_cdf_matches_known_values():
    assert abs(stats.erf(0.0)) < 1e-6
    assert stats.standard_normal_cdf(0.0) == pytest.approx(0.5, abs=1e-6)
    assert stats.standard_normal_cdf(1.96) == pytest.approx(0.975, abs=1e-4)
    assert stats.standard_normal_cdf(-1.0) == pytest.approx(0.1587, abs=1e-4)


def test_merchant_matching():
    assert stats.levenshtein_distance("kitten", "sitting") == 3
    assert stats.is_similar_merchant("NETFLIX.COM", "Netflix")
    assert stats.is_similar_merchant("Spotify", "Spotfy")
    assert not stats.is_similar_merchant("Shell", "Amazon")
    assert not stats.is_similar_merchant("", "Netflix")
    assert stats.is_similar_merchant("", "!!!")


def test_normalize_text_folds_typography():
    assert stats.normalize_text("  Joe’s Café — Downtown ") == "joe's café - downtown"


def test_monthly_aggregation_skips_transfers():
    transactions = [
        _txn(dt.date(2024, 1, 1), 3000, "income"),
        _txn(dt.date(2024, 1, 5), -200, "expense"),
        _txn(dt.date(2024, 1, 9), -999, "transfer"),
        _txn(dt.date(2024, 2, 3), 100, "expense"),  # sign not trusted
    ]
    monthly = stats.get_sorted_monthly_aggregates(transactions)
    assert [m.month for m in monthly] == ["2024-01", "2024-02"]
    assert monthly[0].income == 3000
    assert monthly[0].expenses == 200
    assert monthly[0].transaction_count == 2
    assert monthly[1].net == -100
    assert monthly[1].savings_rate == 0.0


def test_category_aggregation_and_history():
    transactions = [
        _txn(dt.date(2024, 1, 4), -50, "expense", "Food"),
        _txn(dt.date(2024, 1, 20), -25, "expense", "Food"),
        _txn(dt.date(2024, 3, 2), -40, "expense", "Food"),
        _txn(dt.date(2024, 1, 1), 900, "income", "Salary"),
    ]
    assert stats.aggregate_by_category(transactions) == {"Food": 115.0}
    assert stats.aggregate_by_category(transactions, "income") == {"Salary": 900.0}
    history = stats.monthly_amounts_for_category(transactions, "Food")
    assert [(h.month, h.amount) for h in history] == [("2024-01", 75.0), ("2024-03", 40.0)]


def test_dates():
    assert stats.month_key(dt.date(2024, 3, 9)) == "2024-03"
    assert stats.add_days(dt.date(2024, 2, 28), 2) == dt.date(2024, 3, 1)
    assert stats.days_between(dt.date(2024, 3, 1), dt.date(2024, 2, 1)) == 29
    assert stats.as_date(dt.datetime(2024, 3, 9, 23, 30)) == dt.date(2024, 3, 9)


def test_round_half_up():
    assert stats.round_half_up(30.5) == 31
    assert stats.round_half_up(62.5) == 63
    assert stats.round_half_up(62.4) == 62
    assert stats.round_half_up(-0.5) == 0


def test_input_limit_is_enforced():
    transactions = [_txn(dt.date(2024, 1, i), -1, "expense") for i in range(1, 4)]
    with pytest.raises(InputLimitExceededError):
        stats.ensure_within_limit(transactions, 2)
