import datetime as dt

import pytest

from cashlens_core.domain.exceptions import InputLimitExceededError, InvalidConfigurationError
from cashlens_core.domain.models import MonthlyAggregate, RecurringConfig, RecurringPattern, TransactionInput
from cashlens_core.services import recurring


def _txn(date: dt.date, description: str, amount: float, category: str = "Subscriptions", kind: str = "expense"):
    return TransactionInput(
        id=f"{description}-{date.isoformat()}",
        date=date,
        description=description,
        category=category,
        amount=amount,
        kind=kind,
    )


def _monthly(description: str, amount: float, months: int, category: str = "Subscriptions"):
    return [_txn(dt.date(2024, m, 15), description, amount, category) for m in range(1, months + 1)]


def _pattern(period: str, amount: float, status: str = "Confirmed", kind: str = "expense") -> RecurringPattern:
    day = dt.date(2024, 1, 1)
    return RecurringPattern(
        merchant="x",
        category="c",
        kind=kind,
        avg_amount=amount,
        period=period,
        confidence=100,
        status=status,
        last_occurrence=day,
        next_expected=day,
        occurrences=4,
        consistency=1.0,
        median_interval_days=30,
        transactions=(),
    )


def test_six_monthly_charges_make_one_confirmed_pattern():
    patterns = recurring.detect_recurring_patterns(_monthly("Netflix", -15.99, 6))
    assert len(patterns) == 1
    pattern = patterns[0]
    assert pattern.status == "Confirmed"
    assert pattern.period == "Monthly"
    assert pattern.occurrences == 6
    assert pattern.avg_amount == 15.99
    assert pattern.confidence == 100
    assert pattern.next_expected == dt.date(2024, 7, 16)


def test_half_day_median_gap_projects_next_date_upward():
    dates = [dt.date(2024, 1, 1), dt.date(2024, 1, 31), dt.date(2024, 3, 2)]
    patterns = recurring.detect_recurring_patterns([_txn(d, "Gym", -40.0) for d in dates])
    assert len(patterns) == 1
    assert patterns[0].median_interval_days == 30.5
    assert patterns[0].next_expected == dt.date(2024, 4, 2)


def test_two_consistent_charges_are_unconfirmed():
    patterns = recurring.detect_recurring_patterns(_monthly("Gym", -40.0, 2))
    assert len(patterns) == 1
    assert patterns[0].status == "Unconfirmed"


def test_irregular_groceries_emit_nothing():
    trips = [
        (dt.date(2024, 1, 3), -23.10),
        (dt.date(2024, 1, 5), -187.40),
        (dt.date(2024, 1, 14), -64.00),
        (dt.date(2024, 2, 3), -12.50),
        (dt.date(2024, 2, 26), -140.20),
        (dt.date(2024, 4, 11), -95.80),
    ]
    transactions = [_txn(d, "Whole Foods", a, "Groceries") for d, a in trips]
    assert recurring.detect_recurring_patterns(transactions) == []


def test_fuzzy_merchants_merge_within_category_only():
    transactions = [
        _txn(dt.date(2024, 1, 15), "Spotify", -9.99),
        _txn(dt.date(2024, 2, 15), "SPOTIFY USA", -9.99),
        _txn(dt.date(2024, 3, 15), "Spotify", -9.99),
        _txn(dt.date(2024, 4, 15), "Spotify USA", -9.99),
        _txn(dt.date(2024, 4, 20), "Spotify", -9.99, category="Music"),
    ]
    groups = recurring.group_transactions_by_merchant(transactions)
    sizes = sorted(len(members) for members in groups.values())
    assert sizes == [1, 4]

    patterns = recurring.detect_recurring_patterns(transactions)
    assert len(patterns) == 1
    assert patterns[0].occurrences == 4
    assert patterns[0].status == "Confirmed"


def test_results_sorted_by_confidence():
    steady = _monthly("Netflix", -15.99, 4)
    varying = [
        _txn(dt.date(2024, m, 15), "Electric Co", a, "Utilities")
        for m, a in zip(range(1, 5), (-80.0, -95.0, -70.0, -90.0))
    ]
    patterns = recurring.detect_recurring_patterns(varying + steady)
    assert [p.merchant for p in patterns] == ["Netflix", "Electric Co"]
    assert patterns[0].confidence > patterns[1].confidence


def test_filter_outliers_drops_far_amounts():
    amounts = [10, 10, 10, 10, 10, 100]
    transactions = [_txn(dt.date(2024, 1, i + 1), "Cafe", -a) for i, a in enumerate(amounts)]
    kept = recurring.filter_outliers(transactions)
    assert len(kept) == 5
    assert all(t.magnitude == 10 for t in kept)
    assert recurring.filter_outliers(transactions[:2]) == transactions[:2]


def test_identify_period_windows():
    assert recurring.identify_period(7).period == "Weekly"
    assert recurring.identify_period(14).period == "Bi-weekly"
    assert recurring.identify_period(29).period == "Monthly"
    assert recurring.identify_period(33).period == "Monthly"
    assert recurring.identify_period(34).period == "Unknown"
    assert recurring.identify_period(90).period == "Quarterly"
    assert recurring.identify_period(360).period == "Annual"


def test_calculate_confidence():
    assert recurring.calculate_confidence(1.0, 0.0) == 100
    assert recurring.calculate_confidence(0.8, 0.5) == 40
    assert recurring.calculate_confidence(1.0, 2.0) == 0
    # 62.5 rounds up, not to the even neighbour
    assert recurring.calculate_confidence(1.0, 0.375) == 63


def test_detect_duplicates_reports_later_copies():
    first = _txn(dt.date(2024, 3, 10), "Blue Bottle Coffee", -4.50, "Dining")
    second = TransactionInput(
        id="dup", date=first.date, description="BLUE BOTTLE COFFEE", category="Dining", amount=-4.5, kind="expense"
    )
    other = _txn(dt.date(2024, 3, 10), "Blue Bottle Coffee", -6.00, "Dining")
    matches = recurring.detect_duplicates([first, other, second])
    assert len(matches) == 1
    assert matches[0].transaction is second
    assert matches[0].duplicate_of is first


def test_recurring_total_uses_confirmed_monthly_equivalents():
    patterns = [
        _pattern("Weekly", 10.0),
        _pattern("Annual", 120.0),
        _pattern("Monthly", 50.0, status="Unconfirmed"),
    ]
    total = recurring.calculate_recurring_total(patterns)
    assert total.monthly == pytest.approx(53.3)
    assert total.annual == pytest.approx(639.6)


def test_matches_pattern():
    pattern = recurring.detect_recurring_patterns(_monthly("Netflix", -15.99, 6))[0]
    on_time = _txn(pattern.next_expected, "NETFLIX", -15.99)
    assert recurring.matches_pattern(on_time, pattern).matches

    pricier = _txn(pattern.next_expected, "Netflix", -24.99)
    result = recurring.matches_pattern(pricier, pattern)
    assert not result.matches
    assert result.reason.startswith("Amount differs")

    late = _txn(pattern.next_expected + dt.timedelta(days=10), "Netflix", -15.99)
    assert not recurring.matches_pattern(late, pattern).matches


def test_recurring_split_from_patterns():
    monthly = [MonthlyAggregate("2024-01", 1000, 400), MonthlyAggregate("2024-02", 1000, 400)]
    split = recurring.recurring_split([_pattern("Monthly", 100.0), _pattern("Monthly", 999, kind="income")], monthly)
    assert split.recurring_expenses == 100.0
    assert split.recurring_ratio == 0.25
    assert split.non_recurring_ratio == 0.75


def test_limits_and_validation():
    with pytest.raises(InputLimitExceededError):
        recurring.detect_recurring_patterns(_monthly("Netflix", -15.99, 3), RecurringConfig(max_transactions=2))
    with pytest.raises(InvalidConfigurationError):
        RecurringConfig(min_consistency=1.5)
    with pytest.raises(InvalidConfigurationError):
        RecurringConfig(amount_tolerance=-0.1)


def _mixed_ledger():
    return (
        _monthly("Netflix", -15.99, 5)
        + [_txn(dt.date(2024, m, 3), "Spotify USA" if m % 2 else "Spotify", -9.99) for m in range(1, 6)]
        + [_txn(dt.date(2024, m, 20), "Electric Co", -80.0 - m, "Utilities") for m in range(1, 6)]
        + [_txn(dt.date(2024, 2, 9), "Whole Foods", -64.0, "Groceries")]
    )


def test_grouping_and_detection_ignore_input_order():
    transactions = _mixed_ledger()
    shuffled = list(reversed(transactions))
    shuffled = shuffled[1::2] + shuffled[::2]

    def group_ids(items):
        groups = recurring.group_transactions_by_merchant(items)
        return {key: sorted(t.id for t in members) for key, members in groups.items()}

    assert group_ids(shuffled) == group_ids(transactions)
    assert recurring.detect_recurring_patterns(shuffled) == recurring.detect_recurring_patterns(transactions)


def test_detection_leaves_input_untouched():
    transactions = _mixed_ledger()
    snapshot = list(transactions)
    recurring.detect_recurring_patterns(transactions)
    recurring.detect_duplicates(transactions)
    assert transactions == snapshot
