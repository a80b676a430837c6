from datetime import date, datetime
from decimal import Decimal

import pandas as pd
import pytest

from cashsight.errors import ValidationError
from cashsight.ledger import (
    TIMELINE_COLUMNS,
    CashFlowBalances,
    aggregate,
    build_cash_flow_timeline,
)
from cashsight.periods import CustomRange, resolve_period

NOW = datetime(2024, 3, 15, 12, 0)


def _period(start: date, end: date):
    return resolve_period(CustomRange(start=start, end=end), now=NOW)


def _tx(rows):
    return pd.DataFrame(rows, columns=["date", "description", "amount", "type"])


def test_aggregate_empty_set_is_all_zero() -> None:
    balances = aggregate([], _period(date(2024, 1, 1), date(2024, 1, 31)))

    assert balances == CashFlowBalances(
        opening=Decimal("0"),
        income=Decimal("0"),
        expense=Decimal("0"),
        closing=Decimal("0"),
    )


def test_aggregate_income_and_expense_inside_period() -> None:
    """1500 income and 500 expense inside the period close at 1000."""
    tx = _tx(
        [
            ("2024-01-10", "Sale", 1500.0, "income"),
            ("2024-01-20", "Rent", 500.0, "expense"),
        ]
    )

    balances = aggregate(tx, _period(date(2024, 1, 1), date(2024, 1, 31)))

    assert balances.opening == Decimal("0")
    assert balances.income == Decimal("1500.0")
    assert balances.expense == Decimal("500.0")
    assert balances.closing == Decimal("1000.0")


def test_aggregate_opening_is_signed_sum_before_start() -> None:
    tx = _tx(
        [
            ("2023-12-01", "Old sale", 800.0, "income"),
            ("2023-12-15", "Old bill", 300.0, "expense"),
            ("2024-01-31", "Sale", 100.0, "income"),
            ("2024-02-01", "Later", 999.0, "income"),
        ]
    )

    balances = aggregate(tx, _period(date(2024, 1, 1), date(2024, 1, 31)))

    assert balances.opening == Decimal("500.0")
    assert balances.income == Decimal("100.0")
    assert balances.expense == Decimal("0")
    assert balances.closing == Decimal("600.0")


def test_closing_identity_is_exact_with_decimal_accumulation() -> None:
    tx = _tx([("2024-01-05", f"Item {i}", 0.1, "income") for i in range(10)])
    tx.loc[len(tx)] = ("2024-01-06", "Fee", 0.3, "expense")

    balances = aggregate(tx, _period(date(2024, 1, 1), date(2024, 1, 31)))

    assert balances.income == Decimal("1.0")
    assert balances.closing == balances.opening + balances.income - balances.expense
    assert balances.closing == Decimal("0.7")


def test_aggregate_accepts_record_lists_and_type_aliases() -> None:
    records = [
        {"date": "2024-01-02", "amount": "10.50", "type": "venda"},
        {"date": "2024-01-03", "amount": "0.50", "type": "compra"},
    ]

    balances = aggregate(records, _period(date(2024, 1, 1), date(2024, 1, 31)))

    assert balances.rounded().closing == Decimal("10.00")


def test_aggregate_unknown_type_raises() -> None:
    tx = _tx([("2024-01-02", "?", 10.0, "transfer")])

    with pytest.raises(ValidationError):
        aggregate(tx, _period(date(2024, 1, 1), date(2024, 1, 31)))


def test_rounded_balances_quantize_half_up() -> None:
    balances = CashFlowBalances.from_parts(
        Decimal("0.005"), Decimal("1.234"), Decimal("0")
    )

    assert balances.rounded().opening == Decimal("0.01")
    assert balances.as_dict()["closing"] == pytest.approx(1.24)


def test_timeline_short_period_uses_daily_buckets() -> None:
    period = _period(date(2024, 3, 10), date(2024, 3, 19))
    tx = _tx(
        [
            ("2024-03-01", "Before", 100.0, "income"),
            ("2024-03-12", "Sale", 50.0, "income"),
        ]
    )
    sales = pd.DataFrame(
        [
            {"installment_number": 1, "amount": 30.0, "due_date": "2024-03-18", "paid": False},
            {"installment_number": 2, "amount": 99.0, "due_date": "2024-03-19", "paid": True},
        ]
    )
    purchases = pd.DataFrame(
        [{"installment_number": 1, "amount": 20.0, "due_date": "2024-03-18", "paid": False}]
    )

    timeline = build_cash_flow_timeline(tx, sales, purchases, period, now=NOW)

    assert list(timeline.columns) == TIMELINE_COLUMNS
    assert len(timeline) == 10
    assert timeline["bucket"].iloc[0] == "2024-03-10"

    by_bucket = timeline.set_index("bucket")
    assert bool(by_bucket.loc["2024-03-12", "is_historical"]) is True
    assert bool(by_bucket.loc["2024-03-15", "is_historical"]) is False
    assert by_bucket.loc["2024-03-12", "income"] == pytest.approx(50.0)
    assert by_bucket.loc["2024-03-18", "income"] == pytest.approx(30.0)
    assert by_bucket.loc["2024-03-18", "expense"] == pytest.approx(20.0)
    # Paid installments are never projected.
    assert by_bucket.loc["2024-03-19", "income"] == pytest.approx(0.0)

    # Running balance starts from the opening balance (100).
    assert by_bucket.loc["2024-03-10", "cumulative_balance"] == pytest.approx(100.0)
    assert timeline["cumulative_balance"].iloc[-1] == pytest.approx(160.0)


def test_timeline_long_period_uses_monthly_buckets() -> None:
    period = _period(date(2024, 1, 15), date(2024, 6, 10))
    tx = _tx(
        [
            ("2024-01-20", "Sale", 200.0, "income"),
            ("2024-02-10", "Rent", 50.0, "expense"),
            ("2024-05-05", "Future entry ignored", 999.0, "income"),
        ]
    )
    sales = pd.DataFrame(
        [
            {"installment_number": 1, "amount": 40.0, "due_date": "2024-04-10"},
            {"installment_number": 2, "amount": 40.0, "due_date": "2024-06-20"},
        ]
    )

    timeline = build_cash_flow_timeline(tx, sales, [], period, now=NOW)

    assert list(timeline["bucket"]) == [
        "2024-01",
        "2024-02",
        "2024-03",
        "2024-04",
        "2024-05",
        "2024-06",
    ]
    # Buckets are clipped to the period.
    assert timeline["start"].iloc[0] == datetime(2024, 1, 15)
    assert timeline["end"].iloc[-1].date() == date(2024, 6, 10)

    by_bucket = timeline.set_index("bucket")
    assert bool(by_bucket.loc["2024-02", "is_historical"]) is True
    assert bool(by_bucket.loc["2024-03", "is_historical"]) is False
    assert by_bucket.loc["2024-01", "income"] == pytest.approx(200.0)
    assert by_bucket.loc["2024-04", "income"] == pytest.approx(40.0)
    # Future monthly buckets only use installments.
    assert by_bucket.loc["2024-05", "income"] == pytest.approx(0.0)
    # The June installment falls after the period end.
    assert by_bucket.loc["2024-06", "income"] == pytest.approx(0.0)
    assert timeline["cumulative_balance"].iloc[-1] == pytest.approx(190.0)
