from datetime import date
from decimal import Decimal

import pytest

from cashsight.errors import ValidationError
from cashsight.installments import (
    build_parent_record,
    installment_description,
    plan_custom_installments,
    plan_installments,
    schedule_total,
)


def test_even_split_with_month_end_clamping() -> None:
    """1200 over 3 installments from 2024-01-31."""
    plan = plan_installments(Decimal("1200.00"), 3, date(2024, 1, 31))

    assert [r.installment_number for r in plan] == [1, 2, 3]
    assert [r.amount for r in plan] == [Decimal("400.00")] * 3
    assert [r.due_date for r in plan] == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
    ]
    assert all(r.paid is False for r in plan)


def test_single_installment_equals_total() -> None:
    plan = plan_installments("99.99", 1, date(2024, 5, 10))

    assert len(plan) == 1
    assert plan[0].amount == Decimal("99.99")
    assert plan[0].due_date == date(2024, 5, 10)


@pytest.mark.parametrize("count", [2, 4, 5, 10, 12])
def test_plan_length_and_exact_sum_when_divisible(count) -> None:
    plan = plan_installments(600, count, date(2024, 1, 1))

    assert len(plan) == count
    assert schedule_total(plan) == Decimal("600")


def test_uneven_split_is_not_redistributed() -> None:
    plan = plan_installments(1000, 3, date(2024, 1, 1))

    assert [r.amount for r in plan] == [Decimal("333.33")] * 3
    assert schedule_total(plan) == Decimal("999.99")


def test_explicit_installment_amount_is_not_reconciled() -> None:
    plan = plan_installments(1000, 3, date(2024, 1, 1), installment_amount="400")

    assert [r.amount for r in plan] == [Decimal("400")] * 3
    assert schedule_total(plan) == Decimal("1200")


@pytest.mark.parametrize(
    "total, count",
    [(0, 3), (-10, 3), (100, 0), (100, -1)],
)
def test_invalid_total_or_count_raises(total, count) -> None:
    with pytest.raises(ValidationError):
        plan_installments(total, count, date(2024, 1, 1))


def test_non_positive_explicit_amount_raises() -> None:
    with pytest.raises(ValidationError):
        plan_installments(100, 2, date(2024, 1, 1), installment_amount=0)


@pytest.mark.parametrize("bad", ["abc", float("nan"), "inf", "-Infinity"])
def test_non_numeric_or_non_finite_amounts_raise(bad) -> None:
    with pytest.raises(ValidationError):
        plan_installments(bad, 3, date(2024, 1, 31))
    with pytest.raises(ValidationError):
        plan_installments(100, 3, date(2024, 1, 31), installment_amount=bad)
    with pytest.raises(ValidationError):
        plan_custom_installments(100, [(bad, date(2024, 1, 31))])


def test_custom_schedule_within_tolerance() -> None:
    plan = plan_custom_installments(
        1000,
        [
            ("333.33", date(2024, 1, 10)),
            ("333.33", date(2024, 2, 10)),
            ("333.33", date(2024, 3, 10)),
        ],
    )

    assert [r.installment_number for r in plan] == [1, 2, 3]
    assert plan[2].due_date == date(2024, 3, 10)


def test_custom_schedule_mismatch_raises() -> None:
    with pytest.raises(ValidationError):
        plan_custom_installments(
            1000,
            [("500", date(2024, 1, 10)), ("400", date(2024, 2, 10))],
        )


def test_custom_schedule_empty_raises() -> None:
    with pytest.raises(ValidationError):
        plan_custom_installments(1000, [])


def test_build_parent_record_is_pending() -> None:
    parent = build_parent_record(
        "purchase", "Forklift", "Equipment", "1200.00", 3, date(2024, 1, 31)
    )

    assert parent.status == "pending"
    assert parent.total_amount == Decimal("1200.00")
    assert parent.installment_count == 3


def test_build_parent_record_unknown_kind_raises() -> None:
    with pytest.raises(ValidationError):
        build_parent_record("loan", "x", "y", 10, 1, date(2024, 1, 1))


def test_installment_description() -> None:
    assert installment_description("Forklift", 2, 3) == "Forklift (2/3)"
    assert installment_description("Forklift", 1, 1) == "Forklift"
