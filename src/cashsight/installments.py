# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Installment schedules for sales and purchases.

When a sale or a purchase is registered with N installments, the planner
produces one parent record and N dated installment records. Persisting them
is the job of ``db.insert_installment_plan``; the planner only computes.

Rules
-----
- installment ``i`` (0-based) is due ``i`` calendar months after the start
  date, clamped to the end of shorter months (2024-01-31 → 2024-02-29),
- the even split is ``total / count`` rounded to cents; the remainder is
  not pushed onto the last installment,
- an explicit per-installment amount is applied to every installment as
  given, without checking it against the total,
- a user-edited schedule (``plan_custom_installments``) must add up to the
  total within one cent.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Literal, Optional, Union

from .errors import ValidationError
from .ledger import decimal_sum, quantize_cents, to_decimal
from .periods import add_months

ParentKind = Literal["sale", "purchase"]
Amount = Union[Decimal, float, int, str]

# Tolerance used when comparing a custom schedule with its total.
CUSTOM_SCHEDULE_TOLERANCE = Decimal("0.01")


@dataclass(frozen=True)
class InstallmentRecord:
    """One scheduled payment, before it is persisted."""

    installment_number: int
    amount: Decimal
    due_date: date
    paid: bool = False


@dataclass(frozen=True)
class ParentRecord:
    """The sale or purchase owning an installment schedule."""

    kind: ParentKind
    description: str
    category: str
    total_amount: Decimal
    installment_count: int
    purchase_date: date
    status: str = "pending"


def _positive_amount(value: Amount, label: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except InvalidOperation:
        raise ValidationError(f"{label} is not a number: {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(f"{label} must be a finite number.")
    if amount <= 0:
        raise ValidationError(f"{label} must be strictly positive.")
    return amount


def _validate_total(total_amount: Amount) -> Decimal:
    return _positive_amount(total_amount, "Total amount")


def _validate_count(installment_count: int) -> int:
    if isinstance(installment_count, bool) or int(installment_count) != installment_count:
        raise ValidationError("Installment count must be an integer.")
    if installment_count < 1:
        raise ValidationError("Installment count must be at least 1.")
    return int(installment_count)


def plan_installments(
    total_amount: Amount,
    installment_count: int,
    start_date: date,
    installment_amount: Optional[Amount] = None,
) -> list[InstallmentRecord]:
    """
    Generate an installment schedule.

    Args:
        total_amount: Total of the sale or purchase (> 0).
        installment_count: Number of installments (>= 1).
        start_date: Due date of the first installment.
        installment_amount: Optional amount applied to every installment.
            It is not reconciled with ``total_amount``.

    Returns:
        ``installment_count`` records ordered by installment number
        (1-based), all unpaid.

    Raises:
        ValidationError: if the total is not positive, the count is lower
            than 1 or the explicit amount is not positive.
    """
    total = _validate_total(total_amount)
    count = _validate_count(installment_count)

    if count == 1:
        return [InstallmentRecord(installment_number=1, amount=total, due_date=start_date)]

    if installment_amount is not None:
        amount = _positive_amount(installment_amount, "Installment amount")
    else:
        # TODO: push the rounding remainder onto the last installment once
        # product confirms the expected behaviour (1000 / 3 sums to 999.99).
        amount = quantize_cents(total / count)

    return [
        InstallmentRecord(
            installment_number=i + 1,
            amount=amount,
            due_date=add_months(start_date, i),
        )
        for i in range(count)
    ]


def plan_custom_installments(
    total_amount: Amount,
    schedule: Iterable[tuple[Amount, date]],
) -> list[InstallmentRecord]:
    """
    Build a schedule from user-edited (amount, due_date) pairs.

    The pairs are numbered in the order given. Their sum must equal the
    total within CUSTOM_SCHEDULE_TOLERANCE.
    """
    total = _validate_total(total_amount)
    pairs = [
        (_positive_amount(amount, "Installment amount"), due)
        for amount, due in schedule
    ]

    if not pairs:
        raise ValidationError("A custom schedule needs at least one installment.")

    scheduled = decimal_sum(amount for amount, _ in pairs)
    if abs(scheduled - total) > CUSTOM_SCHEDULE_TOLERANCE:
        raise ValidationError(
            f"Installments add up to {scheduled}, expected {total}."
        )

    return [
        InstallmentRecord(installment_number=i + 1, amount=amount, due_date=due)
        for i, (amount, due) in enumerate(pairs)
    ]


def build_parent_record(
    kind: ParentKind,
    description: str,
    category: str,
    total_amount: Amount,
    installment_count: int,
    purchase_date: date,
) -> ParentRecord:
    """Build the pending parent record of a new sale or purchase."""
    if kind not in ("sale", "purchase"):
        raise ValidationError(f"Unknown parent kind: {kind!r}")
    return ParentRecord(
        kind=kind,
        description=description,
        category=category,
        total_amount=_validate_total(total_amount),
        installment_count=_validate_count(installment_count),
        purchase_date=purchase_date,
    )


def installment_description(description: str, number: int, count: int) -> str:
    """Label an installment as 'Description (i/N)' when N > 1."""
    if count > 1:
        return f"{description} ({number}/{count})"
    return description


def schedule_total(records: Iterable[InstallmentRecord]) -> Decimal:
    return decimal_sum(r.amount for r in records)
