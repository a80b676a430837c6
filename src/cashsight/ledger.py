# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Ledger aggregation for CashSight.

This module computes the cash-flow figures shown on the dashboard for a
given reporting period. It has two entry points:

1. Period balances
   ----------------
   ``aggregate(transactions, period)`` returns a CashFlowBalances with:

   - opening : signed sum of every transaction dated strictly before the
               period start (income positive, expense negative),
   - income  : sum of income transactions inside the period,
   - expense : sum of expense transactions inside the period,
   - closing : opening + income - expense.

   Sums are accumulated with ``decimal.Decimal`` so that the closing
   identity holds exactly. Rounding to cents only happens at presentation
   time (``CashFlowBalances.rounded()`` or the view helpers).

2. Cash-flow timeline
   -------------------
   ``build_cash_flow_timeline(...)`` splits the period into buckets (one per
   day for periods up to 60 days, one per calendar month otherwise) and
   returns a DataFrame with inflow, outflow, net and running balance per
   bucket. Past buckets are built from transactions; future buckets are
   projected from unpaid sale installments (inflow) and purchase
   installments (outflow).

Inputs are DataFrames (or record lists) normalized by ``io.py``; nothing in
this module touches storage and inputs are never mutated.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Union

import pandas as pd

from .io import FrameLike, normalize_installments, normalize_transactions
from .periods import (
    Period,
    _now,
    add_months,
    end_of_day,
    end_of_month,
    filter_frame_by_period,
    start_of_day,
    start_of_month,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENTS = Decimal("0.01")

# Periods up to this many days are bucketed per day, longer ones per month.
DAILY_GRANULARITY_MAX_DAYS = 60

TIMELINE_COLUMNS = [
    "bucket",
    "start",
    "end",
    "income",
    "expense",
    "net",
    "cumulative_balance",
    "is_historical",
]


def to_decimal(value: Union[Decimal, float, int, str]) -> Decimal:
    """Convert a monetary value to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_cents(value: Decimal) -> Decimal:
    """Round a Decimal to two decimal places (half up)."""
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def decimal_sum(values: Iterable[Any]) -> Decimal:
    """Sum monetary values as Decimals; an empty iterable sums to zero."""
    return sum((to_decimal(v) for v in values), ZERO)


@dataclass(frozen=True)
class CashFlowBalances:
    """
    Cash-flow balances for one period.

    Attributes
    ----------
    opening :
        Running balance carried forward from before the period.
    income :
        Total inflow inside the period.
    expense :
        Total outflow inside the period.
    closing :
        opening + income - expense.
    """

    opening: Decimal
    income: Decimal
    expense: Decimal
    closing: Decimal

    @classmethod
    def from_parts(
        cls, opening: Decimal, income: Decimal, expense: Decimal
    ) -> "CashFlowBalances":
        return cls(
            opening=opening,
            income=income,
            expense=expense,
            closing=opening + income - expense,
        )

    def rounded(self) -> "CashFlowBalances":
        """Copy with every figure rounded to cents, for display."""
        return CashFlowBalances(
            opening=quantize_cents(self.opening),
            income=quantize_cents(self.income),
            expense=quantize_cents(self.expense),
            closing=quantize_cents(self.closing),
        )

    def as_dict(self) -> dict[str, float]:
        r = self.rounded()
        return {
            "opening": float(r.opening),
            "income": float(r.income),
            "expense": float(r.expense),
            "closing": float(r.closing),
        }


def _sum_by_type(transactions: pd.DataFrame, tx_type: str) -> Decimal:
    return decimal_sum(transactions.loc[transactions["type"] == tx_type, "amount"])


def _signed_total(transactions: pd.DataFrame) -> Decimal:
    return _sum_by_type(transactions, "income") - _sum_by_type(transactions, "expense")


def aggregate(transactions: FrameLike, period: Period) -> CashFlowBalances:
    """
    Compute opening, income, expense and closing balances for a period.

    Args:
        transactions: Transactions (DataFrame or records) with at least
            ``date``, ``amount`` and ``type`` columns.
        period: Reporting period; bounds are inclusive.

    Returns:
        A CashFlowBalances with full Decimal precision. An empty
        transaction set yields all-zero balances.
    """
    tx = normalize_transactions(transactions)
    if tx.empty:
        return CashFlowBalances.from_parts(ZERO, ZERO, ZERO)

    before = tx.loc[tx["date"] < pd.Timestamp(period.start)]
    inside = filter_frame_by_period(tx, period)

    balances = CashFlowBalances.from_parts(
        opening=_signed_total(before),
        income=_sum_by_type(inside, "income"),
        expense=_sum_by_type(inside, "expense"),
    )
    logger.debug(
        "Aggregated %d transactions for %s: %s", len(inside), period.label, balances
    )
    return balances


def _daily_buckets(period: Period) -> list[tuple[str, datetime, datetime]]:
    buckets = []
    day = start_of_day(period.start)
    while day <= period.end:
        buckets.append((f"{day:%Y-%m-%d}", day, end_of_day(day)))
        day = day + timedelta(days=1)
    return buckets


def _monthly_buckets(period: Period) -> list[tuple[str, datetime, datetime]]:
    buckets = []
    month = start_of_month(period.start)
    while month <= period.end:
        # Clip to the period so that bucket totals add up to the balances.
        b_start = max(month, period.start)
        b_end = min(end_of_month(month), period.end)
        buckets.append((f"{month:%Y-%m}", b_start, b_end))
        month = add_months(month, 1)
    return buckets


def _between(frame: pd.DataFrame, column: str, start: datetime, end: datetime):
    mask = (frame[column] >= pd.Timestamp(start)) & (frame[column] <= pd.Timestamp(end))
    return frame.loc[mask]


def build_cash_flow_timeline(
    transactions: FrameLike,
    sale_installments: FrameLike,
    purchase_installments: FrameLike,
    period: Period,
    now: Optional[datetime] = None,
) -> pd.DataFrame:
    """
    Build a bucketed cash-flow timeline for the period.

    Bucketing:
        - one bucket per day when the period spans at most
          DAILY_GRANULARITY_MAX_DAYS days,
        - one bucket per calendar month otherwise (clipped to the period).

    A bucket is historical when it ends before ``now``. Its figures are:
        - daily buckets: transactions dated in the bucket, plus unpaid
          installments due in the bucket when the bucket is not historical,
        - monthly buckets: transactions when historical, unpaid installments
          otherwise.

    Sale installments count as income and purchase installments as expense.
    ``cumulative_balance`` starts from the period opening balance.

    Returns:
        A DataFrame with TIMELINE_COLUMNS, amounts rounded to 2 decimals.
    """
    now = now or _now()
    tx = normalize_transactions(transactions)
    sales = normalize_installments(sale_installments)
    purchases = normalize_installments(purchase_installments)

    unpaid_sales = sales.loc[~sales["paid"].astype(bool)]
    unpaid_purchases = purchases.loc[~purchases["paid"].astype(bool)]

    daily = period.days <= DAILY_GRANULARITY_MAX_DAYS
    buckets = _daily_buckets(period) if daily else _monthly_buckets(period)

    running = aggregate(tx, period).opening
    rows: list[dict[str, object]] = []

    for label, b_start, b_end in buckets:
        is_historical = b_end < now
        income = ZERO
        expense = ZERO

        if daily or is_historical:
            in_bucket = _between(tx, "date", b_start, b_end)
            income += _sum_by_type(in_bucket, "income")
            expense += _sum_by_type(in_bucket, "expense")

        if not is_historical:
            income += decimal_sum(
                _between(unpaid_sales, "due_date", b_start, b_end)["amount"]
            )
            expense += decimal_sum(
                _between(unpaid_purchases, "due_date", b_start, b_end)["amount"]
            )

        net = income - expense
        running += net
        rows.append(
            {
                "bucket": label,
                "start": b_start,
                "end": b_end,
                "income": float(quantize_cents(income)),
                "expense": float(quantize_cents(expense)),
                "net": float(quantize_cents(net)),
                "cumulative_balance": float(quantize_cents(running)),
                "is_historical": is_historical,
            }
        )

    return pd.DataFrame(rows, columns=TIMELINE_COLUMNS)
