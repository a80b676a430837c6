# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Working-capital evaluation for CashSight.

The evaluator answers one question: does the company hold enough near-term
liquidity to cover its usual expenses?

Figures
-------
- current_receivables : unpaid sale installments due within the horizon,
- current_payables    : unpaid purchase installments due within the horizon,
- working_capital     : receivables - payables,
- avg_monthly_expenses: expense transactions of the trailing 3 months / 3,
- recommended_working_capital : avg_monthly_expenses * 2,
- deficit / surplus   : distance to the recommendation (at most one of them
                        is non-zero).

Health status
-------------
- healthy  : working_capital >= recommended,
- warning  : working_capital >= 0.7 * recommended,
- critical : anything below.

The horizon, trailing window, coverage and warning ratio are fixed policy
values of the application and deliberately not exposed in the configuration.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Literal, Optional

import pandas as pd

from .io import FrameLike, normalize_installments, normalize_transactions
from .ledger import ZERO, decimal_sum, quantize_cents, to_decimal
from .periods import _now, add_months

RECEIVABLES_HORIZON_DAYS = 30
EXPENSE_LOOKBACK_MONTHS = 3
COVERAGE_MONTHS = 2
WARNING_RATIO = Decimal("0.7")

HealthStatus = Literal["healthy", "warning", "critical"]


@dataclass(frozen=True)
class WorkingCapitalSnapshot:
    """Working-capital figures at a given date (Decimal precision)."""

    current_receivables: Decimal
    current_payables: Decimal
    working_capital: Decimal
    avg_monthly_expenses: Decimal
    recommended_working_capital: Decimal
    deficit: Decimal
    surplus: Decimal

    @property
    def gap(self) -> Decimal:
        """Signed distance to the recommendation (negative means deficit)."""
        return self.working_capital - self.recommended_working_capital

    @property
    def health(self) -> HealthStatus:
        return classify_health(self)

    def as_dict(self) -> dict[str, float]:
        return {
            "current_receivables": float(quantize_cents(self.current_receivables)),
            "current_payables": float(quantize_cents(self.current_payables)),
            "working_capital": float(quantize_cents(self.working_capital)),
            "avg_monthly_expenses": float(quantize_cents(self.avg_monthly_expenses)),
            "recommended_working_capital": float(
                quantize_cents(self.recommended_working_capital)
            ),
            "deficit": float(quantize_cents(self.deficit)),
            "surplus": float(quantize_cents(self.surplus)),
        }


def evaluate_figures(
    current_receivables,
    current_payables,
    avg_monthly_expenses,
) -> WorkingCapitalSnapshot:
    """Build a snapshot from the three primitive figures."""
    receivables = to_decimal(current_receivables)
    payables = to_decimal(current_payables)
    avg_expenses = to_decimal(avg_monthly_expenses)

    working_capital = receivables - payables
    recommended = avg_expenses * COVERAGE_MONTHS

    return WorkingCapitalSnapshot(
        current_receivables=receivables,
        current_payables=payables,
        working_capital=working_capital,
        avg_monthly_expenses=avg_expenses,
        recommended_working_capital=recommended,
        deficit=max(ZERO, recommended - working_capital),
        surplus=max(ZERO, working_capital - recommended),
    )


def _unpaid_due_by(installments: pd.DataFrame, limit: datetime) -> Decimal:
    mask = (~installments["paid"].astype(bool)) & (
        installments["due_date"] <= pd.Timestamp(limit)
    )
    return decimal_sum(installments.loc[mask, "amount"])


def evaluate(
    transactions: FrameLike,
    sale_installments: FrameLike,
    purchase_installments: FrameLike,
    as_of: Optional[datetime] = None,
) -> WorkingCapitalSnapshot:
    """
    Evaluate working capital at ``as_of`` (defaults to now).

    Receivables and payables include every unpaid installment due on or
    before ``as_of + 30 days``, overdue ones included. Average monthly
    expenses use expense transactions dated from ``as_of - 3 months`` to
    ``as_of``, divided by 3 regardless of the actual month lengths.
    """
    as_of = as_of or _now()
    tx = normalize_transactions(transactions)
    sales = normalize_installments(sale_installments)
    purchases = normalize_installments(purchase_installments)

    horizon = as_of + timedelta(days=RECEIVABLES_HORIZON_DAYS)
    receivables = _unpaid_due_by(sales, horizon)
    payables = _unpaid_due_by(purchases, horizon)

    lookback_start = add_months(as_of, -EXPENSE_LOOKBACK_MONTHS)
    recent = tx.loc[
        (tx["type"] == "expense")
        & (tx["date"] >= pd.Timestamp(lookback_start))
        & (tx["date"] <= pd.Timestamp(as_of))
    ]
    avg_expenses = decimal_sum(recent["amount"]) / EXPENSE_LOOKBACK_MONTHS

    return evaluate_figures(receivables, payables, avg_expenses)


def classify_health(snapshot: WorkingCapitalSnapshot) -> HealthStatus:
    """Classify a snapshot as healthy, warning or critical."""
    wc = snapshot.working_capital
    recommended = snapshot.recommended_working_capital
    if wc >= recommended:
        return "healthy"
    if wc >= recommended * WARNING_RATIO:
        return "warning"
    return "critical"
