# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
View utilities for CashSight.

This module turns engine results (balances, snapshots, timelines, installment
lists, AI recommendations) into pandas DataFrames ready to be printed as
console tables or exported as CSV files by the CLI.

Amounts are rounded to the requested number of decimals here, and only here:
the engine itself keeps full ``Decimal`` precision.
"""

from typing import Optional

import pandas as pd

from .forecast import PRIORITIES, ForecastAnalysis
from .ledger import CashFlowBalances
from .working_capital import WorkingCapitalSnapshot, classify_health

_BALANCE_LABELS = {
    "opening": "Opening balance",
    "income": "Income",
    "expense": "Expense",
    "closing": "Closing balance",
}

_SNAPSHOT_LABELS = {
    "current_receivables": "Accounts receivable (30 days)",
    "current_payables": "Accounts payable (30 days)",
    "working_capital": "Working capital",
    "avg_monthly_expenses": "Average monthly expenses",
    "recommended_working_capital": "Recommended working capital",
    "deficit": "Deficit",
    "surplus": "Surplus",
}


def balances_to_dataframe(balances: CashFlowBalances, decimals: int = 2) -> pd.DataFrame:
    """
    Convert CashFlowBalances into a two-column DataFrame (label, amount).

    Rows are always ordered opening, income, expense, closing.
    """
    values = balances.as_dict()
    rows = [
        {"key": key, "label": label, "amount": round(values[key], decimals)}
        for key, label in _BALANCE_LABELS.items()
    ]
    return pd.DataFrame(rows, columns=["key", "label", "amount"])


def snapshot_to_dataframe(
    snapshot: WorkingCapitalSnapshot, decimals: int = 2
) -> pd.DataFrame:
    """
    Convert a WorkingCapitalSnapshot into a DataFrame.

    The resulting DataFrame has one row per figure plus a final 'health'
    row whose amount is NaN and whose label carries the status.
    """
    values = snapshot.as_dict()
    rows: list[dict[str, object]] = [
        {"key": key, "label": label, "amount": round(values[key], decimals)}
        for key, label in _SNAPSHOT_LABELS.items()
    ]
    rows.append(
        {
            "key": "health",
            "label": f"Health: {classify_health(snapshot)}",
            "amount": float("nan"),
        }
    )
    return pd.DataFrame(rows, columns=["key", "label", "amount"])


def timeline_to_dataframe(timeline: pd.DataFrame, decimals: int = 2) -> pd.DataFrame:
    """Prepare a cash-flow timeline for display (dates as text, rounded amounts)."""
    df = timeline.copy()
    if df.empty:
        return df
    df["start"] = pd.to_datetime(df["start"]).dt.strftime("%Y-%m-%d")
    df["end"] = pd.to_datetime(df["end"]).dt.strftime("%Y-%m-%d")
    for col in ("income", "expense", "net", "cumulative_balance"):
        df[col] = df[col].round(decimals)
    return df


def installments_to_dataframe(
    installments: pd.DataFrame, decimals: int = 2
) -> pd.DataFrame:
    """
    Prepare an installment list for display.

    Accepts either rows loaded from the database or a planned schedule
    (a list of InstallmentRecord turned into a DataFrame). Columns that are
    missing are simply not shown.
    """
    columns = ["id", "description", "installment_number", "due_date", "amount", "paid"]
    if installments.empty:
        return pd.DataFrame(columns=[c for c in columns if c in installments.columns])

    df = installments.copy()
    df["due_date"] = pd.to_datetime(df["due_date"]).dt.strftime("%Y-%m-%d")
    df["amount"] = df["amount"].astype(float).round(decimals)
    return df[[c for c in columns if c in df.columns]].reset_index(drop=True)


def recommendations_to_dataframe(analysis: Optional[ForecastAnalysis]) -> pd.DataFrame:
    """
    Convert the AI recommendations into a DataFrame.

    Rows are sorted by priority (high, medium, low), keeping the reply
    order within a priority.
    """
    columns = ["priority", "action", "impact"]
    if analysis is None or not analysis.recommendations:
        return pd.DataFrame(columns=columns)

    priority_order = {p: i for i, p in enumerate(PRIORITIES)}

    df = pd.DataFrame(
        [
            {"priority": r.priority, "action": r.action, "impact": r.impact}
            for r in analysis.recommendations
        ]
    )
    df["__priority_order__"] = df["priority"].map(priority_order)
    df = df.sort_values("__priority_order__", kind="stable").drop(
        columns=["__priority_order__"]
    )
    return df[columns].reset_index(drop=True)
