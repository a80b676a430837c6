# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
CashSight
---------

Computation core of a multi-tenant financial dashboard for Small and
Medium-sized Businesses (SMBs). It turns transactions and sale/purchase
installments into cash-flow and working-capital diagnostics.

Main capabilities:
- reporting periods from presets (last 30 days, next 90 days, all time, ...)
  or custom ranges,
- cash-flow balances (opening, income, expense, closing) and a bucketed
  cash-flow timeline mixing history with projected installments,
- working-capital evaluation with a healthy / warning / critical status,
- installment schedules for sales and purchases,
- AI-assisted recommendations through a pluggable prompt evaluator,
- a SQLite storage layer scoped by company (tenant),
- typed permissions and an explicit session object.

Usage:
    python -m cashsight.cli --help
"""

__all__ = [
    "periods",
    "ledger",
    "working_capital",
    "installments",
    "forecast",
    "services",
]

__version__ = "0.2.0"
