# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
High-level services for cash-flow reporting and installment management.

This module sits between:
- the low-level database helpers in `db.py`, and
- user-facing layers such as the CLI or a future Web UI.

Every service receives the application configuration and an explicit
``Session``. The session decides two things:

- which company (tenant) the data is read from or written to,
- whether the caller may run the operation at all (``PermissionDenied``
  is raised before any read or write otherwise).

Responsibilities
----------------
1) Reporting
   - Cash-flow balances and timeline for a period.
   - Working-capital snapshot, health status and optional AI analysis.

2) Data entry
   - Import transactions from a CSV file.
   - Register a sale or a purchase paid in installments.
   - Settle an installment, change a transaction status.

3) Listing
   - List the sale or purchase installments of the company.

The computations themselves live in ``ledger.py``, ``working_capital.py``,
``installments.py`` and ``forecast.py``; this module only orchestrates.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd

from .ai_client import LivePromptEvaluator, PromptEvaluator, make_prompt_evaluator
from .config import AppConfig
from .db import (
    DatabaseConfig,
    ImportStats,
    StoredPlan,
    import_transactions,
    insert_installment_plan,
    load_installments,
    load_transactions,
    mark_installment_paid,
    transaction_date_bounds,
    update_transaction_status,
)
from .forecast import (
    ForecastAnalysis,
    build_forecast_request,
    build_report,
    parse_forecast_reply,
)
from .installments import (
    InstallmentRecord,
    ParentKind,
    build_parent_record,
    plan_installments,
)
from .io import read_transactions
from .ledger import CashFlowBalances, aggregate, build_cash_flow_timeline
from .periods import Period, end_of_day, resolve_period
from .permissions import Permission, Session, require_permission
from .working_capital import WorkingCapitalSnapshot, evaluate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CashFlowReport:
    """Balances and timeline of one period."""

    period: Period
    balances: CashFlowBalances
    timeline: pd.DataFrame


@dataclass(frozen=True)
class WorkingCapitalReport:
    """
    Working-capital snapshot and its report view-model.

    ``analysis`` is None unless an AI analysis was requested.
    """

    snapshot: WorkingCapitalSnapshot
    analysis: Optional[ForecastAnalysis]
    report: dict[str, Any]


@dataclass(frozen=True)
class RegisteredPlan:
    """A persisted sale or purchase with its installment schedule."""

    parent_id: int
    installment_ids: list[int]
    installments: list[InstallmentRecord]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _get_db_config(app_config: AppConfig) -> DatabaseConfig:
    """Convenience helper to access the database configuration."""
    return app_config.database


def _load_company_data(
    app_config: AppConfig, session: Session
) -> tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """Load transactions, sale and purchase installments of the session company."""
    cfg = _get_db_config(app_config)
    company_id = session.company_id
    return (
        load_transactions(cfg, company_id),
        load_installments(cfg, company_id, "sale"),
        load_installments(cfg, company_id, "purchase"),
    )


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def resolve_all_time(
    app_config: AppConfig, session: Session, now: Optional[datetime] = None
) -> Period:
    """
    Resolve the 'allTime' preset using the company's oldest and newest
    transaction dates as bounds when there are any.
    """
    require_permission(session, Permission.VIEW_REPORTS)
    low, high = transaction_date_bounds(_get_db_config(app_config), session.company_id)
    return resolve_period("allTime", now=now, min_date=low, max_date=high)


def cash_flow_report(
    app_config: AppConfig,
    session: Session,
    period: Period,
    now: Optional[datetime] = None,
) -> CashFlowReport:
    """
    Build the cash-flow balances and timeline of the session company.

    All transactions are loaded (not only the period ones) because the
    opening balance depends on everything dated before the period start.

    Raises
    ------
    PermissionDenied
        If the session cannot view reports.
    """
    require_permission(session, Permission.VIEW_REPORTS)

    tx, sales, purchases = _load_company_data(app_config, session)
    balances = aggregate(tx, period)
    timeline = build_cash_flow_timeline(tx, sales, purchases, period, now=now)

    logger.info(
        "Cash flow for company #%s over %s: closing %s",
        session.company_id,
        period.label,
        balances.rounded().closing,
    )
    return CashFlowReport(period=period, balances=balances, timeline=timeline)


def working_capital_report(
    app_config: AppConfig,
    session: Session,
    as_of: Optional[date] = None,
    analyze: bool = False,
    evaluator: Optional[PromptEvaluator] = None,
) -> WorkingCapitalReport:
    """
    Evaluate working capital and optionally ask the AI evaluator for advice.

    Parameters
    ----------
    as_of:
        Evaluation date. The whole day is included. Defaults to now.
    analyze:
        When True, the snapshot is sent to the prompt evaluator and the
        shape-checked reply is merged into the report.
    evaluator:
        Evaluator to use. Defaults to the one selected by ``[ai]`` in the
        configuration.

    Raises
    ------
    PermissionDenied
        If the session cannot view reports.
    ExternalCollaboratorError
        If the AI analysis was requested and the evaluator fails or returns
        a malformed reply.
    """
    require_permission(session, Permission.VIEW_REPORTS)

    tx, sales, purchases = _load_company_data(app_config, session)
    as_of_dt = end_of_day(as_of) if as_of is not None else None
    snapshot = evaluate(tx, sales, purchases, as_of=as_of_dt)

    analysis = None
    if analyze:
        request = build_forecast_request(snapshot, currency=app_config.currency)
        owned = evaluator is None
        active = evaluator or make_prompt_evaluator(app_config.ai)
        try:
            reply = active.evaluate(request)
        finally:
            if owned and isinstance(active, LivePromptEvaluator):
                active.close()
        analysis = parse_forecast_reply(reply)

    return WorkingCapitalReport(
        snapshot=snapshot,
        analysis=analysis,
        report=build_report(snapshot, analysis),
    )


# ---------------------------------------------------------------------------
# Data entry
# ---------------------------------------------------------------------------


def import_transactions_csv(
    app_config: AppConfig, session: Session, csv_path: Path
) -> ImportStats:
    """Import a transactions CSV file into the session company."""
    require_permission(session, Permission.IMPORT_BANK)
    df = read_transactions(csv_path)
    return import_transactions(df, _get_db_config(app_config), session.company_id)


def register_installment_plan(
    app_config: AppConfig,
    session: Session,
    kind: ParentKind,
    description: str,
    category: str,
    total_amount,
    installment_count: int,
    start_date: date,
    installment_amount=None,
    purchase_date: Optional[date] = None,
) -> RegisteredPlan:
    """
    Plan and persist a sale or purchase paid in installments.

    The schedule is computed first; nothing is written if planning fails.
    The parent record and all installments are stored in one transaction.

    Raises
    ------
    PermissionDenied
        If the session cannot create transactions.
    ValidationError
        If the total, count or explicit amount is invalid.
    """
    require_permission(session, Permission.CREATE_TRANSACTIONS)

    records = plan_installments(
        total_amount,
        installment_count,
        start_date,
        installment_amount=installment_amount,
    )
    parent = build_parent_record(
        kind=kind,
        description=description,
        category=category,
        total_amount=total_amount,
        installment_count=installment_count,
        purchase_date=purchase_date or start_date,
    )
    stored: StoredPlan = insert_installment_plan(
        _get_db_config(app_config), session.company_id, parent, records
    )
    return RegisteredPlan(
        parent_id=stored.parent_id,
        installment_ids=stored.installment_ids,
        installments=records,
    )


def pay_installment(
    app_config: AppConfig,
    session: Session,
    installment_id: int,
    paid_at: Optional[date] = None,
) -> None:
    """Mark an installment of the session company as paid."""
    require_permission(session, Permission.EDIT_TRANSACTIONS)
    mark_installment_paid(
        _get_db_config(app_config), session.company_id, installment_id, paid_at
    )
    logger.info("Installment #%s marked as paid", installment_id)


def set_transaction_status(
    app_config: AppConfig,
    session: Session,
    transaction_id: int,
    status: str,
    payment_date: Optional[date] = None,
) -> None:
    """Change the status of a transaction of the session company."""
    require_permission(session, Permission.EDIT_TRANSACTIONS)
    update_transaction_status(
        _get_db_config(app_config),
        session.company_id,
        transaction_id,
        status,
        payment_date=payment_date,
    )


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


def list_installments(
    app_config: AppConfig,
    session: Session,
    kind: ParentKind,
    unpaid_only: bool = False,
) -> pd.DataFrame:
    """
    List the sale or purchase installments of the session company.

    Returns
    -------
    pandas.DataFrame
        Rows ordered by due date, as returned by ``db.load_installments``.
    """
    require_permission(session, Permission.VIEW_TRANSACTIONS)
    df = load_installments(_get_db_config(app_config), session.company_id, kind)
    if unpaid_only and not df.empty:
        df = df.loc[~df["paid"]].reset_index(drop=True)
    return df
