# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Command-Line Interface (CLI) for CashSight.

This module wires together the main building blocks of CashSight:

- global configuration (database, default period, AI evaluator, display),
- transactions import & database access,
- the service layer (cash flow, working capital, installments),
- view helpers (tabular rendering).

The CLI is intentionally thin: it does not implement financial logic itself.
It builds a Session for the selected company, calls the services and renders
their results as console tables and/or CSV files.


Commands
--------

    cashsight [global options] cashflow [--period NAME | --from-date D --to-date D]
        Opening/income/expense/closing balances for a period and the
        bucketed cash-flow timeline.

    cashsight [global options] working-capital [--as-of DATE] [--analyze]
        Working-capital snapshot and health status. With --analyze, the
        figures are sent to the configured AI evaluator and its
        recommendations are printed.

    cashsight [global options] installments plan --total T --count N ...
        Compute an installment schedule. Nothing is stored unless --save
        is given.

    cashsight [global options] installments list --kind sale|purchase
    cashsight [global options] installments pay ID


Global options
--------------

- ``--config PATH``: main TOML configuration file
  (``cashsight_config.toml`` in the current directory by default).
- ``--company ID``: company (tenant) to work on. Defaults to
  ``[company].default_id``.
- ``--user ID``: act as a stored user. The session permissions and company
  are then loaded from the database. Without it, the CLI acts as a local
  administrator of the selected company.
- ``--import-transactions CSV``: import transactions before running the
  command.
- ``--display-mode table|csv|both`` and ``--output DIR``: rendering options.

Errors raised by the library (invalid input, missing permission, AI
failures) are reported as a one-line message and a non-zero exit status.
"""

import argparse
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from . import __version__
from .config import DISPLAY_MODES, load_app_config
from .db import ensure_company, has_transactions, init_database, load_session
from .errors import CashSightError
from .installments import plan_installments
from .periods import PRESET_LABELS, determine_period_from_args
from .permissions import Session
from .services import (
    cash_flow_report,
    import_transactions_csv,
    list_installments,
    pay_installment,
    register_installment_plan,
    resolve_all_time,
    working_capital_report,
)
from .views import (
    balances_to_dataframe,
    installments_to_dataframe,
    recommendations_to_dataframe,
    snapshot_to_dataframe,
    timeline_to_dataframe,
)

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for the CLI."""
    ap = argparse.ArgumentParser(
        prog="cashsight",
        description=(
            "CashSight - Cash Flow & Working Capital engine for SMBs. "
            "Aggregates transactions per period, evaluates working capital, "
            "plans installments and asks an AI evaluator for recommendations."
        ),
    )

    # Generic options
    ap.add_argument(
        "--version",
        action="store_true",
        help="Show the installed version of cashsight and exit.",
    )
    ap.add_argument(
        "--config",
        dest="config_path",
        help=(
            "Path to the main TOML configuration file. "
            "If omitted, 'cashsight_config.toml' in the current directory is used."
        ),
    )
    ap.add_argument(
        "--company",
        dest="company_id",
        type=int,
        help="Company (tenant) id. Defaults to [company].default_id.",
    )
    ap.add_argument(
        "--user",
        dest="user_id",
        type=int,
        help="Act as the stored user with this id (permissions are enforced).",
    )
    ap.add_argument(
        "--import-transactions",
        dest="import_path",
        metavar="CSV_PATH",
        help="Import transactions from the given CSV file before running.",
    )

    # Display options
    ap.add_argument(
        "--display-mode",
        dest="display_mode",
        choices=list(DISPLAY_MODES),
        help=(
            "Override the display.mode setting from the configuration file. "
            "'table' prints results to stdout, "
            "'csv' writes CSV files only, "
            "'both' does both."
        ),
    )
    ap.add_argument(
        "--output",
        dest="output_dir",
        help=(
            "Output directory where CSV files will be written when display "
            "mode includes 'csv'. If omitted, 'data/output' is used."
        ),
    )

    subparsers = ap.add_subparsers(dest="command", metavar="command")

    # ------------------------------------------------------------------
    # cashflow
    # ------------------------------------------------------------------
    cashflow = subparsers.add_parser(
        "cashflow", help="Cash-flow balances and timeline for a period."
    )
    cashflow.add_argument(
        "--period",
        choices=list(PRESET_LABELS),
        help="Predefined period. Defaults to [cashflow].default_period.",
    )
    cashflow.add_argument(
        "--from-date",
        dest="from_date",
        help="Custom period start date (YYYY-MM-DD). Defaults to today.",
    )
    cashflow.add_argument(
        "--to-date",
        dest="to_date",
        help="Custom period end date (YYYY-MM-DD). Defaults to today.",
    )
    cashflow.add_argument(
        "--no-timeline",
        dest="timeline",
        action="store_false",
        help="Only show the period balances.",
    )

    # ------------------------------------------------------------------
    # working-capital
    # ------------------------------------------------------------------
    wc = subparsers.add_parser(
        "working-capital", help="Working-capital snapshot and health status."
    )
    wc.add_argument(
        "--as-of",
        dest="as_of",
        help="Evaluation date (YYYY-MM-DD). Defaults to today.",
    )
    wc.add_argument(
        "--analyze",
        action="store_true",
        help="Ask the configured AI evaluator for recommendations.",
    )

    # ------------------------------------------------------------------
    # installments
    # ------------------------------------------------------------------
    installments = subparsers.add_parser(
        "installments", help="Plan, list and settle sale/purchase installments."
    )
    inst_sub = installments.add_subparsers(
        dest="installments_command", metavar="subcommand"
    )

    plan = inst_sub.add_parser("plan", help="Compute an installment schedule.")
    plan.add_argument("--kind", choices=["sale", "purchase"], default="purchase")
    plan.add_argument("--total", type=str, required=True, help="Total amount.")
    plan.add_argument("--count", type=int, required=True, help="Number of installments.")
    plan.add_argument(
        "--start-date",
        dest="start_date",
        required=True,
        help="Due date of the first installment (YYYY-MM-DD).",
    )
    plan.add_argument(
        "--installment-amount",
        dest="installment_amount",
        help="Amount applied to every installment instead of total / count.",
    )
    plan.add_argument("--description", default="")
    plan.add_argument("--category", default="")
    plan.add_argument(
        "--save",
        action="store_true",
        help="Store the parent record and its installments in the database.",
    )

    inst_list = inst_sub.add_parser("list", help="List stored installments.")
    inst_list.add_argument("--kind", choices=["sale", "purchase"], required=True)
    inst_list.add_argument(
        "--unpaid", action="store_true", help="Only show unpaid installments."
    )

    pay = inst_sub.add_parser("pay", help="Mark an installment as paid.")
    pay.add_argument("installment_id", type=int)
    pay.add_argument(
        "--paid-at",
        dest="paid_at",
        help="Payment date (YYYY-MM-DD). Defaults to today.",
    )

    return ap


def _parse_optional_date(value: Optional[str]) -> Optional[date]:
    """
    Parse an optional CLI date argument (YYYY-MM-DD).

    Raises
    ------
    SystemExit
        If the date format is invalid.
    """
    if value is None:
        return None

    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        msg = f"Invalid date format: {value!r}. Expected YYYY-MM-DD."
        raise SystemExit(msg) from exc


def _render(
    tables: list[tuple[str, str, pd.DataFrame]],
    display_mode: str,
    output_dir: Optional[str],
) -> None:
    """
    Print and/or export (title, file stem, DataFrame) triples.

    CSV files are named ``<stem>_<timestamp>.csv``.
    """
    if display_mode in {"table", "both"}:
        for title, _, df in tables:
            print()
            print(f"=== {title} ===")
            if df.empty:
                print("(no rows)")
            else:
                print(df.to_string(index=False))

    if display_mode in {"csv", "both"}:
        out = Path(output_dir) if output_dir else Path("data/output")
        out.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y-%m-%d-%H-%M-%S")
        for _, stem, df in tables:
            path = out / f"{stem}_{timestamp}.csv"
            df.to_csv(path, index=False)
            print(f"Wrote {path} ({len(df)} rows)")


def _handle_cashflow(args, config, session: Session, display_mode: str) -> None:
    preset = args.period or config.default_period
    if preset == "allTime" and not (args.from_date or args.to_date):
        period = resolve_all_time(config, session)
    else:
        period = determine_period_from_args(args, default=config.default_period)

    report = cash_flow_report(config, session, period)

    print(
        f"Applied period: {period.label} "
        f"({period.start.date().isoformat()} → {period.end.date().isoformat()})"
    )

    tables = [
        ("Cash flow", "cashflow", balances_to_dataframe(report.balances, config.decimals))
    ]
    if args.timeline:
        tables.append(
            (
                "Cash-flow timeline",
                "cashflow_timeline",
                timeline_to_dataframe(report.timeline, config.decimals),
            )
        )
    _render(tables, display_mode, args.output_dir)


def _handle_working_capital(args, config, session: Session, display_mode: str) -> None:
    as_of = _parse_optional_date(args.as_of)
    result = working_capital_report(config, session, as_of=as_of, analyze=args.analyze)

    tables = [
        (
            "Working capital",
            "working_capital",
            snapshot_to_dataframe(result.snapshot, config.decimals),
        )
    ]
    if result.analysis is not None:
        print()
        print(f"AI assessment ({result.analysis.risk_level} risk): ")
        print(f"  {result.analysis.assessment}")
        tables.append(
            (
                "Recommendations",
                "recommendations",
                recommendations_to_dataframe(result.analysis),
            )
        )
    _render(tables, display_mode, args.output_dir)


def _handle_installments_plan(args, config, session: Session, display_mode: str) -> None:
    start_date = _parse_optional_date(args.start_date)

    if args.save:
        registered = register_installment_plan(
            config,
            session,
            kind=args.kind,
            description=args.description,
            category=args.category,
            total_amount=args.total,
            installment_count=args.count,
            start_date=start_date,
            installment_amount=args.installment_amount,
        )
        records = registered.installments
        print(
            f"Stored {args.kind} #{registered.parent_id} with "
            f"{len(records)} installments."
        )
    else:
        records = plan_installments(
            args.total,
            args.count,
            start_date,
            installment_amount=args.installment_amount,
        )

    df = pd.DataFrame(
        [
            {
                "installment_number": r.installment_number,
                "due_date": r.due_date,
                "amount": float(r.amount),
                "paid": r.paid,
            }
            for r in records
        ]
    )
    table = installments_to_dataframe(df, config.decimals)
    _render([("Installment plan", "installment_plan", table)], display_mode, args.output_dir)


def _handle_installments(args, config, session: Session, display_mode: str) -> None:
    """Dispatch function for the 'installments' subcommands."""
    subcmd = getattr(args, "installments_command", None)

    if subcmd == "plan":
        _handle_installments_plan(args, config, session, display_mode)
    elif subcmd == "list":
        df = list_installments(config, session, args.kind, unpaid_only=args.unpaid)
        _render(
            [
                (
                    f"{args.kind.capitalize()} installments",
                    f"{args.kind}_installments",
                    installments_to_dataframe(df, config.decimals),
                )
            ],
            display_mode,
            args.output_dir,
        )
    elif subcmd == "pay":
        paid_at = _parse_optional_date(args.paid_at)
        pay_installment(config, session, args.installment_id, paid_at=paid_at)
        print(f"Installment #{args.installment_id} marked as paid.")
    else:
        print(
            "No installments subcommand specified. "
            "Available subcommands are: 'plan', 'list', 'pay'."
        )


def _build_session(args, config, parser: argparse.ArgumentParser) -> Session:
    """Session of the stored --user, or a local admin session of the company."""
    if args.user_id is not None:
        session = load_session(config.database, args.user_id)
        if args.company_id is not None and args.company_id != session.company_id:
            parser.error(
                f"User #{args.user_id} belongs to company #{session.company_id}, "
                f"not #{args.company_id}."
            )
        return session

    company_id = args.company_id or config.default_company_id
    ensure_company(config.database, company_id)
    return Session.for_role(user_id=0, company_id=company_id, role="admin")


def _run(args, config, parser: argparse.ArgumentParser) -> None:
    session = _build_session(args, config, parser)

    # Optional import from CSV into the database
    if args.import_path:
        csv_path = Path(args.import_path)
        if not csv_path.is_file():
            parser.error(f"CSV file for --import-transactions not found: {csv_path}")

        print(f"Importing transactions from {csv_path} into the database...")
        stats = import_transactions_csv(config, session, csv_path)
        print(
            f"Imported {stats.rows_inserted} transactions "
            f"into company #{stats.company_id}."
        )
    elif not has_transactions(config.database, session.company_id):
        print(
            "Warning: no transactions stored for this company, "
            "use --import-transactions to load some."
        )

    display_mode = args.display_mode or config.display_mode

    command = getattr(args, "command", None)
    if command == "cashflow":
        _handle_cashflow(args, config, session, display_mode)
    elif command == "working-capital":
        _handle_working_capital(args, config, session, display_mode)
    elif command == "installments":
        _handle_installments(args, config, session, display_mode)
    elif not args.import_path:
        parser.print_help()


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the CashSight CLI.

    This function parses command-line arguments, loads the application
    configuration, configures logging, initializes the database, optionally
    imports transactions from a CSV file and runs the selected command.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    # --version: short-circuit and exit early.
    if args.version:
        print(f"cashsight version {__version__}")
        return

    # 1) Load application configuration
    if args.config_path:
        config = load_app_config(args.config_path)
    else:
        config = load_app_config()

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 2) Initialize the database (create file and schema if needed)
    init_database(config.database)

    try:
        _run(args, config, parser)
    except CashSightError as exc:
        logger.debug("Command failed", exc_info=True)
        raise SystemExit(f"Error: {exc}") from exc


if __name__ == "__main__":
    main()
