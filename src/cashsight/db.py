# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.


"""
Database layer for CashSight.

This module provides the low-level accessors for the SQLite database used by
the application. It is responsible for:

- Initializing the database schema.
- Managing companies (tenants) and their users.
- Importing and loading transactions.
- Persisting installment plans (one parent record + N installments).
- Settling installments and updating transaction statuses.

Every read and write is scoped by ``company_id``: data never crosses
tenants.

------------------------------------------------------------------------------
Schema Overview
------------------------------------------------------------------------------

1) companies
   - id          INTEGER PRIMARY KEY AUTOINCREMENT
   - name        TEXT NOT NULL
   - created_at  TEXT NOT NULL (ISO datetime, UTC)

2) users
   - id              INTEGER PRIMARY KEY AUTOINCREMENT
   - company_id      INTEGER NOT NULL  -- foreign key to companies.id
   - email           TEXT    NOT NULL UNIQUE
   - role            TEXT    NOT NULL  -- admin | manager | user | operational
   - permissions     TEXT              -- JSON map {"view_reports": true, ...}
   - is_super_admin  INTEGER NOT NULL DEFAULT 0

3) transactions
   - id            INTEGER PRIMARY KEY AUTOINCREMENT
   - company_id    INTEGER NOT NULL
   - date          TEXT    NOT NULL  -- ISO date "YYYY-MM-DD"
   - description   TEXT
   - amount_cents  INTEGER NOT NULL  -- positive integer amount in cents
   - type          TEXT    NOT NULL  -- income | expense
   - category      TEXT
   - status        TEXT    NOT NULL  -- paid | pending
   - payment_date  TEXT
   - created_at    TEXT    NOT NULL
   - updated_at    TEXT

4) parent_records
   One row per registered sale or purchase.
   - id                 INTEGER PRIMARY KEY AUTOINCREMENT
   - company_id         INTEGER NOT NULL
   - kind               TEXT    NOT NULL  -- sale | purchase
   - description        TEXT
   - category           TEXT
   - total_cents        INTEGER NOT NULL
   - installment_count  INTEGER NOT NULL
   - purchase_date      TEXT    NOT NULL
   - status             TEXT    NOT NULL  -- pending | paid
   - created_at         TEXT    NOT NULL

5) installments
   - id                  INTEGER PRIMARY KEY AUTOINCREMENT
   - parent_id           INTEGER NOT NULL  -- foreign key to parent_records.id
   - installment_number  INTEGER NOT NULL  -- 1-based, unique per parent
   - amount_cents        INTEGER NOT NULL
   - due_date            TEXT    NOT NULL
   - paid                INTEGER NOT NULL DEFAULT 0
   - paid_at             TEXT

------------------------------------------------------------------------------
SQLite Notes
------------------------------------------------------------------------------

- All timestamps are stored as ISO-8601 text (UTC).
- Amounts are stored as integer cents and converted back to float units
  when loaded into DataFrames.
- Foreign key enforcement is explicitly enabled.
- An installment plan is inserted in a single transaction: either the
  parent and all its installments are stored, or nothing is.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Literal

import pandas as pd

from .errors import ValidationError
from .installments import InstallmentRecord, ParentRecord, installment_description
from .io import INSTALLMENT_COLUMNS, TRANSACTION_COLUMNS, normalize_transactions
from .ledger import to_decimal
from .permissions import Session, parse_permissions, role_permissions

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseConfig:
    """
    Database configuration for CashSight.

    Attributes
    ----------
    engine:
        Database engine identifier. Only "sqlite" is supported.
    path:
        Path to the SQLite database file.
    """

    engine: str
    path: Path


@dataclass(frozen=True)
class ImportStats:
    """
    Summary of an import of transactions into the database.

    Attributes
    ----------
    company_id:
        Tenant the rows were imported into.
    rows_inserted:
        Number of rows inserted into `transactions`.
    """

    company_id: int
    rows_inserted: int


TransactionStatus = Literal["paid", "pending"]
ParentKind = Literal["sale", "purchase"]


@dataclass(frozen=True)
class StoredPlan:
    """Identifiers assigned when an installment plan is persisted."""

    parent_id: int
    installment_ids: list[int]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _ensure_sqlite(cfg: DatabaseConfig) -> None:
    """Raise if the configuration does not refer to a supported engine."""
    if cfg.engine.lower() != "sqlite":
        msg = (
            f"Unsupported database engine: {cfg.engine!r}. "
            "Only 'sqlite' is supported for now."
        )
        raise ValueError(msg)


def _connect(cfg: DatabaseConfig) -> sqlite3.Connection:
    """
    Open a SQLite connection with foreign keys enabled.

    The caller is responsible for closing the connection.
    """
    _ensure_sqlite(cfg)
    conn = sqlite3.connect(cfg.path)
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def _create_schema_if_needed(conn: sqlite3.Connection) -> None:
    """
    Create tables and indexes if they do not exist yet.

    This function is idempotent and can be called multiple times safely.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS companies (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            name        TEXT    NOT NULL,
            created_at  TEXT    NOT NULL
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id      INTEGER NOT NULL,
            email           TEXT    NOT NULL UNIQUE,
            role            TEXT    NOT NULL,
            permissions     TEXT,
            is_super_admin  INTEGER NOT NULL DEFAULT 0,

            FOREIGN KEY (company_id) REFERENCES companies(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id    INTEGER NOT NULL,
            date          TEXT    NOT NULL,  -- ISO date 'YYYY-MM-DD'
            description   TEXT,
            amount_cents  INTEGER NOT NULL,
            type          TEXT    NOT NULL,  -- 'income' | 'expense'
            category      TEXT,
            status        TEXT    NOT NULL DEFAULT 'paid',
            payment_date  TEXT,
            created_at    TEXT    NOT NULL,
            updated_at    TEXT,

            FOREIGN KEY (company_id) REFERENCES companies(id)
        );
        """
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_transactions_company_date "
        "ON transactions(company_id, date);"
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS parent_records (
            id                 INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id         INTEGER NOT NULL,
            kind               TEXT    NOT NULL,  -- 'sale' | 'purchase'
            description        TEXT,
            category           TEXT,
            total_cents        INTEGER NOT NULL,
            installment_count  INTEGER NOT NULL,
            purchase_date      TEXT    NOT NULL,
            status             TEXT    NOT NULL DEFAULT 'pending',
            created_at         TEXT    NOT NULL,

            FOREIGN KEY (company_id) REFERENCES companies(id)
        );
        """
    )

    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS installments (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            parent_id           INTEGER NOT NULL,
            installment_number  INTEGER NOT NULL,
            amount_cents        INTEGER NOT NULL,
            due_date            TEXT    NOT NULL,
            paid                INTEGER NOT NULL DEFAULT 0,
            paid_at             TEXT,

            UNIQUE (parent_id, installment_number),
            FOREIGN KEY (parent_id) REFERENCES parent_records(id)
        );
        """
    )
    conn.commit()


def _to_iso_date(value) -> str:
    """Convert a date-like value to ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return date.fromisoformat(str(value)).isoformat()


def _to_cents(value) -> int:
    """Convert a monetary amount to integer cents (half up)."""
    cents = (to_decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def _now_utc_iso() -> str:
    """Return the current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def _require_company(cur: sqlite3.Cursor, company_id: int) -> None:
    cur.execute("SELECT 1 FROM companies WHERE id = ?;", (company_id,))
    if cur.fetchone() is None:
        raise ValidationError(f"Company #{company_id} does not exist.")


# ---------------------------------------------------------------------------
# Public API: schema, companies, users
# ---------------------------------------------------------------------------


def init_database(cfg: DatabaseConfig) -> None:
    """
    Initialize the database schema if needed.

    - Creates the SQLite file (and its parent directory) if missing.
    - Creates tables and indexes if they are missing.
    - This function is idempotent: calling it multiple times is safe.

    Raises
    ------
    ValueError
        If cfg.engine is not supported.
    sqlite3.Error
        If schema creation fails.
    """
    cfg.path.parent.mkdir(parents=True, exist_ok=True)

    conn = _connect(cfg)
    try:
        _create_schema_if_needed(conn)
    finally:
        conn.close()


def create_company(cfg: DatabaseConfig, name: str) -> int:
    """Create a company (tenant) and return its id."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO companies (name, created_at) VALUES (?, ?);",
            (name, _now_utc_iso()),
        )
        company_id = cur.lastrowid
        conn.commit()
    finally:
        conn.close()

    logger.info("Created company #%s (%s)", company_id, name)
    return company_id


def ensure_company(cfg: DatabaseConfig, company_id: int, name: str = "Default") -> int:
    """Create the company with the given id if it does not exist yet."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute("SELECT 1 FROM companies WHERE id = ?;", (company_id,))
        if cur.fetchone() is None:
            cur.execute(
                "INSERT INTO companies (id, name, created_at) VALUES (?, ?, ?);",
                (company_id, name, _now_utc_iso()),
            )
            conn.commit()
    finally:
        conn.close()

    return company_id


def create_user(
    cfg: DatabaseConfig,
    company_id: int,
    email: str,
    role: str,
    permissions: str | None = None,
    is_super_admin: bool = False,
) -> int:
    """
    Create a user attached to a company.

    ``permissions`` is an optional JSON map overriding the role defaults.
    It is validated before being stored.
    """
    role_permissions(role)
    if permissions is not None:
        parse_permissions(permissions)

    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        _require_company(cur, company_id)
        cur.execute(
            """
            INSERT INTO users (company_id, email, role, permissions, is_super_admin)
            VALUES (?, ?, ?, ?, ?);
            """,
            (company_id, email, role, permissions, int(is_super_admin)),
        )
        user_id = cur.lastrowid
        conn.commit()
    finally:
        conn.close()

    return user_id


def load_session(cfg: DatabaseConfig, user_id: int) -> Session:
    """
    Build the Session of a stored user.

    The stored permission map, when present, replaces the role defaults.

    Raises
    ------
    ValidationError
        If the user does not exist or its stored permissions are invalid.
    """
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT company_id, role, permissions, is_super_admin
              FROM users
             WHERE id = ?;
            """,
            (user_id,),
        )
        row = cur.fetchone()
    finally:
        conn.close()

    if row is None:
        raise ValidationError(f"User #{user_id} does not exist.")

    company_id, role, raw_permissions, is_super_admin = row
    if raw_permissions:
        permissions = parse_permissions(raw_permissions)
    else:
        permissions = role_permissions(role)

    return Session(
        user_id=user_id,
        company_id=int(company_id),
        role=role,
        permissions=permissions,
        is_super_admin=bool(is_super_admin),
    )


# ---------------------------------------------------------------------------
# Public API: transactions
# ---------------------------------------------------------------------------


def import_transactions(
    df: pd.DataFrame,
    cfg: DatabaseConfig,
    company_id: int,
) -> ImportStats:
    """
    Import a batch of transactions for a company.

    Parameters
    ----------
    df:
        Transactions in any layout accepted by ``io.normalize_transactions``.
    cfg:
        Database configuration.
    company_id:
        Tenant owning the rows.

    Behavior
    --------
    - Normalizes the rows (validation happens before any write).
    - Inserts every row in a single SQLite transaction.

    Raises
    ------
    ValidationError
        If the rows cannot be normalized or the company does not exist.
    sqlite3.Error
        If database operations fail.
    """
    tx = normalize_transactions(df)
    init_database(cfg)

    created_at = _now_utc_iso()

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        _require_company(cur, company_id)

        rows_inserted = 0
        for row in tx.itertuples(index=False):
            cur.execute(
                """
                INSERT INTO transactions (
                    company_id, date, description, amount_cents,
                    type, category, status, payment_date, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, NULL, ?);
                """,
                (
                    company_id,
                    _to_iso_date(row.date),
                    row.description,
                    _to_cents(row.amount),
                    row.type,
                    row.category,
                    row.status,
                    created_at,
                ),
            )
            rows_inserted += 1

        conn.commit()
    finally:
        conn.close()

    logger.info("Imported %d transactions for company #%s", rows_inserted, company_id)
    return ImportStats(company_id=company_id, rows_inserted=rows_inserted)


def load_transactions(
    cfg: DatabaseConfig,
    company_id: int,
    start: date | None = None,
    end: date | None = None,
) -> pd.DataFrame:
    """
    Load the transactions of a company, optionally within a date range.

    Parameters
    ----------
    start, end:
        Optional inclusive date bounds. Omitted bounds are open.

    Returns
    -------
    pandas.DataFrame
        Columns: id, TRANSACTION_COLUMNS, payment_date.
        'amount' is reconstructed from `amount_cents / 100.0`. An empty
        DataFrame with the same columns is returned when nothing matches.
    """
    init_database(cfg)

    clauses = ["company_id = ?"]
    params: list[object] = [company_id]
    if start is not None:
        clauses.append("date >= ?")
        params.append(_to_iso_date(start))
    if end is not None:
        clauses.append("date <= ?")
        params.append(_to_iso_date(end))

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT id, date, description, amount_cents, type, category,
                   status, payment_date
              FROM transactions
             WHERE {' AND '.join(clauses)}
             ORDER BY date, id;
            """,
            params,
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    columns = ["id", *TRANSACTION_COLUMNS, "payment_date"]
    if not rows:
        empty = pd.DataFrame(columns=columns)
        empty["date"] = pd.to_datetime(empty["date"])
        return empty

    df = pd.DataFrame(
        rows,
        columns=[
            "id",
            "date",
            "description",
            "amount_cents",
            "type",
            "category",
            "status",
            "payment_date",
        ],
    )
    df["date"] = pd.to_datetime(df["date"], format="%Y-%m-%d")
    df["amount"] = df["amount_cents"].astype(float) / 100.0
    df["description"] = df["description"].fillna("")
    df["category"] = df["category"].fillna("")
    return df[columns]


def has_transactions(cfg: DatabaseConfig, company_id: int) -> bool:
    """Return True if the company has at least one transaction."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute(
            "SELECT 1 FROM transactions WHERE company_id = ? LIMIT 1;", (company_id,)
        )
        return cur.fetchone() is not None
    finally:
        conn.close()


def transaction_date_bounds(
    cfg: DatabaseConfig, company_id: int
) -> tuple[date | None, date | None]:
    """Return the oldest and newest transaction dates of a company."""
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute(
            "SELECT MIN(date), MAX(date) FROM transactions WHERE company_id = ?;",
            (company_id,),
        )
        low, high = cur.fetchone()
    finally:
        conn.close()

    return (
        date.fromisoformat(low) if low else None,
        date.fromisoformat(high) if high else None,
    )


def update_transaction_status(
    cfg: DatabaseConfig,
    company_id: int,
    transaction_id: int,
    status: TransactionStatus,
    payment_date: date | None = None,
) -> None:
    """
    Change the status (and payment date) of a transaction.

    Status and payment date are the only mutable fields of a transaction.

    Raises
    ------
    ValidationError
        For an unknown status or a transaction not owned by the company.
    """
    if status not in ("paid", "pending"):
        raise ValidationError(f"Unknown transaction status: {status!r}")

    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE transactions
               SET status = ?, payment_date = ?, updated_at = ?
             WHERE id = ? AND company_id = ?;
            """,
            (
                status,
                _to_iso_date(payment_date) if payment_date else None,
                _now_utc_iso(),
                transaction_id,
                company_id,
            ),
        )
        if cur.rowcount == 0:
            raise ValidationError(
                f"Transaction #{transaction_id} not found for company #{company_id}."
            )
        conn.commit()
    finally:
        conn.close()


# ---------------------------------------------------------------------------
# Public API: installment plans
# ---------------------------------------------------------------------------


def insert_installment_plan(
    cfg: DatabaseConfig,
    company_id: int,
    parent: ParentRecord,
    installments: Iterable[InstallmentRecord],
) -> StoredPlan:
    """
    Persist a parent record and its installments in one transaction.

    Installment numbers come from the planner; they are stored as given.
    On any failure the whole plan is rolled back.
    """
    records = list(installments)
    if not records:
        raise ValidationError("An installment plan needs at least one installment.")

    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        _require_company(cur, company_id)

        cur.execute(
            """
            INSERT INTO parent_records (
                company_id, kind, description, category, total_cents,
                installment_count, purchase_date, status, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                company_id,
                parent.kind,
                parent.description,
                parent.category,
                _to_cents(parent.total_amount),
                parent.installment_count,
                _to_iso_date(parent.purchase_date),
                parent.status,
                _now_utc_iso(),
            ),
        )
        parent_id = cur.lastrowid

        installment_ids: list[int] = []
        for record in records:
            cur.execute(
                """
                INSERT INTO installments (
                    parent_id, installment_number, amount_cents, due_date, paid
                )
                VALUES (?, ?, ?, ?, ?);
                """,
                (
                    parent_id,
                    record.installment_number,
                    _to_cents(record.amount),
                    _to_iso_date(record.due_date),
                    int(record.paid),
                ),
            )
            installment_ids.append(cur.lastrowid)

        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    finally:
        conn.close()

    logger.info(
        "Stored %s #%s with %d installments", parent.kind, parent_id, len(records)
    )
    return StoredPlan(parent_id=parent_id, installment_ids=installment_ids)


def load_installments(
    cfg: DatabaseConfig,
    company_id: int,
    kind: ParentKind,
) -> pd.DataFrame:
    """
    Load the sale or purchase installments of a company.

    Returns
    -------
    pandas.DataFrame
        Columns: INSTALLMENT_COLUMNS plus 'description'. 'due_date' is
        datetime64 and 'paid' is bool.
    """
    if kind not in ("sale", "purchase"):
        raise ValidationError(f"Unknown parent kind: {kind!r}")

    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT i.id, i.parent_id, i.installment_number, i.amount_cents,
                   i.due_date, i.paid, p.description, p.installment_count
              FROM installments AS i
              JOIN parent_records AS p
                ON i.parent_id = p.id
             WHERE p.company_id = ? AND p.kind = ?
             ORDER BY i.due_date, i.parent_id, i.installment_number;
            """,
            (company_id, kind),
        )
        rows = cur.fetchall()
    finally:
        conn.close()

    columns = [*INSTALLMENT_COLUMNS, "description"]
    if not rows:
        empty = pd.DataFrame(columns=columns)
        empty["due_date"] = pd.to_datetime(empty["due_date"])
        empty["paid"] = empty["paid"].astype(bool)
        return empty

    df = pd.DataFrame(
        rows,
        columns=[
            "id",
            "parent_id",
            "installment_number",
            "amount_cents",
            "due_date",
            "paid",
            "parent_description",
            "installment_count",
        ],
    )
    df["due_date"] = pd.to_datetime(df["due_date"], format="%Y-%m-%d")
    df["amount"] = df["amount_cents"].astype(float) / 100.0
    df["paid"] = df["paid"].astype(bool)
    df["description"] = [
        installment_description(desc or kind.capitalize(), int(num), int(count))
        for desc, num, count in zip(
            df["parent_description"], df["installment_number"], df["installment_count"]
        )
    ]
    return df[columns]


def mark_installment_paid(
    cfg: DatabaseConfig,
    company_id: int,
    installment_id: int,
    paid_at: date | None = None,
) -> None:
    """
    Flip an installment from unpaid to paid.

    When every installment of the parent is paid, the parent status becomes
    'paid' as well.

    Raises
    ------
    ValidationError
        If the installment does not exist for the company or is already
        paid.
    """
    init_database(cfg)

    conn = _connect(cfg)
    try:
        cur = conn.cursor()
        cur.execute(
            """
            SELECT i.parent_id, i.paid
              FROM installments AS i
              JOIN parent_records AS p
                ON i.parent_id = p.id
             WHERE i.id = ? AND p.company_id = ?;
            """,
            (installment_id, company_id),
        )
        row = cur.fetchone()
        if row is None:
            raise ValidationError(
                f"Installment #{installment_id} not found for company #{company_id}."
            )
        parent_id, paid = row
        if paid:
            raise ValidationError(f"Installment #{installment_id} is already paid.")

        cur.execute(
            "UPDATE installments SET paid = 1, paid_at = ? WHERE id = ?;",
            (_to_iso_date(paid_at or date.today()), installment_id),
        )
        cur.execute(
            """
            UPDATE parent_records
               SET status = 'paid'
             WHERE id = ?
               AND NOT EXISTS (
                   SELECT 1 FROM installments WHERE parent_id = ? AND paid = 0
               );
            """,
            (parent_id, parent_id),
        )
        conn.commit()
    finally:
        conn.close()
