# CashSight - Cash Flow & Working Capital engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
I/O module for CashSight.

This module reads transactions and installments from CSV files and
normalizes any tabular input (CSV, database rows, lists of records) into
the DataFrame layout expected by the engine.

Transactions
------------
Required columns (case-insensitive):

    date, amount, type

Optional columns:

    description, category, status

- ``type`` is ``income`` or ``expense``. The aliases used by the original
  dashboard (``venda``/``entrada`` for income, ``compra``/``saida`` for
  expense) are accepted and normalized.
- ``status`` is ``paid`` or ``pending`` (``pago``/``pendente`` accepted);
  it defaults to ``paid``.
- ``amount`` is a strictly positive number; the direction of the cash
  movement is carried by ``type``.

Output schema:

    date (datetime64), description (str), amount (float),
    type (str), category (str), status (str)

Installments
------------
Required columns (case-insensitive):

    installment_number, amount, due_date

Optional columns:

    id, parent_id, paid

Output schema:

    id, parent_id, installment_number (int), amount (float),
    due_date (datetime64), paid (bool)

Any other column is dropped. Structural problems raise ValidationError.
"""

import os
from collections.abc import Iterable
from dataclasses import asdict, is_dataclass
from typing import Any, Union

import pandas as pd

from .errors import ValidationError

TRANSACTION_COLUMNS = ["date", "description", "amount", "type", "category", "status"]
INSTALLMENT_COLUMNS = [
    "id",
    "parent_id",
    "installment_number",
    "amount",
    "due_date",
    "paid",
]

_TYPE_ALIASES = {
    "income": "income",
    "venda": "income",
    "entrada": "income",
    "expense": "expense",
    "compra": "expense",
    "saida": "expense",
    "saída": "expense",
}

_STATUS_ALIASES = {
    "paid": "paid",
    "pago": "paid",
    "pending": "pending",
    "pendente": "pending",
}

_TRUE_STRINGS = {"true", "1", "yes", "y", "paid", "pago"}
_FALSE_STRINGS = {"false", "0", "no", "n", "", "pending", "pendente", "nan"}

FrameLike = Union[pd.DataFrame, Iterable[Any]]


def _to_frame(data: FrameLike) -> pd.DataFrame:
    """Accept a DataFrame or an iterable of dicts / dataclass instances."""
    if isinstance(data, pd.DataFrame):
        return data.copy()

    records = [asdict(r) if is_dataclass(r) else dict(r) for r in data]
    return pd.DataFrame(records)


def _lower_columns(df: pd.DataFrame) -> pd.DataFrame:
    df.columns = [str(c).lower().strip() for c in df.columns]
    return df


def _parse_dates(series: pd.Series, column: str) -> pd.Series:
    try:
        return pd.to_datetime(series, errors="raise")
    except Exception as exc:  # noqa: BLE001
        raise ValidationError(f"Invalid values in '{column}' column.") from exc


def _parse_amounts(series: pd.Series) -> pd.Series:
    amounts = pd.to_numeric(series, errors="coerce")
    if amounts.isna().any():
        raise ValidationError("Invalid numeric values in 'amount' column.")
    if (amounts <= 0).any():
        raise ValidationError("Amounts must be strictly positive.")
    return amounts.astype(float)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    raise ValidationError(f"Invalid boolean value in 'paid' column: {value!r}")


def normalize_transactions(data: FrameLike) -> pd.DataFrame:
    """
    Normalize transactions into the engine's DataFrame layout.

    Parameters
    ----------
    data:
        A DataFrame or an iterable of dicts / dataclass instances holding
        at least ``date``, ``amount`` and ``type``.

    Returns
    -------
    pandas.DataFrame
        A new DataFrame with exactly the TRANSACTION_COLUMNS. An empty
        input yields an empty DataFrame with those columns.

    Raises
    ------
    ValidationError
        If required columns are missing or values cannot be parsed.
    """
    df = _lower_columns(_to_frame(data))

    if df.empty:
        out = pd.DataFrame({c: pd.Series(dtype=object) for c in TRANSACTION_COLUMNS})
        out["date"] = pd.Series(dtype="datetime64[ns]")
        out["amount"] = pd.Series(dtype=float)
        return out

    missing = {"date", "amount", "type"} - set(df.columns)
    if missing:
        raise ValidationError(
            "Invalid transactions structure, missing column(s): "
            + ", ".join(sorted(missing))
        )

    d = df.copy()
    d["date"] = _parse_dates(d["date"], "date")
    d["amount"] = _parse_amounts(d["amount"])

    types = d["type"].astype(str).str.strip().str.lower()
    unknown = sorted(set(types) - set(_TYPE_ALIASES))
    if unknown:
        raise ValidationError(f"Unknown transaction type(s): {', '.join(unknown)}")
    d["type"] = types.map(_TYPE_ALIASES)

    if "status" in d.columns:
        statuses = d["status"].fillna("paid").astype(str).str.strip().str.lower()
        unknown = sorted(set(statuses) - set(_STATUS_ALIASES))
        if unknown:
            raise ValidationError(
                f"Unknown transaction status(es): {', '.join(unknown)}"
            )
        d["status"] = statuses.map(_STATUS_ALIASES)
    else:
        d["status"] = "paid"

    for col in ("description", "category"):
        if col in d.columns:
            d[col] = d[col].fillna("").astype(str)
        else:
            d[col] = ""

    return d[TRANSACTION_COLUMNS].reset_index(drop=True)


def normalize_installments(data: FrameLike) -> pd.DataFrame:
    """
    Normalize sale or purchase installments into the engine's layout.

    ``paid`` defaults to False and accepts booleans or the usual textual
    forms ("true", "1", "pago", ...). ``id`` and ``parent_id`` default to
    None when absent.

    Raises
    ------
    ValidationError
        If required columns are missing or values cannot be parsed.
    """
    df = _lower_columns(_to_frame(data))

    if df.empty:
        out = pd.DataFrame({c: pd.Series(dtype=object) for c in INSTALLMENT_COLUMNS})
        out["due_date"] = pd.Series(dtype="datetime64[ns]")
        out["amount"] = pd.Series(dtype=float)
        out["paid"] = pd.Series(dtype=bool)
        return out

    missing = {"installment_number", "amount", "due_date"} - set(df.columns)
    if missing:
        raise ValidationError(
            "Invalid installments structure, missing column(s): "
            + ", ".join(sorted(missing))
        )

    d = df.copy()
    d["due_date"] = _parse_dates(d["due_date"], "due_date")
    d["amount"] = _parse_amounts(d["amount"])

    numbers = pd.to_numeric(d["installment_number"], errors="coerce")
    if numbers.isna().any() or (numbers < 1).any():
        raise ValidationError("Installment numbers must be integers >= 1.")
    d["installment_number"] = numbers.astype(int)

    if "paid" in d.columns:
        d["paid"] = [_parse_bool(v) for v in d["paid"]]
    else:
        d["paid"] = False

    for col in ("id", "parent_id"):
        if col not in d.columns:
            d[col] = None

    return d[INSTALLMENT_COLUMNS].reset_index(drop=True)


def read_transactions(path: Union[str, "os.PathLike[str]"]) -> pd.DataFrame:
    """Read transactions from a CSV file and normalize them."""
    return normalize_transactions(pd.read_csv(path))


def read_installments(path: Union[str, "os.PathLike[str]"]) -> pd.DataFrame:
    """Read installments from a CSV file and normalize them."""
    return normalize_installments(pd.read_csv(path))
