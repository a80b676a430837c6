import pandas as pd
import pytest

from cashsight.errors import ValidationError
from cashsight.io import (
    INSTALLMENT_COLUMNS,
    TRANSACTION_COLUMNS,
    normalize_installments,
    normalize_transactions,
    read_installments,
    read_transactions,
)


def test_read_transactions_csv(tmp_path):
    path = tmp_path / "tx.csv"
    path.write_text(
        "Date,Description,Amount,Type,Category\n"
        "2024-01-05,Sale,150.50,income,Sales\n"
        "2024-01-06,Rent,80,Saida,\n",
        encoding="utf-8",
    )

    df = read_transactions(path)

    assert list(df.columns) == TRANSACTION_COLUMNS
    assert pd.api.types.is_datetime64_any_dtype(df["date"])
    assert list(df["type"]) == ["income", "expense"]
    assert list(df["status"]) == ["paid", "paid"]
    assert list(df["category"]) == ["Sales", ""]


def test_read_installments_csv(tmp_path):
    path = tmp_path / "inst.csv"
    path.write_text(
        "parent_id,installment_number,amount,due_date,paid\n"
        "1,1,100,2024-02-01,true\n"
        "1,2,100,2024-03-01,pendente\n",
        encoding="utf-8",
    )

    df = read_installments(path)

    assert list(df.columns) == INSTALLMENT_COLUMNS
    assert list(df["paid"]) == [True, False]
    assert list(df["installment_number"]) == [1, 2]


def test_empty_inputs_yield_typed_empty_frames():
    tx = normalize_transactions([])
    inst = normalize_installments(pd.DataFrame())

    assert tx.empty and list(tx.columns) == TRANSACTION_COLUMNS
    assert inst.empty and list(inst.columns) == INSTALLMENT_COLUMNS
    assert pd.api.types.is_datetime64_any_dtype(tx["date"])


def test_normalize_does_not_mutate_input():
    df = pd.DataFrame([{"Date": "2024-01-01", "Amount": 1, "Type": "income"}])

    normalize_transactions(df)

    assert list(df.columns) == ["Date", "Amount", "Type"]


@pytest.mark.parametrize(
    "rows",
    [
        [{"date": "2024-01-01", "amount": 1}],
        [{"date": "2024-01-01", "amount": 0, "type": "income"}],
        [{"date": "2024-01-01", "amount": "abc", "type": "income"}],
        [{"date": "yesterday-ish", "amount": 1, "type": "income"}],
        [{"date": "2024-01-01", "amount": 1, "type": "income", "status": "lost"}],
    ],
)
def test_invalid_transactions_raise(rows):
    with pytest.raises(ValidationError):
        normalize_transactions(rows)


@pytest.mark.parametrize(
    "rows",
    [
        [{"amount": 1, "due_date": "2024-01-01"}],
        [{"installment_number": 0, "amount": 1, "due_date": "2024-01-01"}],
        [{"installment_number": 1, "amount": 1, "due_date": "2024-01-01", "paid": "maybe"}],
    ],
)
def test_invalid_installments_raise(rows):
    with pytest.raises(ValidationError):
        normalize_installments(rows)
