import sqlite3
from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from cashsight.db import (
    DatabaseConfig,
    create_company,
    create_user,
    ensure_company,
    has_transactions,
    import_transactions,
    init_database,
    insert_installment_plan,
    load_installments,
    load_session,
    load_transactions,
    mark_installment_paid,
    transaction_date_bounds,
    update_transaction_status,
)
from cashsight.errors import ValidationError
from cashsight.installments import (
    InstallmentRecord,
    build_parent_record,
    plan_installments,
)
from cashsight.permissions import Permission


def make_tmp_db_cfg(tmp_path) -> DatabaseConfig:
    """Helper to build a DatabaseConfig pointing to a temporary SQLite file."""
    db_path = tmp_path / "test_db.sqlite"
    return DatabaseConfig(engine="sqlite", path=db_path)


def _transactions() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "date": date(2025, 1, 1),
                "description": "Sale A",
                "amount": 1000.0,
                "type": "income",
                "category": "Sales",
            },
            {
                "date": date(2025, 1, 15),
                "description": "Purchase B",
                "amount": 300.1,
                "type": "expense",
                "category": "Supplies",
                "status": "pending",
            },
        ]
    )


def _store_purchase(cfg, company_id):
    records = plan_installments(Decimal("1200.00"), 3, date(2024, 1, 31))
    parent = build_parent_record(
        "purchase", "Forklift", "Equipment", "1200.00", 3, date(2024, 1, 31)
    )
    return insert_installment_plan(cfg, company_id, parent, records)


def test_init_database_creates_file_and_schema(tmp_path):
    """init_database should create the SQLite file and an empty schema."""
    cfg = make_tmp_db_cfg(tmp_path)

    assert not cfg.path.exists()
    init_database(cfg)
    assert cfg.path.exists()

    company_id = create_company(cfg, "ACME")
    assert has_transactions(cfg, company_id) is False


def test_unsupported_engine_raises(tmp_path):
    cfg = DatabaseConfig(engine="postgres", path=tmp_path / "x.sqlite")

    with pytest.raises(ValueError):
        init_database(cfg)


def test_import_and_load_transactions_basic_flow(tmp_path):
    """Basic round-trip: import transactions, then load them for a range."""
    cfg = make_tmp_db_cfg(tmp_path)
    company_id = create_company(cfg, "ACME")

    stats = import_transactions(_transactions(), cfg, company_id)
    assert stats.rows_inserted == 2
    assert has_transactions(cfg, company_id) is True

    df = load_transactions(cfg, company_id, date(2025, 1, 1), date(2025, 1, 31))
    assert len(df) == 2
    assert pd.api.types.is_datetime64_any_dtype(df["date"])

    # Amounts should be reconstructed correctly from integer cents
    assert df.loc[df["type"] == "expense", "amount"].iloc[0] == pytest.approx(300.1)
    assert list(df["status"]) == ["paid", "pending"]

    only_first = load_transactions(cfg, company_id, end=date(2025, 1, 10))
    assert list(only_first["description"]) == ["Sale A"]


def test_transactions_never_cross_tenants(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    acme = create_company(cfg, "ACME")
    other = create_company(cfg, "Other")

    import_transactions(_transactions(), cfg, acme)

    assert load_transactions(cfg, other).empty
    assert has_transactions(cfg, other) is False


def test_import_into_unknown_company_raises(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)

    with pytest.raises(ValidationError):
        import_transactions(_transactions(), cfg, 42)


def test_import_rejects_non_positive_amounts_before_writing(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    company_id = create_company(cfg, "ACME")
    bad = _transactions()
    bad.loc[1, "amount"] = -5.0

    with pytest.raises(ValidationError):
        import_transactions(bad, cfg, company_id)
    assert has_transactions(cfg, company_id) is False


def test_date_bounds_and_status_update(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    company_id = create_company(cfg, "ACME")
    import_transactions(_transactions(), cfg, company_id)

    assert transaction_date_bounds(cfg, company_id) == (
        date(2025, 1, 1),
        date(2025, 1, 15),
    )

    pending_id = int(load_transactions(cfg, company_id)["id"].iloc[1])
    update_transaction_status(
        cfg, company_id, pending_id, "paid", payment_date=date(2025, 2, 1)
    )

    df = load_transactions(cfg, company_id)
    assert df.loc[df["id"] == pending_id, "status"].iloc[0] == "paid"
    assert df.loc[df["id"] == pending_id, "payment_date"].iloc[0] == "2025-02-01"

    with pytest.raises(ValidationError):
        update_transaction_status(cfg, company_id + 1, pending_id, "pending")


def test_insert_installment_plan_and_load(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    company_id = create_company(cfg, "ACME")

    stored = _store_purchase(cfg, company_id)
    assert len(stored.installment_ids) == 3

    df = load_installments(cfg, company_id, "purchase")
    assert list(df["installment_number"]) == [1, 2, 3]
    assert list(df["amount"]) == pytest.approx([400.0, 400.0, 400.0])
    assert list(df["due_date"].dt.date) == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
    ]
    assert df["description"].iloc[1] == "Forklift (2/3)"
    assert not df["paid"].any()

    assert load_installments(cfg, company_id, "sale").empty


def test_installment_plan_is_all_or_nothing(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    company_id = create_company(cfg, "ACME")
    parent = build_parent_record("sale", "Dup", "", 200, 2, date(2024, 1, 1))
    # Two installments with the same number violate the unique constraint.
    records = [
        InstallmentRecord(1, Decimal("100"), date(2024, 1, 1)),
        InstallmentRecord(1, Decimal("100"), date(2024, 2, 1)),
    ]

    with pytest.raises(sqlite3.IntegrityError):
        insert_installment_plan(cfg, company_id, parent, records)

    conn = sqlite3.connect(cfg.path)
    try:
        assert conn.execute("SELECT COUNT(*) FROM parent_records;").fetchone()[0] == 0
        assert conn.execute("SELECT COUNT(*) FROM installments;").fetchone()[0] == 0
    finally:
        conn.close()


def test_mark_installment_paid_closes_parent_when_all_paid(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    company_id = create_company(cfg, "ACME")
    stored = _store_purchase(cfg, company_id)

    for installment_id in stored.installment_ids:
        mark_installment_paid(cfg, company_id, installment_id, date(2024, 4, 1))

    assert load_installments(cfg, company_id, "purchase")["paid"].all()

    conn = sqlite3.connect(cfg.path)
    try:
        status = conn.execute(
            "SELECT status FROM parent_records WHERE id = ?;", (stored.parent_id,)
        ).fetchone()[0]
    finally:
        conn.close()
    assert status == "paid"

    with pytest.raises(ValidationError):
        mark_installment_paid(cfg, company_id, stored.installment_ids[0])


def test_mark_installment_paid_other_tenant_raises(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    acme = create_company(cfg, "ACME")
    other = create_company(cfg, "Other")
    stored = _store_purchase(cfg, acme)

    with pytest.raises(ValidationError):
        mark_installment_paid(cfg, other, stored.installment_ids[0])


def test_users_and_sessions(tmp_path):
    cfg = make_tmp_db_cfg(tmp_path)
    company_id = ensure_company(cfg, 3, "Three")

    default_user = create_user(cfg, company_id, "ops@example.com", "operational")
    custom_user = create_user(
        cfg,
        company_id,
        "viewer@example.com",
        "user",
        permissions='{"view_reports": true}',
    )

    ops = load_session(cfg, default_user)
    assert ops.company_id == 3
    assert ops.has_permission(Permission.IMPORT_BANK)

    viewer = load_session(cfg, custom_user)
    assert viewer.permissions == Permission.VIEW_REPORTS

    with pytest.raises(ValidationError):
        create_user(cfg, company_id, "x@example.com", "user", permissions='{"fly": true}')
    with pytest.raises(ValidationError):
        load_session(cfg, 999)
