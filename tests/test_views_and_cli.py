import math
from datetime import date
from decimal import Decimal

import pandas as pd
import pytest

from cashsight import __version__
from cashsight.cli import main
from cashsight.forecast import parse_forecast_reply
from cashsight.ledger import CashFlowBalances
from cashsight.views import (
    balances_to_dataframe,
    installments_to_dataframe,
    recommendations_to_dataframe,
    snapshot_to_dataframe,
)
from cashsight.working_capital import evaluate_figures


def test_balances_to_dataframe_order_and_rounding():
    balances = CashFlowBalances.from_parts(
        Decimal("10.005"), Decimal("1500"), Decimal("500")
    )

    df = balances_to_dataframe(balances)

    assert list(df["key"]) == ["opening", "income", "expense", "closing"]
    assert df["amount"].iloc[0] == pytest.approx(10.01)
    assert df["amount"].iloc[-1] == pytest.approx(1010.01)


def test_snapshot_to_dataframe_has_health_row():
    df = snapshot_to_dataframe(evaluate_figures(1000, 200, 425))

    assert df["key"].iloc[-1] == "health"
    assert df["label"].iloc[-1] == "Health: warning"
    assert math.isnan(df["amount"].iloc[-1])
    assert df.set_index("key").loc["deficit", "amount"] == pytest.approx(50.0)


def test_recommendations_sorted_by_priority():
    analysis = parse_forecast_reply(
        {
            "assessment": "x",
            "risk_level": "high",
            "recommendations": [
                {"action": "c", "impact": "-", "priority": "low"},
                {"action": "a", "impact": "-", "priority": "high"},
                {"action": "b", "impact": "-", "priority": "medium"},
                {"action": "a2", "impact": "-", "priority": "high"},
            ],
        }
    )

    df = recommendations_to_dataframe(analysis)

    assert list(df["action"]) == ["a", "a2", "b", "c"]
    assert recommendations_to_dataframe(None).empty


def test_installments_to_dataframe_formats_dates():
    df = installments_to_dataframe(
        pd.DataFrame(
            [{"installment_number": 1, "due_date": date(2024, 2, 29), "amount": 400.0}]
        )
    )

    assert df["due_date"].iloc[0] == "2024-02-29"
    assert list(df.columns) == ["installment_number", "due_date", "amount"]


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "cashsight_config.toml"
    path.write_text(
        '[database]\npath = "cli.sqlite"\n\n[display]\nmode = "table"\n',
        encoding="utf-8",
    )
    return path


def test_cli_version(capsys):
    main(["--version"])

    assert __version__ in capsys.readouterr().out


def test_cli_import_and_cashflow(config_file, tmp_path, capsys):
    csv_path = tmp_path / "tx.csv"
    csv_path.write_text(
        "date,description,amount,type,category\n"
        "2024-01-10,Sale,1500,income,Sales\n"
        "2024-01-20,Rent,500,expense,Rent\n",
        encoding="utf-8",
    )

    main(
        [
            "--config",
            str(config_file),
            "--import-transactions",
            str(csv_path),
            "cashflow",
            "--from-date",
            "2024-01-01",
            "--to-date",
            "2024-01-31",
            "--no-timeline",
        ]
    )

    out = capsys.readouterr().out
    assert "Imported 2 transactions" in out
    assert "01/01/2024 - 31/01/2024" in out
    assert "Closing balance" in out
    assert "1000.0" in out


def test_cli_installments_plan_dry_run(config_file, capsys):
    main(
        [
            "--config",
            str(config_file),
            "installments",
            "plan",
            "--total",
            "1200",
            "--count",
            "3",
            "--start-date",
            "2024-01-31",
        ]
    )

    out = capsys.readouterr().out
    assert "2024-02-29" in out
    assert "2024-03-31" in out
    assert "Stored" not in out


def test_cli_csv_output(config_file, tmp_path, capsys):
    out_dir = tmp_path / "out"

    main(
        [
            "--config",
            str(config_file),
            "--display-mode",
            "csv",
            "--output",
            str(out_dir),
            "working-capital",
            "--analyze",
        ]
    )

    written = sorted(p.name for p in out_dir.glob("*.csv"))
    assert any(name.startswith("working_capital_") for name in written)
    assert any(name.startswith("recommendations_") for name in written)


def test_cli_library_errors_exit_with_message(config_file):
    with pytest.raises(SystemExit) as excinfo:
        main(
            [
                "--config",
                str(config_file),
                "installments",
                "plan",
                "--total",
                "100",
                "--count",
                "0",
                "--start-date",
                "2024-01-01",
            ]
        )

    assert "Installment count" in str(excinfo.value)


def test_cli_non_numeric_total_exits_with_message(config_file):
    with pytest.raises(SystemExit) as excinfo:
        main(
            [
                "--config",
                str(config_file),
                "installments",
                "plan",
                "--total",
                "abc",
                "--count",
                "3",
                "--start-date",
                "2024-01-31",
            ]
        )

    assert "Total amount is not a number" in str(excinfo.value)


def test_cli_all_time_default_period_uses_data_bounds(tmp_path, capsys):
    config_path = tmp_path / "cashsight_config.toml"
    config_path.write_text(
        '[database]\npath = "cli.sqlite"\n\n'
        '[cashflow]\ndefault_period = "allTime"\n\n'
        '[display]\nmode = "table"\n',
        encoding="utf-8",
    )
    csv_path = tmp_path / "tx.csv"
    csv_path.write_text(
        "date,description,amount,type,category\n"
        "2024-01-10,Sale,1500,income,Sales\n"
        "2024-01-20,Rent,500,expense,Rent\n",
        encoding="utf-8",
    )

    main(
        [
            "--config",
            str(config_path),
            "--import-transactions",
            str(csv_path),
            "cashflow",
            "--no-timeline",
        ]
    )

    out = capsys.readouterr().out
    assert "(2024-01-10 → 2024-01-20)" in out
