import datetime as dt
import json

from click.testing import CliRunner

from scorecard.ops.cli import main


def _ledger(write_workbook, ledger_row):
    return write_workbook(
        [
            ledger_row(completion=dt.date(2024, 9, 15), rep="X", product="Thermal Unit", commission=1000, vertiv=5000),
            ledger_row(rep="Y", product="power-module", commission=0, vertiv=10000),
        ]
    )


def test_summary_json_products(tmp_path, write_workbook, ledger_row):
    path = _ledger(write_workbook, ledger_row)
    result = CliRunner().invoke(
        main, ["--config", str(tmp_path / "absent.yaml"), "--workbook", str(path), "summary", "--json"]
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output[result.output.index("{"):])
    assert payload["view"] == "products"
    assert payload["in_progress_amount"] == "1200.00"
    assert {row["product_type"] for row in payload["rows"]} == {"Thermal", "Power"}
    assert payload["load_stats"]["rows_loaded"] == 2


def test_summary_table_views(tmp_path, write_workbook, ledger_row):
    path = _ledger(write_workbook, ledger_row)
    runner = CliRunner()
    for view, needle in [("reps", "X"), ("lobs", "Total"), ("quarters", "Q4")]:
        result = runner.invoke(
            main, ["--config", str(tmp_path / "absent.yaml"), "--workbook", str(path), "summary", "--view", view]
        )
        assert result.exit_code == 0, result.output
        assert needle in result.output
        assert "In-progress amount: 1,200.00" in result.output


def test_summary_missing_workbook_fails(tmp_path):
    result = CliRunner().invoke(
        main, ["--config", str(tmp_path / "absent.yaml"), "--workbook", str(tmp_path / "nope.xlsx"), "summary"]
    )
    assert result.exit_code != 0
    assert "Could not load ledger" in result.output
