import datetime as dt
from decimal import Decimal

from scorecard.etl import load_ledger
from scorecard.etl.contracts import issues_to_dataframe, skip_counts_frame


def test_end_to_end_two_row_scenario(write_workbook, ledger_row, cfg):
    path = write_workbook(
        [
            ledger_row(
                received=dt.date(2024, 9, 1),
                completion=dt.date(2024, 9, 15),
                rep="X",
                product="Thermal Unit",
                commission=1000,
                vertiv=5000,
            ),
            ledger_row(received=dt.date(2024, 9, 2), rep="Y", product="power-module", commission=0, vertiv=10000),
        ]
    )
    result = load_ledger(path, cfg)

    assert result.ok
    assert result.pending_amount == 0
    assert result.in_progress_amount == Decimal("1200")
    a, b = result.records
    assert (a.fiscal_year, a.quarter, a.status) == (2025, 1, "Completed")
    assert b.quarter == 0 and b.status == "InProgress"
    assert result.last_modified is not None
    assert result.worksheet == "Procurement Live V4"


def test_pending_counts_every_open_row(write_workbook, ledger_row, cfg):
    path = write_workbook(
        [
            ledger_row(commission=300, vertiv=1000),
            ledger_row(commission=0, vertiv=2500),
            ledger_row(completion=dt.date(2024, 10, 1), commission=999, vertiv=7777),
        ]
    )
    result = load_ledger(path, cfg)
    assert result.pending_amount == Decimal("300")
    assert result.in_progress_amount == Decimal("300.00")


def test_invalid_and_cancelled_rows_are_skipped_and_counted(write_workbook, ledger_row, cfg):
    path = write_workbook(
        [
            ledger_row(rep="A", commission=10),
            [None] * 30,
            ledger_row(received="garbage", commission=20),
            ledger_row(rep=None, commission=30),
            ledger_row(status="Cancelled", commission=0, vertiv=5000),
            ledger_row(po=-1),
        ]
    )
    result = load_ledger(path, cfg)

    assert [r.sales_rep for r in result.records] == ["A"]
    assert result.pending_amount == Decimal("10")
    assert result.in_progress_amount == 0
    stats = result.stats
    assert stats.rows_read == 5
    assert stats.rows_loaded == 1
    assert stats.blank_rows == 1
    assert stats.skipped == {
        "invalid_received_date": 1,
        "missing_sales_rep": 1,
        "cancelled": 1,
        "negative_po_value": 1,
    }
    issues = issues_to_dataframe(stats.issues)
    assert list(issues.columns) == ["row", "column_name", "issue_type", "details"]
    assert set(issues["row"]) == {4, 5, 6, 7}
    counts = skip_counts_frame(stats)
    assert counts["rows"].sum() == 4


def test_missing_worksheet_falls_back_to_first(write_workbook, ledger_row, cfg):
    path = write_workbook([ledger_row(commission=5)], sheet="Something Else")
    result = load_ledger(path, cfg)
    assert result.ok
    assert result.worksheet == "Something Else"
    assert len(result.records) == 1


def test_missing_file_returns_error(tmp_path, cfg):
    result = load_ledger(tmp_path / "nope.xlsx", cfg)
    assert not result.ok
    assert "not found" in result.error
    assert result.records == ()


def test_corrupt_file_returns_error(tmp_path, cfg):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"this is not a zip archive")
    result = load_ledger(path, cfg)
    assert not result.ok
    assert result.records == ()


def test_default_path_comes_from_config(write_workbook, ledger_row, cfg):
    write_workbook([ledger_row()])
    result = load_ledger(cfg=cfg)
    assert result.ok and len(result.records) == 1


def test_reloading_unchanged_file_is_identical(write_workbook, ledger_row, cfg):
    path = write_workbook([ledger_row(rep="X", commission=12.5), ledger_row(rep="Y", commission=0, vertiv=3)])
    first = load_ledger(path, cfg)
    second = load_ledger(path, cfg)
    assert first.records == second.records
    assert first.pending_amount == second.pending_amount
    assert first.in_progress_amount == second.in_progress_amount
