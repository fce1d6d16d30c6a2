from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest
from openpyxl import Workbook

from scorecard.etl.classify import COLUMNS
from scorecard.utils.config import load_config

LEDGER_SHEET = "Procurement Live V4"
HEADER = ["Received"] + [f"Col {i}" for i in range(2, max(COLUMNS.values()) + 1)]


def build_row(
    received=dt.date(2024, 9, 1),
    completion=None,
    rep="X",
    product="",
    department="",
    po=0,
    vertiv=0,
    buy_resell=0,
    agency=0,
    commission=0,
    pct=0,
    status="",
) -> list:
    values = {
        "received_date": received,
        "po_value": po,
        "vertiv_value": vertiv,
        "buy_resell_value": buy_resell,
        "agency_margin": agency,
        "total_commission": commission,
        "commission_percentage": pct,
        "status_text": status,
        "completion_date": completion,
        "sales_rep": rep,
        "department": department,
        "product_type": product,
    }
    row = [None] * max(COLUMNS.values())
    for name, col in COLUMNS.items():
        row[col - 1] = values[name]
    return row


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in ("SCORECARD_WORKBOOK_PATH", "SCORECARD_WORKSHEET", "SCORECARD_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def ledger_row():
    return build_row


@pytest.fixture
def write_workbook(tmp_path):
    """Write an .xlsx with a ledger sheet and optional extra sheets ``{title: rows}``."""

    def _write(rows, path: Path | None = None, sheet: str = LEDGER_SHEET, extra_sheets=None) -> Path:
        path = path or tmp_path / "ledger.xlsx"
        wb = Workbook()
        ws = wb.active
        ws.title = sheet
        ws.append(HEADER)
        for row in rows:
            ws.append(row)
        for title, extra_rows in (extra_sheets or {}).items():
            extra = wb.create_sheet(title)
            for row in extra_rows:
                extra.append(row)
        wb.save(path)
        return path

    return _write


@pytest.fixture
def cfg(tmp_path):
    """Default config rooted in ``tmp_path`` with no company targets configured."""
    return load_config(
        tmp_path / "absent.yaml",
        cli_overrides={
            "workbook": {"base_path": str(tmp_path), "file_name": "ledger.xlsx"},
            "targets": {"directory": str(tmp_path / "targets")},
            "watcher": {"poll_interval_seconds": 0.05, "debounce_seconds": 0.05},
        },
    )


@pytest.fixture
def make_record():
    """Build a ``SalesRecord`` the way the loader would from one ledger row."""
    from scorecard.etl.classify import classify_row

    counter = iter(range(2, 10_000))

    def _make(**kwargs):
        result = classify_row(next(counter), build_row(**kwargs))
        assert result.accepted, result.skip_reason
        return result.record

    return _make
