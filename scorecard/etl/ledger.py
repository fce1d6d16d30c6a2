"""Ledger loader: one pass over the live procurement worksheet.

Produces the canonical record list plus the two running scalars (pending and
in-progress amounts). The scalars are accumulated alongside record
construction so they cover every accepted open order.
"""

from __future__ import annotations

import datetime as dt
import zipfile
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, Tuple

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from scorecard.aggregates.types import DeptLobAggregate, RepAggregate
from scorecard.etl.classify import classify_row
from scorecard.etl.contracts import LoadStats, RowIssue
from scorecard.etl.parse import ZERO
from scorecard.etl.records import SalesRecord
from scorecard.etl.summary_sheets import read_dept_lob, read_leaderboard
from scorecard.utils.config import Config, load_config
from scorecard.utils.logger import get_logger

logger = get_logger(__name__)

SKIP_ROW_ERROR = "row_error"


class LedgerLoadError(Exception):
    """The workbook could not be opened or read."""


@dataclass(frozen=True)
class LedgerResult:
    records: Tuple[SalesRecord, ...] = ()
    last_modified: Optional[dt.datetime] = None
    pending_amount: Decimal = ZERO
    in_progress_amount: Decimal = ZERO
    worksheet: str = ""
    stats: LoadStats = field(default_factory=LoadStats)
    # None when the summary sheet is absent
    leaderboard: Optional[Tuple[RepAggregate, ...]] = None
    dept_lob: Optional[Tuple[DeptLobAggregate, ...]] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failed(cls, message: str) -> "LedgerResult":
        return cls(error=message)


def _is_blank_row(values: tuple) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def _modified_at(path: Path) -> dt.datetime:
    try:
        return dt.datetime.fromtimestamp(path.stat().st_mtime)
    except OSError as e:
        raise LedgerLoadError(f"Cannot stat workbook {path}: {e}") from e


def _open_workbook(path: Path):
    if not path.exists():
        raise LedgerLoadError(f"Workbook not found: {path}")
    try:
        return load_workbook(filename=str(path), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, OSError, KeyError, ValueError) as e:
        raise LedgerLoadError(f"Cannot open workbook {path}: {e}") from e


def _resolve_worksheet(wb, name: str):
    if name in wb.sheetnames:
        return wb[name]
    if not wb.worksheets:
        raise LedgerLoadError("Workbook has no worksheets")
    fallback = wb.worksheets[0]
    logger.warning(f"Worksheet '{name}' not found; falling back to first sheet '{fallback.title}'")
    return fallback


def read_ledger_rows(ws, cfg: Config) -> tuple[List[SalesRecord], Decimal, Decimal, LoadStats]:
    """Classify every data row of ``ws``; returns records, pending, in-progress and stats."""
    stats = LoadStats()
    records: List[SalesRecord] = []
    pending = ZERO
    in_progress = ZERO
    rate = Decimal(str(cfg.ledger.in_progress_rate))
    first_row = cfg.workbook.header_rows + 1

    for row_number, values in enumerate(ws.iter_rows(min_row=first_row, values_only=True), start=first_row):
        if _is_blank_row(values):
            stats.blank_rows += 1
            continue
        stats.rows_read += 1
        try:
            result = classify_row(
                row_number,
                values,
                cancelled_marker=cfg.ledger.cancelled_marker,
                fiscal_year_start_month=cfg.ledger.fiscal_year_start_month,
            )
        except Exception as e:
            stats.record_skip(RowIssue(row_number, "", SKIP_ROW_ERROR, str(e)))
            logger.debug(f"Row {row_number}: skipped ({SKIP_ROW_ERROR}: {e})")
            continue

        if not result.accepted:
            stats.record_skip(RowIssue(row_number, result.column, result.skip_reason, result.details))
            logger.debug(f"Row {row_number}: skipped ({result.skip_reason}: {result.details})")
            continue

        record = result.record
        records.append(record)
        if record.is_remaining:
            pending += record.total_commission
            if record.total_commission == 0:
                in_progress += record.vertiv_value * rate

    stats.rows_loaded = len(records)
    return records, pending, in_progress, stats


def load_ledger(path: Optional[str | Path] = None, cfg: Optional[Config] = None) -> LedgerResult:
    """Load the ledger workbook.

    Never raises for file-level problems: a failed load returns a
    :class:`LedgerResult` with ``error`` set and no records.
    """
    cfg = cfg or load_config()
    wb_path = Path(path) if path is not None else cfg.workbook_path

    wb = None
    try:
        wb = _open_workbook(wb_path)
        last_modified = _modified_at(wb_path)
        ws = _resolve_worksheet(wb, cfg.workbook.worksheet)
        records, pending, in_progress, stats = read_ledger_rows(ws, cfg)
        leaderboard = read_leaderboard(wb, cfg.workbook.leaderboard_sheet)
        dept_lob = read_dept_lob(wb, cfg.workbook.dept_lob_sheet)
    except LedgerLoadError as e:
        logger.error(f"Ledger load failed: {e}")
        return LedgerResult.failed(str(e))
    except Exception as e:
        logger.error(f"Ledger load failed while reading {wb_path}: {e}")
        return LedgerResult.failed(f"Cannot read workbook {wb_path}: {e}")
    finally:
        if wb is not None:
            wb.close()

    logger.info(
        f"Loaded {stats.rows_loaded} of {stats.rows_read} rows from '{ws.title}' "
        f"(skipped {stats.rows_skipped}: {dict(stats.skipped)}); "
        f"pending={pending} in_progress={in_progress}"
    )
    return LedgerResult(
        records=tuple(records),
        last_modified=last_modified,
        pending_amount=pending,
        in_progress_amount=in_progress,
        worksheet=ws.title,
        stats=stats,
        leaderboard=tuple(leaderboard) if leaderboard is not None else None,
        dept_lob=tuple(dept_lob) if dept_lob is not None else None,
    )
