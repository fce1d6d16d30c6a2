"""Canonical ledger record and the fiscal calendar it is bucketed by.

The fiscal year starts on August 1 and is labelled by the calendar year it
ends in, so 2024-08-01 belongs to FY2025. Quarters run Aug-Oct, Nov-Jan,
Feb-Apr and May-Jul.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from typing import Literal, Optional

FISCAL_YEAR_START_MONTH = 8

STATUS_COMPLETED = "Completed"
STATUS_BOOKED = "Booked"
STATUS_IN_PROGRESS = "InProgress"

Status = Literal["Completed", "Booked", "InProgress"]
STATUSES: tuple[str, ...] = (STATUS_COMPLETED, STATUS_BOOKED, STATUS_IN_PROGRESS)


def fiscal_year_of(day: dt.date, start_month: int = FISCAL_YEAR_START_MONTH) -> int:
    return day.year + 1 if day.month >= start_month else day.year


def fiscal_quarter_of(day: Optional[dt.date], start_month: int = FISCAL_YEAR_START_MONTH) -> int:
    """Return the fiscal quarter (1-4) for ``day``; 0 when there is no date."""
    if day is None:
        return 0
    offset = (day.month - start_month) % 12
    return offset // 3 + 1


def fiscal_year_bounds(fiscal_year: int, start_month: int = FISCAL_YEAR_START_MONTH) -> tuple[dt.date, dt.date]:
    """First and last calendar day of ``fiscal_year``."""
    start = dt.date(fiscal_year - 1, start_month, 1)
    end = dt.date(fiscal_year, start_month, 1) - dt.timedelta(days=1)
    return start, end


def derive_status(completion_date: Optional[dt.date], total_commission: Decimal) -> str:
    if completion_date is not None:
        return STATUS_COMPLETED
    return STATUS_IN_PROGRESS if total_commission == 0 else STATUS_BOOKED


@dataclass(frozen=True)
class SalesRecord:
    row: int
    received_date: dt.date
    completion_date: Optional[dt.date]
    sales_rep: str
    product_type: str
    department: str
    status_text: str
    po_value: Decimal
    vertiv_value: Decimal
    buy_resell_value: Decimal
    agency_margin: Decimal
    total_commission: Decimal
    commission_percentage: Decimal
    status: str
    fiscal_year: int
    # 0 until a completion date is recorded
    quarter: int

    @property
    def is_remaining(self) -> bool:
        return self.completion_date is None

    @property
    def is_in_progress(self) -> bool:
        return self.completion_date is None and self.total_commission == 0

    @property
    def has_quarter(self) -> bool:
        return self.quarter != 0
