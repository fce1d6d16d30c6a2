"""Turn one worksheet row into a :class:`SalesRecord` or a skip reason."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from scorecard.etl.parse import clean_string, parse_date, read_date, read_decimal
from scorecard.etl.records import (
    FISCAL_YEAR_START_MONTH,
    SalesRecord,
    derive_status,
    fiscal_quarter_of,
    fiscal_year_of,
)

# 1-based column positions in the live procurement sheet
COLUMNS: dict[str, int] = {
    "received_date": 1,
    "po_value": 7,
    "vertiv_value": 8,
    "buy_resell_value": 10,
    "agency_margin": 13,
    "total_commission": 14,
    "commission_percentage": 16,
    "status_text": 18,
    "completion_date": 25,
    "sales_rep": 26,
    "department": 29,
    "product_type": 30,
}

SKIP_INVALID_RECEIVED_DATE = "invalid_received_date"
SKIP_MISSING_SALES_REP = "missing_sales_rep"
SKIP_CANCELLED = "cancelled"
SKIP_NEGATIVE_PO_VALUE = "negative_po_value"


@dataclass(frozen=True)
class Classification:
    record: Optional[SalesRecord] = None
    skip_reason: Optional[str] = None
    column: str = ""
    details: str = ""

    @property
    def accepted(self) -> bool:
        return self.record is not None


def cell(values: Sequence[Any], field_name: str) -> Any:
    index = COLUMNS[field_name] - 1
    return values[index] if index < len(values) else None


def classify_row(
    row_number: int,
    values: Sequence[Any],
    *,
    cancelled_marker: str = "cancelled",
    fiscal_year_start_month: int = FISCAL_YEAR_START_MONTH,
) -> Classification:
    received = parse_date(cell(values, "received_date"))
    if not received.is_valid:
        return Classification(
            skip_reason=SKIP_INVALID_RECEIVED_DATE,
            column="received_date",
            details=f"received date unreadable ({received.reason})",
        )

    sales_rep = clean_string(cell(values, "sales_rep"))
    if not sales_rep:
        return Classification(skip_reason=SKIP_MISSING_SALES_REP, column="sales_rep", details="sales rep is blank")

    # Blank status is accepted; only cancelled text and negative PO values reject the row
    status_text = clean_string(cell(values, "status_text"))
    if cancelled_marker and cancelled_marker.lower() in status_text.lower():
        return Classification(skip_reason=SKIP_CANCELLED, column="status_text", details=f"status '{status_text}'")

    po_value = read_decimal(cell(values, "po_value"))
    if po_value < 0:
        return Classification(skip_reason=SKIP_NEGATIVE_PO_VALUE, column="po_value", details=f"PO value {po_value}")

    completion_date = read_date(cell(values, "completion_date"))
    total_commission = read_decimal(cell(values, "total_commission"))

    record = SalesRecord(
        row=row_number,
        received_date=received.value,
        completion_date=completion_date,
        sales_rep=sales_rep,
        product_type=clean_string(cell(values, "product_type")),
        department=clean_string(cell(values, "department")),
        status_text=status_text,
        po_value=po_value,
        vertiv_value=read_decimal(cell(values, "vertiv_value")),
        buy_resell_value=read_decimal(cell(values, "buy_resell_value")),
        agency_margin=read_decimal(cell(values, "agency_margin")),
        total_commission=total_commission,
        commission_percentage=read_decimal(cell(values, "commission_percentage")),
        status=derive_status(completion_date, total_commission),
        fiscal_year=fiscal_year_of(received.value, fiscal_year_start_month),
        quarter=fiscal_quarter_of(completion_date, fiscal_year_start_month),
    )
    return Classification(record=record)
