"""pandas helpers shared by the aggregators.

Money columns stay ``Decimal`` (object dtype) so group sums are exact and a
reload of an unchanged workbook reproduces identical aggregates.
"""

from __future__ import annotations

from dataclasses import fields
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, Sequence

import pandas as pd

from scorecard.etl.records import SalesRecord
from scorecard.utils.normalize import normalize_lob, normalize_product_type, normalize_sales_rep

ZERO = Decimal("0")
CENT = Decimal("0.01")

MONEY_COLUMNS: tuple[str, ...] = (
    "po_value",
    "vertiv_value",
    "buy_resell_value",
    "agency_margin",
    "total_commission",
)

RECORD_COLUMNS: list[str] = [f.name for f in fields(SalesRecord)]
FRAME_COLUMNS: list[str] = RECORD_COLUMNS + ["product_group", "lob", "rep"]


def records_to_frame(records: Iterable[SalesRecord]) -> pd.DataFrame:
    """Flatten records into a DataFrame with normalized grouping keys."""
    rows = []
    for rec in records:
        row = {name: getattr(rec, name) for name in RECORD_COLUMNS}
        row["product_group"] = normalize_product_type(rec.product_type)
        row["lob"] = normalize_lob(rec.department)
        row["rep"] = normalize_sales_rep(rec.sales_rep)
        rows.append(row)
    return pd.DataFrame.from_records(rows, columns=FRAME_COLUMNS)


def decimal_sum(values: pd.Series) -> Decimal:
    return sum(values.tolist(), ZERO)


def group_sums(frame: pd.DataFrame, key: str, columns: Sequence[str]) -> pd.DataFrame:
    """Sum Decimal ``columns`` per ``key``; one row per key, sorted by key."""
    if frame.empty:
        return pd.DataFrame(columns=[key, *columns])
    grouped = frame.groupby(key, sort=True).agg(**{col: (col, decimal_sum) for col in columns})
    return grouped.reset_index()


def to_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


def percentage(part: Decimal, whole: Decimal, places: str = "0.01") -> Decimal:
    """``part / whole * 100`` rounded; zero when ``whole`` is zero."""
    if whole == 0:
        return ZERO.quantize(Decimal(places))
    return (part / whole * 100).quantize(Decimal(places), rounding=ROUND_HALF_EVEN)
