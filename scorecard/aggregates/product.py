from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List

from scorecard.aggregates.frame import group_sums, percentage, records_to_frame
from scorecard.aggregates.margins import DEFAULT_IN_PROGRESS_RATE, MarginSplit, add_margin_columns
from scorecard.aggregates.types import ProductAggregate
from scorecard.etl.records import SalesRecord
from scorecard.utils.logger import get_logger

logger = get_logger(__name__)

VALUE_COLUMNS = ("vertiv_value", "po_value", "total_margin", "agency_margin", "buy_resell_margin")


def aggregate_products(
    records: Iterable[SalesRecord],
    value_column: str = "vertiv_value",
    margin_split: MarginSplit = "columns",
    in_progress_mode: bool = False,
    in_progress_rate: Decimal = DEFAULT_IN_PROGRESS_RATE,
) -> List[ProductAggregate]:
    """Group records by normalized product type.

    Rows are ordered by ``value_column`` descending, ties by product name.
    ``percentage_of_total`` is each row's share of the summed ``value_column``
    and is computed only after every row has been summed.
    """
    if value_column not in VALUE_COLUMNS:
        raise ValueError(f"Unknown product value column: {value_column!r}. Allowed: {list(VALUE_COLUMNS)}")

    frame = add_margin_columns(records_to_frame(records), margin_split, in_progress_mode, in_progress_rate)
    sums = group_sums(frame, "product_group", ["agency", "buy_resell", "total", "vertiv_value", "po_value"])

    rows = [
        {
            "product_type": r["product_group"],
            "agency_margin": r["agency"],
            "buy_resell_margin": r["buy_resell"],
            "total_margin": r["total"],
            "vertiv_value": r["vertiv_value"],
            "po_value": r["po_value"],
        }
        for r in sums.to_dict("records")
    ]
    rows.sort(key=lambda r: (-r[value_column], r["product_type"]))
    denominator = sum((r[value_column] for r in rows), Decimal("0"))

    out = [ProductAggregate(**r, percentage_of_total=percentage(r[value_column], denominator)) for r in rows]
    logger.debug(f"Aggregated {len(out)} product groups by {value_column}")
    return out
