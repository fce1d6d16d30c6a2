from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from scorecard.aggregates.frame import ZERO, group_sums, records_to_frame
from scorecard.aggregates.margins import DEFAULT_IN_PROGRESS_RATE, MarginSplit, add_margin_columns
from scorecard.aggregates.types import RepAggregate
from scorecard.etl.records import SalesRecord
from scorecard.utils.logger import get_logger

logger = get_logger(__name__)

# Selection value meaning "no rep filter"
ALL_REPS = "All Reps"


def rep_matches(selected: str, rep: str) -> bool:
    """Case-insensitive equality, or either name containing the other."""
    a = selected.strip().lower()
    b = rep.strip().lower()
    if not a or not b:
        return False
    return a == b or a in b or b in a


def _active_selection(selected_reps: Optional[Sequence[str]]) -> List[str]:
    if not selected_reps:
        return []
    picks = [s.strip() for s in selected_reps if s and s.strip()]
    if any(p.lower() == ALL_REPS.lower() for p in picks):
        return []
    return picks


def rank_reps(rows: Iterable[RepAggregate]) -> List[RepAggregate]:
    """Order by total margin descending (ties by name) and assign 1-based ranks."""
    ordered = sorted(rows, key=lambda r: (-r.total_margin, r.sales_rep.lower(), r.sales_rep))
    return [replace(r, rank=i) for i, r in enumerate(ordered, start=1)]


def aggregate_reps(
    records: Iterable[SalesRecord],
    selected_reps: Optional[Sequence[str]] = None,
    margin_split: MarginSplit = "columns",
    in_progress_mode: bool = False,
    in_progress_rate: Decimal = DEFAULT_IN_PROGRESS_RATE,
) -> List[RepAggregate]:
    """Leaderboard rows grouped by trimmed rep name.

    With ``selected_reps`` only matching reps are kept, and a selected rep
    with no matching records still gets a zero row.
    """
    frame = add_margin_columns(records_to_frame(records), margin_split, in_progress_mode, in_progress_rate)
    sums = group_sums(frame, "rep", ["agency", "buy_resell", "total", "vertiv_value", "po_value"])
    rows = [
        RepAggregate(
            sales_rep=r["rep"],
            agency_margin=r["agency"],
            buy_resell_margin=r["buy_resell"],
            total_margin=r["total"],
            vertiv_value=r["vertiv_value"],
            po_value=r["po_value"],
        )
        for r in sums.to_dict("records")
    ]

    selection = _active_selection(selected_reps)
    if selection:
        rows = [r for r in rows if any(rep_matches(s, r.sales_rep) for s in selection)]
        for name in selection:
            if not any(rep_matches(name, r.sales_rep) for r in rows):
                logger.debug(f"No records for selected rep '{name}'; emitting zero row")
                rows.append(RepAggregate(name, ZERO, ZERO, ZERO, ZERO, ZERO))

    return rank_reps(rows)
