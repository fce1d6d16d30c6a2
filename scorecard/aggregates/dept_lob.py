from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional

from scorecard.aggregates.frame import ZERO, group_sums, records_to_frame
from scorecard.aggregates.types import TOTAL_LOB, DeptLobAggregate
from scorecard.etl.records import SalesRecord
from scorecard.utils.logger import get_logger
from scorecard.utils.normalize import TAXONOMY

logger = get_logger(__name__)

DEFAULT_LOB_TARGETS: dict[str, Decimal] = {
    "Power": Decimal("1000000"),
    "Thermal": Decimal("900000"),
    "Channel": Decimal("750000"),
    "Service": Decimal("500000"),
    "Batts & Caps": Decimal("400000"),
}


def finalize_dept_lob(rows: Iterable[DeptLobAggregate]) -> List[DeptLobAggregate]:
    """Append the Total row, sort Total last then by YTD descending, rank the rest 1..n."""
    body = [r for r in rows if not r.is_total]
    total = DeptLobAggregate(
        lob=TOTAL_LOB,
        margin_target=sum((r.margin_target for r in body), ZERO),
        margin_ytd=sum((r.margin_ytd for r in body), ZERO),
        rank=0,
    )
    ordered = sorted(body + [total], key=lambda r: (r.is_total, -r.margin_ytd, r.lob))
    out: List[DeptLobAggregate] = []
    rank = 0
    for r in ordered:
        if r.is_total:
            out.append(replace(r, rank=0))
        else:
            rank += 1
            out.append(replace(r, rank=rank))
    return out


def aggregate_dept_lob(
    records: Iterable[SalesRecord],
    targets: Optional[Mapping[str, Decimal]] = None,
    other_target: Decimal = ZERO,
) -> List[DeptLobAggregate]:
    """YTD total commission per normalized department merged against ``targets``.

    Every LOB in ``targets`` gets a row even without records. Departments that
    normalize to an LOB missing from ``targets`` get ``other_target``.
    """
    table = {str(k): Decimal(str(v)) for k, v in (targets if targets is not None else DEFAULT_LOB_TARGETS).items()}
    sums = group_sums(records_to_frame(records), "lob", ["total_commission"])
    ytd = {r["lob"]: r["total_commission"] for r in sums.to_dict("records")}

    rows: List[DeptLobAggregate] = []
    seen: set[str] = set()
    for lob, target in table.items():
        rows.append(DeptLobAggregate(lob=lob, margin_target=target, margin_ytd=ytd.get(lob, ZERO)))
        seen.add(lob)
    for lob in sorted(set(ytd) - seen, key=lambda name: (name not in TAXONOMY, name)):
        logger.debug(f"LOB '{lob}' has no configured target; using {other_target}")
        rows.append(DeptLobAggregate(lob=lob, margin_target=Decimal(str(other_target)), margin_ytd=ytd[lob]))

    return finalize_dept_lob(rows)
