"""Optional summary worksheets maintained by hand next to the live ledger.

A ``Leaderboard`` sheet carries per-rep margins and a ``Dept LOB`` sheet
carries per-LOB targets and YTD margin. Both are located by exact name first,
then by keyword, and their columns are identified by header text so that
reordering columns in the workbook does not break the read.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence

from openpyxl.workbook.workbook import Workbook

from scorecard.aggregates.types import DeptLobAggregate, RepAggregate
from scorecard.etl.parse import ZERO, clean_string, read_decimal
from scorecard.utils.logger import get_logger
from scorecard.utils.normalize import normalize_lob

logger = get_logger(__name__)

# Only the top of a sheet is searched for the header row
HEADER_SCAN_ROWS = 10

HeaderRule = Callable[[str], bool]

LEADERBOARD_RULES: list[tuple[str, HeaderRule]] = [
    ("sales_rep", lambda h: "rep" in h),
    ("agency_margin", lambda h: "agency" in h and "margin" in h),
    ("buy_resell_margin", lambda h: "buy" in h),
    ("total_margin", lambda h: "total" in h and "margin" in h),
    ("vertiv_value", lambda h: "vertiv" in h or "value" in h),
]

DEPT_LOB_RULES: list[tuple[str, HeaderRule]] = [
    ("lob", lambda h: "lob" in h),
    ("margin_target", lambda h: "target" in h),
    ("margin_ytd", lambda h: "ytd" in h),
]


def find_sheet(wb: Workbook, name: str, keywords: Sequence[str]):
    """Return the worksheet called ``name`` (case-insensitive) or the first one whose title has a keyword."""
    wanted = (name or "").strip().lower()
    for ws in wb.worksheets:
        if wanted and ws.title.strip().lower() == wanted:
            return ws
    for ws in wb.worksheets:
        title = ws.title.lower()
        if any(k in title for k in keywords):
            return ws
    return None


def match_headers(headers: Sequence[Any], rules: list[tuple[str, HeaderRule]]) -> Dict[str, int]:
    """Map field names to 0-based column indexes; each column is claimed once, rules in order."""
    texts = [clean_string(h).lower() for h in headers]
    claimed: set[int] = set()
    out: Dict[str, int] = {}
    for field_name, rule in rules:
        for idx, text in enumerate(texts):
            if idx in claimed or not text:
                continue
            if rule(text):
                out[field_name] = idx
                claimed.add(idx)
                break
    return out


def _locate_header(rows: List[tuple], rules: list[tuple[str, HeaderRule]], required: str) -> tuple[int, Dict[str, int]]:
    for idx, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        mapping = match_headers(row, rules)
        if required in mapping and len(mapping) > 1:
            return idx, mapping
    return -1, {}


def _value(row: Sequence[Any], mapping: Dict[str, int], key: str) -> Any:
    idx = mapping.get(key)
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def _is_total_label(label: str) -> bool:
    return label.lower().startswith("total")


def read_leaderboard(wb: Workbook, sheet_name: str = "Leaderboard") -> Optional[List[RepAggregate]]:
    """Rep rows from the leaderboard sheet, ranked by descending total margin.

    Returns ``None`` when the sheet or its header cannot be found.
    """
    ws = find_sheet(wb, sheet_name, ("leaderboard",))
    if ws is None:
        logger.warning(f"Leaderboard sheet '{sheet_name}' not found; keeping previous leaderboard")
        return None
    rows = list(ws.iter_rows(values_only=True))
    header_idx, mapping = _locate_header(rows, LEADERBOARD_RULES, "sales_rep")
    if header_idx < 0:
        logger.warning(f"No recognisable header in sheet '{ws.title}'")
        return None

    items: List[RepAggregate] = []
    for row in rows[header_idx + 1:]:
        rep = clean_string(_value(row, mapping, "sales_rep"))
        if not rep or _is_total_label(rep):
            continue
        items.append(
            RepAggregate(
                sales_rep=rep,
                agency_margin=read_decimal(_value(row, mapping, "agency_margin")),
                buy_resell_margin=read_decimal(_value(row, mapping, "buy_resell_margin")),
                total_margin=read_decimal(_value(row, mapping, "total_margin")),
                vertiv_value=read_decimal(_value(row, mapping, "vertiv_value")),
                po_value=ZERO,
            )
        )
    items.sort(key=lambda r: (-r.total_margin, r.sales_rep.lower()))
    ranked = [
        RepAggregate(
            sales_rep=r.sales_rep,
            agency_margin=r.agency_margin,
            buy_resell_margin=r.buy_resell_margin,
            total_margin=r.total_margin,
            vertiv_value=r.vertiv_value,
            po_value=r.po_value,
            rank=i,
        )
        for i, r in enumerate(items, start=1)
    ]
    logger.info(f"Read {len(ranked)} leaderboard rows from sheet '{ws.title}'")
    return ranked


def read_dept_lob(wb: Workbook, sheet_name: str = "Dept LOB") -> Optional[List[DeptLobAggregate]]:
    """Per-LOB target / YTD rows from the dept sheet, without a Total row.

    Rows with the same normalized LOB are summed. Returns ``None`` when the
    sheet or its header cannot be found.
    """
    ws = find_sheet(wb, sheet_name, ("lob", "dept"))
    if ws is None:
        logger.warning(f"Dept/LOB sheet '{sheet_name}' not found; keeping previous dept/LOB rows")
        return None
    rows = list(ws.iter_rows(values_only=True))
    header_idx, mapping = _locate_header(rows, DEPT_LOB_RULES, "lob")
    if header_idx < 0:
        logger.warning(f"No recognisable header in sheet '{ws.title}'")
        return None

    targets: Dict[str, Any] = {}
    ytd: Dict[str, Any] = {}
    for row in rows[header_idx + 1:]:
        label = clean_string(_value(row, mapping, "lob"))
        if not label or _is_total_label(label):
            continue
        lob = normalize_lob(label)
        targets[lob] = targets.get(lob, ZERO) + read_decimal(_value(row, mapping, "margin_target"))
        ytd[lob] = ytd.get(lob, ZERO) + read_decimal(_value(row, mapping, "margin_ytd"))

    items = [DeptLobAggregate(lob=lob, margin_target=targets[lob], margin_ytd=ytd[lob]) for lob in targets]
    logger.info(f"Read {len(items)} dept/LOB rows from sheet '{ws.title}'")
    return items
