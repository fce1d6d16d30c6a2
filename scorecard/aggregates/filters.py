from __future__ import annotations

import datetime as dt
from typing import Iterable, List, Optional

from scorecard.etl.records import STATUS_COMPLETED, STATUSES, SalesRecord


def filter_records(
    records: Iterable[SalesRecord],
    status: Optional[str] = None,
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
) -> List[SalesRecord]:
    """Records with ``status`` inside the inclusive ``[start, end]`` window.

    Completed records are windowed on their completion date; Booked and
    InProgress records on their received date. A missing bound is open.
    """
    if status is not None and status not in STATUSES:
        raise ValueError(f"Unknown status: {status!r}. Allowed: {list(STATUSES)}")
    if start is not None and end is not None and start > end:
        raise ValueError(f"start {start} is after end {end}")

    out: List[SalesRecord] = []
    for rec in records:
        if status is not None and rec.status != status:
            continue
        day = rec.completion_date if rec.status == STATUS_COMPLETED else rec.received_date
        if start is not None and (day is None or day < start):
            continue
        if end is not None and (day is None or day > end):
            continue
        out.append(rec)
    return out
