"""Margin decomposition shared by the product and rep views.

``columns`` reads the agency / buy-resell / total commission columns as
booked. ``legacy`` is the older dashboard split of total commission into 70%
agency and 30% buy-resell. ``in_progress_mode`` replaces both with the
expected margin of open orders: ``po_value * rate`` as agency and total,
nothing as buy-resell.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Literal

import pandas as pd

MarginSplit = Literal["columns", "legacy"]

LEGACY_AGENCY_SHARE = Decimal("0.7")
LEGACY_BUY_RESELL_SHARE = Decimal("0.3")
DEFAULT_IN_PROGRESS_RATE = Decimal("0.12")


def add_margin_columns(
    frame: pd.DataFrame,
    margin_split: MarginSplit = "columns",
    in_progress_mode: bool = False,
    in_progress_rate: Decimal = DEFAULT_IN_PROGRESS_RATE,
) -> pd.DataFrame:
    """Return a copy of ``frame`` with ``agency``, ``buy_resell`` and ``total`` columns."""
    if margin_split not in ("columns", "legacy"):
        raise ValueError(f"Unknown margin split: {margin_split!r}")
    out = frame.copy()
    if out.empty:
        for col in ("agency", "buy_resell", "total"):
            out[col] = pd.Series(dtype=object)
        return out
    if in_progress_mode:
        expected = out["po_value"].map(lambda v: v * in_progress_rate)
        out["agency"] = expected
        out["buy_resell"] = out["po_value"].map(lambda v: Decimal("0"))
        out["total"] = expected
    elif margin_split == "legacy":
        out["agency"] = out["total_commission"].map(lambda v: v * LEGACY_AGENCY_SHARE)
        out["buy_resell"] = out["total_commission"].map(lambda v: v * LEGACY_BUY_RESELL_SHARE)
        out["total"] = out["total_commission"]
    else:
        out["agency"] = out["agency_margin"]
        out["buy_resell"] = out["buy_resell_value"]
        out["total"] = out["total_commission"]
    return out
