"""Best-effort typed reads of worksheet cells.

Cells arrive from openpyxl as whatever the author typed: native numbers and
datetimes, or text such as ``"$1,234.50"`` and ``"3/15/2024"``. Each parser
returns a :class:`CellResult` instead of raising, so row classification can
decide whether a failure invalidates the row or falls back to a zero value.
"""

from __future__ import annotations

import datetime as dt
import math
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import pandas as pd
from openpyxl.utils.datetime import from_excel

ZERO = Decimal("0")

# Excel serial day numbers accepted as dates (1900-01-01 .. 9999-12-31)
_MIN_SERIAL = 1
_MAX_SERIAL = 2958465

_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d", "%Y-%m-%d %H:%M:%S", "%m/%d/%Y %H:%M:%S")


@dataclass(frozen=True)
class CellResult:
    value: Any = None
    reason: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.reason is None

    @classmethod
    def valid(cls, value: Any) -> "CellResult":
        return cls(value=value)

    @classmethod
    def invalid(cls, reason: str) -> "CellResult":
        return cls(value=None, reason=reason)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and pd.isna(value):
        return True
    return isinstance(value, str) and not value.strip()


def parse_decimal(value: Any) -> CellResult:
    """Parse currency-like cells into ``Decimal``.

    Strips ``$`` and thousands separators, treats parentheses as negative and
    accepts the European ``1.234,56`` layout.
    """
    if _is_blank(value):
        return CellResult.invalid("blank")
    if isinstance(value, bool):
        return CellResult.invalid("not_a_number")
    if isinstance(value, int):
        return CellResult.valid(Decimal(value))
    if isinstance(value, float):
        if not math.isfinite(value):
            return CellResult.invalid("not_a_number")
        return CellResult.valid(Decimal(str(value)))
    if isinstance(value, Decimal):
        return CellResult.valid(value) if value.is_finite() else CellResult.invalid("not_a_number")

    text = str(value).strip()
    is_negative = text.startswith("(") and text.endswith(")")
    text = text.replace("$", "").replace("(", "").replace(")", "").replace(" ", "")

    # If both separators are present and the last one is ',', treat ',' as decimal
    if "," in text and "." in text and text.rfind(",") > text.rfind("."):
        text = text.replace(".", "").replace(",", ".")
    else:
        text = text.replace(",", "")

    if text in ("", "-"):
        return CellResult.invalid("blank")
    try:
        number = Decimal(text)
    except InvalidOperation:
        return CellResult.invalid("not_a_number")
    if not number.is_finite():
        return CellResult.invalid("not_a_number")
    return CellResult.valid(-number if is_negative else number)


def read_decimal(value: Any) -> Decimal:
    """Return the parsed decimal, or zero when the cell cannot be read."""
    result = parse_decimal(value)
    return result.value if result.is_valid else ZERO


def parse_date(value: Any) -> CellResult:
    """Parse native datetimes, Excel serial numbers and date strings."""
    if _is_blank(value):
        return CellResult.invalid("blank")
    if isinstance(value, dt.datetime):
        return CellResult.valid(value.date())
    if isinstance(value, dt.date):
        return CellResult.valid(value)
    if isinstance(value, bool):
        return CellResult.invalid("not_a_date")
    if isinstance(value, (int, float)):
        if not _MIN_SERIAL <= value <= _MAX_SERIAL:
            return CellResult.invalid("not_a_date")
        try:
            converted = from_excel(value)
        except (ValueError, OverflowError):
            return CellResult.invalid("not_a_date")
        if isinstance(converted, dt.datetime):
            return CellResult.valid(converted.date())
        if isinstance(converted, dt.date):
            return CellResult.valid(converted)
        return CellResult.invalid("not_a_date")

    text = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return CellResult.valid(dt.datetime.strptime(text, fmt).date())
        except ValueError:
            pass
    try:
        ts = pd.to_datetime(text, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        return CellResult.invalid("not_a_date")
    if ts is None or pd.isna(ts):
        return CellResult.invalid("not_a_date")
    return CellResult.valid(ts.date())


def read_date(value: Any) -> dt.date | None:
    """Return the parsed date, or ``None`` when absent or unreadable."""
    result = parse_date(value)
    return result.value if result.is_valid else None


def clean_string(value: Any) -> str:
    if _is_blank(value):
        return ""
    text = str(value)
    # Collapse whitespace and normalize unicode dashes to ASCII hyphen
    text = re.sub(r"\s+", " ", text, flags=re.MULTILINE).strip()
    text = text.replace("–", "-").replace("—", "-")
    return text
