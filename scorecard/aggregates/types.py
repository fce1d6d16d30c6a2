from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

TOTAL_LOB = "Total"


@dataclass(frozen=True)
class ProductAggregate:
    product_type: str
    agency_margin: Decimal
    buy_resell_margin: Decimal
    total_margin: Decimal
    vertiv_value: Decimal
    po_value: Decimal
    percentage_of_total: Decimal


@dataclass(frozen=True)
class RepAggregate:
    sales_rep: str
    agency_margin: Decimal
    buy_resell_margin: Decimal
    total_margin: Decimal
    vertiv_value: Decimal
    po_value: Decimal
    rank: int = 0


@dataclass(frozen=True)
class DeptLobAggregate:
    lob: str
    margin_target: Decimal
    margin_ytd: Decimal
    # Total keeps rank 0
    rank: int = 0

    @property
    def is_total(self) -> bool:
        return self.lob == TOTAL_LOB

    @property
    def margin_percentage(self) -> Decimal:
        if self.margin_target > 0:
            return self.margin_ytd / self.margin_target
        return Decimal("0")
