"""Quarter-by-quarter achievement against the company target.

A quarter's shortfall is carried into the next quarter's final target; an
overshoot is reported as exceeded but never reduces the next target.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, List

from scorecard.aggregates.frame import ZERO
from scorecard.etl.records import FISCAL_YEAR_START_MONTH, SalesRecord, fiscal_quarter_of, fiscal_year_of
from scorecard.targets.service import FiscalYearTarget
from scorecard.utils.logger import get_logger

logger = get_logger(__name__)

ONE_DP = Decimal("0.1")


def _pct(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO.quantize(ONE_DP)
    return (part / whole * 100).quantize(ONE_DP, rounding=ROUND_HALF_EVEN)


@dataclass(frozen=True)
class QuarterResult:
    quarter: int
    target: Decimal
    achieved: Decimal
    final_target: Decimal

    @property
    def carried(self) -> Decimal:
        """Shortfall passed on to the next quarter."""
        return max(ZERO, self.final_target - self.achieved)

    @property
    def exceeded(self) -> Decimal:
        return max(ZERO, self.achieved - self.final_target)

    @property
    def achievement(self) -> Decimal:
        return _pct(self.achieved, self.final_target)


@dataclass(frozen=True)
class QuarterlyScorecard:
    fiscal_year: int
    annual_target: Decimal
    quarters: tuple[QuarterResult, ...]
    pending_amount: Decimal = ZERO
    in_progress_amount: Decimal = ZERO
    notifications: tuple[str, ...] = field(default=())

    @property
    def total_achieved(self) -> Decimal:
        return sum((q.achieved for q in self.quarters), ZERO)

    @property
    def achievement(self) -> Decimal:
        return _pct(self.total_achieved, self.annual_target)

    @property
    def remaining(self) -> Decimal:
        return max(ZERO, self.annual_target - self.total_achieved)

    @property
    def progress(self) -> float:
        """Share of the annual target achieved, capped at 1.0."""
        if self.annual_target <= 0:
            return 0.0
        return min(float(self.total_achieved / self.annual_target), 1.0)

    def to_rows(self) -> List[dict]:
        return [
            {
                "quarter": f"Q{q.quarter}",
                "target": q.target,
                "final_target": q.final_target,
                "achieved": q.achieved,
                "carried": q.carried,
                "exceeded": q.exceeded,
                "achievement_pct": q.achievement,
            }
            for q in self.quarters
        ]


def quarterly_achieved(
    records: Iterable[SalesRecord],
    fiscal_year: int,
    start_month: int = FISCAL_YEAR_START_MONTH,
) -> dict[int, Decimal]:
    """Sum of total commission per quarter for records completed within ``fiscal_year``."""
    out = {q: ZERO for q in range(1, 5)}
    for rec in records:
        if rec.completion_date is None:
            continue
        if fiscal_year_of(rec.completion_date, start_month) != fiscal_year:
            continue
        out[fiscal_quarter_of(rec.completion_date, start_month)] += rec.total_commission
    return out


def build_quarterly_scorecard(
    records: Iterable[SalesRecord],
    company_target: FiscalYearTarget,
    fiscal_year: int | None = None,
    pending_amount: Decimal = ZERO,
    in_progress_amount: Decimal = ZERO,
    start_month: int = FISCAL_YEAR_START_MONTH,
) -> QuarterlyScorecard:
    fy = fiscal_year if fiscal_year is not None else company_target.fiscal_year
    achieved = quarterly_achieved(records, fy, start_month)

    quarters: List[QuarterResult] = []
    carry = ZERO
    for q in range(1, 5):
        target = company_target.quarter(q)
        result = QuarterResult(quarter=q, target=target, achieved=achieved[q], final_target=target + carry)
        quarters.append(result)
        carry = result.carried

    notes = []
    for prev, nxt in zip(quarters, quarters[1:]):
        if prev.carried > 0:
            notes.append(f"Q{prev.quarter} target not achieved! ${prev.carried:,.0f} carried over to Q{nxt.quarter}")
    for q in quarters:
        if q.exceeded > 0:
            notes.append(f"Q{q.quarter} target exceeded by ${q.exceeded:,.0f}")

    card = QuarterlyScorecard(
        fiscal_year=fy,
        annual_target=company_target.annual_target,
        quarters=tuple(quarters),
        pending_amount=pending_amount,
        in_progress_amount=in_progress_amount,
        notifications=tuple(notes),
    )
    logger.debug(f"FY{fy} scorecard: achieved={card.total_achieved} ({card.achievement}%) remaining={card.remaining}")
    return card
