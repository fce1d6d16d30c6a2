"""Read-only lookup of company, sales-rep and LOB margin targets.

Company targets come from the ``targets.company`` config list. Rep and LOB
targets come from per-fiscal-year JSON files in ``targets.directory``
(``SalesRepTargets_<FY>.json`` / ``LOBTargets_<FY>.json``), each a list of
objects with the target name, ``AnnualTarget`` and ``Q1Target``..``Q4Target``.
Keys are accepted in PascalCase or snake_case.
"""

from __future__ import annotations

import datetime as dt
import json
import threading
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from scorecard.etl.parse import read_decimal
from scorecard.etl.records import fiscal_year_of
from scorecard.utils.config import Config, load_config
from scorecard.utils.logger import get_logger
from scorecard.utils.normalize import normalize_key, normalize_lob

logger = get_logger(__name__)

DEFAULT_REP_COUNT = 5
DEFAULT_LOB_COUNT = 4
TARGET_FILE_PATTERNS = ("LOBTargets_*.json", "SalesRepTargets_*.json")


@dataclass(frozen=True)
class FiscalYearTarget:
    fiscal_year: int
    annual_target: Decimal
    q1_target: Decimal
    q2_target: Decimal
    q3_target: Decimal
    q4_target: Decimal

    def quarter(self, quarter: int) -> Decimal:
        _check_quarter(quarter)
        return (self.q1_target, self.q2_target, self.q3_target, self.q4_target)[quarter - 1]

    @classmethod
    def even(cls, fiscal_year: int, annual: Decimal) -> "FiscalYearTarget":
        q = annual / 4
        return cls(fiscal_year, annual, q, q, q, q)


@dataclass(frozen=True)
class LobTarget:
    lob: str
    fiscal_year: int
    annual_target: Decimal
    q1_target: Decimal
    q2_target: Decimal
    q3_target: Decimal
    q4_target: Decimal

    def quarter(self, quarter: int) -> Decimal:
        _check_quarter(quarter)
        return (self.q1_target, self.q2_target, self.q3_target, self.q4_target)[quarter - 1]


@dataclass(frozen=True)
class SalesRepTarget:
    sales_rep: str
    fiscal_year: int
    annual_target: Decimal
    q1_target: Decimal
    q2_target: Decimal
    q3_target: Decimal
    q4_target: Decimal

    def quarter(self, quarter: int) -> Decimal:
        _check_quarter(quarter)
        return (self.q1_target, self.q2_target, self.q3_target, self.q4_target)[quarter - 1]


def _check_quarter(quarter: int) -> None:
    if quarter < 1 or quarter > 4:
        raise ValueError(f"Quarter must be between 1 and 4, got {quarter}")


def _field(entry: Mapping[str, Any], name: str) -> Any:
    """Look up ``name`` ignoring case, underscores and spaces."""
    wanted = normalize_key(name).replace(" ", "")
    for key, value in entry.items():
        if normalize_key(str(key)).replace(" ", "") == wanted:
            return value
    return None


def _quarters(entry: Mapping[str, Any]) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    q1, q2, q3, q4 = (read_decimal(_field(entry, f"q{i}_target")) for i in range(1, 5))
    return q1, q2, q3, q4


def _read_json_list(path: Path) -> List[Dict[str, Any]]:
    if not path.exists():
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read target file {path}: {e}")
        return []
    if not isinstance(data, list):
        logger.warning(f"Target file {path} does not hold a list; ignoring")
        return []
    return [d for d in data if isinstance(d, dict)]


def default_company_targets(today: Optional[dt.date] = None, start_month: int = 8) -> List[FiscalYearTarget]:
    """Targets used when none are configured: next, current and previous fiscal year."""
    current = fiscal_year_of(today or dt.date.today(), start_month)
    return [
        FiscalYearTarget.even(current + 1, Decimal("5000000")),
        FiscalYearTarget.even(current, Decimal("4500000")),
        FiscalYearTarget.even(current - 1, Decimal("4000000")),
    ]


class TargetService:
    def __init__(self, cfg: Optional[Config] = None, today: Optional[dt.date] = None):
        self.cfg = cfg or load_config()
        self.directory = Path(self.cfg.targets.directory)
        self._today = today
        self._lock = threading.Lock()
        self._rep_targets: Dict[int, List[SalesRepTarget]] = {}
        self._lob_targets: Dict[int, List[LobTarget]] = {}
        self._company = self._load_company_targets()

    def _load_company_targets(self) -> List[FiscalYearTarget]:
        out: List[FiscalYearTarget] = []
        for entry in self.cfg.targets.company:
            year = _field(entry, "fiscal_year")
            if year is None:
                logger.warning(f"Company target without fiscal_year ignored: {entry}")
                continue
            annual = read_decimal(_field(entry, "annual_target"))
            quarters = _quarters(entry)
            if all(q == 0 for q in quarters):
                quarters = (annual / 4,) * 4
            out.append(FiscalYearTarget(int(year), annual, *quarters))
        if not out:
            out = default_company_targets(self._today, self.cfg.ledger.fiscal_year_start_month)
        return out

    def reload(self) -> None:
        """Forget cached per-year files so the next lookup re-reads them."""
        with self._lock:
            self._rep_targets.clear()
            self._lob_targets.clear()
            self._company = self._load_company_targets()
        logger.debug(f"Target cache cleared ({self.directory})")

    # Company
    def get_company_target(self, fiscal_year: int) -> FiscalYearTarget:
        """Target for ``fiscal_year``; else the nearest configured year; else the default."""
        for t in self._company:
            if t.fiscal_year == fiscal_year:
                return t
        if self._company:
            nearest = min(self._company, key=lambda t: (abs(t.fiscal_year - fiscal_year), t.fiscal_year))
            logger.debug(f"No company target for FY{fiscal_year}; using FY{nearest.fiscal_year}")
            return nearest
        annual = Decimal(str(self.cfg.targets.default_company_target))
        return FiscalYearTarget.even(fiscal_year, annual)

    def get_company_quarterly_target(self, fiscal_year: int, quarter: int) -> Decimal:
        return self.get_company_target(fiscal_year).quarter(quarter)

    # Sales reps
    def get_sales_rep_targets(self, fiscal_year: int) -> List[SalesRepTarget]:
        with self._lock:
            if fiscal_year not in self._rep_targets:
                path = self.directory / f"SalesRepTargets_{fiscal_year}.json"
                rows = []
                for entry in _read_json_list(path):
                    name = str(_field(entry, "sales_rep") or "").strip()
                    if not name:
                        continue
                    rows.append(
                        SalesRepTarget(name, fiscal_year, read_decimal(_field(entry, "annual_target")), *_quarters(entry))
                    )
                self._rep_targets[fiscal_year] = rows
            return list(self._rep_targets[fiscal_year])

    def _find_rep(self, fiscal_year: int, sales_rep: str) -> tuple[Optional[SalesRepTarget], int]:
        targets = self.get_sales_rep_targets(fiscal_year)
        wanted = sales_rep.strip().lower()
        match = next((t for t in targets if t.sales_rep.lower() == wanted), None)
        return match, len(targets)

    def get_sales_rep_target(self, fiscal_year: int, sales_rep: str) -> Decimal:
        match, count = self._find_rep(fiscal_year, sales_rep)
        if match is not None:
            return match.annual_target
        return self.get_company_target(fiscal_year).annual_target / (count or DEFAULT_REP_COUNT)

    def get_sales_rep_quarterly_target(self, fiscal_year: int, sales_rep: str, quarter: int) -> Decimal:
        _check_quarter(quarter)
        match, _ = self._find_rep(fiscal_year, sales_rep)
        if match is not None:
            return match.quarter(quarter)
        return self.get_sales_rep_target(fiscal_year, sales_rep) / 4

    # LOBs
    def get_lob_targets(self, fiscal_year: int) -> List[LobTarget]:
        with self._lock:
            if fiscal_year not in self._lob_targets:
                path = self.directory / f"LOBTargets_{fiscal_year}.json"
                rows = []
                for entry in _read_json_list(path):
                    name = str(_field(entry, "lob") or "").strip()
                    if not name:
                        continue
                    rows.append(LobTarget(name, fiscal_year, read_decimal(_field(entry, "annual_target")), *_quarters(entry)))
                self._lob_targets[fiscal_year] = rows
            return list(self._lob_targets[fiscal_year])

    def _find_lob(self, fiscal_year: int, lob: str) -> tuple[Optional[LobTarget], int]:
        targets = self.get_lob_targets(fiscal_year)
        wanted = lob.strip().lower()
        match = next((t for t in targets if t.lob.lower() == wanted), None)
        return match, len(targets)

    def get_lob_target(self, fiscal_year: int, lob: str) -> Decimal:
        match, count = self._find_lob(fiscal_year, lob)
        if match is not None:
            return match.annual_target
        return self.get_company_target(fiscal_year).annual_target / (count or DEFAULT_LOB_COUNT)

    def get_lob_quarterly_target(self, fiscal_year: int, lob: str, quarter: int) -> Decimal:
        _check_quarter(quarter)
        match, _ = self._find_lob(fiscal_year, lob)
        if match is not None:
            return match.quarter(quarter)
        return self.get_lob_target(fiscal_year, lob) / 4

    def lob_target_table(self, fiscal_year: int) -> Dict[str, Decimal]:
        """LOB -> annual target for the dept/LOB view; configured defaults when no file exists."""
        targets = self.get_lob_targets(fiscal_year)
        if targets:
            pairs = [(t.lob, t.annual_target) for t in targets]
        else:
            pairs = [(lob, Decimal(str(v))) for lob, v in self.cfg.targets.lob_defaults.items()]
        # Keyed like the YTD grouping; names that normalize together are summed
        table: Dict[str, Decimal] = {}
        for lob, target in pairs:
            key = normalize_lob(lob)
            table[key] = table.get(key, Decimal(0)) + target
        return table

    @property
    def other_lob_target(self) -> Decimal:
        return Decimal(str(self.cfg.targets.other_lob_target))
