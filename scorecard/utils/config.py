from __future__ import annotations

import math
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from scorecard.utils.paths import DATA_DIR, DEFAULT_CONFIG_PATH, TARGETS_DIR


@dataclass
class Workbook:
    base_path: Path = DATA_DIR
    file_name: str = "F25 Scoreboard PHG - Live.xlsx"
    worksheet: str = "Procurement Live V4"
    # Optional summary sheets; matched exactly first, then by keyword
    leaderboard_sheet: str = "Leaderboard"
    dept_lob_sheet: str = "Dept LOB"
    header_rows: int = 1


@dataclass
class Ledger:
    # Share of Vertiv value counted as expected margin for in-progress orders
    in_progress_rate: float = 0.12
    cancelled_marker: str = "cancelled"
    fiscal_year_start_month: int = 8


@dataclass
class Targets:
    directory: Path = TARGETS_DIR
    # Entries: {fiscal_year, annual_target, q1_target..q4_target}
    company: list[Dict[str, Any]] = field(default_factory=list)
    lob_defaults: Dict[str, float] = field(
        default_factory=lambda: {
            "Power": 1_000_000.0,
            "Thermal": 900_000.0,
            "Channel": 750_000.0,
            "Service": 500_000.0,
            "Batts & Caps": 400_000.0,
        }
    )
    other_lob_target: float = 0.0
    default_company_target: float = 4_000_000.0


@dataclass
class Watcher:
    # How often a blocking watch_for_changes loop re-checks its stop event
    poll_interval_seconds: float = 1.0
    # Quiet period after the last change event so the writer can finish flushing
    debounce_seconds: float = 1.0


@dataclass
class Logging:
    level: str = "INFO"


@dataclass
class Config:
    workbook: Workbook = field(default_factory=Workbook)
    ledger: Ledger = field(default_factory=Ledger)
    targets: Targets = field(default_factory=Targets)
    watcher: Watcher = field(default_factory=Watcher)
    logging: Logging = field(default_factory=Logging)

    @property
    def workbook_path(self) -> Path:
        return Path(self.workbook.base_path) / self.workbook.file_name

    def to_dict(self) -> Dict[str, Any]:
        def _convert(obj: Any) -> Any:
            if isinstance(obj, Path):
                return str(obj)
            if isinstance(obj, dict):
                return {k: _convert(v) for k, v in obj.items()}
            if isinstance(obj, list):
                return [_convert(v) for v in obj]
            return obj

        return {
            "workbook": _convert(asdict(self.workbook)),
            "ledger": _convert(asdict(self.ledger)),
            "targets": _convert(asdict(self.targets)),
            "watcher": _convert(asdict(self.watcher)),
            "logging": _convert(asdict(self.logging)),
        }


ALLOWED_TOP_LEVEL = {"workbook", "ledger", "targets", "watcher", "logging"}


def _load_yaml(path: Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _merge_overrides(base: Dict[str, Any], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not overrides:
        return base

    def deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(a)
        for k, v in (b or {}).items():
            if isinstance(v, dict) and isinstance(out.get(k), dict):
                out[k] = deep_merge(out[k], v)
            else:
                out[k] = v
        return out

    return deep_merge(base, overrides)


def _apply_env_overrides(cfg_dict: Dict[str, Any]) -> None:
    env_workbook = os.getenv("SCORECARD_WORKBOOK_PATH")
    env_worksheet = os.getenv("SCORECARD_WORKSHEET")
    env_log_level = os.getenv("SCORECARD_LOG_LEVEL")
    if env_workbook:
        wb_path = Path(env_workbook)
        section = cfg_dict.setdefault("workbook", {})
        section["base_path"] = str(wb_path.parent)
        section["file_name"] = wb_path.name
    if env_worksheet:
        cfg_dict.setdefault("workbook", {})["worksheet"] = env_worksheet
    if env_log_level:
        cfg_dict.setdefault("logging", {})["level"] = env_log_level


def _section(cfg_dict: Dict[str, Any], name: str, cls: type) -> Dict[str, Any]:
    raw = cfg_dict.get(name) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    allowed = set(cls.__dataclass_fields__)
    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {sorted(unknown)}. Allowed: {sorted(allowed)}")
    return raw


def _finite(value: Any, name: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name} must be a number") from e
    if not math.isfinite(number):
        raise ValueError(f"{name} must be finite")
    return number


def load_config(config_path: Optional[str | Path] = None, cli_overrides: Optional[Dict[str, Any]] = None) -> Config:
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    cfg_path_obj = Path(config_path)
    cfg_dict = _load_yaml(cfg_path_obj) if cfg_path_obj.exists() else {}

    _apply_env_overrides(cfg_dict)
    cfg_dict = _merge_overrides(cfg_dict, cli_overrides)

    unknown_top = set(cfg_dict.keys()) - ALLOWED_TOP_LEVEL
    if unknown_top:
        raise ValueError(f"Unknown top-level config keys: {sorted(unknown_top)}. Allowed: {sorted(ALLOWED_TOP_LEVEL)}")

    wb_cfg = dict(_section(cfg_dict, "workbook", Workbook))
    ledger_cfg = dict(_section(cfg_dict, "ledger", Ledger))
    targets_cfg = dict(_section(cfg_dict, "targets", Targets))
    watcher_cfg = dict(_section(cfg_dict, "watcher", Watcher))
    log_cfg = dict(_section(cfg_dict, "logging", Logging))

    if "base_path" in wb_cfg:
        wb_cfg["base_path"] = Path(wb_cfg["base_path"]).expanduser()
    header_rows = int(wb_cfg.get("header_rows", 1))
    if header_rows < 0:
        raise ValueError("workbook.header_rows must be non-negative")
    wb_cfg["header_rows"] = header_rows

    rate = _finite(ledger_cfg.get("in_progress_rate", 0.12), "ledger.in_progress_rate")
    if rate < 0 or rate > 1:
        raise ValueError("ledger.in_progress_rate must be between 0 and 1")
    ledger_cfg["in_progress_rate"] = rate
    start_month = int(ledger_cfg.get("fiscal_year_start_month", 8))
    if not 2 <= start_month <= 12:
        raise ValueError("ledger.fiscal_year_start_month must be between 2 and 12")
    ledger_cfg["fiscal_year_start_month"] = start_month

    if "directory" in targets_cfg:
        targets_cfg["directory"] = Path(targets_cfg["directory"]).expanduser()
    if "lob_defaults" in targets_cfg:
        raw_defaults = targets_cfg["lob_defaults"] or {}
        if not isinstance(raw_defaults, dict):
            raise ValueError("targets.lob_defaults must be a mapping of LOB -> target")
        targets_cfg["lob_defaults"] = {str(k): _finite(v, f"targets.lob_defaults.{k}") for k, v in raw_defaults.items()}
    if "company" in targets_cfg:
        company = targets_cfg["company"] or []
        if not isinstance(company, list) or any(not isinstance(entry, dict) for entry in company):
            raise ValueError("targets.company must be a list of mappings")
        targets_cfg["company"] = [dict(entry) for entry in company]

    poll = _finite(watcher_cfg.get("poll_interval_seconds", 1.0), "watcher.poll_interval_seconds")
    debounce = _finite(watcher_cfg.get("debounce_seconds", 1.0), "watcher.debounce_seconds")
    if poll <= 0:
        raise ValueError("watcher.poll_interval_seconds must be positive")
    if debounce < 0:
        raise ValueError("watcher.debounce_seconds must be non-negative")
    watcher_cfg["poll_interval_seconds"] = poll
    watcher_cfg["debounce_seconds"] = debounce

    return Config(
        workbook=Workbook(**wb_cfg),
        ledger=Ledger(**ledger_cfg),
        targets=Targets(**targets_cfg),
        watcher=Watcher(**watcher_cfg),
        logging=Logging(**log_cfg),
    )
