"""In-memory cache and query facade over the ledger workbook.

The workbook is parsed once per reload; the product, rep and dept/LOB views
are computed from that parse and published together as one immutable
:class:`Snapshot`. Readers always see a complete snapshot: a reload builds
the next one on the side and swaps the reference under the lock.

Reload triggers coalesce. A caller that queued while another parse had not
started yet is served by that parse instead of starting its own.
"""

from __future__ import annotations

import datetime as dt
import enum
import threading
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from scorecard.aggregates.dept_lob import aggregate_dept_lob, finalize_dept_lob
from scorecard.aggregates.filters import filter_records
from scorecard.aggregates.margins import MarginSplit
from scorecard.aggregates.product import aggregate_products
from scorecard.aggregates.quarterly import QuarterlyScorecard, build_quarterly_scorecard
from scorecard.aggregates.reps import aggregate_reps
from scorecard.aggregates.types import DeptLobAggregate, ProductAggregate, RepAggregate
from scorecard.engine.watcher import FileWatcher, watch_changes
from scorecard.etl.ledger import LedgerResult, load_ledger
from scorecard.etl.records import STATUS_IN_PROGRESS, SalesRecord, fiscal_year_of
from scorecard.targets.service import TARGET_FILE_PATTERNS, TargetService
from scorecard.utils.config import Config, load_config
from scorecard.utils.logger import get_logger
from scorecard.utils.normalize import TAXONOMY, normalize_lob, normalize_sales_rep

logger = get_logger(__name__)

Listener = Callable[[dt.datetime], None]
Loader = Callable[[Path, Config], LedgerResult]


class CacheState(enum.Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"


@dataclass(frozen=True)
class Snapshot:
    result: LedgerResult
    products: Tuple[ProductAggregate, ...]
    reps: Tuple[RepAggregate, ...]
    dept_lob: Tuple[DeptLobAggregate, ...]
    # Summary-sheet rows in effect; carried over when a reload finds no sheet
    sheet_leaderboard: Optional[Tuple[RepAggregate, ...]]
    sheet_dept_lob: Optional[Tuple[DeptLobAggregate, ...]]
    fiscal_year: int

    @property
    def records(self) -> Tuple[SalesRecord, ...]:
        return self.result.records

    @property
    def last_modified(self) -> Optional[dt.datetime]:
        return self.result.last_modified


class SalesDataCache:
    def __init__(
        self,
        cfg: Optional[Config] = None,
        workbook_path: Optional[str | Path] = None,
        target_service: Optional[TargetService] = None,
        loader: Loader = load_ledger,
        fiscal_year: Optional[int] = None,
    ):
        self.cfg = cfg or load_config()
        self.workbook_path = Path(workbook_path) if workbook_path is not None else self.cfg.workbook_path
        self.targets = target_service or TargetService(self.cfg)
        self.fiscal_year = fiscal_year or fiscal_year_of(dt.date.today(), self.cfg.ledger.fiscal_year_start_month)
        self._loader = loader

        self._lock = threading.Lock()
        self._load_lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None
        self._state = CacheState.EMPTY
        self._generation = 0
        self._requests = 0
        self._covered = 0
        self._last_result: Optional[LedgerResult] = None
        self._closed = False
        self._listeners: List[Listener] = []
        self._watcher: Optional[FileWatcher] = None
        self._targets_watcher: Optional[FileWatcher] = None
        self.last_error: Optional[str] = None

    # State
    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def last_modified(self) -> Optional[dt.datetime]:
        snap = self._snapshot
        return snap.last_modified if snap is not None else None

    @property
    def in_progress_rate(self) -> Decimal:
        return Decimal(str(self.cfg.ledger.in_progress_rate))

    def reload(self) -> LedgerResult:
        """Parse the workbook and publish a new snapshot.

        Target files are re-read first so edited targets take effect.
        On failure the previous snapshot stays in place and ``last_error`` is
        set. Results of a parse that finishes after ``clear_cache()`` or
        ``close()`` are returned to the caller but never published.
        """
        with self._lock:
            if self._closed:
                return LedgerResult.failed("cache is closed")
            self._requests += 1
            ticket = self._requests
            generation = self._generation

        with self._load_lock:
            with self._lock:
                if generation == self._generation and self._covered >= ticket and self._last_result is not None:
                    logger.debug(f"Reload request {ticket} served by an earlier parse")
                    return self._last_result
                covers = self._requests
                previous = self._snapshot
                self._state = CacheState.LOADING

            self.targets.reload()
            result = self._loader(self.workbook_path, self.cfg)
            snapshot = self._build_snapshot(result, previous) if result.ok else None

            with self._lock:
                if generation != self._generation or self._closed:
                    logger.info("Discarding reload result: cache was cleared or closed during the load")
                    if self._state == CacheState.LOADING:
                        self._state = CacheState.READY if self._snapshot is not None else CacheState.EMPTY
                    return result
                self._covered = covers
                self._last_result = result
                if snapshot is not None:
                    self._snapshot = snapshot
                    self.last_error = None
                else:
                    self.last_error = result.error
                    if previous is not None:
                        logger.warning(f"Keeping previous snapshot after failed reload: {result.error}")
                self._state = CacheState.READY if self._snapshot is not None else CacheState.EMPTY
        return result

    def clear_cache(self) -> None:
        """Drop the snapshot; the next query reloads synchronously."""
        with self._lock:
            self._snapshot = None
            self._last_result = None
            self._covered = 0
            self._generation += 1
            self._state = CacheState.EMPTY
        logger.info("Sales data cache cleared")

    def snapshot(self) -> Snapshot:
        """Current snapshot, loading the workbook first when the cache is empty."""
        snap = self._snapshot
        if snap is not None:
            return snap
        result = self.reload()
        snap = self._snapshot
        if snap is not None:
            return snap
        # Load failed with nothing cached, or the cache was cleared mid-load
        return self._build_snapshot(result, None)

    def _build_snapshot(self, result: LedgerResult, previous: Optional[Snapshot]) -> Snapshot:
        records = result.records
        sheet_leaderboard = result.leaderboard
        if sheet_leaderboard is None and previous is not None:
            sheet_leaderboard = previous.sheet_leaderboard
        sheet_dept_lob = result.dept_lob
        if sheet_dept_lob is None and previous is not None:
            sheet_dept_lob = previous.sheet_dept_lob

        if sheet_leaderboard:
            reps = tuple(sheet_leaderboard)
        else:
            reps = tuple(aggregate_reps(records))
        if sheet_dept_lob:
            dept_lob = tuple(finalize_dept_lob(sheet_dept_lob))
        else:
            dept_lob = tuple(
                aggregate_dept_lob(
                    records,
                    self.targets.lob_target_table(self.fiscal_year),
                    self.targets.other_lob_target,
                )
            )
        return Snapshot(
            result=result,
            products=tuple(aggregate_products(records)),
            reps=reps,
            dept_lob=dept_lob,
            sheet_leaderboard=sheet_leaderboard,
            sheet_dept_lob=sheet_dept_lob,
            fiscal_year=self.fiscal_year,
        )

    # Queries
    def get_product_aggregate(self) -> List[ProductAggregate]:
        return list(self.snapshot().products)

    def get_rep_aggregate(self) -> List[RepAggregate]:
        return list(self.snapshot().reps)

    def get_dept_lob_aggregate(self) -> List[DeptLobAggregate]:
        return list(self.snapshot().dept_lob)

    get_product_sales_data = get_product_aggregate
    get_sales_leaderboard_data = get_rep_aggregate
    get_department_lob_data = get_dept_lob_aggregate

    def get_pending_amount(self) -> Decimal:
        return self.snapshot().result.pending_amount

    def get_in_progress_amount(self) -> Decimal:
        return self.snapshot().result.in_progress_amount

    def get_records(self) -> Tuple[SalesRecord, ...]:
        return self.snapshot().records

    def get_all_sales_reps(self) -> List[str]:
        names = {normalize_sales_rep(r.sales_rep) for r in self.snapshot().records}
        return sorted(names, key=lambda n: (n.lower(), n))

    def get_all_lobs(self) -> List[str]:
        lobs = {normalize_lob(r.department) for r in self.snapshot().records}
        known = [lob for lob in TAXONOMY if lob in lobs]
        return known + sorted(lobs - set(TAXONOMY))

    def get_filtered_product_data(
        self,
        status: Optional[str] = None,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
        value_column: str = "vertiv_value",
        margin_split: MarginSplit = "columns",
    ) -> List[ProductAggregate]:
        records = filter_records(self.snapshot().records, status, start, end)
        return aggregate_products(
            records,
            value_column=value_column,
            margin_split=margin_split,
            in_progress_mode=status == STATUS_IN_PROGRESS,
            in_progress_rate=self.in_progress_rate,
        )

    def get_filtered_rep_data(
        self,
        status: Optional[str] = None,
        start: Optional[dt.date] = None,
        end: Optional[dt.date] = None,
        selected_reps: Optional[Sequence[str]] = None,
        margin_split: MarginSplit = "columns",
    ) -> List[RepAggregate]:
        records = filter_records(self.snapshot().records, status, start, end)
        return aggregate_reps(
            records,
            selected_reps=selected_reps,
            margin_split=margin_split,
            in_progress_mode=status == STATUS_IN_PROGRESS,
            in_progress_rate=self.in_progress_rate,
        )

    def get_quarterly_scorecard(self, fiscal_year: Optional[int] = None) -> QuarterlyScorecard:
        snap = self.snapshot()
        fy = fiscal_year or self.fiscal_year
        return build_quarterly_scorecard(
            snap.records,
            self.targets.get_company_target(fy),
            fiscal_year=fy,
            pending_amount=snap.result.pending_amount,
            in_progress_amount=snap.result.in_progress_amount,
            start_month=self.cfg.ledger.fiscal_year_start_month,
        )

    # Change notification
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a "data updated" listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, modified: dt.datetime) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(modified)
            except Exception:
                logger.exception("Data-updated listener failed")

    def _on_file_changed(self, modified: dt.datetime) -> None:
        result = self.reload()
        if result.ok:
            self._notify(result.last_modified or modified)
        else:
            logger.warning(f"Reload after file change failed: {result.error}")

    def start_watching(self) -> bool:
        """Start the background watcher; False when it cannot be set up."""
        with self._lock:
            if self._closed:
                return False
            if self._watcher is None:
                self._watcher = FileWatcher.for_file(
                    self.workbook_path,
                    self._on_file_changed,
                    debounce=self.cfg.watcher.debounce_seconds,
                )
                self._targets_watcher = FileWatcher(
                    self.targets.directory,
                    TARGET_FILE_PATTERNS,
                    self._on_file_changed,
                    debounce=self.cfg.watcher.debounce_seconds,
                )
            watcher, targets_watcher = self._watcher, self._targets_watcher
        if not watcher.start():
            return False
        # A missing targets directory only disables target reloads
        targets_watcher.start()
        return True

    def stop_watching(self) -> None:
        with self._lock:
            watchers = (self._watcher, self._targets_watcher)
            self._watcher = None
            self._targets_watcher = None
        for watcher in watchers:
            if watcher is not None:
                watcher.stop()

    def watch_for_changes(self, stop_event: threading.Event) -> Iterator[dt.datetime]:
        """Reload on every settled change and yield the new last-modified time.

        Ends when ``stop_event`` is set. Yields nothing when the workbook's
        directory does not exist.
        """
        try:
            changes = watch_changes(
                self.workbook_path,
                stop_event,
                debounce=self.cfg.watcher.debounce_seconds,
                poll_interval=self.cfg.watcher.poll_interval_seconds,
            )
            for modified in changes:
                result = self.reload()
                if not result.ok:
                    logger.warning(f"Reload after file change failed: {result.error}")
                    continue
                stamp = result.last_modified or modified
                self._notify(stamp)
                yield stamp
        except OSError as e:
            logger.warning(f"Not watching for changes: {e}")

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._generation += 1
            self._listeners.clear()
        self.stop_watching()
        logger.debug("Sales data cache closed")

    def __enter__(self) -> "SalesDataCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
