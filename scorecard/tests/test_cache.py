import datetime as dt
import json
import threading
import time
from decimal import Decimal

from scorecard.engine.cache import CacheState, SalesDataCache
from scorecard.etl.ledger import LedgerResult, load_ledger
from scorecard.targets.service import TargetService


class CountingLoader:
    def __init__(self, gate: threading.Event | None = None):
        self.calls = 0
        self.gate = gate
        self.started = threading.Event()
        self.fail = False

    def __call__(self, path, cfg):
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail:
            return LedgerResult.failed("boom")
        return load_ledger(path, cfg)


def _scenario(write_workbook, ledger_row, **kwargs):
    return write_workbook(
        [
            ledger_row(received=dt.date(2024, 9, 1), completion=dt.date(2024, 9, 15), rep="X",
                       product="Thermal Unit", department="Thermal", commission=1000, vertiv=5000),
            ledger_row(received=dt.date(2024, 9, 2), rep="Y", product="power-module",
                       department="Power", commission=0, vertiv=10000),
        ],
        **kwargs,
    )


def _cache(cfg, loader=load_ledger, **kwargs):
    return SalesDataCache(cfg, target_service=TargetService(cfg, today=dt.date(2024, 9, 1)), loader=loader, fiscal_year=2025, **kwargs)


def test_first_query_loads_synchronously(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    loader = CountingLoader()
    cache = _cache(cfg, loader)
    assert cache.state == CacheState.EMPTY

    assert cache.get_pending_amount() == 0
    assert cache.get_in_progress_amount() == Decimal("1200")
    assert cache.state == CacheState.READY
    products = {p.product_type: p for p in cache.get_product_aggregate()}
    assert products["Thermal"].total_margin == Decimal("1000")
    assert [r.sales_rep for r in cache.get_rep_aggregate()] == ["X", "Y"]
    assert cache.get_dept_lob_aggregate()[-1].lob == "Total"
    assert loader.calls == 1


def test_clear_cache_forces_reload(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    loader = CountingLoader()
    cache = _cache(cfg, loader)
    cache.get_records()
    cache.get_records()
    assert loader.calls == 1

    cache.clear_cache()
    assert cache.state == CacheState.EMPTY
    assert len(cache.get_records()) == 2
    assert loader.calls == 2


def test_failed_reload_keeps_previous_snapshot(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    loader = CountingLoader()
    cache = _cache(cfg, loader)
    before = cache.get_product_aggregate()

    loader.fail = True
    result = cache.reload()
    assert not result.ok
    assert cache.last_error == "boom"
    assert cache.state == CacheState.READY
    assert cache.get_product_aggregate() == before

    loader.fail = False
    assert cache.reload().ok
    assert cache.last_error is None


def test_missing_file_with_empty_cache_returns_empty_views(cfg):
    cache = _cache(cfg)
    assert cache.get_product_aggregate() == []
    assert cache.get_pending_amount() == 0
    assert cache.state == CacheState.EMPTY
    assert "not found" in cache.last_error


def test_reference_lists(write_workbook, ledger_row, cfg):
    write_workbook(
        [
            ledger_row(rep="tania", department="Racks"),
            ledger_row(rep=" Mark ", department="Thermal"),
            ledger_row(rep="Ian", department="power"),
            ledger_row(rep="Mark", department="Thermal"),
        ]
    )
    cache = _cache(cfg)
    assert cache.get_all_sales_reps() == ["Ian", "Mark", "tania"]
    assert cache.get_all_lobs() == ["Power", "Thermal", "Other"]


def test_summary_sheets_override_and_survive_missing_sheet(write_workbook, ledger_row, cfg):
    board = [["Rep", "Agency Margin", "Buy Resell", "Total Margin", "Vertiv Value"], ["Sheet Rep", 1, 1, 2, 3]]
    path = _scenario(write_workbook, ledger_row, extra_sheets={"Leaderboard": board})
    cache = _cache(cfg)
    assert [r.sales_rep for r in cache.get_sales_leaderboard_data()] == ["Sheet Rep"]

    _scenario(write_workbook, ledger_row, path=path)
    assert cache.reload().ok
    assert [r.sales_rep for r in cache.get_rep_aggregate()] == ["Sheet Rep"]

    cache.clear_cache()
    assert [r.sales_rep for r in cache.get_rep_aggregate()] == ["X", "Y"]


def test_dept_lob_uses_target_table(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    rows = {r.lob: r for r in _cache(cfg).get_department_lob_data()}
    assert rows["Thermal"].margin_target == Decimal("900000")
    assert rows["Thermal"].margin_ytd == Decimal("1000")
    assert rows["Total"].rank == 0


def test_filtered_views_and_scorecard(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    cache = _cache(cfg)
    in_progress = cache.get_filtered_product_data("InProgress", dt.date(2024, 9, 1), dt.date(2024, 9, 30))
    assert [(p.product_type, p.total_margin) for p in in_progress] == [("Power", Decimal("0"))]
    completed = cache.get_filtered_rep_data("Completed", selected_reps=["x", "Z"])
    assert [(r.sales_rep, r.total_margin) for r in completed] == [("X", Decimal("1000")), ("Z", Decimal("0"))]

    card = cache.get_quarterly_scorecard()
    assert card.fiscal_year == 2025
    assert card.quarters[0].achieved == Decimal("1000")
    assert card.in_progress_amount == Decimal("1200")


def test_reload_is_idempotent(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    cache = _cache(cfg)
    first = cache.snapshot()
    cache.reload()
    second = cache.snapshot()
    assert first is not second
    assert (first.products, first.reps, first.dept_lob) == (second.products, second.reps, second.dept_lob)


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_concurrent_reloads_coalesce(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    gate = threading.Event()
    loader = CountingLoader(gate)
    cache = _cache(cfg, loader)

    first = threading.Thread(target=cache.reload)
    first.start()
    assert loader.started.wait(5)
    waiters = [threading.Thread(target=cache.reload) for _ in range(3)]
    for t in waiters:
        t.start()
    assert _wait_for(lambda: cache._requests == 4)
    gate.set()
    for t in [first, *waiters]:
        t.join(5)

    assert loader.calls == 2
    assert cache.state == CacheState.READY


def test_load_finishing_after_clear_is_discarded(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    gate = threading.Event()
    loader = CountingLoader(gate)
    cache = _cache(cfg, loader)

    worker = threading.Thread(target=cache.reload)
    worker.start()
    assert loader.started.wait(5)
    cache.clear_cache()
    gate.set()
    worker.join(5)

    assert cache._snapshot is None
    assert cache.state == CacheState.EMPTY


def test_close_discards_and_rejects_reloads(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    with _cache(cfg) as cache:
        cache.get_records()
    result = cache.reload()
    assert not result.ok
    assert cache.start_watching() is False


def test_watcher_reload_notifies_subscribers(write_workbook, ledger_row, cfg):
    cfg.watcher.debounce_seconds = 0.3
    path = _scenario(write_workbook, ledger_row)
    cache = _cache(cfg)
    cache.get_records()
    seen = []
    unsubscribe = cache.subscribe(seen.append)
    try:
        assert cache.start_watching()
        time.sleep(0.2)
        write_workbook([ledger_row(rep="Z", commission=5)] * 3, path=path)
        assert _wait_for(lambda: seen)
        assert isinstance(seen[0], dt.datetime)
        assert _wait_for(lambda: [r.sales_rep for r in cache.get_records()] == ["Z", "Z", "Z"])
    finally:
        unsubscribe()
        cache.close()
    assert not cache._listeners


def test_failing_listener_does_not_break_others(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    cache = _cache(cfg)
    seen = []

    def broken(_):
        raise RuntimeError("listener bug")

    cache.subscribe(broken)
    cache.subscribe(seen.append)
    cache._on_file_changed(dt.datetime(2024, 9, 1))
    assert len(seen) == 1


def test_watch_for_changes_yields_timestamps(write_workbook, ledger_row, cfg):
    cfg.watcher.debounce_seconds = 0.3
    path = _scenario(write_workbook, ledger_row)
    cache = _cache(cfg)
    stop = threading.Event()
    stamps = []

    def consume():
        for stamp in cache.watch_for_changes(stop):
            stamps.append(stamp)
            stop.set()

    worker = threading.Thread(target=consume)
    worker.start()
    time.sleep(0.2)
    write_workbook([ledger_row(rep="Q")], path=path)
    worker.join(5)
    stop.set()

    assert not worker.is_alive()
    assert len(stamps) == 1
    assert [r.sales_rep for r in cache.get_records()] == ["Q"]


def test_watching_missing_directory_is_non_fatal(tmp_path, cfg):
    cache = _cache(cfg, workbook_path=tmp_path / "gone" / "ledger.xlsx")
    assert cache.start_watching() is False
    assert list(cache.watch_for_changes(threading.Event())) == []
    assert cache.get_records() == ()


def _power_target(cache):
    return next(r.margin_target for r in cache.get_dept_lob_aggregate() if r.lob == "Power")


def test_reload_picks_up_edited_target_files(write_workbook, ledger_row, cfg):
    _scenario(write_workbook, ledger_row)
    cache = _cache(cfg)
    assert _power_target(cache) == Decimal("1000000")

    cfg.targets.directory.mkdir(parents=True, exist_ok=True)
    (cfg.targets.directory / "LOBTargets_2025.json").write_text(json.dumps([{"LOB": "power", "AnnualTarget": 42}]), encoding="utf-8")
    cache.reload()
    assert _power_target(cache) == Decimal("42")


def test_target_file_change_triggers_reload(write_workbook, ledger_row, cfg):
    cfg.watcher.debounce_seconds = 0.2
    _scenario(write_workbook, ledger_row)
    cfg.targets.directory.mkdir(parents=True, exist_ok=True)
    cache = _cache(cfg)
    cache.get_records()
    seen = []
    cache.subscribe(seen.append)
    try:
        assert cache.start_watching()
        time.sleep(0.2)
        (cfg.targets.directory / "LOBTargets_2025.json").write_text(json.dumps([{"LOB": "Power", "AnnualTarget": 7}]), encoding="utf-8")
        assert _wait_for(lambda: seen)
        assert _power_target(cache) == Decimal("7")
    finally:
        cache.close()
