from __future__ import annotations

import json
import threading
from dataclasses import asdict
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

import click
import pandas as pd

from scorecard.engine.cache import SalesDataCache
from scorecard.utils.config import load_config
from scorecard.utils.logger import get_logger, set_package_level
from scorecard.utils.paths import DEFAULT_CONFIG_PATH

logger = get_logger(__name__)

VIEWS = ("products", "reps", "lobs", "quarters")


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def _view_rows(cache: SalesDataCache, view: str, fiscal_year: Optional[int]) -> list[dict]:
    if view == "products":
        return [asdict(r) for r in cache.get_product_aggregate()]
    if view == "reps":
        return [asdict(r) for r in cache.get_rep_aggregate()]
    if view == "lobs":
        return [{**asdict(r), "margin_percentage": r.margin_percentage} for r in cache.get_dept_lob_aggregate()]
    return cache.get_quarterly_scorecard(fiscal_year).to_rows()


def _open_cache(ctx: click.Context) -> SalesDataCache:
    cfg = ctx.obj["config"]
    return SalesDataCache(cfg, workbook_path=ctx.obj["workbook"])


@click.group()
@click.option("--config", default=str(DEFAULT_CONFIG_PATH), help="Path to config.yaml")
@click.option("--workbook", default=None, help="Ledger workbook; overrides workbook.base_path/file_name")
@click.pass_context
def main(ctx: click.Context, config: str, workbook: Optional[str]) -> None:
    """Sales scorecard: load the live ledger workbook and report aggregates."""
    cfg = load_config(config)
    set_package_level(cfg.logging.level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = cfg
    ctx.obj["workbook"] = Path(workbook) if workbook else None


@main.command()
@click.option("--view", type=click.Choice(VIEWS), default="products", show_default=True)
@click.option("--fiscal-year", type=int, default=None, help="Fiscal year for --view quarters")
@click.option("--json", "as_json", is_flag=True, default=False, help="Emit JSON instead of a table")
@click.pass_context
def summary(ctx: click.Context, view: str, fiscal_year: Optional[int], as_json: bool) -> None:
    """Print one aggregate view plus the pending / in-progress amounts."""
    with _open_cache(ctx) as cache:
        result = cache.reload()
        if not result.ok:
            raise click.ClickException(f"Could not load ledger: {result.error}")
        rows = _view_rows(cache, view, fiscal_year)
        pending = cache.get_pending_amount()
        in_progress = cache.get_in_progress_amount()

    if as_json:
        payload = {
            "view": view,
            "last_modified": result.last_modified.isoformat() if result.last_modified else None,
            "pending_amount": pending,
            "in_progress_amount": in_progress,
            "load_stats": result.stats.summary(),
            "rows": rows,
        }
        click.echo(json.dumps(_jsonable(payload), indent=2))
        return

    frame = pd.DataFrame(rows)
    click.echo(frame.to_string(index=False) if not frame.empty else f"No {view} rows.")
    click.echo(f"Pending amount: {pending:,.2f}")
    click.echo(f"In-progress amount: {in_progress:,.2f}")


@main.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Reload the workbook on every change until interrupted."""
    stop = threading.Event()
    with _open_cache(ctx) as cache:
        result = cache.reload()
        if not result.ok:
            logger.warning(f"Initial load failed: {result.error}")
        logger.info(f"Watching {cache.workbook_path}; Ctrl+C to stop")
        try:
            for stamp in cache.watch_for_changes(stop):
                logger.info(
                    f"Reloaded at {stamp:%Y-%m-%d %H:%M:%S}: {len(cache.get_records())} records, "
                    f"pending={cache.get_pending_amount()} in_progress={cache.get_in_progress_amount()}"
                )
        except KeyboardInterrupt:
            stop.set()
            logger.info("Stopped")


if __name__ == "__main__":
    main()
