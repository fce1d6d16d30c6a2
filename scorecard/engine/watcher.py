"""Change watcher for the ledger workbook and its target files.

Built on a watchdog ``Observer``. Events are filtered to the watched file
names and debounced with a resettable quiet-period timer, so a writer
mid-save is not read half-flushed. Stopping a watcher stops and joins the
observer, which releases the OS watch.
"""

from __future__ import annotations

import datetime as dt
import fnmatch
import os
import queue
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, Optional, Tuple

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from scorecard.utils.logger import get_logger

logger = get_logger(__name__)


def _is_temp_file(name: str) -> bool:
    name = name.lower()
    return name.startswith("~$") or name.endswith(".tmp") or name.endswith(".partial")


def _modified_at(path: Path) -> Optional[dt.datetime]:
    try:
        return dt.datetime.fromtimestamp(path.stat().st_mtime)
    except OSError:
        return None


class DebouncedHandler(FileSystemEventHandler):
    """Calls ``callback(path, modified)`` once a matching file has been quiet for ``quiet_seconds``."""

    def __init__(
        self,
        patterns: Iterable[str],
        callback: Callable[[Path, dt.datetime], None],
        quiet_seconds: float = 1.0,
    ):
        super().__init__()
        self.patterns = tuple(p.lower() for p in patterns)
        self.callback = callback
        self.quiet_seconds = quiet_seconds
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()
        self._cancelled = False

    def matches(self, path: str) -> bool:
        name = os.path.basename(path).lower()
        if not name or _is_temp_file(name):
            return False
        return any(fnmatch.fnmatchcase(name, p) for p in self.patterns)

    def on_created(self, event):
        self._maybe_schedule(event)

    def on_modified(self, event):
        self._maybe_schedule(event)

    def on_moved(self, event):
        # Save-via-rename lands on the destination name
        self._maybe_schedule(event, getattr(event, "dest_path", None))

    def _maybe_schedule(self, event, path: Optional[str] = None) -> None:
        if event.is_directory:
            return
        p = os.path.abspath(os.fsdecode(path or event.src_path))
        if not self.matches(p):
            return
        with self._lock:
            if self._cancelled:
                return
            if p in self._timers:
                self._timers[p].cancel()
            timer = threading.Timer(self.quiet_seconds, self._fire, args=[p])
            timer.daemon = True
            self._timers[p] = timer
            timer.start()
        logger.debug(f"Change detected: {os.path.basename(p)} (settling for {self.quiet_seconds}s)")

    def _fire(self, path: str) -> None:
        with self._lock:
            self._timers.pop(path, None)
            if self._cancelled:
                return
        modified = _modified_at(Path(path))
        if modified is None:
            logger.warning(f"Watched file disappeared: {path}")
            return
        try:
            self.callback(Path(path), modified)
        except Exception:
            logger.exception(f"Change handler failed for {path}")

    def cancel(self) -> None:
        """Drop pending timers; later events are ignored."""
        with self._lock:
            self._cancelled = True
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()


def watch_changes(
    path: str | Path,
    stop: threading.Event,
    debounce: float = 1.0,
    poll_interval: float = 0.5,
) -> Iterator[dt.datetime]:
    """Yield the new last-modified time each time ``path`` settles after a change.

    Returns when ``stop`` is set; ``stop`` is checked every ``poll_interval``
    seconds. The observer is stopped and joined on the way out. Raises
    ``FileNotFoundError`` up front when the parent directory does not exist.
    """
    path = Path(path)
    if not path.parent.is_dir():
        raise FileNotFoundError(f"Watch directory does not exist: {path.parent}")

    changes: "queue.Queue[dt.datetime]" = queue.Queue()
    handler = DebouncedHandler([path.name], lambda _p, modified: changes.put(modified), debounce)
    observer = Observer()
    observer.schedule(handler, str(path.parent), recursive=False)
    observer.start()
    try:
        while not stop.is_set():
            try:
                modified = changes.get(timeout=poll_interval)
            except queue.Empty:
                continue
            yield modified
    finally:
        handler.cancel()
        observer.stop()
        observer.join()
        logger.debug(f"Released watch on {path.parent}")


class FileWatcher:
    """Watches ``directory`` for files matching ``patterns`` and calls ``on_change`` per settled change."""

    def __init__(
        self,
        directory: str | Path,
        patterns: Iterable[str],
        on_change: Callable[[dt.datetime], None],
        debounce: float = 1.0,
    ):
        self.directory = Path(directory)
        self.patterns: Tuple[str, ...] = tuple(patterns)
        self.on_change = on_change
        self.debounce = debounce
        self._observer: Optional[Observer] = None
        self._handler: Optional[DebouncedHandler] = None
        self._lock = threading.Lock()

    @classmethod
    def for_file(cls, path: str | Path, on_change: Callable[[dt.datetime], None], debounce: float = 1.0) -> "FileWatcher":
        path = Path(path)
        return cls(path.parent, [path.name], on_change, debounce)

    @property
    def running(self) -> bool:
        observer = self._observer
        return observer is not None and observer.is_alive()

    def _changed(self, path: Path, modified: dt.datetime) -> None:
        logger.info(f"Change detected in {path.name} at {modified:%Y-%m-%d %H:%M:%S}")
        self.on_change(modified)

    def start(self) -> bool:
        """Start watching; returns False (and logs) when the OS watch cannot be set up."""
        with self._lock:
            if self.running:
                return True
            if not self.directory.is_dir():
                logger.warning(f"Not watching {self.directory}: directory does not exist")
                return False
            handler = DebouncedHandler(self.patterns, self._changed, self.debounce)
            observer = Observer()
            try:
                observer.schedule(handler, str(self.directory), recursive=False)
                observer.start()
            except OSError as e:
                logger.warning(f"Not watching {self.directory}: {e}")
                return False
            self._handler = handler
            self._observer = observer
        logger.info(f"Watching {self.directory} for {', '.join(self.patterns)} (debounce={self.debounce}s)")
        return True

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        with self._lock:
            observer, handler = self._observer, self._handler
            self._observer = None
            self._handler = None
        if handler is not None:
            handler.cancel()
        if observer is not None:
            observer.stop()
            if observer is not threading.current_thread():
                observer.join(timeout)
        logger.debug(f"Stopped watching {self.directory}")
