"""Data file monitoring for dripfeed.

Uses Watchdog to notice out-of-band edits to the catalog and subscription
files and re-validates them, so corruption is logged as soon as it lands
rather than on the next feed request. The monitor never writes to the stores.
"""

from __future__ import annotations

import queue
import time
from pathlib import Path
from threading import Event, Thread
from typing import Callable, Dict, List, NamedTuple, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .catalog import validate_catalog
from .config import DripfeedConfig
from .errors import StoreIOError, StoreParseError
from .logging_config import get_logger
from .subscriptions import validate_subscriptions

logger = get_logger(__name__)

Validator = Callable[[Path], List[StoreParseError]]


class MonitorTask(NamedTuple):
    store: str
    path: Path


class StoreFileHandler(FileSystemEventHandler):
    """Turn filesystem events on the store files into validation tasks."""

    def __init__(self, task_queue: queue.Queue, watched: Dict[Path, str], debounce_seconds: int = 2):
        super().__init__()
        self.task_queue = task_queue
        self.watched = {path.resolve(): store for path, store in watched.items()}
        self.debounce_seconds = debounce_seconds
        self._last_seen: Dict[Path, float] = {}

    def _queue(self, raw_path: str) -> None:
        path = Path(raw_path).resolve()
        store = self.watched.get(path)
        if store is None:
            return

        now = time.time()
        last = self._last_seen.get(path, 0)
        if now - last < self.debounce_seconds:
            return
        self._last_seen[path] = now
        self.task_queue.put(MonitorTask(store, path))

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._queue(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic saves land as a rename onto the store path.
        if not event.is_directory:
            self._queue(event.dest_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        path = Path(event.src_path).resolve()
        if path in self.watched:
            logger.error(f"{self.watched[path]} file deleted: {path}")


def optimize_tasks(tasks: list[MonitorTask]) -> list[MonitorTask]:
    """Collapse a batch to one validation per file, in first-seen order."""
    unique: Dict[Path, MonitorTask] = {}
    for task in tasks:
        unique.setdefault(task.path, task)
    return list(unique.values())


def validate_store(task: MonitorTask, validators: Dict[str, Validator]) -> list[StoreParseError]:
    """Run the validator for a task and log every problem found."""
    try:
        problems = validators[task.store](task.path)
    except StoreIOError as exc:
        logger.error(f"Cannot read {task.store} file: {exc}")
        return []

    if problems:
        for problem in problems:
            logger.error(f"{task.store} file problem: {problem}")
    else:
        logger.info(f"{task.store} file changed, validated OK: {task.path.name}")
    return problems


def process_queue(
    task_queue: queue.Queue,
    validators: Dict[str, Validator],
    stop_event: Event,
) -> None:
    """Worker function to validate changed files sequentially with batching."""
    BATCH_WINDOW = 1.0  # Seconds to wait for more events

    while not stop_event.is_set():
        try:
            first_task = task_queue.get(timeout=1.0)
        except queue.Empty:
            continue

        batch = [first_task]
        start_time = time.time()

        while (time.time() - start_time) < BATCH_WINDOW:
            try:
                batch.append(task_queue.get_nowait())
            except queue.Empty:
                time.sleep(0.1)

        for _ in batch:
            task_queue.task_done()

        for task in optimize_tasks(batch):
            validate_store(task, validators)


def start_file_monitoring(config: DripfeedConfig) -> Optional[Observer]:
    """Start data file monitoring if enabled in config."""
    if not config.monitoring.enabled:
        return None

    data_dir = config.data_dir
    if not data_dir.exists():
        logger.error(f"Data directory does not exist: {data_dir}")
        return None

    watched = {
        config.catalog_path: "catalog",
        config.subscriptions_path: "subscriptions",
    }
    validators: Dict[str, Validator] = {
        "catalog": validate_catalog,
        "subscriptions": validate_subscriptions,
    }

    task_queue: queue.Queue = queue.Queue()
    stop_event = Event()

    worker = Thread(
        target=process_queue,
        args=(task_queue, validators, stop_event),
        daemon=True,
        name="DripfeedMonitorWorker",
    )
    worker.start()

    event_handler = StoreFileHandler(task_queue, watched, config.monitoring.debounce_seconds)

    observer = Observer()
    observer.schedule(event_handler, str(data_dir), recursive=False)
    observer.start()

    return observer
