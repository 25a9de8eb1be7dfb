"""
File system watcher that keeps a project index fresh.

Uses the watchdog library to collect change events for source files and
re-runs the incremental indexer once events have been quiet for the
debounce interval. Runs never overlap: events that arrive while a run is in
progress schedule exactly one more run.
"""

import os
import threading
import time
from collections.abc import Callable

from loguru import logger
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from codebase_vector.core.errors import CodebaseVectorError
from codebase_vector.core.identity import normalize_root
from codebase_vector.core.languages import detect_language
from codebase_vector.core.models import IndexSummary
from codebase_vector.infrastructure.filesystem.ignore import GitIgnoreSource, is_ignored_path
from codebase_vector.infrastructure.filesystem.walker import EXCLUDED_DIRS

DEFAULT_DEBOUNCE_SECONDS = 2.0

# Open and close-without-write events fire whenever the indexer reads a file.
WATCHED_EVENT_TYPES = frozenset(
    {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}
)
WATCHED_EVENT_CLASSES = [FileCreatedEvent, FileModifiedEvent, FileDeletedEvent, FileMovedEvent]


class SourceChangeHandler(FileSystemEventHandler):
    """Forwards events for indexable source files under ``root`` to ``on_change``."""

    def __init__(
        self,
        root: str,
        on_change: Callable[[str], None],
        patterns: list[str] | None = None,
        excluded_dirs: frozenset[str] = EXCLUDED_DIRS,
    ) -> None:
        super().__init__()
        self.root = root
        self.on_change = on_change
        self.patterns = patterns or []
        self.excluded_dirs = excluded_dirs

    def is_relevant(self, path: str) -> bool:
        if not path or not detect_language(path):
            return False
        rel = os.path.relpath(path, self.root)
        if rel.startswith(".."):
            return False
        parts = rel.replace(os.sep, "/").split("/")
        if any(part in self.excluded_dirs for part in parts[:-1]):
            return False
        return not is_ignored_path(rel, self.patterns)

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in WATCHED_EVENT_TYPES:
            return
        for path in (event.src_path, getattr(event, "dest_path", "")):
            path = os.fsdecode(path) if path else ""
            if self.is_relevant(path):
                logger.debug("File {}: {}", event.event_type, path)
                self.on_change(path)
                return


class ProjectWatcher:
    """Debounced, single-flight re-indexing of one project root."""

    def __init__(
        self,
        root: str,
        index_project: Callable[[str], IndexSummary],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self.root = normalize_root(root)
        self.index_project = index_project
        self.debounce_seconds = debounce_seconds

        self._cv = threading.Condition()
        self._due: float | None = None
        self._running = False
        self._run_lock = threading.Lock()
        self._worker: threading.Thread | None = None
        self._observer: BaseObserver | None = None
        self._handler = SourceChangeHandler(
            self.root, self.notify, GitIgnoreSource().load(self.root)
        )

    def notify(self, path: str = "") -> None:
        """Schedules a run ``debounce_seconds`` after the latest change."""
        with self._cv:
            if not self._running:
                return
            self._due = time.monotonic() + self.debounce_seconds
            self._cv.notify()

    def run_once(self) -> IndexSummary | None:
        """Runs the indexer now unless a run is already in progress."""
        if not self._run_lock.acquire(blocking=False):
            logger.debug("Index run already in progress for {}", self.root)
            self.notify()
            return None
        try:
            return self.index_project(self.root)
        except CodebaseVectorError as e:
            logger.error("Index run failed for {}: {}", self.root, e)
            return None
        finally:
            self._run_lock.release()

    def _loop(self) -> None:
        while True:
            with self._cv:
                if not self._running:
                    return
                if self._due is None:
                    self._cv.wait()
                    continue
                now = time.monotonic()
                if self._due > now:
                    self._cv.wait(timeout=self._due - now)
                    continue
                self._due = None

            self.run_once()

    def start(self) -> None:
        """Starts the observer and the debounce worker."""
        if self._running:
            logger.debug("Already watching: {}", self.root)
            return

        self._running = True
        self._worker = threading.Thread(target=self._loop, name="index-watcher", daemon=True)
        self._worker.start()

        self._observer = Observer()
        self._observer.schedule(
            self._handler, self.root, recursive=True, event_filter=WATCHED_EVENT_CLASSES
        )
        self._observer.start()
        logger.info("Started watching: {}", self.root)

    def stop(self) -> None:
        """Stops watching; a run in progress is allowed to finish."""
        if not self._running:
            return

        with self._cv:
            self._running = False
            self._due = None
            self._cv.notify()

        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5.0)
            self._observer = None
        if self._worker is not None:
            self._worker.join()
            self._worker = None
        logger.info("Stopped watching: {}", self.root)

    @property
    def is_watching(self) -> bool:
        return self._running
