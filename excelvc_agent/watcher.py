"""
Recursive directory watching for ExcelVC Agent.
Routes spreadsheet change events to the debounce engine.
"""

import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

from watchdog.observers import Observer
from watchdog.events import FileSystemEvent, FileSystemEventHandler

from .debounce import DebounceEngine
from .logger import get_logger

logger = get_logger(__name__)

SPREADSHEET_EXTENSIONS = ('.xls', '.xlsx')
LOCK_FILE_PREFIX = '~$'


def is_spreadsheet(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in SPREADSHEET_EXTENSIONS


def is_lock_file(path: str) -> bool:
    """Office applications create ``~$name.xlsx`` owner files while a document is open."""
    return os.path.basename(path).startswith(LOCK_FILE_PREFIX)


def should_capture(path: str) -> bool:
    return is_spreadsheet(path) and not is_lock_file(path)


class WatchResult(Enum):
    WATCHING = "watching"
    ALREADY_WATCHING = "already_watching"
    INVALID_PATH = "invalid_path"


@dataclass
class WatchedRoot:
    """A directory tree under active monitoring."""
    root: str
    observer: Observer
    handler: Optional[FileSystemEventHandler] = None
    directories: Set[str] = field(default_factory=set)
    lock: threading.Lock = field(default_factory=threading.Lock)


class WatchRegistry:
    """Registry of watched roots keyed by normalized root path."""

    def __init__(self):
        self._roots: Dict[str, WatchedRoot] = {}
        self._lock = threading.Lock()

    def reserve(self, root: str, watched: WatchedRoot) -> bool:
        """Register ``watched`` unless ``root`` is already present."""
        with self._lock:
            if root in self._roots:
                return False
            self._roots[root] = watched
            return True

    def release(self, root: str) -> Optional[WatchedRoot]:
        with self._lock:
            return self._roots.pop(root, None)

    def get(self, root: str) -> Optional[WatchedRoot]:
        with self._lock:
            return self._roots.get(root)

    def roots(self) -> List[str]:
        with self._lock:
            return sorted(self._roots)

    def __contains__(self, root: str) -> bool:
        with self._lock:
            return root in self._roots


class SpreadsheetEventHandler(FileSystemEventHandler):
    """Filters raw events under one root and forwards qualifying paths."""

    def __init__(self, manager: "WatchManager", root: str):
        super().__init__()
        self.manager = manager
        self.root = root

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            if self.manager.watch_new_directories:
                self.manager.register_new_directory(self.root, os.fsdecode(event.src_path))
            return
        self._forward(os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._forward(os.fsdecode(event.src_path))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            self.manager.forget_directory(self.root, os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        dest_path = os.fsdecode(event.dest_path)
        if event.is_directory:
            if event.src_path:
                self.manager.forget_directory(self.root, os.fsdecode(event.src_path))
            if dest_path and self.manager.watch_new_directories:
                self.manager.register_new_directory(self.root, dest_path)
            return
        # Save-by-rename: the application writes a temp file and renames it over the original
        if dest_path:
            self._forward(dest_path)

    def _forward(self, path: str) -> None:
        if should_capture(path) and self.manager.covers(self.root, path):
            self.manager.debouncer.notify(path)


class WatchManager:
    """Starts one recursive observer per root and tracks its directories."""

    def __init__(
        self,
        debouncer: DebounceEngine,
        registry: Optional[WatchRegistry] = None,
        watch_new_directories: bool = True
    ):
        """Initialize watch manager.

        Args:
            debouncer: Receives qualifying file paths
            registry: Registry of watched roots
            watch_new_directories: Register directories created after watch-start.
                When False only directories present at watch-start are covered.
        """
        self.debouncer = debouncer
        self.registry = registry if registry is not None else WatchRegistry()
        self.watch_new_directories = watch_new_directories

    def watch(self, root: str) -> WatchResult:
        """Start monitoring ``root`` and every directory beneath it.

        Returns:
            WatchResult
        """
        root = os.path.abspath(os.path.expanduser(root))

        if not os.path.isdir(root):
            logger.warning(f"Cannot watch, not a directory: {root}")
            return WatchResult.INVALID_PATH

        watched = WatchedRoot(root=root, observer=Observer())
        if not self.registry.reserve(root, watched):
            logger.info(f"Already watching: {root}")
            return WatchResult.ALREADY_WATCHING

        watched.handler = SpreadsheetEventHandler(self, root)

        try:
            with watched.lock:
                watched.directories.update(self._walk_directories(root))
            watched.observer.schedule(watched.handler, root, recursive=True)
            watched.observer.start()
        except Exception:
            self.registry.release(root)
            self._stop_observer(watched.observer)
            raise

        logger.info(f"Watching {root} ({len(watched.directories)} directories)")
        return WatchResult.WATCHING

    def register_new_directory(self, root: str, directory: str) -> None:
        """Record a directory created under ``root`` after watch-start.

        The recursive watch already delivers its events. Spreadsheets already
        inside it (a folder moved in, or files written before the watch
        reached it) are forwarded as changes.
        """
        watched = self.registry.get(root)
        if watched is None:
            return

        for path in self._walk_directories(directory):
            with watched.lock:
                watched.directories.add(path)
            logger.debug(f"Registered directory: {path}")

            try:
                names = os.listdir(path)
            except OSError:
                continue
            for name in names:
                file_path = os.path.join(path, name)
                if should_capture(file_path) and os.path.isfile(file_path):
                    self.debouncer.notify(file_path)

    def forget_directory(self, root: str, directory: str) -> None:
        """Drop a deleted or moved-away directory and everything below it."""
        watched = self.registry.get(root)
        if watched is None:
            return

        directory = os.path.abspath(directory)
        prefix = directory + os.sep
        with watched.lock:
            gone = {d for d in watched.directories if d == directory or d.startswith(prefix)}
            watched.directories -= gone
        if gone:
            logger.debug(f"Forgot {len(gone)} directory(ies) under {directory}")

    def covers(self, root: str, path: str) -> bool:
        """Whether events for ``path`` should be forwarded.

        With ``watch_new_directories`` off, only files whose directory existed
        at watch-start qualify.
        """
        if self.watch_new_directories:
            return True
        watched = self.registry.get(root)
        if watched is None:
            return False
        with watched.lock:
            return os.path.dirname(os.path.abspath(path)) in watched.directories

    def watched_roots(self) -> List[str]:
        return self.registry.roots()

    def directories(self, root: str) -> Set[str]:
        watched = self.registry.get(os.path.abspath(root))
        if watched is None:
            return set()
        with watched.lock:
            return set(watched.directories)

    def unwatch_all(self) -> None:
        """Stop every observer (daemon shutdown)."""
        for root in self.registry.roots():
            watched = self.registry.release(root)
            if watched is None:
                continue
            logger.info(f"Stopping watcher for {root}")
            self._stop_observer(watched.observer)

    @staticmethod
    def _stop_observer(observer: Observer) -> None:
        # stop() also tears down emitters of an observer that never started
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=5)

    @staticmethod
    def _walk_directories(top: str) -> List[str]:
        directories = []
        for current, _dirs, _files in os.walk(top, followlinks=False):
            directories.append(os.path.abspath(current))
        return directories
