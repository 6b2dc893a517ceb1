#!/usr/bin/env python3
"""
Recursive file system watcher for the File Sync domain.

Registers a watch on the sync root and every directory below it, and keeps
extending coverage as new directories appear. Each raw notification is turned
into an immutable ``WatchEvent`` and handed to a callback on the observer's
dispatch thread, one at a time and in the order the OS reported them.

Uses the watchdog library for cross-platform file system event monitoring.
"""

import os
import stat
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from loguru import logger
from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from app.utils.helpers import should_exclude_path


class WatcherError(Exception):
    """Raised when watching cannot start at all."""


class WatchEventKind(str, Enum):
    """Kinds of change reported by the watcher."""

    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    PERMISSION_CHANGED = "permission_changed"


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """A single change observed in the watched directory tree."""

    path: str
    kind: WatchEventKind
    dest_path: Optional[str] = None


EventCallback = Callable[[WatchEvent], None]

# (mtime_ns, size, mode) per file, used to tell chmod apart from writes.
FileSignature = Tuple[int, int, int]


class RecursiveEventHandler(FileSystemEventHandler):
    """Translates watchdog notifications into ``WatchEvent`` callbacks."""

    def __init__(self, watcher: "RecursiveWatcher", on_event: EventCallback):
        super().__init__()
        self.watcher = watcher
        self.on_event = on_event

    def on_created(self, event: FileSystemEvent):
        """Report creation and start watching new directories."""
        if self.watcher.is_ignored(event.src_path):
            return

        self._emit(WatchEvent(path=event.src_path, kind=WatchEventKind.CREATED))

        # Stat instead of trusting event.is_directory: the path may already be gone.
        try:
            mode = os.stat(event.src_path).st_mode
        except OSError as e:
            self.watcher.log.debug(f"Created path vanished before stat: {event.src_path} ({e})")
            return

        if stat.S_ISDIR(mode):
            self.watcher.log.info(f"New directory found, extending watch: {event.src_path}")
            self.watcher.add_recursive(event.src_path)
        else:
            self.watcher.remember_file(event.src_path)

    def on_modified(self, event: FileSystemEvent):
        """Report content or permission changes of files and directory chmods."""
        if self.watcher.is_ignored(event.src_path):
            return

        if event.is_directory:
            # Anything but a mode change only mirrors changes to its children
            if self.watcher.directory_mode_changed(event.src_path):
                self._emit(WatchEvent(path=event.src_path, kind=WatchEventKind.PERMISSION_CHANGED))
            return

        kind = self.watcher.classify_modification(event.src_path)
        self._emit(WatchEvent(path=event.src_path, kind=kind))

    def on_deleted(self, event: FileSystemEvent):
        """Report removal and forget the path."""
        if self.watcher.is_ignored(event.src_path):
            return

        self.watcher.forget(event.src_path)
        self._emit(WatchEvent(path=event.src_path, kind=WatchEventKind.REMOVED))

    def on_moved(self, event: FileSystemEvent):
        """Report rename/move events with both ends."""
        src = event.src_path
        dest = getattr(event, "dest_path", None) or None

        if self.watcher.is_ignored(src) and (dest is None or self.watcher.is_ignored(dest)):
            return

        self.watcher.forget(src)
        self._emit(WatchEvent(path=src, kind=WatchEventKind.RENAMED, dest_path=dest))

        if dest and os.path.isdir(dest):
            self.watcher.add_recursive(dest)
        elif dest:
            self.watcher.remember_file(dest)

    def _emit(self, watch_event: WatchEvent):
        try:
            self.on_event(watch_event)
        except Exception as e:
            self.watcher.log.bind(path=watch_event.path, error=str(e)).error(
                f"Event callback failed for {watch_event.kind.value}: {watch_event.path}"
            )


class RecursiveWatcher:
    """Watches a directory tree, one non-recursive watch per directory."""

    def __init__(
        self,
        ignore_patterns: Optional[List[str]] = None,
        observer_factory: Callable[[], Observer] = Observer,
        log=None,
    ):
        """
        Initialize recursive watcher.

        Args:
            ignore_patterns: Glob patterns for paths that never produce events
            observer_factory: Callable building the watchdog observer
            log: Optional loguru logger, defaults to the process logger
        """
        self.log = (log or logger).bind(component="watcher")
        self.ignore_patterns = ignore_patterns or []
        self.observer_factory = observer_factory
        self.root: Optional[Path] = None
        self.observer: Optional[Observer] = None
        self.handler: Optional[RecursiveEventHandler] = None

        self._lock = threading.RLock()
        self._watched: Dict[str, Optional[ObservedWatch]] = {}
        self._signatures: Dict[str, FileSignature] = {}
        self._dir_modes: Dict[str, int] = {}
        self._stop_event = threading.Event()
        self._ready = threading.Event()

    # Lifecycle -------------------------------------------------------------------

    def watch(self, root, on_event: EventCallback) -> None:
        """
        Watch ``root`` recursively until stopped or the observer dies.

        Args:
            root: Directory to watch
            on_event: Callback invoked once per notification

        Raises:
            WatcherError: If the root is unusable or the observer cannot start
        """
        root_path = Path(root).expanduser()
        if not root_path.is_dir():
            raise WatcherError(f"Cannot watch {root_path}: not an existing directory")
        if not os.access(root_path, os.R_OK | os.X_OK):
            raise WatcherError(f"Cannot watch {root_path}: directory is not readable")

        self.root = root_path
        self.handler = RecursiveEventHandler(self, on_event)
        try:
            self.observer = self.observer_factory()
            self.observer.start()
        except Exception as e:
            raise WatcherError(f"Failed to start file system observer: {e}") from e

        self.log.info(f"Starting recursive watch on {root_path}")
        try:
            self.add_recursive(str(root_path))
            self._ready.set()
            self.log.success(f"Watching {len(self._watched)} directories under {root_path}")

            while not self._stop_event.is_set():
                if not self.observer.is_alive():
                    self.log.warning("File system observer exited, ending watch loop")
                    break
                self._stop_event.wait(0.5)
        finally:
            self._shutdown_observer()
            self._ready.set()

    def stop(self) -> None:
        """Signal the watch loop to end."""
        self._stop_event.set()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the initial walk finished (or watching failed)."""
        return self._ready.wait(timeout)

    def _shutdown_observer(self) -> None:
        if self.observer is None:
            return
        try:
            self.observer.stop()
            if self.observer.is_alive():
                self.observer.join()
        except RuntimeError as e:
            self.log.debug(f"Observer shutdown: {e}")
        self.log.info("File system observer stopped")

    # Registration ------------------------------------------------------------------

    def add_recursive(self, root: str) -> None:
        """Register ``root`` and all directories below it, skipping failures."""
        for directory in self._walk_directories(root):
            self._add_watch(directory)

    def _walk_directories(self, root: str):
        def _on_walk_error(error: OSError):
            self.log.bind(path=error.filename, error=str(error)).error(
                f"Cannot list directory {error.filename}: {error}"
            )

        for dirpath, dirnames, filenames in os.walk(root, onerror=_on_walk_error):
            if self.is_ignored(dirpath):
                dirnames[:] = []
                continue
            dirnames[:] = [d for d in dirnames if not self.is_ignored(os.path.join(dirpath, d))]
            self.remember_directory(dirpath)
            for name in filenames:
                self.remember_file(os.path.join(dirpath, name))
            yield dirpath

    def _add_watch(self, directory: str) -> None:
        # The observer takes its own lock while dispatching, so it is never
        # called with self._lock held.
        with self._lock:
            if directory in self._watched:
                return
            self._watched[directory] = None

        try:
            watch = self.observer.schedule(self.handler, directory, recursive=False)
        except Exception as e:
            with self._lock:
                self._watched.pop(directory, None)
            self.log.bind(path=directory, error=str(e)).error(f"Failed to watch {directory}: {e}")
            return

        with self._lock:
            self._watched[directory] = watch
        self.log.debug(f"Started watching: {directory}")

    def _remove_watches(self, watches: List[Optional[ObservedWatch]]) -> None:
        for watch in watches:
            if watch is None:
                continue
            try:
                self.observer.unschedule(watch)
            except (KeyError, RuntimeError, OSError) as e:
                self.log.debug(f"Watch for {watch.path} already gone: {e}")

    def is_watching(self, directory) -> bool:
        """Return True if a watch is registered for ``directory``."""
        with self._lock:
            return str(directory) in self._watched

    def watched_directories(self) -> List[str]:
        """Return the registered directories, sorted."""
        with self._lock:
            return sorted(self._watched)

    # Event support -----------------------------------------------------------------

    def is_ignored(self, path: str) -> bool:
        """Check a path against the configured ignore patterns."""
        if not self.ignore_patterns:
            return False
        candidate = Path(path)
        # Only components below the root count
        if self.root is not None:
            try:
                candidate = candidate.relative_to(self.root)
            except ValueError:
                pass
        return should_exclude_path(candidate, self.ignore_patterns)

    def remember_file(self, path: str) -> None:
        """Record the current signature of a file, if it still exists."""
        signature = _signature(path)
        if signature is None:
            return
        with self._lock:
            self._signatures[path] = signature

    def remember_directory(self, path: str) -> None:
        """Record the permission bits of a directory, if it still exists."""
        mode = _directory_mode(path)
        if mode is None:
            return
        with self._lock:
            self._dir_modes[path] = mode

    def directory_mode_changed(self, path: str) -> bool:
        """
        Return True if the permission bits of ``path`` differ from the last
        recorded ones, and record the new bits.
        """
        current = _directory_mode(path)
        if current is None:
            return False
        with self._lock:
            previous = self._dir_modes.get(path)
            self._dir_modes[path] = current
        return previous is not None and previous != current

    def forget(self, path: str) -> None:
        """Drop state for ``path`` and anything below it."""
        prefix = path.rstrip(os.sep) + os.sep
        with self._lock:
            self._signatures.pop(path, None)
            for known in [p for p in self._signatures if p.startswith(prefix)]:
                del self._signatures[known]
            for known in [d for d in self._dir_modes if d == path or d.startswith(prefix)]:
                del self._dir_modes[known]
            # Dropping the watch lets a directory of the same name be registered again
            gone = [d for d in self._watched if d == path or d.startswith(prefix)]
            watches = [self._watched.pop(d) for d in gone]

        if self.observer is not None:
            self._remove_watches(watches)

    def classify_modification(self, path: str) -> WatchEventKind:
        """
        Tell a permission change apart from a content change.

        A modification where only the file mode differs from the last known
        signature is reported as a permission change.
        """
        current = _signature(path)
        if current is None:
            return WatchEventKind.MODIFIED

        with self._lock:
            previous = self._signatures.get(path)
            self._signatures[path] = current

        if previous is not None and previous[:2] == current[:2] and previous[2] != current[2]:
            return WatchEventKind.PERMISSION_CHANGED
        return WatchEventKind.MODIFIED


def _signature(path: str) -> Optional[FileSignature]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return (st.st_mtime_ns, st.st_size, stat.S_IMODE(st.st_mode))


def _directory_mode(path: str) -> Optional[int]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    if not stat.S_ISDIR(st.st_mode):
        return None
    return stat.S_IMODE(st.st_mode)
