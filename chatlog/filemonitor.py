"""Watching of directories for changes to the files of several file groups."""

from __future__ import annotations

import logging
import os
import queue
import threading

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from chatlog.filegroup import EventOp, FileEvent, FileGroup

__all__ = ["FileMonitor"]

_log = logging.getLogger(__name__)


def _convert(event: FileSystemEvent) -> list[FileEvent]:
    src = os.fsdecode(event.src_path)
    kind = event.event_type
    if kind == EVENT_TYPE_CREATED:
        return [FileEvent(src, EventOp.CREATE)]
    if kind == EVENT_TYPE_MODIFIED and not event.is_directory:
        return [FileEvent(src, EventOp.WRITE)]
    if kind == EVENT_TYPE_DELETED:
        return [FileEvent(src, EventOp.REMOVE)]
    if kind == EVENT_TYPE_MOVED:
        converted = [FileEvent(src, EventOp.RENAME)]
        dest = os.fsdecode(getattr(event, "dest_path", "") or "")
        if dest:
            converted.append(FileEvent(dest, EventOp.CREATE))
        return converted
    return []


class _Forwarder(FileSystemEventHandler):
    def __init__(self, monitor: FileMonitor) -> None:
        super().__init__()
        self._monitor = monitor

    def on_any_event(self, event: FileSystemEvent) -> None:
        for converted in _convert(event):
            self._monitor._enqueue(converted)


class FileMonitor:
    """Watches the directories of its file groups and forwards events to them."""

    def __init__(self) -> None:
        self._groups: dict[str, FileGroup] = {}
        self._watches: dict[str, ObservedWatch] = {}
        self._blacklist: list[str] = []
        self._lock = threading.RLock()
        self._state_lock = threading.RLock()
        self._running = False
        self._observer: Observer | None = None
        self._events: queue.Queue[FileEvent | None] = queue.Queue()
        self._loop: threading.Thread | None = None
        self._handler = _Forwarder(self)

    def set_blacklist(self, blacklist: list[str]) -> None:
        """Set substrings that keep a directory from being watched."""
        with self._lock:
            self._blacklist = list(blacklist)

    def add_group(self, group: FileGroup) -> None:
        """Add a group, watching its directories at once if the monitor runs."""
        if group is None:
            raise ValueError("group cannot be None")
        running = self.is_running()
        with self._lock:
            if group.id in self._groups:
                raise ValueError(f"group with ID '{group.id}' already exists")
            self._groups[group.id] = group
        if running:
            try:
                self._setup_watch_for_group(group)
            except (OSError, RuntimeError):
                with self._lock:
                    self._groups.pop(group.id, None)
                raise

    def create_group(self, group_id: str, root_dir: str, pattern: str,
                     blacklist: list[str] | None = None) -> FileGroup:
        """Create a group and add it to the monitor."""
        group = FileGroup(group_id, root_dir, pattern, blacklist)
        self.add_group(group)
        return group

    def remove_group(self, group_id: str) -> None:
        """Remove a group. Raises KeyError if there is none with that ID."""
        with self._lock:
            if group_id not in self._groups:
                raise KeyError(f"group with ID '{group_id}' does not exist")
            del self._groups[group_id]

    def get_groups(self) -> list[FileGroup]:
        """Return all groups."""
        with self._lock:
            return list(self._groups.values())

    def get_group(self, group_id: str) -> FileGroup | None:
        """Return the group with ``group_id``, or None."""
        with self._lock:
            return self._groups.get(group_id)

    def start(self) -> None:
        """Start watching. Raises RuntimeError if already running, OSError if a watch fails."""
        with self._state_lock:
            if self._running:
                raise RuntimeError("file monitor is already running")
            observer = Observer()
            try:
                observer.start()
            except Exception as exc:
                raise RuntimeError(f"failed to create watcher: {exc}") from exc
            self._observer = observer
            events: queue.Queue[FileEvent | None] = queue.Queue()
            self._events = events
            with self._lock:
                groups = list(self._groups.values())
                self._watches = {}
            self._running = True

        for group in groups:
            try:
                self._setup_watch_for_group(group)
            except (OSError, RuntimeError) as exc:
                observer.stop()
                observer.join()
                with self._state_lock:
                    self._observer = None
                    self._running = False
                raise OSError(f"failed to setup watch for group '{group.id}': {exc}") from exc

        loop = threading.Thread(target=self._watch_loop, args=(events,), daemon=True,
                                name="filemonitor-loop")
        with self._state_lock:
            self._loop = loop
        loop.start()

    def stop(self) -> None:
        """Stop watching. Raises RuntimeError if the monitor is not running."""
        with self._state_lock:
            if not self._running:
                raise RuntimeError("file monitor is not running")
            observer = self._observer
            loop = self._loop
            self._events.put(None)
            self._running = False
            self._loop = None

        if loop is not None and loop is not threading.current_thread():
            loop.join()
        if observer is not None:
            observer.stop()
            observer.join()
            with self._state_lock:
                self._observer = None
        with self._lock:
            self._watches = {}

    def is_running(self) -> bool:
        """Return whether the monitor is running."""
        with self._state_lock:
            return self._running

    def _enqueue(self, event: FileEvent) -> None:
        self._events.put(event)

    def _add_watch_dir(self, dir_path: str) -> None:
        with self._lock:
            for pattern in self._blacklist:
                if pattern in dir_path:
                    _log.debug("Skipping blacklisted directory %s", dir_path)
                    return
            if dir_path in self._watches:
                return
            observer = self._observer
            if observer is None:
                raise RuntimeError("file monitor is not running")
            if not os.path.exists(dir_path):
                raise FileNotFoundError(
                    f"failed to watch directory '{dir_path}': no such file or directory"
                )
            try:
                watch = observer.schedule(self._handler, dir_path, recursive=False)
            except OSError as exc:
                raise OSError(f"failed to watch directory '{dir_path}': {exc}") from exc
            self._watches[dir_path] = watch

    def _setup_watch_for_group(self, group: FileGroup) -> None:
        if not self.is_running():
            raise RuntimeError("file monitor is not running")
        matching = group.list_matching_directories()
        self._add_watch_dir(os.path.normpath(group.root_dir))
        for directory in sorted(matching):
            self._add_watch_dir(directory)

    def refresh_watches(self) -> None:
        """Re-scan every group and drop watches on directories no longer needed."""
        if not self.is_running():
            raise RuntimeError("file monitor is not running")
        with self._lock:
            groups = list(self._groups.values())
            old_watches = self._watches
            self._watches = {}

        for group in groups:
            try:
                self._setup_watch_for_group(group)
            except (OSError, RuntimeError) as exc:
                raise OSError(f"failed to refresh watches for group '{group.id}': {exc}") from exc

        observer = self._observer
        for directory, watch in old_watches.items():
            with self._lock:
                still_watched = directory in self._watches
            if not still_watched and observer is not None:
                try:
                    observer.unschedule(watch)
                except (KeyError, OSError):
                    pass
                _log.debug("Removed watch for directory %s", directory)

    def _watch_loop(self, events: queue.Queue[FileEvent | None]) -> None:
        while True:
            event = events.get()
            if event is None:
                return
            try:
                self._process(event)
            except Exception:
                _log.exception("Error processing event for %s", event.name)

    def _process(self, event: FileEvent) -> None:
        if event.op & (EventOp.CREATE | EventOp.RENAME) and os.path.isdir(event.name):
            try:
                self._add_watch_dir(event.name)
            except (OSError, RuntimeError) as exc:
                _log.error("Error watching new directory %s: %s", event.name, exc)
            return

        if event.op & (EventOp.CREATE | EventOp.WRITE):
            with self._lock:
                should_watch = any(group.match(event.name) for group in self._groups.values())
            if should_watch:
                directory = os.path.dirname(event.name)
                try:
                    self._add_watch_dir(directory)
                except (OSError, RuntimeError) as exc:
                    _log.error("Error watching directory of matching file %s: %s",
                               directory, exc)

        for group in self.get_groups():
            group.handle_event(event)