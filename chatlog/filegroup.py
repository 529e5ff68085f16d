"""Groups of files that share a name pattern and a set of change callbacks."""

from __future__ import annotations

import enum
import logging
import os
import re
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass

__all__ = ["EventOp", "FileEvent", "FileChangeCallback", "FileGroup"]

_log = logging.getLogger(__name__)


class EventOp(enum.Flag):
    """Kinds of file system change."""

    CREATE = 1
    WRITE = 2
    REMOVE = 4
    RENAME = 8
    CHMOD = 16


@dataclass(frozen=True)
class FileEvent:
    """A change to the file or directory at ``name``."""

    name: str
    op: EventOp


FileChangeCallback = Callable[[FileEvent], object]


def _walk(root: str, relative: str = "") -> Iterator[str]:
    """Yield relative paths of non-directories in lexical order, skipping unreadable dirs."""
    full = os.path.join(root, relative) if relative else root
    try:
        with os.scandir(full) as it:
            entries = sorted(it, key=lambda entry: entry.name)
    except OSError:
        return
    for entry in entries:
        rel = os.path.join(relative, entry.name) if relative else entry.name
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
        except OSError:
            continue
        if is_dir:
            yield from _walk(root, rel)
        else:
            yield rel


class FileGroup:
    """Files below one root directory whose names match a regular expression."""

    def __init__(self, group_id: str, root_dir: str, pattern: str,
                 blacklist: list[str] | None = None) -> None:
        try:
            compiled = re.compile(pattern)
        except re.error as exc:
            raise ValueError(f"invalid pattern '{pattern}': {exc}") from exc
        self.id = group_id
        self.root_dir = os.path.normpath(root_dir)
        self.pattern = compiled
        self.pattern_str = pattern
        self.blacklist = list(blacklist or [])
        self._callbacks: list[FileChangeCallback] = []
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"FileGroup(id={self.id!r}, root_dir={self.root_dir!r}, pattern={self.pattern_str!r})"

    @property
    def callbacks(self) -> tuple[FileChangeCallback, ...]:
        """A snapshot of the registered callbacks."""
        with self._lock:
            return tuple(self._callbacks)

    def add_callback(self, callback: FileChangeCallback) -> None:
        """Register a callback to run for matching events."""
        with self._lock:
            self._callbacks.append(callback)

    def remove_callback(self, callback: FileChangeCallback) -> bool:
        """Unregister the first callback equal to ``callback``; report whether one was found."""
        with self._lock:
            for index, registered in enumerate(self._callbacks):
                if registered is callback or registered == callback:
                    del self._callbacks[index]
                    return True
        return False

    def match(self, path: str) -> bool:
        """Return True if ``path`` lies under the root, matches the pattern and is not blacklisted."""
        path = os.path.normpath(path)
        if os.path.isabs(path) != os.path.isabs(self.root_dir):
            return False
        try:
            rel = os.path.relpath(path, self.root_dir)
        except ValueError:
            return False
        if rel.startswith(".."):
            return False
        if not self.pattern.search(os.path.basename(path)):
            return False
        return not any(item in rel for item in self.blacklist)

    def list_files(self) -> list[str]:
        """Scan the root directory and return the matching files."""
        return [
            absolute
            for absolute in (os.path.join(self.root_dir, rel) for rel in _walk(self.root_dir))
            if self.match(absolute)
        ]

    def list_matching_directories(self) -> set[str]:
        """Return the directories that hold at least one matching file."""
        return {os.path.dirname(path) for path in self.list_files()}

    def handle_event(self, event: FileEvent) -> None:
        """Run every callback in its own thread if the event concerns this group."""
        if not self.match(event.name):
            return
        for callback in self.callbacks:
            threading.Thread(
                target=self._run_callback, args=(callback, event), daemon=True
            ).start()

    @staticmethod
    def _run_callback(callback: FileChangeCallback, event: FileEvent) -> None:
        try:
            callback(event)
        except Exception:
            _log.error("Callback error: file=%s op=%s", event.name, event.op.name,
                       exc_info=True)