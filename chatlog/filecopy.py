"""Temporary copies of files that other processes may hold open or rewrite.

A copy is reused for as long as its original has not grown newer or changed
size. Superseded copies are deleted after a delay so that readers still
holding them can finish. The original-to-copy mapping is kept in a JSON file
inside the temporary directory so that copies survive a restart.
"""

from __future__ import annotations

import json
import os
import queue
import re
import shutil
import stat
import sys
import tempfile
import threading
import time
from collections import defaultdict
from dataclasses import dataclass

__all__ = [
    "TempCopyManager",
    "get_temp_copy",
    "cleanup_temp_files",
    "DEFAULT_DELETION_DELAY",
    "MAPPING_FILE_NAME",
]

DEFAULT_DELETION_DELAY = 30.0
MAPPING_FILE_NAME = "file_mappings.json"

_CLEANUP_INTERVAL = 30.0
_QUEUE_SIZE = 1000
_DELETION_WORKERS = 2
_COPY_RETRIES = 3
_COPY_BUFFER = 256 * 1024
_HASH_PREFIX_LEN = 8
_LEADING_INT_RE = re.compile(r"[+-]?[0-9]+")
_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_-]")


@dataclass(frozen=True)
class _Meta:
    mtime_ns: int
    size: int


@dataclass(frozen=True)
class _Deletion:
    path: str
    due: float


def _fnv1a_hex(text: str) -> str:
    value = 0x811C9DC5
    for byte in text.encode("utf-8"):
        value = ((value ^ byte) * 0x01000193) & 0xFFFFFFFF
    return f"{value:x}"


def _ext(path: str) -> str:
    name = os.path.basename(path)
    dot = name.rfind(".")
    return name[dot:] if dot >= 0 else ""


def _strip_ext(path: str) -> str:
    ext = _ext(path)
    return path[: len(path) - len(ext)] if ext else path


def _copy_prefix(original_path: str) -> tuple[str, str]:
    """Return the ``basename_hash`` prefix and extension for copies of a file."""
    name = os.path.basename(original_path)
    ext = _ext(name)
    base = name[: len(name) - len(ext)] or "file"
    return f"{base}_{_fnv1a_hex(original_path)[:_HASH_PREFIX_LEN]}", ext


def _process_name() -> str:
    executable = sys.argv[0] if sys.argv and sys.argv[0] else sys.executable
    if not executable:
        return "unknown"
    base = os.path.basename(executable)
    ext = _ext(base)
    if ext:
        base = base[: len(base) - len(ext)]
    return _UNSAFE_NAME_RE.sub("_", base)


def _default_temp_dir() -> str:
    root = tempfile.gettempdir()
    for candidate in (os.path.join(root, "filecopy_" + _process_name()),
                      os.path.join(root, "filecopy")):
        try:
            os.makedirs(candidate, mode=0o755, exist_ok=True)
            return candidate
        except OSError:
            continue
    return root


def _remove_now(path: str) -> None:
    if not path:
        return
    try:
        os.remove(path)
    except OSError:
        pass


def _copy_file(src: str, dst: str) -> None:
    with open(src, "rb") as source, open(dst, "wb") as target:
        shutil.copyfileobj(source, target, _COPY_BUFFER)
        target.flush()
        os.fsync(target.fileno())


def _copy_with_retry(src: str, dst: str, attempts: int) -> None:
    last: OSError | None = None
    for attempt in range(attempts):
        try:
            _copy_file(src, dst)
            return
        except OSError as exc:
            last = exc
            time.sleep(0.1 * (attempt + 1))
    raise OSError(f"failed to copy file after {attempts} attempts: {last}") from last


def _regular_files(directory: str) -> list[str]:
    try:
        with os.scandir(directory) as it:
            return sorted(entry.name for entry in it if not entry.is_dir())
    except OSError:
        return []


class TempCopyManager:
    """Keeps up-to-date temporary copies of files inside one directory."""

    def __init__(self, temp_dir: str | None = None,
                 deletion_delay: float = DEFAULT_DELETION_DELAY) -> None:
        if temp_dir is None:
            temp_dir = _default_temp_dir()
        else:
            os.makedirs(temp_dir, mode=0o755, exist_ok=True)
        self.temp_dir = temp_dir
        self.deletion_delay = deletion_delay
        self.mapping_file = os.path.join(temp_dir, MAPPING_FILE_NAME)

        self._file_locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()
        self._map_lock = threading.RLock()
        self._temp_paths: dict[str, str] = {}
        self._metadata: dict[str, _Meta] = {}
        self._old_versions: dict[str, str] = {}

        self._deletions: queue.Queue[_Deletion | None] = queue.Queue(_QUEUE_SIZE)
        self._stop = threading.Event()
        self._closed = False

        self._load_mappings()
        self._cleanup_existing()

        self._threads = [
            threading.Thread(target=self._deletion_worker, daemon=True,
                             name=f"filecopy-delete-{n}")
            for n in range(_DELETION_WORKERS)
        ]
        self._threads.append(
            threading.Thread(target=self._periodic, daemon=True, name="filecopy-cleanup")
        )
        for thread in self._threads:
            thread.start()

    def __enter__(self) -> TempCopyManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _load_mappings(self) -> None:
        try:
            with open(self.mapping_file, encoding="utf-8") as handle:
                entries = json.load(handle)
        except (OSError, ValueError):
            return
        if not isinstance(entries, list):
            return
        with self._map_lock:
            for entry in entries:
                try:
                    original = entry["original_path"]
                    temp = entry["temp_path"]
                    meta = _Meta(int(entry["metadata"]["mod_time"]),
                                 int(entry["metadata"]["size"]))
                    info = os.stat(original)
                    os.stat(temp)
                except (KeyError, TypeError, ValueError, OSError):
                    continue
                if info.st_mtime_ns == meta.mtime_ns and info.st_size == meta.size:
                    self._temp_paths[original] = temp
                    self._metadata[original] = meta

    def save_mappings(self) -> None:
        """Write the current mappings to the mapping file; failures are ignored."""
        with self._map_lock:
            entries = [
                {
                    "original_path": original,
                    "temp_path": temp,
                    "metadata": {"mod_time": meta.mtime_ns, "size": meta.size},
                }
                for original, temp in self._temp_paths.items()
                if (meta := self._metadata.get(original)) is not None
            ]
        try:
            with open(self.mapping_file, "w", encoding="utf-8") as handle:
                json.dump(entries, handle, indent=2)
                handle.write("\n")
        except OSError:
            pass

    def _cleanup_existing(self) -> None:
        """Keep only the newest copy in each ``basename_hash`` group, plus known ones."""
        with self._map_lock:
            known = set(self._temp_paths.values())
        groups: defaultdict[str, list[tuple[str, int]]] = defaultdict(list)
        for name in _regular_files(self.temp_dir):
            if name == MAPPING_FILE_NAME:
                continue
            path = os.path.join(self.temp_dir, name)
            parts = name.split("_")
            if len(parts) < 3:
                _remove_now(path)
                continue
            stamp = _LEADING_INT_RE.match(parts[2].split(".")[0])
            if stamp is None:
                _remove_now(path)
                continue
            groups[f"{parts[0]}_{parts[1]}"].append((path, int(stamp.group())))

        for files in groups.values():
            newest_path, newest_stamp = "", 0
            for path, stamp in files:
                if stamp > newest_stamp:
                    newest_path, newest_stamp = path, stamp
            for path, _ in files:
                if path != newest_path and path not in known:
                    _remove_now(path)

    def _file_lock(self, path: str) -> threading.Lock:
        with self._locks_guard:
            return self._file_locks[path]

    def get_temp_copy(self, original_path: str) -> str:
        """Return the path of a current temporary copy of ``original_path``.

        The previous copy is reused while the original is unchanged.
        Raises OSError when the original cannot be read or copied.
        """
        with self._file_lock(original_path):
            try:
                info = os.stat(original_path)
            except OSError as exc:
                raise OSError(exc.errno, f"original file does not exist: {exc.strerror}",
                              original_path) from exc
            current = _Meta(info.st_mtime_ns, info.st_size)

            with self._map_lock:
                cached_path = self._temp_paths.get(original_path)
                cached_meta = self._metadata.get(original_path)
            if cached_path is not None and cached_meta is not None:
                changed = (current.mtime_ns > cached_meta.mtime_ns
                           or current.size != cached_meta.size)
                if not changed:
                    try:
                        with open(cached_path, "rb"):
                            return cached_path
                    except OSError:
                        pass

            prefix, ext = _copy_prefix(original_path)
            stamp = time.time_ns()
            temp_path = os.path.join(self.temp_dir, f"{prefix}_{stamp}{ext}")
            while os.path.exists(temp_path):
                stamp += 1
                temp_path = os.path.join(self.temp_dir, f"{prefix}_{stamp}{ext}")
            _copy_with_retry(original_path, temp_path, _COPY_RETRIES)

            with self._map_lock:
                old_path = self._temp_paths.get(original_path, "")
                if old_path and old_path != temp_path:
                    previous = self._old_versions.get(original_path)
                    if previous is not None and previous != old_path:
                        _remove_now(previous)
                    self._old_versions[original_path] = old_path
                    self._schedule(old_path)
                self._temp_paths[original_path] = temp_path
                self._metadata[original_path] = current

            self.save_mappings()
            self._cleanup_related(original_path, temp_path, old_path)
            return temp_path

    def _cleanup_related(self, original_path: str, current: str, known_old: str) -> None:
        prefix, _ = _copy_prefix(original_path)
        keep = {_strip_ext(current), _strip_ext(known_old)}
        for name in _regular_files(self.temp_dir):
            if name == MAPPING_FILE_NAME:
                continue
            path = os.path.join(self.temp_dir, name)
            if _strip_ext(path) in keep:
                continue
            if name.startswith(prefix):
                _remove_now(path)

    def _schedule(self, path: str) -> None:
        if not path or not os.path.exists(path):
            return
        try:
            self._deletions.put_nowait(_Deletion(path, time.monotonic() + self.deletion_delay))
        except queue.Full:
            _remove_now(path)

    def _deletion_worker(self) -> None:
        while True:
            item = self._deletions.get()
            if item is None:
                return
            remaining = item.due - time.monotonic()
            if remaining > 0 and self._stop.wait(remaining):
                return
            with self._map_lock:
                active = item.path in self._temp_paths.values()
            if not active:
                _remove_now(item.path)

    def _periodic(self) -> None:
        while not self._stop.wait(_CLEANUP_INTERVAL):
            self.cleanup_temp_files()
            self.save_mappings()

    def cleanup_temp_files(self) -> None:
        """Schedule deletion of files that are neither current copies nor old versions.

        Candidates are compared, and scheduled, by their path without extension.
        """
        with self._map_lock:
            active = {_strip_ext(p) for p in self._temp_paths.values()}
            active.update(_strip_ext(p) for p in self._old_versions.values())
        for name in _regular_files(self.temp_dir):
            if name == MAPPING_FILE_NAME:
                continue
            candidate = _strip_ext(os.path.join(self.temp_dir, name))
            if candidate not in active:
                self._schedule(candidate)

    def close(self) -> None:
        """Stop the background threads and save the mappings."""
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        for _ in range(_DELETION_WORKERS):
            while True:
                try:
                    self._deletions.put(None, timeout=0.1)
                    break
                except queue.Full:
                    try:
                        self._deletions.get_nowait()
                    except queue.Empty:
                        pass
        for thread in self._threads:
            thread.join()
        self.save_mappings()


_default_lock = threading.Lock()
_default_holder: list[TempCopyManager] = []


def _default_manager() -> TempCopyManager:
    with _default_lock:
        if not _default_holder:
            _default_holder.append(TempCopyManager())
        return _default_holder[0]


def get_temp_copy(original_path: str) -> str:
    """Return a temporary copy of ``original_path`` from the shared manager."""
    return _default_manager().get_temp_copy(original_path)


def cleanup_temp_files() -> None:
    """Schedule deletion of unused files held by the shared manager."""
    _default_manager().cleanup_temp_files()