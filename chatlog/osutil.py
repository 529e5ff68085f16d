"""File system helpers."""

from __future__ import annotations

import logging
import os
import re
import stat
import sys
from collections.abc import Iterator

__all__ = [
    "find_files_with_patterns",
    "default_work_dir",
    "get_dir_size",
    "byte_count_si",
    "prepare_dir",
]

_log = logging.getLogger(__name__)


def _walk(directory: str, relative: str, recursive: bool) -> Iterator[tuple[str, str]]:
    """Yield ``(relative path, name)`` of files in lexical order."""
    full = os.path.join(directory, relative) if relative else directory
    with os.scandir(full) as it:
        entries = sorted(it, key=lambda entry: entry.name)
    for entry in entries:
        rel = os.path.join(relative, entry.name) if relative else entry.name
        if entry.is_dir(follow_symlinks=False):
            if recursive:
                yield from _walk(directory, rel, recursive)
        else:
            yield rel, entry.name


def find_files_with_patterns(directory: str, pattern: str, recursive: bool) -> list[str]:
    """Return paths of files under ``directory`` whose names match ``pattern``.

    Raises ValueError for a bad pattern and OSError when the directory
    cannot be read or is not a directory.
    """
    try:
        regex = re.compile(pattern)
    except re.error as exc:
        raise ValueError(f"invalid regular expression {pattern!r}: {exc}") from exc

    if not stat.S_ISDIR(os.stat(directory).st_mode):
        raise NotADirectoryError(f"{directory!r} is not a directory")

    return [
        os.path.normpath(os.path.join(directory, rel))
        for rel, name in _walk(directory, "", recursive)
        if regex.search(name)
    ]


def default_work_dir(account: str) -> str:
    """Return the default working directory, optionally for one account."""
    if sys.platform == "win32":
        base = os.path.join(os.environ.get("USERPROFILE", ""), "Documents", "chatlog")
    elif sys.platform == "darwin":
        base = os.path.join(os.environ.get("HOME", ""), "Documents", "chatlog")
    else:
        base = os.path.join(os.environ.get("HOME", ""), "chatlog")
    return os.path.join(base, account) if account else base


def _total_size(path: str) -> int:
    try:
        info = os.lstat(path)
    except OSError:
        return 0
    total = info.st_size
    if stat.S_ISDIR(info.st_mode):
        try:
            names = os.listdir(path)
        except OSError:
            return total
        total += sum(_total_size(os.path.join(path, name)) for name in names)
    return total


def get_dir_size(directory: str) -> str:
    """Return the total size of everything under ``directory`` in SI units."""
    return byte_count_si(_total_size(directory))


def byte_count_si(size: int) -> str:
    """Format a byte count with decimal (SI) prefixes."""
    unit = 1000
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'kMGTPE'[exp]}B"


def prepare_dir(path: str) -> None:
    """Make sure ``path`` exists as a directory, creating it when missing."""
    try:
        info = os.stat(path)
    except FileNotFoundError:
        os.makedirs(path, mode=0o755, exist_ok=True)
        return
    if not stat.S_ISDIR(info.st_mode):
        _log.debug("%s is not a directory", path)
        raise NotADirectoryError(f"{path} is not a directory")