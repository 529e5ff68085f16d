"""Version and build information."""

from __future__ import annotations

import platform
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _distribution_version

__all__ = ["VERSION", "get_more"]

_DISTRIBUTION = "chatlog"
_ARCH_NAMES = {"x86_64": "amd64", "amd64": "amd64", "aarch64": "arm64", "arm64": "arm64"}


def _detect_version() -> str:
    try:
        found = _distribution_version(_DISTRIBUTION)
    except PackageNotFoundError:
        return "(dev)"
    return found or "(dev)"


VERSION = _detect_version()


def _os_name() -> str:
    return "windows" if sys.platform == "win32" else sys.platform


def _arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine or "unknown")


def _build_info() -> str:
    lines = [
        f"python\t{platform.python_version()}",
        f"path\t{_DISTRIBUTION}",
        f"mod\t{_DISTRIBUTION}\t{VERSION}",
    ]
    return "\n".join(lines) + "\n"


def get_more(mod: bool) -> str:
    """Describe the build: module details when ``mod`` is true, else a version line."""
    if mod:
        info = _build_info()
        if info:
            return "\t" + info[:-1].replace("\n", "\n\t") + "\n"
    runtime = f"{platform.python_implementation().lower()}{platform.python_version()}"
    return f"version {VERSION} {runtime} {_os_name()}/{_arch()}\n"