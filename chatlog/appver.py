"""Version details of an installed application."""

from __future__ import annotations

import plistlib
import posixpath
import re
import sys
from dataclasses import dataclass
from xml.parsers.expat import ExpatError

__all__ = ["INFO_FILE", "AppInfo", "read_app_info"]

INFO_FILE = "Info.plist"

_INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass
class AppInfo:
    """Version details of the executable at ``file_path``."""

    file_path: str
    company_name: str = ""
    file_description: str = ""
    version: int = 0
    full_version: str = ""
    legal_copyright: str = ""
    product_name: str = ""
    product_version: str = ""


def _bundle_info_path(file_path: str) -> str:
    """Locate ``Info.plist`` two levels above an executable inside an app bundle."""
    parts = file_path.split("/")
    if len(parts) < 2:
        raise ValueError(f"not a path inside an application bundle: {file_path!r}")
    kept = [part for part in parts[:-2] if part]
    joined = posixpath.join(*kept, INFO_FILE) if kept else INFO_FILE
    return "/" + posixpath.normpath(joined)


def _major(version: str) -> int:
    head = version.split(".")[0]
    return int(head) if _INT_RE.fullmatch(head) else 0


def _read_bundle(info: AppInfo) -> None:
    with open(_bundle_info_path(info.file_path), "rb") as handle:
        raw = handle.read()
    try:
        data = plistlib.loads(raw)
    except (plistlib.InvalidFileException, ExpatError, ValueError) as exc:
        raise ValueError(f"invalid property list: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError("property list does not hold a dictionary")
    full = data.get("CFBundleShortVersionString", "")
    info.full_version = full if isinstance(full, str) else ""
    info.version = _major(info.full_version)
    company = data.get("NSHumanReadableCopyright", "")
    info.company_name = company if isinstance(company, str) else ""


def read_app_info(file_path: str) -> AppInfo:
    """Read the version details of the executable at ``file_path``.

    On macOS they come from the bundle's Info.plist; OSError and ValueError
    are raised when it is missing or malformed. Elsewhere only the path is set.
    """
    info = AppInfo(file_path=file_path)
    if sys.platform == "darwin":
        _read_bundle(info)
    return info