"""Configuration files kept as JSON, YAML or TOML in a per-application directory.

Keys are case-insensitive and stored in lower case. Values set with
:meth:`Config.set` override those read from the file and are written back
immediately.
"""

from __future__ import annotations

import copy
import dataclasses
import json
import logging
import os
import stat
import tempfile
import tomllib
from decimal import Decimal
from pathlib import Path
from typing import Any, Union, get_args, get_origin

import tomli_w
import yaml

from chatlog.defaults import _field_types, set_default

__all__ = ["DEFAULT_CONFIG_TYPE", "ConfigError", "Config", "prepare_dir"]

DEFAULT_CONFIG_TYPE = "json"
_SUPPORTED_TYPES = ("json", "yaml", "yml", "toml")
_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_NONE_TYPE = type(None)

_log = logging.getLogger(__name__)


class ConfigError(Exception):
    """A configuration could not be set up, read, decoded or written."""


def prepare_dir(path: str) -> None:
    """Make sure ``path`` is a directory, creating it when it is missing."""
    try:
        info = os.stat(path)
    except FileNotFoundError:
        os.makedirs(path, mode=0o755, exist_ok=True)
        return
    if not stat.S_ISDIR(info.st_mode):
        _log.debug("%s is not a directory", path)
        raise ConfigError("invalid directory path")


def _lower_keys(data: Any) -> Any:
    if isinstance(data, dict):
        return {str(key).lower(): _lower_keys(value) for key, value in data.items()}
    return data


def _merge(base: dict, over: dict) -> dict:
    result = copy.deepcopy(base)
    for key, value in over.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _parse(text: str, kind: str) -> dict:
    try:
        if kind == "json":
            data = json.loads(text)
        elif kind in ("yaml", "yml"):
            data = yaml.safe_load(text)
        else:
            data = tomllib.loads(text)
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot parse {kind} config: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{kind} config must hold a mapping")
    return _lower_keys(data)


def _dump(data: dict, kind: str) -> str:
    try:
        if kind == "json":
            return json.dumps(data, indent=2, ensure_ascii=False)
        if kind in ("yaml", "yml"):
            return yaml.safe_dump(data, default_flow_style=False, allow_unicode=True)
        return tomli_w.dumps(data)
    except (TypeError, ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot write {kind} config: {exc}") from exc


def _check_type(kind: str) -> str:
    if kind not in _SUPPORTED_TYPES:
        raise ConfigError(f"Unsupported Config Type {kind!r}")
    return kind


def _format_float(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return format(Decimal(repr(value)), "f")


def _parse_int(text: str) -> int:
    text = text.strip()
    if not text:
        return 0
    try:
        return int(text, 0)
    except ValueError:
        return int(text, 10)


def _optional_inner(tp: Any) -> Any | None:
    origin = get_origin(tp)
    if origin is Union or (origin is not None and origin.__class__.__name__ == "UnionType"):
        args = get_args(tp)
        rest = [arg for arg in args if arg is not _NONE_TYPE]
        if len(args) == 2 and len(rest) == 1:
            return rest[0]
    return None


def _decode_into(obj: Any, data: dict) -> None:
    hints = _field_types(type(obj))
    lookup = {f.name.lower(): f.name for f in dataclasses.fields(obj)}
    for key, value in data.items():
        name = lookup.get(str(key).lower())
        if name is None:
            continue
        hint = hints.get(name, Any)
        if isinstance(hint, str):
            hint = Any
        setattr(obj, name, _coerce(value, hint, getattr(obj, name)))


def _coerce(value: Any, tp: Any, current: Any) -> Any:
    """Convert ``value`` to ``tp`` with the lenient rules used for config files."""
    if tp is Any or tp is object:
        return value
    inner = _optional_inner(tp)
    if inner is not None:
        return None if value is None else _coerce(value, inner, current)
    if value is None:
        return current

    if isinstance(tp, type) and dataclasses.is_dataclass(tp):
        if not isinstance(value, dict):
            raise ConfigError(f"cannot decode {value!r} into {tp.__name__}")
        if isinstance(current, tp):
            target = current
        else:
            try:
                target = tp()
            except TypeError as exc:
                raise ConfigError(f"cannot create {tp.__name__}: {exc}") from exc
        _decode_into(target, value)
        return target

    origin = get_origin(tp) or tp
    args = get_args(tp)
    if origin is list:
        elem = args[0] if args else Any
        if isinstance(value, str):
            items: list[Any] = [] if value == "" else value.split(",")
        elif isinstance(value, (list, tuple)):
            items = list(value)
        else:
            items = [value]
        return [_coerce(item, elem, None) for item in items]
    if origin is dict:
        if not isinstance(value, dict):
            raise ConfigError(f"cannot decode {value!r} into a dict")
        val_tp = args[1] if len(args) == 2 else Any
        return {key: _coerce(item, val_tp, None) for key, item in value.items()}

    try:
        if tp is bool:
            if isinstance(value, bool):
                return value
            if isinstance(value, (int, float)):
                return value != 0
            if isinstance(value, str):
                if value == "" or value in _FALSE:
                    return False
                if value in _TRUE:
                    return True
        elif tp is int:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, (int, float)):
                return int(value)
            if isinstance(value, str):
                return _parse_int(value)
        elif tp is float:
            if isinstance(value, (bool, int, float)):
                return float(value)
            if isinstance(value, str):
                return float(value) if value.strip() else 0.0
        elif tp is str:
            if isinstance(value, str):
                return value
            if isinstance(value, bool):
                return "1" if value else "0"
            if isinstance(value, int):
                return str(value)
            if isinstance(value, float):
                return _format_float(value)
        else:
            return value
    except ValueError as exc:
        raise ConfigError(f"cannot decode {value!r} as {tp.__name__}: {exc}") from exc
    raise ConfigError(f"cannot decode {value!r} as {getattr(tp, '__name__', tp)}")


class Config:
    """A named configuration file inside a directory of its own."""

    def __init__(self, name: str, config_type: str = "", path: str = "") -> None:
        if not name:
            raise ConfigError("config name not specified")
        config_type = _check_type(config_type or DEFAULT_CONFIG_TYPE)
        if not path:
            try:
                home = str(Path.home())
            except RuntimeError:
                home = tempfile.gettempdir()
            path = home + os.sep + "." + name
        prepare_dir(path)
        self.name = name
        self.config_type = config_type
        self.path = path
        self._file: str | None = None
        self._file_type = config_type
        self._file_settings: dict = {}
        self._overrides: dict = {}

    def __repr__(self) -> str:
        return f"Config(name={self.name!r}, config_type={self.config_type!r}, path={self.path!r})"

    @property
    def default_file(self) -> str:
        """The file named after the configuration inside its directory."""
        return os.path.join(self.path, f"{self.name}.{self.config_type}")

    @property
    def config_file(self) -> str:
        """The file that is read and written."""
        return self._file or self.default_file

    def _read(self, file: str, kind: str) -> dict:
        with open(file, encoding="utf-8") as handle:
            return _parse(handle.read(), kind)

    def _write(self, file: str, kind: str) -> None:
        text = _dump(self.all_settings(), kind)
        with open(file, "w", encoding="utf-8") as handle:
            handle.write(text)

    def _write_target(self) -> tuple[str, str]:
        if self._file:
            return self._file, self._file_type
        file = self.default_file
        if not os.path.exists(file):
            raise ConfigError(f'config file "{self.name}" not found in {self.path}')
        return file, self.config_type

    def _unmarshal(self, target: Any) -> None:
        settings = self.all_settings()
        if isinstance(target, dict):
            target.update(settings)
        elif dataclasses.is_dataclass(target) and not isinstance(target, type):
            _decode_into(target, settings)
        else:
            raise TypeError("target must be a dataclass instance or a dict")
        set_default(target)

    def load(self, target: Any) -> None:
        """Read the configuration into ``target``, creating an empty file if none can be read.

        Fields left at their zero value then receive their declared defaults.
        Raises ConfigError when the file exists but cannot be read or decoded.
        """
        self._file = None
        self._file_type = self.config_type
        file = self.default_file
        try:
            self._file_settings = self._read(file, self.config_type)
        except (OSError, ConfigError):
            if os.path.exists(file):
                raise ConfigError(f"config file {file} already exists") from None
            self._write(file, self.config_type)
        self._unmarshal(target)

    def load_file(self, file: str, target: Any) -> None:
        """Read ``file`` into ``target``; later writes go to that file.

        The format follows the file's extension. Raises OSError when the file
        cannot be read and ConfigError when it cannot be decoded.
        """
        ext = os.path.splitext(file)[1][1:].lower()
        kind = _check_type(ext or self.config_type)
        settings = self._read(file, kind)
        self._file = file
        self._file_type = kind
        self._file_settings = settings
        self._unmarshal(target)

    def set(self, key: str, value: Any) -> None:
        """Set ``key`` (dots separate nested keys) and write the configuration."""
        parts = key.lower().split(".")
        node = self._overrides
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = _lower_keys(value)
        self._write(*self._write_target())

    def reset(self) -> None:
        """Drop every setting and write the now empty configuration file."""
        self._overrides = {}
        self._file_settings = {}
        self._file = None
        self._file_type = self.config_type
        self._write(*self._write_target())

    def all_settings(self) -> dict:
        """Return a copy of all settings as nested dicts."""
        return _merge(self._file_settings, self._overrides)