"""Filling of unset dataclass fields from defaults kept in field metadata.

A field declares its default as a string under the metadata key named by the
current default tag ("default" unless changed)::

    @dataclass
    class Server:
        host: str = field(default="", metadata={"default": "localhost"})
        ports: list[int] = field(default_factory=list, metadata={"default": "[80, 443]"})

Strings, integers, floats and booleans are parsed from the text. Dataclasses,
lists, dicts and optional values are decoded from it as JSON. A default is
applied only where the field still holds its zero value.
"""

from __future__ import annotations

import dataclasses
import functools
import inspect
import json
import math
import re
import types
import typing
from typing import Any, Union, get_args, get_origin

__all__ = ["get_default_tag", "set_default_tag", "set_default"]

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_TRUE = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_NONE_TYPE = type(None)

_HINT_PIECE = re.compile(r"\s*(?:([A-Za-z_][\w.]*)|(\[|\]|,|\|))")
_KNOWN_NAMES: dict[str, Any] = {
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "bytes": bytes,
    "object": object,
    "None": _NONE_TYPE,
    "NoneType": _NONE_TYPE,
    "Any": Any,
    "typing.Any": Any,
    "list": list,
    "List": list,
    "typing.List": list,
    "dict": dict,
    "Dict": dict,
    "typing.Dict": dict,
    "tuple": tuple,
    "Tuple": tuple,
    "typing.Tuple": tuple,
}
_UNION_NAMES = frozenset({"Union", "typing.Union"})
_OPTIONAL_NAMES = frozenset({"Optional", "typing.Optional"})


class _Tag:
    name = "default"


_tag = _Tag()


class _Mismatch(ValueError):
    """JSON data does not fit the declared type."""


class _Unresolved(ValueError):
    """A string annotation could not be turned into a type."""


def get_default_tag() -> str:
    """Return the metadata key that holds default values."""
    return _tag.name


def set_default_tag(tag: str) -> None:
    """Change the metadata key that holds default values."""
    _tag.name = tag


def _make_union(members: list[Any]) -> Any:
    if len(members) == 1:
        return members[0]
    return Union[tuple(members)]


class _HintParser:
    """Reads a string annotation such as ``list[int] | None`` without running it."""

    def __init__(self, text: str, owner: type) -> None:
        self._pieces: list[str] = []
        pos = 0
        text = text.strip()
        while pos < len(text):
            found = _HINT_PIECE.match(text, pos)
            if found is None or found.end() == pos:
                raise _Unresolved(text)
            self._pieces.append(found.group(1) or found.group(2))
            pos = found.end()
            while pos < len(text) and text[pos].isspace():
                pos += 1
        self._pos = 0
        self._owner = owner

    def parse(self) -> Any:
        result = self._union()
        if self._pos != len(self._pieces):
            raise _Unresolved("trailing text in annotation")
        return result

    def _peek(self) -> str | None:
        return self._pieces[self._pos] if self._pos < len(self._pieces) else None

    def _take(self) -> str:
        piece = self._peek()
        if piece is None:
            raise _Unresolved("annotation ends early")
        self._pos += 1
        return piece

    def _union(self) -> Any:
        members = [self._primary()]
        while self._peek() == "|":
            self._take()
            members.append(self._primary())
        return _make_union(members)

    def _primary(self) -> Any:
        name = self._take()
        if name in ("[", "]", ",", "|"):
            raise _Unresolved(f"unexpected {name!r}")
        args: list[Any] = []
        if self._peek() == "[":
            self._take()
            args.append(self._union())
            while self._peek() == ",":
                self._take()
                args.append(self._union())
            if self._take() != "]":
                raise _Unresolved("unbalanced brackets")
        if name in _UNION_NAMES:
            return _make_union(args)
        if name in _OPTIONAL_NAMES:
            if len(args) != 1:
                raise _Unresolved("Optional takes one argument")
            return _make_union([args[0], _NONE_TYPE])
        base = self._lookup(name)
        if not args:
            return base
        if base is Any:
            raise _Unresolved("Any takes no arguments")
        return types.GenericAlias(base, tuple(args))

    def _lookup(self, name: str) -> Any:
        if name in _KNOWN_NAMES:
            return _KNOWN_NAMES[name]
        if name == self._owner.__name__:
            return self._owner
        module = inspect.getmodule(self._owner)
        if module is None:
            raise _Unresolved(name)
        value: Any = module
        for part in name.split("."):
            if not hasattr(value, part):
                raise _Unresolved(name)
            value = getattr(value, part)
        if not (isinstance(value, type) or value is Any or isinstance(value, typing.TypeVar)):
            raise _Unresolved(name)
        return value


def _resolve_hint(owner: type, hint: Any) -> Any:
    """Return ``hint`` as a type, reading string annotations; Any when unreadable."""
    if not isinstance(hint, str):
        return hint
    try:
        return _HintParser(hint, owner).parse()
    except (_Unresolved, TypeError):
        return Any


def _field_types(cls: type) -> dict[str, Any]:
    """Map each field of dataclass ``cls`` to its resolved type."""
    return {f.name: _resolve_hint(cls, f.type) for f in dataclasses.fields(cls)}


def _is_dataclass_type(tp: Any) -> bool:
    return isinstance(tp, type) and dataclasses.is_dataclass(tp)


def _optional_inner(tp: Any) -> Any | None:
    origin = get_origin(tp)
    if origin is Union or origin is types.UnionType:
        args = get_args(tp)
        rest = [arg for arg in args if arg is not _NONE_TYPE]
        if len(args) == 2 and len(rest) == 1:
            return rest[0]
    return None


@functools.lru_cache(maxsize=None)
def _field_specs(cls: type) -> tuple[tuple[str, Any, Any], ...]:
    hints = _field_types(cls)
    return tuple((f.name, hints[f.name], f.metadata) for f in dataclasses.fields(cls))


def _zero(tp: Any) -> Any:
    if tp is Any or _optional_inner(tp) is not None:
        return None
    if _is_dataclass_type(tp):
        return _zero_instance(tp)
    origin = get_origin(tp) or tp
    if origin is list:
        return []
    if origin is dict:
        return {}
    if tp is str:
        return ""
    if tp is bool:
        return False
    if tp is int:
        return 0
    if tp is float:
        return 0.0
    return None


def _zero_instance(cls: type) -> Any:
    obj = cls.__new__(cls)
    for name, hint, _ in _field_specs(cls):
        object.__setattr__(obj, name, _zero(hint))
    return obj


def _is_zero(value: Any) -> bool:
    if value is None:
        return True
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return all(_is_zero(getattr(value, name)) for name, _, _ in _field_specs(type(value)))
    if isinstance(value, (str, bytes, list, dict, tuple)):
        return not value
    if isinstance(value, (bool, int, float)):
        return value == 0
    return False


def _decode(data: Any, tp: Any) -> Any:
    """Convert decoded JSON to ``tp``, strictly as JSON decoding into typed values does."""
    if tp is Any or tp is object:
        return data
    inner = _optional_inner(tp)
    if inner is not None:
        return None if data is None else _decode(data, inner)
    if data is None:
        return _zero(tp)
    if _is_dataclass_type(tp):
        if not isinstance(data, dict):
            raise _Mismatch(f"cannot decode {data!r} into {tp.__name__}")
        obj = _zero_instance(tp)
        specs = _field_specs(tp)
        exact = {name: hint for name, hint, _ in specs}
        folded = {name.lower(): (name, hint) for name, hint, _ in specs}
        for key, item in data.items():
            if key in exact:
                name, hint = key, exact[key]
            elif key.lower() in folded:
                name, hint = folded[key.lower()]
            else:
                continue
            object.__setattr__(obj, name, _decode(item, hint))
        return obj
    origin = get_origin(tp) or tp
    args = get_args(tp)
    if origin is list:
        if not isinstance(data, list):
            raise _Mismatch(f"cannot decode {data!r} into a list")
        elem = args[0] if args else Any
        return [_decode(item, elem) for item in data]
    if origin is dict:
        if not isinstance(data, dict):
            raise _Mismatch(f"cannot decode {data!r} into a dict")
        key_tp, val_tp = args if len(args) == 2 else (Any, Any)
        return {
            (int(key) if key_tp is int else key): _decode(item, val_tp)
            for key, item in data.items()
        }
    if tp is bool:
        if isinstance(data, bool):
            return data
    elif tp is int:
        if isinstance(data, int) and not isinstance(data, bool):
            return data
    elif tp is float:
        if isinstance(data, (int, float)) and not isinstance(data, bool):
            return float(data)
    elif tp is str:
        if isinstance(data, str):
            return data
    else:
        return data
    raise _Mismatch(f"cannot decode {data!r} into {tp!r}")


def _decode_tag(tag: str, tp: Any) -> tuple[bool, Any]:
    try:
        return True, _decode(json.loads(tag), tp)
    except (ValueError, TypeError):
        return False, None


def _parse_simple(tp: Any, tag: str) -> Any | None:
    if tp is str:
        return tag
    if tp is bool:
        if tag in _TRUE:
            return True
        if tag in _FALSE:
            return False
        return None
    if tp is int:
        if not _INT_RE.fullmatch(tag):
            return None
        number = int(tag)
        return number if _INT64_MIN <= number <= _INT64_MAX else None
    if tp is float:
        if "_" in tag or tag != tag.strip():
            return None
        try:
            number = float(tag)
        except ValueError:
            return None
        if math.isinf(number) and "inf" not in tag.lower():
            return None
        return number
    return None


def _fill_fields(obj: Any) -> None:
    for name, hint, metadata in _field_specs(type(obj)):
        raw = metadata.get(_tag.name)
        tag = "" if raw is None else str(raw)
        current = getattr(obj, name)
        updated = _apply(current, hint, tag)
        if updated is not current:
            setattr(obj, name, updated)


def _apply(value: Any, tp: Any, tag: str) -> Any:
    """Return ``value`` with defaults applied; dataclasses and lists change in place."""
    if _optional_inner(tp) is not None:
        if value is not None or not tag:
            return value
        ok, decoded = _decode_tag(tag, tp)
        return decoded if ok else value

    if tp is Any or tp is object:
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return _apply(value, type(value), tag)
        return value

    if _is_dataclass_type(tp):
        if not _is_zero(value) or not tag:
            if value is not None:
                _fill_fields(value)
            return value
        ok, decoded = _decode_tag(tag, tp)
        if not ok:
            return value
        _fill_fields(decoded)
        return decoded

    origin = get_origin(tp) or tp
    if origin is list:
        args = get_args(tp)
        elem = args[0] if args else Any
        if value or not tag:
            if value:
                value[:] = [_apply(item, elem, "") for item in value]
            return value
        ok, decoded = _decode_tag(tag, tp)
        if not ok or decoded is None:
            return value
        items = [_apply(item, elem, "") for item in decoded]
        if isinstance(value, list):
            value.extend(items)
            return value
        return items

    if origin is dict:
        if value or not tag:
            return value
        ok, decoded = _decode_tag(tag, tp)
        if not ok or decoded is None:
            return value
        return decoded

    if tp in (str, int, float, bool):
        if not tag or not _is_zero(value):
            return value
        parsed = _parse_simple(tp, tag)
        return value if parsed is None else parsed

    return value


def set_default(value: Any) -> None:
    """Fill zero-valued fields of a dataclass instance, or of each one in a list."""
    if value is None:
        return
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        _fill_fields(value)
    elif isinstance(value, list):
        for item in value:
            if dataclasses.is_dataclass(item) and not isinstance(item, type):
                _fill_fields(item)