"""Reading the configuration properties shared by every pre-trained model."""

from __future__ import annotations

import dataclasses
import json
import types
import typing
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Any, TypeVar

DEFAULT_MODEL_CONFIG_FILENAME = "config.json"

_JSON_WHITESPACE = " \t\n\r"
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_T = TypeVar("_T")

_NAMED_TYPES: dict[str, Any] = {
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
    "Any": Any,
    "typing.Any": Any,
    "object": Any,
}
_LIST_NAMES = {"list", "List", "typing.List", "Sequence"}
_DICT_NAMES = {"dict", "Dict", "typing.Dict", "Mapping"}
_UNION_NAMES = {"Union", "typing.Union"}
_OPTIONAL_NAMES = {"Optional", "typing.Optional"}


@dataclass
class CommonModelConfig:
    """The minimal set of properties shared among models of different types."""

    model_type: str = ""


def read_common_model_config(
    model_path: str | PathLike[str], config_filename: str | None = None
) -> CommonModelConfig | None:
    """Parse the main JSON configuration file found in ``model_path``.

    An empty or missing ``config_filename`` selects ``config.json``.
    A document holding only ``null`` yields ``None``.
    """
    path = Path(model_path) / (config_filename or DEFAULT_MODEL_CONFIG_FILENAME)
    document = _read_json_document(path)
    if document is None:
        return None
    return _decode_document(CommonModelConfig, document, path)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON value {name}")


def _read_json_document(path: Path) -> Any:
    """Read the first JSON value of a file; anything after it is ignored."""
    with path.open(encoding="utf-8", errors="replace") as handle:
        text = handle.read()
    decoder = json.JSONDecoder(parse_constant=_reject_constant)
    try:
        value, _ = decoder.raw_decode(text.lstrip(_JSON_WHITESPACE))
    except ValueError as err:
        raise ValueError(f"error parsing JSON config file {str(path)!r}: {err}") from err
    return value


def _decode_document(cls: type[_T], document: Any, path: Path) -> _T:
    try:
        return _decode_dataclass(cls, document, cls.__name__)
    except ValueError as err:
        raise ValueError(f"error parsing JSON config file {str(path)!r}: {err}") from err


def _load_config(cls: type[_T], path: str | PathLike[str]) -> _T:
    """Load a dataclass from a JSON file; ``null`` leaves every default."""
    path = Path(path)
    document = _read_json_document(path)
    if document is None:
        return cls()
    return _decode_document(cls, document, path)


def _lookup(data: dict[str, Any], key: str) -> tuple[bool, Any]:
    if key in data:
        return True, data[key]
    folded = key.casefold()
    for candidate, value in data.items():
        if candidate.casefold() == folded:
            return True, value
    return False, None


def _split_top_level(text: str, separator: str) -> list[str]:
    """Split ``text`` on ``separator`` outside of square brackets."""
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in text:
        if char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
        if char == separator and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    parts.append("".join(current).strip())
    return parts


def _resolve_union(members: list[Any], default: Any) -> Any:
    present = [member for member in members if member not in ("None", None, type(None))]
    if len(present) == 1:
        return _resolve_type(present[0], default)
    return Any


def _parse_annotation(text: str, default: Any) -> Any:
    members = _split_top_level(text, "|")
    if len(members) > 1:
        return _resolve_union(members, default)
    if text in _NAMED_TYPES:
        return _NAMED_TYPES[text]
    if "[" in text and text.endswith("]"):
        start = text.index("[")
        name = text[:start].strip()
        args = _split_top_level(text[start + 1 : -1], ",")
        if name in _OPTIONAL_NAMES and len(args) == 1:
            return _parse_annotation(args[0], default)
        if name in _UNION_NAMES:
            return _resolve_union(args, default)
        if name in _LIST_NAMES and len(args) == 1:
            return list[_parse_annotation(args[0], None)]
        if name in _DICT_NAMES and len(args) == 2:
            return dict[_parse_annotation(args[0], None), _parse_annotation(args[1], None)]
    if dataclasses.is_dataclass(default) and not isinstance(default, type):
        return type(default)
    raise ValueError(f"unsupported field type {text!r}")


def _resolve_type(tp: Any, default: Any) -> Any:
    if isinstance(tp, str):
        return _parse_annotation(tp.strip(), default)
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        return _resolve_union(list(typing.get_args(tp)), default)
    return tp


def _field_types(cls: type) -> dict[str, Any]:
    defaults = cls()
    return {
        field.name: _resolve_type(field.type, getattr(defaults, field.name, None))
        for field in dataclasses.fields(cls)
    }


def _decode_dataclass(cls: type[_T], data: Any, where: str) -> _T:
    if not isinstance(data, dict):
        raise ValueError(f"{where}: expected a JSON object, got {type(data).__name__}")
    hints = _field_types(cls)
    values: dict[str, Any] = {}
    for field in dataclasses.fields(cls):
        key = field.metadata.get("json", field.name)
        found, raw = _lookup(data, key)
        if not found or raw is None:
            continue
        values[field.name] = _coerce(hints[field.name], raw, f"{where}.{key}")
    return cls(**values)


def _zero(tp: Any) -> Any:
    if tp is Any:
        return None
    if dataclasses.is_dataclass(tp):
        return tp()
    origin = typing.get_origin(tp)
    if origin is list:
        return []
    if origin is dict:
        return {}
    return {bool: False, int: 0, float: 0.0, str: ""}[tp]


def _coerce_int(raw: Any, where: str) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValueError(f"{where}: expected an integer, got {raw!r}")
    if not _INT64_MIN <= raw <= _INT64_MAX:
        raise ValueError(f"{where}: integer {raw} out of range")
    return raw


def _coerce_key(tp: Any, key: str, where: str) -> Any:
    if tp is str:
        return key
    if tp is int:
        try:
            return _coerce_int(int(key), where)
        except ValueError as err:
            raise ValueError(f"{where}: invalid integer key {key!r}") from err
    raise ValueError(f"{where}: unsupported key type {tp!r}")


def _coerce(tp: Any, raw: Any, where: str) -> Any:
    if raw is None:
        return _zero(tp)
    if tp is Any:
        return raw
    if dataclasses.is_dataclass(tp):
        return _decode_dataclass(tp, raw, where)
    origin = typing.get_origin(tp)
    if origin is list:
        if not isinstance(raw, list):
            raise ValueError(f"{where}: expected a JSON array, got {raw!r}")
        (item_tp,) = typing.get_args(tp)
        return [_coerce(item_tp, item, f"{where}[{n}]") for n, item in enumerate(raw)]
    if origin is dict:
        if not isinstance(raw, dict):
            raise ValueError(f"{where}: expected a JSON object, got {raw!r}")
        key_tp, value_tp = typing.get_args(tp)
        return {
            _coerce_key(key_tp, key, where): _coerce(value_tp, value, f"{where}.{key}")
            for key, value in raw.items()
        }
    if tp is bool:
        if not isinstance(raw, bool):
            raise ValueError(f"{where}: expected a boolean, got {raw!r}")
        return raw
    if tp is int:
        return _coerce_int(raw, where)
    if tp is float:
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            raise ValueError(f"{where}: expected a number, got {raw!r}")
        return float(raw)
    if tp is str:
        if not isinstance(raw, str):
            raise ValueError(f"{where}: expected a string, got {raw!r}")
        return raw
    raise ValueError(f"{where}: unsupported field type {tp!r}")