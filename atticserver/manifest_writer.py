"""Writing of the flat ``Key: value`` manifest format used by binary caches."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from pathlib import PurePath
from typing import Any

from atticserver.manifest import ManifestError


def format_value(value: Any) -> str:
    """Render a single manifest value.

    Booleans are written as ``1``/``0``; enums by their value. Missing
    values, byte strings, sequences and nested maps cannot be written.
    """
    if value is None:
        raise ManifestError("None is unsupported. Leave out fields that have no value.")
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Enum):
        return format_value(value.value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, str):
        return value
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        raise ManifestError('"Byte sequence" values are unsupported.')
    if isinstance(value, Mapping):
        raise ManifestError("Nested maps are unsupported.")
    if isinstance(value, (list, tuple, set, frozenset)):
        raise ManifestError('"Sequence" values are unsupported.')
    raise ManifestError(f'"{type(value).__name__}" values are unsupported.')


def join_list(items: Iterable[str]) -> str:
    """Join items into a space-delimited list."""
    return " ".join(items)


def serialize(fields: Mapping[str, Any] | Iterable[tuple[str, Any]]) -> str:
    """Write fields, in order, as one ``Key: value`` line each."""
    pairs = fields.items() if isinstance(fields, Mapping) else fields
    return "".join(f"{format_value(key)}: {format_value(value)}\n" for key, value in pairs)