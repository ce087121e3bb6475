"""Database models for caches, NARs, chunks, chunk references and objects."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, TypeVar

from atticserver.errors import ServerError
from atticserver.narinfo import Compression, NarInfo
from atticserver.storage import RemoteFile, remote_file_from_json

_M = TypeVar("_M")
Converter = Callable[[Any], Any]


class NarState(Enum):
    """The state of a NAR."""

    VALID = "V"
    PENDING_UPLOAD = "P"
    CONFIRMED_DEDUPLICATED = "C"
    DELETED = "D"


class ChunkState(Enum):
    """The state of a chunk."""

    VALID = "V"
    PENDING_UPLOAD = "P"
    CONFIRMED_DEDUPLICATED = "C"
    DELETED = "D"


def _integer(value: Any) -> int:
    if value is None:
        raise TypeError("unexpected NULL")
    return int(value)


def _boolean(value: Any) -> bool:
    if value is None:
        raise TypeError("unexpected NULL")
    return bool(value)


def _text(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected text, got {type(value).__name__}")
    return value


def _timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        moment = value
    else:
        text = _text(value).strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _string_list(value: Any) -> list[str]:
    data = json.loads(_text(value))
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise ValueError("expected a JSON list of strings")
    return data


def _remote_file(value: Any) -> RemoteFile:
    return remote_file_from_json(_text(value))


def _optional(convert: Converter) -> Converter:
    def converter(value: Any) -> Any:
        return None if value is None else convert(value)

    return converter


def _column(row: Mapping[str, Any], prefix: str, name: str) -> Any:
    key = f"{prefix}{name}"
    try:
        return row[key]
    except (KeyError, IndexError) as exc:
        raise ServerError.database_error(KeyError(f"no column named {key}")) from exc


def _from_row(
    cls: type[_M], row: Mapping[str, Any], prefix: str, converters: Mapping[str, Converter]
) -> _M:
    values: dict[str, Any] = {}
    for column in fields(cls):  # type: ignore[arg-type]
        raw = _column(row, prefix, column.name)
        try:
            values[column.name] = converters[column.name](raw)
        except (TypeError, ValueError) as exc:
            raise ServerError.database_error(
                ValueError(f"invalid value in column {prefix}{column.name}: {exc}")
            ) from exc
    return cls(**values)


@dataclass
class CacheModel:
    """A binary cache."""

    id: int
    name: str
    keypair: str
    is_public: bool
    store_dir: str
    priority: int
    upstream_cache_key_names: list[str]
    created_at: datetime
    deleted_at: datetime | None = None
    retention_period: int | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any], prefix: str = "") -> CacheModel:
        """Build a cache from a result row whose columns carry ``prefix``."""
        return _from_row(cls, row, prefix, _CACHE_CONVERTERS)


_CACHE_CONVERTERS: dict[str, Converter] = {
    "id": _integer,
    "name": _text,
    "keypair": _text,
    "is_public": _boolean,
    "store_dir": _text,
    "priority": _integer,
    "upstream_cache_key_names": _string_list,
    "created_at": _timestamp,
    "deleted_at": _optional(_timestamp),
    "retention_period": _optional(_integer),
}


@dataclass
class NarModel:
    """A content-addressed NAR in the global cache."""

    id: int
    state: NarState
    nar_hash: str
    nar_size: int
    compression: str
    num_chunks: int
    completeness_hint: bool
    holders_count: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any], prefix: str = "") -> NarModel:
        """Build a NAR from a result row whose columns carry ``prefix``."""
        return _from_row(cls, row, prefix, _NAR_CONVERTERS)


_NAR_CONVERTERS: dict[str, Converter] = {
    "id": _integer,
    "state": lambda value: NarState(_text(value)),
    "nar_hash": _text,
    "nar_size": _integer,
    "compression": _text,
    "num_chunks": _integer,
    "completeness_hint": _boolean,
    "holders_count": _integer,
    "created_at": _timestamp,
}


@dataclass
class ChunkModel:
    """A content-addressed chunk in the global chunk store."""

    id: int
    state: ChunkState
    chunk_hash: str
    chunk_size: int
    file_hash: str | None
    file_size: int | None
    compression: str
    remote_file: RemoteFile
    remote_file_id: str
    holders_count: int
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any], prefix: str = "") -> ChunkModel:
        """Build a chunk from a result row whose columns carry ``prefix``."""
        return _from_row(cls, row, prefix, _CHUNK_CONVERTERS)


_CHUNK_CONVERTERS: dict[str, Converter] = {
    "id": _integer,
    "state": lambda value: ChunkState(_text(value)),
    "chunk_hash": _text,
    "chunk_size": _integer,
    "file_hash": _optional(_text),
    "file_size": _optional(_integer),
    "compression": _text,
    "remote_file": _remote_file,
    "remote_file_id": _text,
    "holders_count": _integer,
    "created_at": _timestamp,
}


@dataclass
class ChunkRefModel:
    """A reference binding a NAR to the chunk at one position in it.

    ``chunk_id`` is ``None`` when the chunk is missing from the database.
    """

    id: int
    nar_id: int
    seq: int
    chunk_id: int | None
    chunk_hash: str
    compression: str

    @classmethod
    def from_row(cls, row: Mapping[str, Any], prefix: str = "") -> ChunkRefModel:
        """Build a chunk reference from a result row whose columns carry ``prefix``."""
        return _from_row(cls, row, prefix, _CHUNKREF_CONVERTERS)


_CHUNKREF_CONVERTERS: dict[str, Converter] = {
    "id": _integer,
    "nar_id": _integer,
    "seq": _integer,
    "chunk_id": _optional(_integer),
    "chunk_hash": _text,
    "compression": _text,
}


@dataclass
class ObjectModel:
    """An object in a binary cache, backed by a NAR in the global cache."""

    id: int
    cache_id: int
    nar_id: int
    store_path_hash: str
    store_path: str
    references: list[str]
    system: str | None
    deriver: str | None
    sigs: list[str]
    ca: str | None
    created_at: datetime
    last_accessed_at: datetime | None = None
    created_by: str | None = field(default=None)

    @classmethod
    def from_row(cls, row: Mapping[str, Any], prefix: str = "") -> ObjectModel:
        """Build an object from a result row whose columns carry ``prefix``."""
        return _from_row(cls, row, prefix, _OBJECT_CONVERTERS)

    def to_nar_info(self, nar: NarModel) -> NarInfo:
        """Describe this object, backed by ``nar``, as NAR info."""
        if nar.nar_size < 0:
            raise ServerError.database_error(
                ValueError(f"NAR size {nar.nar_size} is out of range")
            )

        return NarInfo(
            store_path=PurePosixPath(self.store_path),
            url=f"nar/{self.store_path_hash}.nar",
            compression=Compression.parse(nar.compression),
            file_hash=None,
            file_size=None,
            nar_hash=nar.nar_hash,
            nar_size=nar.nar_size,
            system=self.system,
            references=list(self.references),
            deriver=self.deriver,
            signature=None,
            ca=self.ca,
        )


_OBJECT_CONVERTERS: dict[str, Converter] = {
    "id": _integer,
    "cache_id": _integer,
    "nar_id": _integer,
    "store_path_hash": _text,
    "store_path": _text,
    "references": _string_list,
    "system": _optional(_text),
    "deriver": _optional(_text),
    "sigs": _string_list,
    "ca": _optional(_text),
    "created_at": _timestamp,
    "last_accessed_at": _optional(_timestamp),
    "created_by": _optional(_text),
}