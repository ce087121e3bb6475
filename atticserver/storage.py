"""Storage of chunk files and references to where they live."""

from __future__ import annotations

import json
import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Union

from atticserver.errors import ErrorKind, ServerError

_VERSION_FILE = "VERSION"
_CURRENT_VERSION = 1
_VERSION_PATTERN = re.compile(r"\+?[0-9]+")
_U32_MAX = 2**32 - 1


@dataclass(frozen=True)
class S3RemoteFile:
    """A file in an S3-compatible storage bucket."""

    region: str
    bucket: str
    key: str


@dataclass(frozen=True)
class LocalRemoteFile:
    """A file in local storage."""

    name: str


@dataclass(frozen=True)
class HttpRemoteFile:
    """A direct HTTP link to a file."""

    url: str


RemoteFile = Union[S3RemoteFile, LocalRemoteFile, HttpRemoteFile]

_TAGS: dict[str, type] = {
    "S3": S3RemoteFile,
    "Local": LocalRemoteFile,
    "Http": HttpRemoteFile,
}


def remote_file_id(file: RemoteFile) -> str:
    """The unique string identifying a remote file."""
    match file:
        case S3RemoteFile(region=region, bucket=bucket, key=key):
            return f"s3:{region}/{bucket}/{key}"
        case HttpRemoteFile(url=url):
            return f"http:{url}"
        case LocalRemoteFile(name=name):
            return f"local:{name}"
    raise TypeError(f"not a remote file reference: {file!r}")


def remote_file_to_json(file: RemoteFile) -> str:
    """Encode a remote file reference as it is stored in the database."""
    for tag, cls in _TAGS.items():
        if type(file) is cls:
            return json.dumps({tag: vars(file)}, separators=(",", ":"))
    raise TypeError(f"not a remote file reference: {file!r}")


def remote_file_from_json(text: str) -> RemoteFile:
    """Decode a remote file reference stored in the database."""
    data = json.loads(text)
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError("remote file reference must be an object with exactly one variant")
    ((tag, body),) = data.items()
    cls = _TAGS.get(tag)
    if cls is None:
        raise ValueError(f"unknown variant `{tag}`, expected one of `S3`, `Local`, `Http`")
    if not isinstance(body, dict):
        raise ValueError(f"variant `{tag}` must hold an object")
    try:
        return cls(**body)
    except TypeError as exc:
        raise ValueError(f"invalid fields for variant `{tag}`: {exc}") from exc


def _storage_failure(message: str) -> ServerError:
    return ServerError(ErrorKind.STORAGE_ERROR, message)


def _read_version(storage_path: Path) -> int:
    version_path = storage_path / _VERSION_FILE
    try:
        text = version_path.read_text()
    except FileNotFoundError:
        return 0
    except OSError as exc:
        raise _storage_failure(f"Failed to read version file: {exc}") from exc

    text = text.strip()
    if not _VERSION_PATTERN.fullmatch(text) or int(text) > _U32_MAX:
        raise _storage_failure("Invalid version file")
    return int(text)


def _write_version(storage_path: Path, version: int) -> None:
    try:
        (storage_path / _VERSION_FILE).write_text(str(version))
    except OSError as exc:
        raise ServerError.storage_error(exc) from exc


def _upgrade_0_to_1(storage_path: Path) -> None:
    """Move every file into subdirectories named by its first one and two characters."""
    try:
        with os.scandir(storage_path) as it:
            entries = [entry for entry in it if entry.is_file(follow_symlinks=False)]
    except OSError as exc:
        raise ServerError.storage_error(exc) from exc

    for entry in entries:
        name = entry.name
        parents = storage_path / name[:1] / name[:2]
        new_path = parents / name
        try:
            parents.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise _storage_failure(f"Failed to create directory {exc}") from exc
        try:
            os.rename(entry.path, new_path)
        except OSError as exc:
            raise _storage_failure(
                f"Failed to move file {entry.path} to {new_path}: {exc}"
            ) from exc


class LocalBackend:
    """Storage backend keeping files in a local directory.

    Files are laid out as ``<root>/<c>/<cc>/<name>``, where ``c`` and
    ``cc`` are the first one and two characters of the name.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)
        try:
            self.path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise _storage_failure(
                f"Failed to create storage directory {self.path}: {exc}"
            ) from exc

        if _read_version(self.path) == 0:
            _upgrade_0_to_1(self.path)
        _write_version(self.path, _CURRENT_VERSION)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r})"

    def _path_of(self, name: str) -> Path:
        if not name:
            raise ValueError("file name must not be empty")
        return self.path / name[:1] / name[:2] / name

    @staticmethod
    def _local_file(file: RemoteFile) -> LocalRemoteFile:
        if not isinstance(file, LocalRemoteFile):
            raise _storage_failure("Does not understand the remote file reference")
        return file

    def upload_file(self, name: str, stream: BinaryIO) -> RemoteFile:
        """Store the contents of a binary stream under a name."""
        path = self._path_of(name)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise _storage_failure(f"Failed to create directory {path.parent}: {exc}") from exc

        try:
            target = path.open("wb")
        except OSError as exc:
            raise _storage_failure(f"Failed to create file {path}: {exc}") from exc

        with target:
            try:
                shutil.copyfileobj(stream, target)
            except OSError as exc:
                raise ServerError.storage_error(exc) from exc

        return LocalRemoteFile(name)

    def delete_file(self, name: str) -> None:
        """Delete a file by name."""
        try:
            self._path_of(name).unlink()
        except OSError as exc:
            raise ServerError.storage_error(exc) from exc

    def delete_file_db(self, file: RemoteFile) -> None:
        """Delete a file through its database reference."""
        self.delete_file(self._local_file(file).name)

    def download_file(self, name: str, prefer_stream: bool) -> BinaryIO:
        """Open a stored file for reading; local files are always streamed."""
        try:
            return self._path_of(name).open("rb")
        except OSError as exc:
            raise ServerError.storage_error(exc) from exc

    def download_file_db(self, file: RemoteFile, prefer_stream: bool) -> BinaryIO:
        """Open a stored file through its database reference."""
        return self.download_file(self._local_file(file).name, prefer_stream)

    def make_db_reference(self, name: str) -> RemoteFile:
        """Create the database reference for a stored file."""
        return LocalRemoteFile(name)