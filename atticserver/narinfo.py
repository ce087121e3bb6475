"""NAR info: the ``.narinfo`` manifest describing a cached store path.

The fingerprint that gets signed has the form
``1;{storePath};{narHash};{narSize};{commaDelimitedReferences}``.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Protocol

from atticserver.errors import ErrorKind, ServerError
from atticserver.manifest import ManifestError, parse, parse_unsigned, split_list
from atticserver.manifest_writer import join_list, serialize

_NIX32_ALPHABET = "0123456789abcdfghijklmnpqrsvwxyz"
_SHA256_SIZE = 32
_UNKNOWN_DERIVER = "unknown-deriver"


class Signer(Protocol):
    def sign(self, message: bytes) -> str: ...


class Compression(Enum):
    """NAR compression type."""

    NONE = "none"
    XZ = "xz"
    BZIP2 = "bzip2"
    BROTLI = "br"
    ZSTD = "zstd"

    def __str__(self) -> str:
        return self.value

    def as_str(self) -> str:
        return self.value

    @classmethod
    def parse(cls, name: str) -> Compression:
        """Look up a compression type by its manifest name."""
        try:
            return cls(name)
        except ValueError:
            raise ServerError(ErrorKind.INVALID_COMPRESSION_TYPE, name) from None


def _to_nix32(digest: bytes) -> str:
    length = (len(digest) * 8 - 1) // 5 + 1
    value = int.from_bytes(digest, "little")
    return "".join(_NIX32_ALPHABET[(value >> (5 * n)) & 0x1F] for n in reversed(range(length)))


def _from_nix32(text: str, size: int) -> bytes:
    value = 0
    for char in text:
        digit = _NIX32_ALPHABET.find(char)
        if digit < 0:
            raise ValueError(f"invalid base32 character {char!r}")
        value = value * 32 + digit
    if value >> (size * 8):
        raise ValueError("base32 hash has excess bits")
    return value.to_bytes(size, "little")


def _decode_digest(encoded: str) -> bytes:
    if len(encoded) == _SHA256_SIZE * 2:
        return bytes.fromhex(encoded)
    if len(encoded) == (_SHA256_SIZE * 8 - 1) // 5 + 1:
        return _from_nix32(encoded, _SHA256_SIZE)
    if len(encoded) == 44:
        digest = base64.b64decode(encoded, validate=True)
        if len(digest) == _SHA256_SIZE:
            return digest
    raise ValueError(f"invalid hash length {len(encoded)}")


def _normalize_hash(typed: str) -> str:
    """Return a typed hash (``sha256:...``) in base32 form."""
    algorithm, sep, encoded = typed.partition(":")
    try:
        if not sep:
            raise ValueError(f"hash {typed!r} has no type prefix")
        if algorithm != "sha256":
            raise ValueError(f"unsupported hash type {algorithm!r}")
        digest = _decode_digest(encoded)
    except (ValueError, binascii.Error) as exc:
        raise ServerError(ErrorKind.ATTIC_ERROR, str(exc), cause=exc) from exc
    return f"sha256:{_to_nix32(digest)}"


def _required(fields: dict[str, str], key: str) -> str:
    try:
        return fields[key]
    except KeyError:
        raise ManifestError(f"missing field `{key}`") from None


def _manifest_hash(value: str) -> str:
    try:
        return _normalize_hash(value)
    except ServerError as exc:
        raise ManifestError(str(exc.detail)) from exc


def _manifest_compression(value: str) -> Compression:
    try:
        return Compression(value)
    except ValueError:
        expected = ", ".join(f"`{c.value}`" for c in Compression)
        raise ManifestError(f"unknown variant `{value}`, expected one of {expected}") from None


@dataclass
class NarInfo:
    """NAR information for one store path.

    Hashes are typed (``sha256:...``) and kept in base32 form.
    """

    store_path: PurePosixPath
    url: str
    compression: Compression
    nar_hash: str
    nar_size: int
    references: list[str] = field(default_factory=list)
    file_hash: str | None = None
    file_size: int | None = None
    system: str | None = None
    deriver: str | None = None
    signature: str | None = None
    ca: str | None = None

    def __post_init__(self) -> None:
        self.store_path = PurePosixPath(self.store_path)
        if isinstance(self.compression, str):
            self.compression = Compression.parse(self.compression)
        self.nar_hash = _normalize_hash(self.nar_hash)
        if self.file_hash is not None:
            self.file_hash = _normalize_hash(self.file_hash)

    @classmethod
    def parse(cls, text: str) -> NarInfo:
        """Parse a ``.narinfo`` manifest."""
        fields = parse(text)

        file_hash = fields.get("FileHash")
        file_size = fields.get("FileSize")
        deriver = fields.get("Deriver")

        return cls(
            store_path=PurePosixPath(_required(fields, "StorePath")),
            url=_required(fields, "URL"),
            compression=_manifest_compression(_required(fields, "Compression")),
            file_hash=None if file_hash is None else _manifest_hash(file_hash),
            file_size=None if file_size is None else parse_unsigned(file_size),
            nar_hash=_manifest_hash(_required(fields, "NarHash")),
            nar_size=parse_unsigned(_required(fields, "NarSize")),
            references=split_list(_required(fields, "References")),
            system=fields.get("System"),
            deriver=None if deriver == _UNKNOWN_DERIVER else deriver,
            signature=fields.get("Sig"),
            ca=fields.get("CA"),
        )

    def to_string(self) -> str:
        """Serialize to the ``.narinfo`` manifest format."""
        entries = [
            ("StorePath", self.store_path),
            ("URL", self.url),
            ("Compression", self.compression),
            ("FileHash", self.file_hash),
            ("FileSize", self.file_size),
            ("NarHash", self.nar_hash),
            ("NarSize", self.nar_size),
            ("References", join_list(self.references)),
            ("System", self.system),
            ("Deriver", self.deriver),
            ("Sig", self.signature),
            ("CA", self.ca),
        ]
        return serialize((key, value) for key, value in entries if value is not None)

    def store_dir(self) -> PurePosixPath:
        """The store directory the store path lives in."""
        parent = self.store_path.parent
        if parent == self.store_path:
            raise ValueError(f"store path {self.store_path} has no parent directory")
        return parent

    def fingerprint(self) -> bytes:
        """The fingerprint of this object, which is what gets signed."""
        store_dir = str(self.store_dir())
        references = ",".join(f"{store_dir}/{reference}" for reference in self.references)
        text = f"1;{self.store_path};{self.nar_hash};{self.nar_size};{references}"
        return text.encode()

    def sign(self, signer: Signer) -> None:
        """Sign the fingerprint and store the resulting signature."""
        self.signature = signer.sign(self.fingerprint())