"""Reading of the flat ``Key: value`` manifest format used by binary caches."""

from __future__ import annotations

import re

from atticserver.errors import ErrorKind, ServerError

_WHITESPACE = re.compile(r"[ \n\r\t]*")
_EOL = re.compile(r"[\r\n]")
_DIGITS = re.compile(r"[0-9]+")


class ManifestError(ServerError):
    """An error while reading or writing a manifest."""

    def __init__(self, reason: str) -> None:
        super().__init__(ErrorKind.MANIFEST_SERIALIZATION_ERROR, reason)
        self.reason = reason


def _skip_whitespace(text: str, pos: int) -> int:
    match = _WHITESPACE.match(text, pos)
    return match.end() if match else pos


def _end_of_line(text: str, pos: int) -> int:
    match = _EOL.search(text, pos)
    return match.start() if match else len(text)


def parse(text: str) -> dict[str, str]:
    """Parse a manifest into an ordered mapping of keys to raw values."""
    fields: dict[str, str] = {}
    pos = 0

    while True:
        pos = _skip_whitespace(text, pos)
        if pos >= len(text):
            return fields

        colon = text.find(":", pos, _end_of_line(text, pos))
        if colon < 0:
            raise ManifestError("Expected a colon.")
        key = text[pos:colon]

        pos = _skip_whitespace(text, colon + 1)
        eol = _end_of_line(text, pos)
        value = text[pos:eol].lstrip()
        pos = eol

        if key in fields:
            raise ManifestError(f"duplicate field `{key}`")
        fields[key] = value


def parse_bool(value: str) -> bool:
    """Read a boolean written as ``1`` or ``0``."""
    flag = value.rstrip(" \n\r\t")
    if flag == "1":
        return True
    if flag == "0":
        return False
    raise ManifestError("Expected a boolean.")


def parse_unsigned(value: str) -> int:
    """Read a non-negative decimal integer."""
    if not value:
        raise ManifestError("Unexpected EOF.")
    match = _DIGITS.match(value)
    if match is None or value[match.end():].strip(" \n\r\t"):
        raise ManifestError("Expected an integer.")
    return int(match.group())


def split_list(value: str) -> list[str]:
    """Split a space-delimited list; an empty value is an empty list."""
    if not value:
        return []
    return value.split(" ")