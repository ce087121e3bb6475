"""Server errors and their client-facing responses."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from http import HTTPStatus

logger = logging.getLogger(__name__)


class ErrorKind(Enum):
    """The kind of a server error: its name, message template and HTTP status."""

    NOT_FOUND = ("NotFound", "The URL you requested was not found.", HTTPStatus.NOT_FOUND)
    UNAUTHORIZED = ("Unauthorized", "Unauthorized.", HTTPStatus.UNAUTHORIZED)
    INTERNAL_SERVER_ERROR = (
        "InternalServerError",
        "The server encountered an internal error or misconfiguration.",
        HTTPStatus.INTERNAL_SERVER_ERROR,
    )
    NO_SUCH_CACHE = ("NoSuchCache", "The requested cache does not exist.", HTTPStatus.NOT_FOUND)
    CACHE_ALREADY_EXISTS = (
        "CacheAlreadyExists",
        "The cache already exists.",
        HTTPStatus.BAD_REQUEST,
    )
    NO_SUCH_OBJECT = ("NoSuchObject", "The requested object does not exist.", HTTPStatus.NOT_FOUND)
    INVALID_COMPRESSION_TYPE = (
        "InvalidCompressionType",
        'Invalid compression type "{detail}".',
        HTTPStatus.BAD_REQUEST,
    )
    INCOMPLETE_NAR = (
        "IncompleteNar",
        "The requested NAR has missing chunks and needs to be repaired.",
        HTTPStatus.SERVICE_UNAVAILABLE,
    )
    DATABASE_ERROR = ("DatabaseError", "Database error: {detail}", HTTPStatus.INTERNAL_SERVER_ERROR)
    STORAGE_ERROR = ("StorageError", "Storage error: {detail}", HTTPStatus.INTERNAL_SERVER_ERROR)
    MANIFEST_SERIALIZATION_ERROR = (
        "ManifestSerializationError",
        "Manifest serialization error: {detail}",
        HTTPStatus.BAD_REQUEST,
    )
    ACCESS_ERROR = ("AccessError", "Access error: {detail}", HTTPStatus.FORBIDDEN)
    REQUEST_ERROR = ("RequestError", "General request error: {detail}", HTTPStatus.BAD_REQUEST)
    ATTIC_ERROR = (
        "AtticError",
        "Error from the common components.",
        HTTPStatus.INTERNAL_SERVER_ERROR,
    )

    def __init__(self, label: str, template: str, status: HTTPStatus) -> None:
        self.label = label
        self.template = template
        self.status = status

    def message(self, detail: object = None) -> str:
        """Render the human-readable message for this kind."""
        return self.template.format(detail="" if detail is None else detail)


_LOGGED_KINDS = frozenset(
    {
        ErrorKind.DATABASE_ERROR,
        ErrorKind.STORAGE_ERROR,
        ErrorKind.MANIFEST_SERIALIZATION_ERROR,
        ErrorKind.ATTIC_ERROR,
    }
)

_HIDDEN_WITHOUT_DISCOVERY = frozenset(
    {ErrorKind.NO_SUCH_CACHE, ErrorKind.NO_SUCH_OBJECT, ErrorKind.ACCESS_ERROR}
)

_INTERNAL_TO_CLIENTS = frozenset(
    {
        ErrorKind.DATABASE_ERROR,
        ErrorKind.STORAGE_ERROR,
        ErrorKind.MANIFEST_SERIALIZATION_ERROR,
    }
)


@dataclass(frozen=True)
class ErrorResponse:
    """The JSON body sent to clients for an error."""

    code: int
    error: str
    message: str

    def to_json(self) -> str:
        return json.dumps(asdict(self))


class ServerError(Exception):
    """A server error.

    ``discovery_permission`` records whether the client that caused the
    error may learn about the existence of caches and objects.
    ``discovery_denied`` marks an access error caused by the lack of
    that permission.
    """

    def __init__(
        self,
        kind: ErrorKind,
        detail: object = None,
        *,
        cause: BaseException | None = None,
        discovery_permission: bool = True,
        discovery_denied: bool = False,
    ) -> None:
        self.kind = kind
        self.detail = detail
        self.cause = cause
        self.discovery_permission = discovery_permission
        self.discovery_denied = discovery_denied
        super().__init__(kind.message(detail))
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.kind.message(self.detail)

    @classmethod
    def database_error(cls, error: BaseException) -> ServerError:
        return cls(ErrorKind.DATABASE_ERROR, str(error), cause=error)

    @classmethod
    def storage_error(cls, error: BaseException) -> ServerError:
        return cls(ErrorKind.STORAGE_ERROR, str(error), cause=error)

    @classmethod
    def request_error(cls, error: BaseException) -> ServerError:
        return cls(ErrorKind.REQUEST_ERROR, str(error), cause=error)

    def _name(self, kind: ErrorKind) -> str:
        if kind is ErrorKind.ATTIC_ERROR and self.cause is not None:
            return str(getattr(self.cause, "name", type(self.cause).__name__))
        return kind.label

    def to_response(self) -> ErrorResponse:
        """Build the sanitized response that is sent to the client."""
        if self.kind in _LOGGED_KINDS:
            logger.error("%s", self)

        kind, detail = self.kind, self.detail

        if not self.discovery_permission and kind in _HIDDEN_WITHOUT_DISCOVERY:
            kind, detail = ErrorKind.UNAUTHORIZED, None

        if kind is ErrorKind.ACCESS_ERROR and self.discovery_denied:
            kind, detail = ErrorKind.UNAUTHORIZED, None
        elif kind in _INTERNAL_TO_CLIENTS:
            kind, detail = ErrorKind.INTERNAL_SERVER_ERROR, None

        return ErrorResponse(
            code=int(kind.status),
            error=self._name(kind),
            message=kind.message(detail),
        )