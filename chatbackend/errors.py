"""Errors raised by services and the HTTP-facing errors they map to."""

from __future__ import annotations

import enum
import logging
import sqlite3
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error that is reported to the client with a status and a message."""

    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR
    title: str = "Internal Server Error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.title}: {self.message}"

    def body(self) -> dict[str, str]:
        """The JSON body sent to the client."""
        return {"message": self.message}


class BadRequestError(ApiError):
    status = HTTPStatus.BAD_REQUEST
    title = "Bad Request"


class UnauthorizedError(ApiError):
    status = HTTPStatus.UNAUTHORIZED
    title = "Unauthorized"


class ForbiddenError(ApiError):
    status = HTTPStatus.FORBIDDEN
    title = "Forbidden"


class NotFoundError(ApiError):
    status = HTTPStatus.NOT_FOUND
    title = "Not Found"


class ConflictError(ApiError):
    status = HTTPStatus.CONFLICT
    title = "Conflict"


class InternalServerError(ApiError):
    """An error whose details are never shown to the client."""

    def __init__(self) -> None:
        super().__init__("Internal Server Error")

    def __str__(self) -> str:
        return "Internal Server Error"


class ErrorKind(enum.Enum):
    IO = "io"
    DATABASE = "database"
    JSON = "json"
    BAD_REQUEST = "bad_request"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INTERNAL = "internal"


@dataclass(frozen=True)
class DbErrorMeta:
    """Details of a database constraint violation."""

    code: str | None
    constraint: str | None
    message: str


class ServiceError(Exception):
    """An error raised inside the service and repository layers."""

    def __init__(
        self, kind: ErrorKind, message: str = "", meta: DbErrorMeta | None = None
    ) -> None:
        self.kind = kind
        self.message = message
        self.meta = meta
        super().__init__(self._describe())

    def _describe(self) -> str:
        if self.kind is ErrorKind.IO:
            return "IO Error"
        if self.kind is ErrorKind.JSON:
            return "JSON Serialization/Deserialization Error"
        if self.kind is ErrorKind.DATABASE:
            return f"Database Error : {self.message}"
        if self.kind is ErrorKind.BAD_REQUEST:
            return f"Bad Request: {self.message}"
        if self.kind is ErrorKind.UNAUTHORIZED:
            return f"Unauthorized: {self.message}"
        if self.kind is ErrorKind.FORBIDDEN:
            return f"Forbidden: {self.message}"
        if self.kind is ErrorKind.NOT_FOUND:
            return f"Database Not Found: {self.message}"
        if self.kind is ErrorKind.CONFLICT:
            return f"Database Conflict: {self.meta!r}"
        return f"Internal System Error: {self.message}"

    @classmethod
    def bad_request(cls, message: str) -> ServiceError:
        return cls(ErrorKind.BAD_REQUEST, message)

    @classmethod
    def not_found(cls, message: str) -> ServiceError:
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def unauthorized(cls, message: str) -> ServiceError:
        return cls(ErrorKind.UNAUTHORIZED, message)

    @classmethod
    def forbidden(cls, message: str) -> ServiceError:
        return cls(ErrorKind.FORBIDDEN, message)

    @classmethod
    def internal_error(cls, message: str) -> ServiceError:
        return cls(ErrorKind.INTERNAL, message)

    @classmethod
    def conflict(cls, meta: DbErrorMeta | None) -> ServiceError:
        return cls(ErrorKind.CONFLICT, meta=meta)


def conflict_message(meta: DbErrorMeta | None) -> str:
    """Describe a uniqueness violation by the last word of its constraint name."""
    if meta is None or meta.constraint is None:
        return "Duplicate value"
    field = meta.constraint.split("_")[-1]
    if not field:
        field = "Value"
    else:
        field = field[0].upper() + field[1:]
    return f"{field} already exists"


def to_api_error(error: BaseException) -> ApiError:
    """Map any error to the error reported to the client."""
    if isinstance(error, ApiError):
        return error
    if isinstance(error, ServiceError):
        if error.kind is ErrorKind.BAD_REQUEST:
            return BadRequestError(error.message)
        if error.kind is ErrorKind.UNAUTHORIZED:
            return UnauthorizedError(error.message)
        if error.kind is ErrorKind.FORBIDDEN:
            return ForbiddenError(error.message)
        if error.kind is ErrorKind.NOT_FOUND:
            return NotFoundError(error.message)
        if error.kind is ErrorKind.CONFLICT:
            return ConflictError(conflict_message(error.meta))
    logger.error("Internal Server Error: %r", error)
    return InternalServerError()


_UNIQUE_PREFIX = "UNIQUE constraint failed: "


def from_database_error(exc: BaseException) -> ServiceError:
    """Translate a database exception into a service error."""
    logger.error("%r", exc)
    text = str(exc)
    if isinstance(exc, sqlite3.IntegrityError) and text.startswith(_UNIQUE_PREFIX):
        columns = [part.strip() for part in text[len(_UNIQUE_PREFIX):].split(",")]
        table = columns[0].split(".", 1)[0]
        names = [column.split(".", 1)[-1] for column in columns]
        constraint = "_".join([table, *names])
        return ServiceError.conflict(
            DbErrorMeta(code="23505", constraint=constraint, message=text)
        )
    if isinstance(exc, sqlite3.OperationalError) and text.startswith("no such table"):
        return ServiceError.not_found("Resource not found")
    if isinstance(exc, sqlite3.DatabaseError):
        logger.error("Unhandled DB error: %r", exc)
        return ServiceError(ErrorKind.DATABASE, text)
    return ServiceError.internal_error(text)


def error_response(
    error: BaseException, frontend_url: str
) -> tuple[int, dict[str, str], dict[str, Any]]:
    """Build the status, headers and JSON body answered for an error."""
    api_error = to_api_error(error)
    headers = {
        "Access-Control-Allow-Origin": frontend_url,
        "Access-Control-Allow-Credentials": "true",
    }
    return int(api_error.status), headers, api_error.body()