"""Request handlers for the file routes.

POST   /upload      upload_file
GET    /{file_id}   get_file
DELETE /{file_id}   delete_file
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterable, Iterator, Mapping, Optional

from chatbackend.errors import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    to_api_error,
)
from chatbackend.file_service import FileUploadService
from chatbackend.responses import Success

_DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class UploadPart:
    """One part of a multipart form: its disposition parameters, type and content."""

    data: bytes
    disposition: Optional[Mapping[str, str]] = None
    content_type: Optional[str] = None


@contextmanager
def _reported() -> Iterator[None]:
    try:
        yield
    except ServiceError as exc:
        raise to_api_error(exc) from exc


def upload_file(
    service: FileUploadService, user_id: uuid.UUID, parts: Iterable[UploadPart]
) -> Success:
    """Store the first part of the form as a file owned by the user."""
    part = next(iter(parts), None)
    if part is None:
        raise BadRequestError("No file found in request")
    if part.disposition is None:
        raise BadRequestError("Missing content disposition")
    filename = part.disposition.get("filename")
    if filename is None:
        raise BadRequestError("Missing filename")
    mime_type = part.content_type or _DEFAULT_MIME_TYPE

    with _reported():
        result = service.upload_file(filename, part.data, mime_type, user_id)
    return Success.ok(result).with_message("File uploaded successfully")


def get_file(service: FileUploadService, file_id: uuid.UUID) -> Success:
    with _reported():
        file = service.get_file(file_id)
    if file is None:
        raise NotFoundError("File not found")
    return Success.ok(file)


def delete_file(service: FileUploadService, file_id: uuid.UUID, user_id: uuid.UUID) -> Success:
    """Delete a file; only its uploader may do so."""
    with _reported():
        file = service.get_file(file_id)
    if file is None:
        raise NotFoundError("File not found")
    if file.uploaded_by != user_id:
        raise ForbiddenError("You don't have permission to delete this file")
    with _reported():
        service.delete_file(file_id)
    return Success.ok("File deleted successfully").with_message("File deleted successfully")