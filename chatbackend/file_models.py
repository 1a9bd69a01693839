"""Uploaded file records, settings and responses."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

_DEFAULT_MIME_TYPES = (
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
)


@dataclass
class NewFile:
    filename: str
    original_filename: str
    mime_type: str
    file_size: int
    storage_path: str
    uploaded_by: uuid.UUID


@dataclass
class UploadConfig:
    """Limits and locations for uploads; the defaults allow 10 MB of common types."""

    max_file_size: int = 10 * 1024 * 1024
    allowed_mime_types: list[str] = field(default_factory=lambda: list(_DEFAULT_MIME_TYPES))
    upload_dir: str = "./uploads"
    base_url: str = "/uploads"


@dataclass
class FileEntity:
    id: uuid.UUID
    filename: str
    original_filename: str
    mime_type: str
    file_size: int
    storage_path: str
    uploaded_by: uuid.UUID
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "filename": self.filename,
            "original_filename": self.original_filename,
            "mime_type": self.mime_type,
            "file_size": self.file_size,
            "storage_path": self.storage_path,
            "uploaded_by": str(self.uploaded_by),
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class FileUploadResponse:
    id: uuid.UUID
    filename: str
    original_filename: str
    mime_type: str
    file_size: int
    url: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "filename": self.filename,
            "original_filename": self.original_filename,
            "mime_type": self.mime_type,
            "file_size": self.file_size,
            "url": self.url,
            "created_at": self.created_at.isoformat(),
        }