"""Validation, storage on disk and bookkeeping of uploaded files."""

from __future__ import annotations

import os
import uuid
from pathlib import Path, PurePosixPath

from chatbackend.db import uuid7
from chatbackend.errors import ErrorKind, ServiceError
from chatbackend.file_models import FileEntity, FileUploadResponse, NewFile, UploadConfig
from chatbackend.file_repository import FileRepository


class FileUploadService:
    """Stores uploads under the configured directory and records them in the repository."""

    def __init__(self, file_repo: FileRepository, config: UploadConfig) -> None:
        self._file_repo = file_repo
        self._config = config

    @classmethod
    def with_defaults(cls, file_repo: FileRepository) -> FileUploadService:
        return cls(file_repo, UploadConfig())

    def _validate(self, file_size: int, mime_type: str) -> None:
        if file_size > self._config.max_file_size:
            raise ServiceError.bad_request(
                "File size exceeds maximum allowed size of "
                f"{self._config.max_file_size} bytes"
            )
        if mime_type not in self._config.allowed_mime_types:
            raise ServiceError.bad_request(f"File type '{mime_type}' is not allowed")

    @staticmethod
    def _generate_filename(original_filename: str) -> str:
        extension = PurePosixPath(original_filename).suffix[1:]
        name = str(uuid7())
        return f"{name}.{extension}" if extension else name

    def _save(self, filename: str, data: bytes) -> str:
        try:
            os.makedirs(self._config.upload_dir, exist_ok=True)
            path = f"{self._config.upload_dir}/{filename}"
            Path(path).write_bytes(data)
        except OSError as exc:
            raise ServiceError(ErrorKind.IO, str(exc)) from exc
        return path

    def upload_file(
        self,
        original_filename: str,
        data: bytes,
        mime_type: str,
        uploaded_by: uuid.UUID,
    ) -> FileUploadResponse:
        """Validate, write to disk and record the file; return its public description."""
        data = bytes(data)
        file_size = len(data)
        self._validate(file_size, mime_type)

        filename = self._generate_filename(original_filename)
        storage_path = self._save(filename, data)

        new_file = NewFile(
            filename=filename,
            original_filename=original_filename,
            mime_type=mime_type,
            file_size=file_size,
            storage_path=storage_path,
            uploaded_by=uploaded_by,
        )
        with self._file_repo.transaction() as repo:
            entity = repo.create(new_file)

        return FileUploadResponse(
            id=entity.id,
            filename=entity.filename,
            original_filename=entity.original_filename,
            mime_type=entity.mime_type,
            file_size=entity.file_size,
            url=f"{self._config.base_url}/{filename}",
            created_at=entity.created_at,
        )

    def get_file(self, file_id: uuid.UUID) -> FileEntity | None:
        return self._file_repo.find_by_id(file_id)

    def delete_file(self, file_id: uuid.UUID) -> None:
        """Remove the file from disk, ignoring failures, then forget its record."""
        file = self._file_repo.find_by_id(file_id)
        if file is None:
            raise ServiceError.not_found("File not found")
        try:
            os.remove(file.storage_path)
        except OSError:
            pass
        with self._file_repo.transaction() as repo:
            repo.delete(file_id)