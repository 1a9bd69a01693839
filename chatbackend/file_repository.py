"""Storage of uploaded file metadata."""

from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, Sequence

from chatbackend.db import uuid7
from chatbackend.errors import from_database_error
from chatbackend.file_models import FileEntity, NewFile


def _uuid(value: Any) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def _datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _file_entity(row: sqlite3.Row) -> FileEntity:
    return FileEntity(
        id=_uuid(row["id"]),
        filename=row["filename"],
        original_filename=row["original_filename"],
        mime_type=row["mime_type"],
        file_size=row["file_size"],
        storage_path=row["storage_path"],
        uploaded_by=_uuid(row["uploaded_by"]),
        created_at=_datetime(row["created_at"]),
    )


class FileRepository:
    """Rows of the ``files`` table, one per stored upload."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @contextmanager
    def transaction(self) -> Iterator[FileRepository]:
        """Run the enclosed calls atomically; an exception rolls them back."""
        if self._conn.in_transaction:
            yield self
            return
        self._conn.execute("BEGIN")
        try:
            yield self
        except BaseException:
            self._conn.execute("ROLLBACK")
            raise
        self._conn.execute("COMMIT")

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, tuple(params))
        except sqlite3.Error as exc:
            raise from_database_error(exc) from exc

    def create(self, file: NewFile) -> FileEntity:
        file_id = uuid7()
        self._execute(
            """
            INSERT INTO files
                (id, filename, original_filename, mime_type, file_size, storage_path, uploaded_by)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                file_id,
                file.filename,
                file.original_filename,
                file.mime_type,
                file.file_size,
                file.storage_path,
                file.uploaded_by,
            ),
        )
        return self.find_by_id(file_id)

    def find_by_id(self, file_id: uuid.UUID) -> FileEntity | None:
        row = self._execute("SELECT * FROM files WHERE id = ?", (file_id,)).fetchone()
        return _file_entity(row) if row is not None else None

    def delete(self, file_id: uuid.UUID) -> None:
        self._execute("DELETE FROM files WHERE id = ?", (file_id,))