import os
import uuid

import pytest

from chatbackend.db import connect, create_schema
from chatbackend.errors import ErrorKind, ServiceError
from chatbackend.file_models import UploadConfig
from chatbackend.file_repository import FileRepository
from chatbackend.file_service import FileUploadService


@pytest.fixture
def repo():
    conn = connect(":memory:")
    create_schema(conn)
    yield FileRepository(conn)
    conn.close()


def _config(tmp_path, max_file_size=1024):
    return UploadConfig(
        max_file_size=max_file_size,
        allowed_mime_types=["image/png", "text/plain"],
        upload_dir=str(tmp_path / "store"),
        base_url="/files",
    )


def test_upload_writes_file_and_records_it(repo, tmp_path):
    service = FileUploadService(repo, _config(tmp_path))
    owner = uuid.uuid4()
    result = service.upload_file("photo.png", b"abc", "image/png", owner)

    assert result.filename.endswith(".png")
    uuid.UUID(result.filename[: -len(".png")])
    assert result.original_filename == "photo.png"
    assert result.file_size == 3
    assert result.url == f"/files/{result.filename}"

    stored = service.get_file(result.id)
    assert stored.uploaded_by == owner
    assert stored.storage_path == f"{tmp_path / 'store'}/{result.filename}"
    with open(stored.storage_path, "rb") as handle:
        assert handle.read() == b"abc"


def test_upload_without_extension_uses_bare_uuid(repo, tmp_path):
    service = FileUploadService(repo, _config(tmp_path))
    result = service.upload_file("README", b"hi", "text/plain", uuid.uuid4())
    assert str(uuid.UUID(result.filename)) == result.filename


def test_upload_keeps_last_extension(repo, tmp_path):
    service = FileUploadService(repo, _config(tmp_path))
    result = service.upload_file("notes.tar.txt", b"hi", "text/plain", uuid.uuid4())
    assert result.filename.endswith(".txt")
    assert ".tar" not in result.filename


def test_upload_too_large_is_rejected(repo, tmp_path):
    service = FileUploadService(repo, _config(tmp_path, max_file_size=4))
    with pytest.raises(ServiceError) as info:
        service.upload_file("big.png", b"12345", "image/png", uuid.uuid4())
    assert info.value.kind is ErrorKind.BAD_REQUEST
    assert info.value.message == "File size exceeds maximum allowed size of 4 bytes"
    assert not os.path.exists(tmp_path / "store")


def test_upload_at_limit_is_accepted(repo, tmp_path):
    service = FileUploadService(repo, _config(tmp_path, max_file_size=4))
    result = service.upload_file("ok.png", b"1234", "image/png", uuid.uuid4())
    assert result.file_size == 4


def test_upload_disallowed_type_is_rejected(repo, tmp_path):
    service = FileUploadService(repo, _config(tmp_path))
    with pytest.raises(ServiceError) as info:
        service.upload_file("x.exe", b"1", "application/x-msdownload", uuid.uuid4())
    assert info.value.kind is ErrorKind.BAD_REQUEST
    assert info.value.message == "File type 'application/x-msdownload' is not allowed"


def test_defaults_reject_oversized_upload(repo, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    service = FileUploadService.with_defaults(repo)
    data = b"\0" * (10 * 1024 * 1024 + 1)
    with pytest.raises(ServiceError) as info:
        service.upload_file("big.png", data, "image/png", uuid.uuid4())
    assert "10485760" in info.value.message


def test_defaults_store_under_uploads(repo, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    service = FileUploadService.with_defaults(repo)
    result = service.upload_file("doc.pdf", b"%PDF", "application/pdf", uuid.uuid4())
    assert result.url == f"/uploads/{result.filename}"
    assert (tmp_path / "uploads" / result.filename).read_bytes() == b"%PDF"


def test_delete_removes_disk_file_and_record(repo, tmp_path):
    service = FileUploadService(repo, _config(tmp_path))
    result = service.upload_file("photo.png", b"abc", "image/png", uuid.uuid4())
    path = service.get_file(result.id).storage_path
    service.delete_file(result.id)
    assert service.get_file(result.id) is None
    assert not os.path.exists(path)


def test_delete_tolerates_missing_disk_file(repo, tmp_path):
    service = FileUploadService(repo, _config(tmp_path))
    result = service.upload_file("photo.png", b"abc", "image/png", uuid.uuid4())
    os.remove(service.get_file(result.id).storage_path)
    service.delete_file(result.id)
    assert service.get_file(result.id) is None


def test_delete_missing_file_is_not_found(repo, tmp_path):
    service = FileUploadService(repo, _config(tmp_path))
    with pytest.raises(ServiceError) as info:
        service.delete_file(uuid.uuid4())
    assert info.value.kind is ErrorKind.NOT_FOUND
    assert info.value.message == "File not found"