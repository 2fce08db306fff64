import os
import time

import pytest

from app.exceptions import (
    EMPTY_FILE,
    INVALID_CONTENT_TYPE,
    INVALID_EXTENSION,
    INVALID_MAGIC_BYTES,
    NotFoundError,
    PathTraversalError,
    StorageIOError,
    ValidationError,
)
from app.services.blob_store import normalize_category, validate_content
from tests.helpers import make_jpeg, make_png


def test_validate_accepts_jpeg(jpeg_bytes):
    validate_content(jpeg_bytes, "shot.JPEG", "image/jpeg")


@pytest.mark.parametrize(
    "content,filename,content_type,code",
    [
        (b"", "a.jpg", "image/jpeg", EMPTY_FILE),
        (b"\x89PNG\r\n\x1a\n....", "a.jpg", "image/jpeg", INVALID_MAGIC_BYTES),
        (make_jpeg(8, 8), "a.jpg", "image/png", INVALID_CONTENT_TYPE),
        (make_jpeg(8, 8), "a.png", "image/jpeg", INVALID_EXTENSION),
    ],
)
def test_validate_rejections(content, filename, content_type, code):
    with pytest.raises(ValidationError) as exc_info:
        validate_content(content, filename, content_type)
    assert exc_info.value.error_code == code
    assert exc_info.value.status_code == 400


def test_magic_bytes_win_over_declared_type():
    # PNG renamed to .jpg and declared as image/jpeg
    with pytest.raises(ValidationError) as exc_info:
        validate_content(make_png(), "fake.jpg", "image/jpeg")
    assert exc_info.value.error_code == INVALID_MAGIC_BYTES


def test_content_type_parameters_are_ignored(jpeg_bytes):
    validate_content(jpeg_bytes, "a.jpg", "image/jpeg; charset=binary")


def test_normalize_category():
    assert normalize_category("AVATAR") == "avatar"
    assert normalize_category(None) == "photo"
    assert normalize_category("banner") == "photo"


async def test_store_writes_under_owner_and_category(blob_store, storage_root, jpeg_bytes):
    blob = await blob_store.store(jpeg_bytes, "alice", "photo", "shot.jpg", "image/jpeg")

    assert blob.relative_path.startswith("alice/photo/")
    assert blob.relative_path.endswith(".jpg")
    assert blob.size == len(jpeg_bytes)
    on_disk = storage_root / blob.relative_path
    assert on_disk.read_bytes() == jpeg_bytes
    # 임시 파일이 남지 않아야 함
    assert [p.name for p in on_disk.parent.iterdir()] == [on_disk.name]


async def test_store_keeps_jpeg_extension(blob_store, jpeg_bytes):
    blob = await blob_store.store(jpeg_bytes, "alice", "postcard", "card.jpeg")
    assert blob.relative_path.startswith("alice/postcard/")
    assert blob.relative_path.endswith(".jpeg")


async def test_store_rejects_invalid_content_without_writing(blob_store, storage_root):
    with pytest.raises(ValidationError):
        await blob_store.store(make_png(), "alice", "photo", "x.jpg")
    assert not any(storage_root.rglob("*"))


async def test_delete_missing_file_is_not_an_error(blob_store):
    assert await blob_store.delete("alice/photo/missing.jpg") is False


async def test_delete_and_size(blob_store, jpeg_bytes):
    blob = await blob_store.store(jpeg_bytes, "alice", "photo", "a.jpg")
    assert await blob_store.file_size(blob.relative_path) == len(jpeg_bytes)
    assert await blob_store.delete(blob.relative_path) is True
    assert await blob_store.file_size(blob.relative_path) == 0
    assert await blob_store.exists(blob.relative_path) is False


async def test_read_missing_raises_not_found(blob_store):
    with pytest.raises(NotFoundError):
        await blob_store.read("alice/photo/nope.jpg")


@pytest.mark.parametrize(
    "path",
    ["../etc/passwd", "alice/../../etc/passwd", "/etc/passwd", "", "alice/\x00.jpg", "..\\..\\x.jpg"],
)
def test_resolve_rejects_traversal(blob_store, path):
    with pytest.raises(PathTraversalError):
        blob_store.resolve(path)


def test_resolve_rejects_symlink_escape(blob_store, storage_root, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    os.symlink(outside, storage_root / "evil")
    with pytest.raises(PathTraversalError):
        blob_store.resolve("evil/photo/x.jpg")


async def test_io_errors_become_storage_io_error(blob_store, monkeypatch, jpeg_bytes):
    def boom(*args):
        raise PermissionError("read-only file system")

    monkeypatch.setattr("app.services.blob_store.write_atomic", boom)
    with pytest.raises(StorageIOError) as exc_info:
        await blob_store.store(jpeg_bytes, "alice", "photo", "a.jpg")
    assert exc_info.value.message == "Failed to store file"
    assert exc_info.value.status_code == 500


async def test_io_timeout_becomes_storage_io_error(blob_store, monkeypatch, jpeg_bytes):
    blob_store.io_timeout = 0.05

    def slow(*args):
        time.sleep(0.5)
        return 0

    monkeypatch.setattr("app.services.blob_store.write_atomic", slow)
    with pytest.raises(StorageIOError):
        await blob_store.store(jpeg_bytes, "alice", "photo", "a.jpg")


async def test_list_files_skips_temp_files(blob_store, storage_root, jpeg_bytes):
    a = await blob_store.store(jpeg_bytes, "alice", "photo", "a.jpg")
    b = await blob_store.store(jpeg_bytes, "bob", "photo", "b.jpg")
    (storage_root / "alice" / "photo" / ".partial.tmp").write_bytes(b"x")

    all_paths = sorted(p for p, _ in await blob_store.list_files("photo"))
    assert all_paths == sorted([a.relative_path, b.relative_path])

    alice_paths = [p for p, _ in await blob_store.list_files("photo", owner="alice")]
    assert alice_paths == [a.relative_path]
