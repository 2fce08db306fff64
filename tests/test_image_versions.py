import asyncio

import pytest
from PIL import Image

from app.exceptions import ImageProcessingError, StorageIOError
from app.services.image_versions import is_rendition, version_paths
from tests.helpers import make_jpeg


def test_version_paths_are_siblings():
    assert version_paths("alice/photo/abc.jpg") == (
        "alice/photo/abc_thumb.jpg",
        "alice/photo/abc_medium.jpg",
    )
    assert version_paths("alice/photo/abc.jpeg") == (
        "alice/photo/abc_thumb.jpeg",
        "alice/photo/abc_medium.jpeg",
    )


def test_is_rendition():
    assert is_rendition("alice/photo/abc_thumb.jpg")
    assert is_rendition("alice/photo/abc_medium.jpg")
    assert not is_rendition("alice/photo/abc.jpg")


async def test_generate_versions_scales_down(blob_store, pipeline, storage_root):
    blob = await blob_store.store(make_jpeg(2000, 1000), "alice", "photo", "big.jpg")

    versions = await pipeline.generate_versions(blob.relative_path)

    with Image.open(storage_root / versions.thumb_path) as thumb:
        assert thumb.size == (300, 150)
        assert thumb.format == "JPEG"
    with Image.open(storage_root / versions.medium_path) as medium:
        assert medium.size == (1280, 640)


async def test_generate_versions_never_upscales(blob_store, pipeline, storage_root):
    blob = await blob_store.store(make_jpeg(200, 100), "alice", "photo", "small.jpg")

    versions = await pipeline.generate_versions(blob.relative_path)

    with Image.open(storage_root / versions.thumb_path) as thumb:
        assert thumb.size == (200, 100)
    with Image.open(storage_root / versions.medium_path) as medium:
        assert medium.size == (200, 100)


async def test_undecodable_original_leaves_no_renditions(blob_store, pipeline, storage_root):
    # JPEG magic bytes but garbage afterwards
    content = b"\xff\xd8\xff" + b"not really a jpeg" * 10
    blob = await blob_store.store(content, "alice", "photo", "broken.jpg")

    with pytest.raises(ImageProcessingError) as exc_info:
        await pipeline.generate_versions(blob.relative_path)

    assert exc_info.value.message == "Failed to store file"
    thumb, medium = version_paths(blob.relative_path)
    assert not (storage_root / thumb).exists()
    assert not (storage_root / medium).exists()
    # 원본 정리는 호출자(업로드 보상 작업)의 책임
    assert (storage_root / blob.relative_path).exists()


async def test_medium_failure_removes_thumbnail(blob_store, pipeline, storage_root, monkeypatch):
    blob = await blob_store.store(make_jpeg(800, 600), "alice", "photo", "a.jpg")
    original_render = pipeline._render

    async def render_then_fail(src, dest, width):
        if dest.endswith("_medium.jpg"):
            raise OSError("disk full")
        await original_render(src, dest, width)

    monkeypatch.setattr(pipeline, "_render", render_then_fail)

    with pytest.raises(ImageProcessingError):
        await pipeline.generate_versions(blob.relative_path)

    thumb, medium = version_paths(blob.relative_path)
    assert not (storage_root / thumb).exists()
    assert not (storage_root / medium).exists()


async def test_cancellation_cleans_up_and_propagates(blob_store, pipeline, storage_root, monkeypatch):
    blob = await blob_store.store(make_jpeg(800, 600), "alice", "photo", "a.jpg")
    original_render = pipeline._render

    async def render_then_cancel(src, dest, width):
        await original_render(src, dest, width)
        raise asyncio.CancelledError()

    monkeypatch.setattr(pipeline, "_render", render_then_cancel)

    with pytest.raises(asyncio.CancelledError):
        await pipeline.generate_versions(blob.relative_path)

    thumb, _ = version_paths(blob.relative_path)
    assert not (storage_root / thumb).exists()


async def test_delete_versions_tolerates_missing_renditions(blob_store, pipeline, storage_root):
    blob = await blob_store.store(make_jpeg(), "alice", "photo", "a.jpg")

    removed = await pipeline.delete_versions(blob.relative_path)

    assert removed == 1
    assert not (storage_root / blob.relative_path).exists()


async def test_delete_versions_attempts_every_file(blob_store, pipeline, storage_root, monkeypatch):
    blob = await blob_store.store(make_jpeg(800, 600), "alice", "photo", "a.jpg")
    versions = await pipeline.generate_versions(blob.relative_path)
    original_delete = blob_store.delete

    async def flaky_delete(path):
        if path == blob.relative_path:
            raise StorageIOError(details={"operation": "delete"})
        return await original_delete(path)

    monkeypatch.setattr(blob_store, "delete", flaky_delete)

    with pytest.raises(StorageIOError):
        await pipeline.delete_versions(blob.relative_path)

    assert not (storage_root / versions.thumb_path).exists()
    assert not (storage_root / versions.medium_path).exists()
    assert (storage_root / blob.relative_path).exists()
