"""
Derived image renditions (thumbnail + medium preview) built with Pillow.

원본 옆에 같은 디렉터리로 저장:
    abc.jpg -> abc_thumb.jpg (300px), abc_medium.jpg (1280px)
원본보다 넓게 확대하지 않음. EXIF 회전 적용 후 RGB JPEG(quality 85)로 재인코딩.
"""
import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from io import BytesIO
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from PIL import Image, ImageOps

from app.config import get_settings
from app.exceptions import ImageProcessingError, PhotoApiError, StorageIOError
from app.services.blob_store import BlobStore, write_atomic, get_blob_store
from app.utils.prometheus_metrics import record_storage_operation

logger = logging.getLogger("app.image")

THUMBNAIL_WIDTH = 300
MEDIUM_WIDTH = 1280
JPEG_QUALITY = 85

THUMB_SUFFIX = "_thumb"
MEDIUM_SUFFIX = "_medium"


@dataclass(frozen=True)
class ImageVersions:
    thumb_path: str
    medium_path: str


def version_paths(original_relative_path: str) -> Tuple[str, str]:
    """Sibling rendition paths for an original: (thumb, medium)."""
    p = PurePosixPath(original_relative_path)
    suffix = p.suffix or ".jpg"
    thumb = p.with_name(f"{p.stem}{THUMB_SUFFIX}{suffix}")
    medium = p.with_name(f"{p.stem}{MEDIUM_SUFFIX}{suffix}")
    return thumb.as_posix(), medium.as_posix()


def is_rendition(relative_path: str) -> bool:
    stem = PurePosixPath(relative_path).stem
    return stem.endswith(THUMB_SUFFIX) or stem.endswith(MEDIUM_SUFFIX)


def _render_variant(src: Path, dest: Path, width: int, quality: int) -> int:
    """Decode src, scale down to width (never up) and write dest atomically."""
    with Image.open(src) as im:
        im = ImageOps.exif_transpose(im)
        im = im.convert("RGB")
        if width > 0 and im.width > width:
            ratio = float(width) / float(im.width)
            new_h = max(1, int(round(float(im.height) * ratio)))
            im = im.resize((int(width), int(new_h)), Image.Resampling.LANCZOS)
        buf = BytesIO()
        im.save(buf, format="JPEG", quality=int(quality), optimize=True)
    return write_atomic(dest, buf.getvalue())


class DerivedImagePipeline:
    """Generates and removes the rendition set of an original."""

    def __init__(
        self,
        blob_store: BlobStore,
        timeout: Optional[float] = None,
        thumb_width: int = THUMBNAIL_WIDTH,
        medium_width: int = MEDIUM_WIDTH,
        quality: int = JPEG_QUALITY,
    ):
        self.blob_store = blob_store
        self.timeout = timeout if timeout is not None else get_settings().image_processing_timeout_seconds
        self.thumb_width = thumb_width
        self.medium_width = medium_width
        self.quality = quality

    async def _render(self, src: Path, dest_relative: str, width: int) -> None:
        dest = self.blob_store.resolve(dest_relative)
        async with record_storage_operation("resize"):
            await asyncio.wait_for(
                asyncio.to_thread(_render_variant, src, dest, width, self.quality),
                timeout=self.timeout,
            )

    async def generate_versions(self, original_relative_path: str) -> ImageVersions:
        """
        Build thumb and medium for an original already in the blob store.

        Either both renditions exist afterwards or neither does: a failure
        removes what was written and raises ImageProcessingError.
        """
        src = self.blob_store.resolve(original_relative_path)
        thumb_path, medium_path = version_paths(original_relative_path)
        try:
            for dest, width in ((thumb_path, self.thumb_width), (medium_path, self.medium_width)):
                await self._render(src, dest, width)
        except asyncio.CancelledError:
            await self._discard([thumb_path, medium_path])
            raise
        except Exception as e:
            logger.error(
                "Rendition generation failed",
                extra={
                    "event": "image",
                    "path": original_relative_path,
                    "error_type": type(e).__name__,
                    "error": str(e)[:200],
                },
            )
            # 타임아웃 시 워커 스레드가 파일을 뒤늦게 쓸 수 있으므로 두 경로 모두 정리
            await self._discard([thumb_path, medium_path])
            raise ImageProcessingError(details={"path": original_relative_path}) from e

        logger.info(
            "Renditions generated",
            extra={"event": "image", "path": original_relative_path},
        )
        return ImageVersions(thumb_path=thumb_path, medium_path=medium_path)

    async def _discard(self, paths: List[str]) -> None:
        for path in paths:
            try:
                await self.blob_store.delete(path)
            except PhotoApiError as e:
                logger.error(
                    "Failed to remove partial rendition",
                    extra={"event": "reconciliation", "path": path, "error_type": type(e).__name__},
                )

    async def delete_versions(self, original_relative_path: str) -> int:
        """
        Remove original, thumb and medium. Files already gone are skipped.
        Every path is attempted; the first storage error is re-raised at the end.
        Returns the number of files actually removed.
        """
        thumb_path, medium_path = version_paths(original_relative_path)
        removed = 0
        first_error: Optional[StorageIOError] = None
        for path in (original_relative_path, thumb_path, medium_path):
            try:
                if await self.blob_store.delete(path):
                    removed += 1
            except StorageIOError as e:
                first_error = first_error or e
        if first_error is not None:
            raise first_error
        return removed


@lru_cache()
def get_image_pipeline() -> DerivedImagePipeline:
    return DerivedImagePipeline(get_blob_store())
