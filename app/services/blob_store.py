"""
Local disk blob store for uploaded images.

디스크 레이아웃: {storage_root}/{username}/{category}/{uuid4 hex}.jpg
- 파일명은 랜덤 128비트 (원본 파일명은 저장하지 않음)
- 쓰기는 임시 파일 + fsync + os.replace 로 원자적
- 모든 블로킹 I/O는 asyncio.to_thread + 타임아웃
"""
import asyncio
import logging
import os
import tempfile
import uuid
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import Any, Callable, List, Optional, Tuple

from app.config import get_settings
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
from app.utils.prometheus_metrics import record_storage_operation

logger = logging.getLogger("app.storage")

JPEG_MAGIC = b"\xff\xd8\xff"
ALLOWED_CONTENT_TYPES = frozenset({"image/jpeg", "image/jpg"})
ALLOWED_EXTENSIONS = frozenset({".jpg", ".jpeg"})

CATEGORIES = ("avatar", "photo", "postcard", "other")
DEFAULT_CATEGORY = "photo"


@dataclass(frozen=True)
class StoredBlob:
    """Result of a successful store: path relative to the root and bytes on disk."""

    relative_path: str
    size: int

    @property
    def filename(self) -> str:
        return PurePosixPath(self.relative_path).name


def normalize_category(category: Optional[str]) -> str:
    """Unknown or empty category names fall back to 'photo'."""
    name = (category or "").strip().lower()
    return name if name in CATEGORIES else DEFAULT_CATEGORY


def validate_content(
    content: bytes,
    filename: Optional[str] = None,
    content_type: Optional[str] = None,
) -> None:
    """
    Reject anything that is not a JPEG. Checks run in a fixed order and
    stop at the first failure.

    The magic bytes are authoritative: a PNG renamed to .jpg fails here no
    matter what the client declared.
    """
    if not content:
        raise ValidationError(message="File is empty", error_code=EMPTY_FILE)

    if not content.startswith(JPEG_MAGIC):
        raise ValidationError(
            message="Only JPEG images are allowed",
            error_code=INVALID_MAGIC_BYTES,
        )

    if content_type:
        declared = content_type.split(";", 1)[0].strip().lower()
        if declared not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(
                message="Only JPEG images are allowed",
                error_code=INVALID_CONTENT_TYPE,
                details={"content_type": declared},
            )

    if filename:
        suffix = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
        if suffix not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message="File extension must be .jpg or .jpeg",
                error_code=INVALID_EXTENSION,
                details={"extension": suffix or None},
            )


def _extension_for(filename: Optional[str]) -> str:
    if filename and filename.lower().endswith(".jpeg"):
        return ".jpeg"
    return ".jpg"


def write_atomic(target: Path, content: bytes) -> int:
    """Write content to target via a temp file in the same directory. Returns bytes on disk."""
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    return target.stat().st_size


def _unlink(path: Path) -> bool:
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


def _size_or_zero(path: Path) -> int:
    try:
        return path.stat().st_size if path.is_file() else 0
    except FileNotFoundError:
        return 0


def _read_bytes(path: Path) -> Optional[bytes]:
    if not path.is_file():
        return None
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


class BlobStore:
    """
    Stores originals and renditions under a single root directory.

    Paths handed out and accepted by this class are always relative to the
    root with POSIX separators, e.g. "alice/photo/3f2a...c1.jpg".
    """

    def __init__(self, root: Optional[str] = None, io_timeout: Optional[float] = None):
        settings = get_settings()
        self.root = Path(root or settings.storage_root).resolve()
        self.io_timeout = io_timeout if io_timeout is not None else settings.storage_io_timeout_seconds

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    async def run_io(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        """
        Run a blocking disk call in a worker thread with a timeout.
        Timeouts and OSError become StorageIOError.
        """
        try:
            async with record_storage_operation(operation):
                return await asyncio.wait_for(
                    asyncio.to_thread(func, *args), timeout=self.io_timeout
                )
        except asyncio.TimeoutError as e:
            logger.error(
                "Storage I/O timed out",
                extra={"event": "storage", "operation": operation, "timeout": self.io_timeout},
            )
            raise StorageIOError(details={"operation": operation}) from e
        except OSError as e:
            logger.error(
                "Storage I/O failed",
                extra={
                    "event": "storage",
                    "operation": operation,
                    "error_type": type(e).__name__,
                    "error": str(e)[:200],
                },
            )
            raise StorageIOError(details={"operation": operation}) from e

    def validate(
        self,
        content: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> None:
        validate_content(content, filename, content_type)

    def resolve(self, relative_path: str) -> Path:
        """
        Map a relative storage path to an absolute path under the root.
        Absolute paths, '..' segments and symlinks leading outside the root
        raise PathTraversalError.
        """
        if not relative_path or "\x00" in relative_path:
            raise PathTraversalError(message="Invalid storage path")
        normalized = relative_path.replace("\\", "/")
        if normalized.startswith("/") or PurePosixPath(normalized).is_absolute():
            raise PathTraversalError(message="Invalid storage path")
        if ".." in PurePosixPath(normalized).parts:
            raise PathTraversalError(message="Invalid storage path")

        candidate = (self.root / normalized).resolve()
        if self.root not in candidate.parents:
            raise PathTraversalError(message="Invalid storage path")
        return candidate

    def relative_to_root(self, path: Path) -> str:
        return path.resolve().relative_to(self.root).as_posix()

    async def store(
        self,
        content: bytes,
        owner: str,
        category: Optional[str] = None,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> StoredBlob:
        """Validate and write an original. Returns its relative path and exact size."""
        self.validate(content, filename, content_type)
        category = normalize_category(category)

        name = uuid.uuid4().hex + _extension_for(filename)
        relative_path = f"{owner}/{category}/{name}"
        target = self.resolve(relative_path)

        size = await self.run_io("write", write_atomic, target, content)
        logger.info(
            "Blob stored",
            extra={"event": "storage", "path": relative_path, "bytes": size, "category": category},
        )
        return StoredBlob(relative_path=relative_path, size=size)

    async def delete(self, relative_path: str) -> bool:
        """Delete a blob. Missing files are not an error; returns whether a file was removed."""
        target = self.resolve(relative_path)
        removed = await self.run_io("delete", _unlink, target)
        if removed:
            logger.info("Blob deleted", extra={"event": "storage", "path": relative_path})
        return removed

    async def file_size(self, relative_path: str) -> int:
        """Bytes on disk, 0 when the file does not exist."""
        target = self.resolve(relative_path)
        return await self.run_io("stat", _size_or_zero, target)

    async def exists(self, relative_path: str) -> bool:
        target = self.resolve(relative_path)
        return await self.run_io("stat", Path.is_file, target)

    async def read(self, relative_path: str) -> bytes:
        target = self.resolve(relative_path)
        content = await self.run_io("read", _read_bytes, target)
        if content is None:
            raise NotFoundError(message="Image not found", details={"path": relative_path})
        return content

    def _scan(self, category: str, owner: Optional[str]) -> List[Tuple[str, float]]:
        results: List[Tuple[str, float]] = []
        if not self.root.is_dir():
            return results
        if owner is not None:
            owner_dirs = [self.resolve(owner)]
        else:
            owner_dirs = [d for d in self.root.iterdir() if d.is_dir()]
        for owner_dir in owner_dirs:
            category_dir = owner_dir / category
            if not category_dir.is_dir():
                continue
            for entry in category_dir.iterdir():
                # 쓰기 중인 임시 파일(.xxx.tmp) 제외
                if not entry.is_file() or entry.name.startswith("."):
                    continue
                try:
                    mtime = entry.stat().st_mtime
                except FileNotFoundError:
                    continue
                results.append((f"{owner_dir.name}/{category}/{entry.name}", mtime))
        return results

    async def list_files(self, category: str, owner: Optional[str] = None) -> List[Tuple[str, float]]:
        """Files of one category, optionally for a single owner: (relative path, mtime)."""
        return await self.run_io("scan", self._scan, normalize_category(category), owner)


@lru_cache()
def get_blob_store() -> BlobStore:
    """Blob store rooted at settings.storage_root (FastAPI dependency)."""
    return BlobStore()
