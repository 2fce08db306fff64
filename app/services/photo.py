"""
Photo catalog service.

사진 메타데이터 행(photos) 관리:
- (owner, image_url) 기준 upsert (재전송 시 중복 행 생성 없이 갱신)
- 삭제 시 디스크 실제 크기로 storage_used 차감
"""
import logging
import math
from dataclasses import dataclass, fields
from datetime import date, datetime, time, timezone
from typing import List, Optional, Tuple, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models.album import Album
from app.models.photo import Photo
from app.models.user import User
from app.schemas.photo import PhotoUpdate, PhotoUploadRequest
from app.services.blob_store import BlobStore, get_blob_store
from app.services.image_versions import (
    DerivedImagePipeline,
    get_image_pipeline,
    is_rendition,
    version_paths,
)
from app.services.quota import QuotaLedger

logger = logging.getLogger("app.photo")

# 구버전 클라이언트가 보내는 URL prefix
LEGACY_IMAGE_PREFIXES = ("/api/images/",)

MAX_PAGE_SIZE = 100


@dataclass
class PhotoMetadata:
    """Descriptive fields supplied alongside an upload."""

    album_id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    camera: Optional[str] = None
    lens: Optional[str] = None
    settings: Optional[str] = None
    taken_at: Optional[Union[str, datetime]] = None

    @classmethod
    def from_schema(cls, data) -> "PhotoMetadata":
        return cls(**{f.name: getattr(data, f.name, None) for f in fields(cls)})


def parse_taken_at(value: Optional[Union[str, datetime, date]]) -> Optional[datetime]:
    """
    ISO date-time first, then ISO date (midnight). Anything else is dropped
    with a warning rather than failing the request.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    try:
        return datetime.combine(date.fromisoformat(text), time.min)
    except ValueError:
        logger.warning("Failed to parse takenAt", extra={"event": "photo", "taken_at": text[:50]})
        return None


def strip_public_prefix(url: str) -> str:
    """'/images/alice/photo/x.jpg' or 'alice/photo/x.jpg' -> 'alice/photo/x.jpg'."""
    prefix = get_settings().public_image_prefix
    for p in (prefix,) + LEGACY_IMAGE_PREFIXES:
        if p and url.startswith(p):
            return url[len(p):]
    return url.lstrip("/")


class PhotoCatalog:
    """Service for photo catalog rows and their lifecycle."""

    def __init__(
        self,
        db: AsyncSession,
        blob_store: Optional[BlobStore] = None,
        pipeline: Optional[DerivedImagePipeline] = None,
        quota: Optional[QuotaLedger] = None,
    ):
        self.db = db
        self.blob_store = blob_store or get_blob_store()
        self.pipeline = pipeline or get_image_pipeline()
        self.quota = quota or QuotaLedger(db)

    async def resolve_album(self, owner: User, album_id: Optional[int]) -> Optional[int]:
        if album_id is None:
            return None
        result = await self.db.execute(
            select(Album.id).where(Album.id == album_id, Album.owner_id == owner.id)
        )
        if result.scalar_one_or_none() is None:
            raise NotFoundError(
                message=f"Album not found or not owned by user: {album_id}",
                details={"album_id": album_id},
            )
        return album_id

    async def find_by_image_url(self, owner: User, image_url: str) -> Optional[Photo]:
        result = await self.db.execute(
            select(Photo).where(Photo.owner_id == owner.id, Photo.image_url == image_url)
        )
        return result.scalar_one_or_none()

    def _apply_metadata(self, photo: Photo, metadata: PhotoMetadata) -> None:
        for name in ("title", "description", "location", "camera", "lens", "settings"):
            value = getattr(metadata, name)
            if value is not None:
                setattr(photo, name, value)
        taken_at = parse_taken_at(metadata.taken_at)
        if taken_at is not None:
            photo.taken_at = taken_at

    async def upsert(
        self,
        owner: User,
        image_url: str,
        image_url_thumb: Optional[str] = None,
        image_url_medium: Optional[str] = None,
        metadata: Optional[PhotoMetadata] = None,
        file_size: Optional[int] = None,
    ) -> Tuple[Photo, bool]:
        """
        Create the catalog row for (owner, image_url) or update it in place.
        Returns (photo, created). Only new rows count against the photo limit.
        """
        metadata = metadata or PhotoMetadata()
        album_id = await self.resolve_album(owner, metadata.album_id)

        existing = await self.find_by_image_url(owner, image_url)
        if existing is not None:
            return await self._update_existing(
                existing, metadata, album_id, image_url_thumb, image_url_medium, file_size
            ), False

        await self.quota.check_photo_count(owner)

        photo = Photo(
            owner_id=owner.id,
            album_id=album_id,
            image_url=image_url,
            image_url_thumb=image_url_thumb,
            image_url_medium=image_url_medium,
            file_size=file_size or 0,
        )
        self._apply_metadata(photo, metadata)
        self.db.add(photo)
        try:
            await self.db.flush()
        except IntegrityError:
            # 같은 (owner, image_url)로 동시에 들어온 요청이 먼저 저장함
            await self.db.rollback()
            await self.db.refresh(owner)
            existing = await self.find_by_image_url(owner, image_url)
            if existing is None:
                raise
            logger.info(
                "Concurrent duplicate resolved as update",
                extra={"event": "photo", "photo_id": existing.id, "user_id": owner.id},
            )
            return await self._update_existing(
                existing, metadata, album_id, image_url_thumb, image_url_medium, file_size
            ), False

        await self.db.refresh(photo)
        logger.info("Photo recorded", extra={"event": "photo", "photo_id": photo.id, "user_id": owner.id})
        return photo, True

    async def _update_existing(
        self,
        photo: Photo,
        metadata: PhotoMetadata,
        album_id: Optional[int],
        image_url_thumb: Optional[str],
        image_url_medium: Optional[str],
        file_size: Optional[int],
    ) -> Photo:
        self._apply_metadata(photo, metadata)
        if album_id is not None:
            photo.album_id = album_id
        if image_url_thumb:
            photo.image_url_thumb = image_url_thumb
        if image_url_medium:
            photo.image_url_medium = image_url_medium
        if file_size:
            photo.file_size = file_size
        await self.db.flush()
        await self.db.refresh(photo)
        logger.info(
            "Photo metadata updated for existing image",
            extra={"event": "photo", "photo_id": photo.id, "user_id": photo.owner_id},
        )
        return photo

    async def _owned_blob_path(self, owner: User, url: str) -> str:
        path = strip_public_prefix(url)
        # resolve()가 '..' / 절대경로를 먼저 거부
        self.blob_store.resolve(path)
        if not path.startswith(f"{owner.username}/") or not await self.blob_store.exists(path):
            raise NotFoundError(message="Image not found", details={"image_url": url})
        return path

    async def _owned_photo_original(self, owner: User, url: str) -> str:
        """Path of an existing `{owner}/photo/` original (renditions and other categories rejected)."""
        path = strip_public_prefix(url)
        self.blob_store.resolve(path)
        if path.startswith(f"{owner.username}/") and (
            not path.startswith(f"{owner.username}/photo/") or is_rendition(path)
        ):
            raise ValidationError(
                message="imageUrl must reference an uploaded photo original",
                details={"image_url": url},
            )
        return await self._owned_blob_path(owner, url)

    async def _rendition_of(self, owner: User, url: str, expected: str) -> str:
        path = strip_public_prefix(url)
        if path != expected:
            raise ValidationError(
                message="Rendition URL does not belong to imageUrl",
                details={"image_url": url, "expected": expected},
            )
        return await self._owned_blob_path(owner, url)

    async def create_or_update_from_request(
        self, owner: User, request: PhotoUploadRequest
    ) -> Tuple[Photo, bool]:
        """JSON path: register (or update) a photo row for a photo original already in storage."""
        image_path = await self._owned_photo_original(owner, request.image_url)

        default_thumb, default_medium = version_paths(image_path)
        thumb_path = None
        medium_path = None
        if request.image_url_thumb:
            thumb_path = await self._rendition_of(owner, request.image_url_thumb, default_thumb)
        elif await self.blob_store.exists(default_thumb):
            thumb_path = default_thumb
        if request.image_url_medium:
            medium_path = await self._rendition_of(owner, request.image_url_medium, default_medium)
        elif await self.blob_store.exists(default_medium):
            medium_path = default_medium

        size = await self.blob_store.file_size(image_path)
        photo, created = await self.upsert(
            owner,
            image_path,
            image_url_thumb=thumb_path,
            image_url_medium=medium_path,
            metadata=PhotoMetadata.from_schema(request),
            file_size=size,
        )
        if created:
            # 카탈로그에 없는 photo 원본은 아직 과금되지 않은 파일 (중단된 업로드)
            await self.quota.increment(owner, size)
        return photo, created

    async def get(self, owner: User, photo_id: int) -> Photo:
        photo = await self.db.get(Photo, photo_id)
        if photo is None:
            raise NotFoundError(message=f"Photo not found: {photo_id}", details={"photo_id": photo_id})
        if photo.owner_id != owner.id:
            raise ForbiddenError(message="You can only access your own photos")
        return photo

    async def count_for_user(self, owner: User) -> int:
        return await self.quota.count_photos(owner)

    async def list_for_user(
        self, owner: User, page: int = 1, page_size: int = 20
    ) -> Tuple[List[Photo], int]:
        """One page of the owner's photos, newest first. page is 1-based."""
        page = max(1, page)
        page_size = min(max(1, page_size), MAX_PAGE_SIZE)
        total = await self.count_for_user(owner)
        result = await self.db.execute(
            select(Photo)
            .where(Photo.owner_id == owner.id)
            .order_by(Photo.created_at.desc(), Photo.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    @staticmethod
    def total_pages(total: int, page_size: int) -> int:
        return math.ceil(total / page_size) if page_size > 0 else 0

    async def update(self, owner: User, photo_id: int, update_data: PhotoUpdate) -> Photo:
        """
        Partial metadata update. album_id: int moves the photo, "" or null
        (explicitly sent) takes it out of its album.
        """
        photo = await self.get(owner, photo_id)
        self._apply_metadata(photo, PhotoMetadata.from_schema(update_data))

        if "album_id" in update_data.model_fields_set:
            raw = update_data.album_id
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                photo.album_id = None
            else:
                try:
                    album_id = int(raw)
                except (TypeError, ValueError):
                    raise ValidationError(
                        message=f"Invalid album ID format: {raw}",
                        details={"album_id": raw},
                    )
                photo.album_id = await self.resolve_album(owner, album_id)

        await self.db.flush()
        await self.db.refresh(photo)
        return photo

    async def delete(self, owner: User, photo_id: int) -> int:
        """
        Delete files then row, and release the original's on-disk size from
        the owner's quota. Returns the freed bytes.
        If file removal fails the row is kept so the delete can be retried.
        """
        photo = await self.get(owner, photo_id)
        size = await self.blob_store.file_size(photo.image_url)

        await self.pipeline.delete_versions(photo.image_url)

        await self.db.delete(photo)
        await self.db.flush()
        await self.quota.decrement(owner, size)
        logger.info(
            "Photo deleted",
            extra={"event": "photo", "photo_id": photo_id, "user_id": owner.id, "bytes": size},
        )
        return size
