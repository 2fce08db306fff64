"""
Upload coordinator: one image from bytes to a fully recorded, accounted photo.

상태 전이:
    VALIDATING -> QUOTA_CHECKING -> STORING -> DERIVING_VERSIONS
    -> RECORDING_METADATA -> COMMITTING_QUOTA -> DONE
중간 단계 실패(또는 클라이언트 연결 끊김으로 인한 취소) 시 FAILED로 전이하며
등록된 보상 작업을 역순으로 실행한다. 보상 실패는 reconciliation 이벤트로
기록하고 원래 오류를 가리지 않는다.
"""
import asyncio
import logging
import time
import weakref
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Awaitable, Callable, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import PhotoApiError, StorageIOError
from app.models.user import User
from app.schemas.photo import ImageUploadResponse, to_public_url
from app.services.blob_store import BlobStore, get_blob_store, normalize_category
from app.services.idempotency import IdempotencyStore, upload_fingerprint
from app.services.image_versions import DerivedImagePipeline, get_image_pipeline, version_paths
from app.services.photo import PhotoCatalog, PhotoMetadata
from app.services.quota import QuotaLedger
from app.utils.prometheus_metrics import (
    idempotent_replays_total,
    photo_upload_file_size_bytes,
    photo_upload_total,
    reconciliation_anomalies_total,
    upload_compensations_total,
    upload_stage_duration_seconds,
)
from app.utils.retry import retry_with_backoff

logger = logging.getLogger("app.upload")

__all__ = [
    "PhotoMetadata",
    "UploadCoordinator",
    "UploadResult",
    "UploadState",
    "UserLockRegistry",
    "get_upload_locks",
]


class UploadState(str, Enum):
    VALIDATING = "VALIDATING"
    QUOTA_CHECKING = "QUOTA_CHECKING"
    STORING = "STORING"
    DERIVING_VERSIONS = "DERIVING_VERSIONS"
    RECORDING_METADATA = "RECORDING_METADATA"
    COMMITTING_QUOTA = "COMMITTING_QUOTA"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a successful upload. Paths are relative to the storage root."""

    id: Optional[int]
    relative_path: str
    thumb_path: Optional[str]
    medium_path: Optional[str]
    file_size: int
    category: str
    created: bool = True

    def to_response(self) -> ImageUploadResponse:
        return ImageUploadResponse(
            id=self.id,
            url=to_public_url(self.relative_path),
            url_thumb=to_public_url(self.thumb_path),
            url_medium=to_public_url(self.medium_path),
            filename=self.relative_path,
            file_size=self.file_size,
        )


class UserLockRegistry:
    """
    One asyncio.Lock per user id. Serialises the quota check-then-act
    sequence for a single user inside this process. Locks nobody holds are
    dropped automatically.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


_upload_locks = UserLockRegistry()


def get_upload_locks() -> UserLockRegistry:
    return _upload_locks


Compensation = Tuple[str, Callable[[], Awaitable[object]]]


class UploadCoordinator:
    """Drives validation, quota, storage, renditions, catalog and accounting for one upload."""

    def __init__(
        self,
        db: AsyncSession,
        blob_store: Optional[BlobStore] = None,
        pipeline: Optional[DerivedImagePipeline] = None,
        quota: Optional[QuotaLedger] = None,
        catalog: Optional[PhotoCatalog] = None,
        idempotency: Optional[IdempotencyStore] = None,
        locks: Optional[UserLockRegistry] = None,
    ):
        self.db = db
        self.blob_store = blob_store or get_blob_store()
        self.pipeline = pipeline or get_image_pipeline()
        self.quota = quota or QuotaLedger(db)
        self.catalog = catalog or PhotoCatalog(
            db, blob_store=self.blob_store, pipeline=self.pipeline, quota=self.quota
        )
        self.idempotency = idempotency
        self.locks = locks or get_upload_locks()
        self.state = UploadState.VALIDATING
        self._state_started = time.perf_counter()

    def _enter(self, state: UploadState) -> None:
        now = time.perf_counter()
        upload_stage_duration_seconds.labels(stage=self.state.value).observe(now - self._state_started)
        self.state = state
        self._state_started = now

    def _cached(self, fingerprint: str) -> Optional[UploadResult]:
        if self.idempotency is None:
            return None
        cached = self.idempotency.get(fingerprint)
        if cached is not None:
            idempotent_replays_total.inc()
            photo_upload_total.labels(category=cached.category, result="duplicate").inc()
        return cached

    async def upload(
        self,
        user: User,
        content: bytes,
        category: Optional[str] = "photo",
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
        metadata: Optional[PhotoMetadata] = None,
        idempotency_key: Optional[str] = None,
    ) -> UploadResult:
        """
        Store one image for `user`. Raises ValidationError / QuotaExceededError
        (no side effects), NotFoundError for a foreign album, StorageIOError or
        ImageProcessingError for server faults (side effects compensated).
        """
        category = normalize_category(category)
        # rollback 이후 user 속성은 만료되므로 미리 복사
        user_id = user.id
        username = user.username
        fingerprint = upload_fingerprint(username, content, filename, idempotency_key)

        cached = self._cached(fingerprint)
        if cached is not None:
            logger.info(
                "Duplicate upload answered from cache",
                extra={"event": "upload", "user_id": user_id, "path": cached.relative_path},
            )
            return cached

        compensations: List[Compensation] = []
        previous_avatar: Optional[str] = None
        try:
            self.blob_store.validate(content, filename, content_type)

            async with self.locks.lock_for(user_id):
                # 락 대기 중 같은 요청이 먼저 끝났을 수 있음
                cached = self._cached(fingerprint)
                if cached is not None:
                    return cached

                self._enter(UploadState.QUOTA_CHECKING)
                await self.db.refresh(user)
                await self.quota.validate_upload(user, len(content), check_count=(category == "photo"))
                if category == "photo" and metadata is not None:
                    await self.catalog.resolve_album(user, metadata.album_id)

                self._enter(UploadState.STORING)
                blob = await self.blob_store.store(content, username, category, filename, content_type)
                compensations.append(
                    ("delete_original", partial(self.blob_store.delete, blob.relative_path))
                )

                self._enter(UploadState.DERIVING_VERSIONS)
                versions = await self.pipeline.generate_versions(blob.relative_path)
                compensations.append(
                    ("delete_renditions", partial(self._delete_renditions, blob.relative_path))
                )

                self._enter(UploadState.RECORDING_METADATA)
                photo_id = None
                created = True
                if category == "photo":
                    photo, created = await self.catalog.upsert(
                        user,
                        blob.relative_path,
                        image_url_thumb=versions.thumb_path,
                        image_url_medium=versions.medium_path,
                        metadata=metadata,
                        file_size=blob.size,
                    )
                    photo_id = photo.id
                    compensations.append(("rollback_catalog", partial(self._rollback, user)))
                elif category == "avatar":
                    previous_avatar = user.avatar_url
                    user.avatar_url = blob.relative_path
                    await self.db.flush()
                    compensations.append(("rollback_catalog", partial(self._rollback, user)))

                self._enter(UploadState.COMMITTING_QUOTA)
                if created:
                    await self.quota.increment(user, blob.size)
                await self.db.commit()
                self._enter(UploadState.DONE)

        except asyncio.CancelledError:
            if compensations:
                await asyncio.shield(self._fail(compensations, username, "cancelled"))
            else:
                self._enter(UploadState.FAILED)
            raise
        except Exception as e:
            if compensations:
                await self._fail(compensations, username, type(e).__name__)
            else:
                self._enter(UploadState.FAILED)
            result_label = "rejected" if isinstance(e, PhotoApiError) and not e.is_server_fault else "failure"
            photo_upload_total.labels(category=category, result=result_label).inc()
            raise

        result = UploadResult(
            id=photo_id,
            relative_path=blob.relative_path,
            thumb_path=versions.thumb_path,
            medium_path=versions.medium_path,
            file_size=blob.size,
            category=category,
            created=created,
        )
        if self.idempotency is not None:
            self.idempotency.set(fingerprint, result)

        photo_upload_total.labels(category=category, result="success").inc()
        photo_upload_file_size_bytes.labels(category=category).observe(blob.size)
        logger.info(
            "Image uploaded",
            extra={
                "event": "upload",
                "user_id": user_id,
                "category": category,
                "path": blob.relative_path,
                "bytes": blob.size,
                "photo_id": photo_id,
            },
        )

        if previous_avatar and previous_avatar != blob.relative_path:
            await self._release_previous_avatar(user, previous_avatar)
        return result

    async def _delete_renditions(self, original_relative_path: str) -> None:
        for path in version_paths(original_relative_path):
            await self.blob_store.delete(path)

    async def _rollback(self, user: User) -> None:
        await self.db.rollback()
        await self.db.refresh(user)

    async def _fail(self, compensations: List[Compensation], username: str, reason: str) -> None:
        failed_state = self.state
        self._enter(UploadState.FAILED)
        logger.warning(
            "Upload failed, compensating",
            extra={
                "event": "upload",
                "username": username,
                "state": failed_state.value,
                "reason": reason,
                "steps": [name for name, _ in reversed(compensations)],
            },
        )
        for name, action in reversed(compensations):
            try:
                await retry_with_backoff(
                    action,
                    max_attempts=3,
                    initial_delay=0.1,
                    max_delay=1.0,
                    retryable_exceptions=(StorageIOError,),
                    target=f"compensation.{name}",
                )
                upload_compensations_total.labels(action=name, result="success").inc()
            except Exception as comp_err:
                upload_compensations_total.labels(action=name, result="failure").inc()
                reconciliation_anomalies_total.labels(action=name).inc()
                logger.error(
                    "reconciliation anomaly",
                    extra={
                        "event": "reconciliation",
                        "action": name,
                        "username": username,
                        "state": failed_state.value,
                        "error_type": type(comp_err).__name__,
                        "error": str(comp_err)[:200],
                    },
                )

    async def _release_previous_avatar(self, user: User, previous: str) -> None:
        """
        Remove the replaced avatar and release its bytes. Runs after the new
        avatar is committed; failures leave an orphan for the sweep, never an
        error for the client.
        """
        try:
            size = await self.blob_store.file_size(previous)
            await self.pipeline.delete_versions(previous)
            await self.quota.decrement(user, size)
            await self.db.commit()
        except (PhotoApiError, SQLAlchemyError) as e:
            reconciliation_anomalies_total.labels(action="delete_previous_avatar").inc()
            logger.error(
                "reconciliation anomaly",
                extra={
                    "event": "reconciliation",
                    "action": "delete_previous_avatar",
                    "user_id": user.id,
                    "path": previous,
                    "error_type": type(e).__name__,
                },
            )
