"""
Quota ledger: tier limit checks and the users.storage_used counter.

storage_used 변경은 모두 이 모듈의 조건부 UPDATE로만 수행한다.
- increment: storage_used + n <= limit 일 때만 반영 (0행이면 StorageExceededError)
- decrement: 0 아래로 내려가지 않음
사전 검사(validate_upload)는 예약이 아니며, 최종 보호막은 increment의 조건부 UPDATE.
"""
import logging
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from app.exceptions import (
    FileTooLargeError,
    PhotoCountExceededError,
    StorageExceededError,
)
from app.models.photo import Photo
from app.models.user import User
from app.schemas.quota import QuotaInfo
from app.services.blob_store import CATEGORIES, BlobStore
from app.services.image_versions import is_rendition
from app.services.tier_policy import (
    TierPolicy,
    format_bytes,
    format_limit,
    get_tier_policy,
)
from app.utils.prometheus_metrics import (
    quota_rejections_total,
    storage_accounted_bytes_total,
    storage_freed_bytes_total,
)

logger = logging.getLogger("app.quota")


class QuotaLedger:
    """Service for checking and accounting per-user storage quota."""

    def __init__(self, db: AsyncSession, tier_policy: Optional[TierPolicy] = None):
        self.db = db
        self.tier_policy = tier_policy or get_tier_policy()

    async def count_photos(self, user: User) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Photo).where(Photo.owner_id == user.id)
        )
        return int(result.scalar_one())

    async def validate_upload(self, user: User, size: int, check_count: bool = True) -> None:
        """
        Pre-flight check for an upload of `size` bytes. Order:
        single file limit, total storage, photo count.
        No side effects.
        """
        limits = self.tier_policy.limits_for(user.tier)
        tier_name = self.tier_policy.display_name(user.tier)
        used = user.storage_used or 0

        if size > limits.single_file_limit_bytes:
            quota_rejections_total.labels(reason="file_too_large", tier=tier_name).inc()
            logger.warning(
                "Upload rejected: file too large",
                extra={"event": "quota", "user_id": user.id, "bytes": size},
            )
            raise FileTooLargeError(
                message=(
                    f"File size {format_bytes(size)} exceeds your {tier_name} tier limit of "
                    f"{format_limit(limits.single_file_limit_bytes)} per file. "
                    "Please upgrade your account."
                ),
                details={"limit": limits.single_file_limit_bytes, "requested": size},
            )

        if used + size > limits.storage_limit_bytes:
            available = max(0, limits.storage_limit_bytes - used)
            quota_rejections_total.labels(reason="storage_exceeded", tier=tier_name).inc()
            logger.warning(
                "Upload rejected: storage exceeded",
                extra={"event": "quota", "user_id": user.id, "bytes": size, "used": used},
            )
            raise StorageExceededError(
                message=(
                    f"Insufficient storage. You have {format_bytes(available)} available out of "
                    f"{format_limit(limits.storage_limit_bytes)} total ({tier_name} tier). "
                    f"File requires {format_bytes(size)}."
                ),
                details={
                    "limit": limits.storage_limit_bytes,
                    "current": used,
                    "requested": size,
                },
            )

        if check_count:
            await self.check_photo_count(user)

    async def check_photo_count(self, user: User) -> None:
        """Raise PhotoCountExceededError when the user is at the tier's photo limit."""
        limits = self.tier_policy.limits_for(user.tier)
        count = await self.count_photos(user)
        if count >= limits.photo_count_limit:
            tier_name = self.tier_policy.display_name(user.tier)
            quota_rejections_total.labels(reason="photo_count_exceeded", tier=tier_name).inc()
            logger.warning(
                "Upload rejected: photo limit reached",
                extra={"event": "quota", "user_id": user.id, "count": count},
            )
            raise PhotoCountExceededError(
                message=(
                    f"Photo limit reached. Your {tier_name} tier allows "
                    f"{limits.photo_count_limit} photos. Please delete some photos or "
                    "upgrade your account."
                ),
                details={"limit": limits.photo_count_limit, "current": count},
            )

    async def _reload_usage(self, user: User) -> int:
        result = await self.db.execute(select(User.storage_used).where(User.id == user.id))
        used = int(result.scalar_one())
        # DB 값으로 세션 상태 동기화 (dirty 표시 없이)
        set_committed_value(user, "storage_used", used)
        return used

    async def increment(self, user: User, size: int) -> int:
        """
        Add `size` bytes to the user's accounted storage if it still fits the
        tier limit. Returns the new total. Raises StorageExceededError when a
        concurrent upload consumed the headroom.
        """
        if size < 0:
            raise ValueError("size must be non-negative")
        limits = self.tier_policy.limits_for(user.tier)
        result = await self.db.execute(
            update(User)
            .where(User.id == user.id)
            .where(User.storage_used + size <= limits.storage_limit_bytes)
            .values(storage_used=User.storage_used + size)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            used = await self._reload_usage(user)
            tier_name = self.tier_policy.display_name(user.tier)
            quota_rejections_total.labels(reason="storage_exceeded", tier=tier_name).inc()
            logger.warning(
                "Storage increment rejected",
                extra={"event": "quota", "user_id": user.id, "bytes": size, "used": used},
            )
            raise StorageExceededError(
                message=(
                    f"Insufficient storage. You have "
                    f"{format_bytes(max(0, limits.storage_limit_bytes - used))} available out of "
                    f"{format_limit(limits.storage_limit_bytes)} total ({tier_name} tier). "
                    f"File requires {format_bytes(size)}."
                ),
                details={
                    "limit": limits.storage_limit_bytes,
                    "current": used,
                    "requested": size,
                },
            )

        used = await self._reload_usage(user)
        storage_accounted_bytes_total.labels(tier=self.tier_policy.normalize(user.tier)).inc(size)
        logger.info(
            "Storage usage increased",
            extra={"event": "quota", "user_id": user.id, "bytes": size, "used": used},
        )
        return used

    async def decrement(self, user: User, size: int) -> int:
        """Subtract `size` bytes, flooring at zero. Returns the new total."""
        if size <= 0:
            return user.storage_used or 0
        await self.db.execute(
            update(User)
            .where(User.id == user.id)
            .values(
                storage_used=case(
                    (User.storage_used >= size, User.storage_used - size),
                    else_=0,
                )
            )
            .execution_options(synchronize_session=False)
        )
        used = await self._reload_usage(user)
        storage_freed_bytes_total.labels(tier=self.tier_policy.normalize(user.tier)).inc(size)
        logger.info(
            "Storage usage decreased",
            extra={"event": "quota", "user_id": user.id, "bytes": size, "used": used},
        )
        return used

    async def quota_info(self, user: User) -> QuotaInfo:
        limits = self.tier_policy.limits_for(user.tier)
        used = user.storage_used or 0
        count = await self.count_photos(user)
        return QuotaInfo(
            tier=self.tier_policy.normalize(user.tier),
            tier_display_name=self.tier_policy.display_name(user.tier),
            storage_used=used,
            storage_limit=limits.storage_limit_bytes,
            storage_available=max(0, limits.storage_limit_bytes - used),
            storage_used_formatted=format_bytes(used),
            storage_limit_formatted=format_limit(limits.storage_limit_bytes),
            storage_percentage=used * 100 // limits.storage_limit_bytes,
            photo_count=count,
            photo_limit=limits.photo_count_limit,
            single_file_limit=limits.single_file_limit_bytes,
            single_file_limit_formatted=format_limit(limits.single_file_limit_bytes),
        )

    async def reconcile(self, user: User, blob_store: BlobStore) -> int:
        """
        Recompute storage_used from the originals actually on disk under the
        user's directory (renditions excluded) and persist it.
        Returns the drift (new - old).
        """
        before = user.storage_used or 0
        on_disk = 0
        for category in CATEGORIES:
            for relative_path, _mtime in await blob_store.list_files(category, owner=user.username):
                if is_rendition(relative_path):
                    continue
                on_disk += await blob_store.file_size(relative_path)

        await self.db.execute(
            update(User)
            .where(User.id == user.id)
            .values(storage_used=on_disk)
            .execution_options(synchronize_session=False)
        )
        after = await self._reload_usage(user)
        drift = after - before
        if drift:
            logger.warning(
                "Storage usage reconciled",
                extra={"event": "reconciliation", "user_id": user.id, "before": before, "after": after},
            )
        return drift
