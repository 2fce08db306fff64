"""
Orphan blob sweep.

업로드 중 프로세스가 죽거나 타임아웃 후 워커 스레드가 뒤늦게 파일을 쓰면
photos 행이 없는 원본이 디스크에 남을 수 있다. 유예 시간이 지난 원본 중
카탈로그에 없는 것을 렌디션과 함께 삭제한다. (photo 카테고리만 대상)
"""
import asyncio
import logging
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db_context
from app.exceptions import PhotoApiError
from app.models.photo import Photo
from app.services.blob_store import BlobStore, get_blob_store
from app.services.image_versions import DerivedImagePipeline, is_rendition
from app.utils.prometheus_metrics import orphan_blobs_deleted_total

logger = logging.getLogger("app.orphan_sweep")


async def sweep_orphans(
    db: AsyncSession,
    blob_store: BlobStore,
    grace_seconds: float,
    now: Optional[float] = None,
) -> int:
    """Delete uncatalogued photo originals older than grace_seconds. Returns the count removed."""
    now = time.time() if now is None else now
    candidates = [
        path
        for path, mtime in await blob_store.list_files("photo")
        if not is_rendition(path) and now - mtime >= grace_seconds
    ]
    if not candidates:
        return 0

    result = await db.execute(select(Photo.image_url).where(Photo.image_url.in_(candidates)))
    catalogued = set(result.scalars().all())

    pipeline = DerivedImagePipeline(blob_store)
    removed = 0
    for path in candidates:
        if path in catalogued:
            continue
        try:
            await pipeline.delete_versions(path)
        except PhotoApiError as e:
            logger.error(
                "Orphan delete failed",
                extra={"event": "reconciliation", "path": path, "error_type": type(e).__name__},
            )
            continue
        removed += 1
        orphan_blobs_deleted_total.inc()
        logger.info("Orphan blob removed", extra={"event": "reconciliation", "path": path})
    return removed


async def orphan_sweep_loop(interval_seconds: Optional[float] = None) -> None:
    """Background task started from the app lifespan when ORPHAN_SWEEP_ENABLED is set."""
    settings = get_settings()
    interval = interval_seconds or settings.orphan_sweep_interval_seconds
    blob_store = get_blob_store()
    while True:
        await asyncio.sleep(interval)
        try:
            async with get_db_context() as db:
                removed = await sweep_orphans(db, blob_store, settings.orphan_sweep_grace_seconds)
            if removed:
                logger.info("Orphan sweep finished", extra={"event": "reconciliation", "removed": removed})
        except asyncio.CancelledError:
            raise
        except Exception:
            # 다음 주기에 재시도
            logger.exception("Orphan sweep failed", extra={"event": "reconciliation"})
