"""
Service dependencies for FastAPI routes.

Request-scoped services share the request's AsyncSession; process-wide
pieces (blob store, renditions pipeline, idempotency cache, user locks)
are singletons that tests can replace via app.dependency_overrides.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.blob_store import BlobStore, get_blob_store
from app.services.idempotency import IdempotencyStore, get_idempotency_store
from app.services.image_versions import DerivedImagePipeline, get_image_pipeline
from app.services.photo import PhotoCatalog
from app.services.quota import QuotaLedger
from app.services.upload import UploadCoordinator, get_upload_locks


def get_quota_ledger(db: AsyncSession = Depends(get_db)) -> QuotaLedger:
    return QuotaLedger(db)


def get_photo_catalog(
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    pipeline: DerivedImagePipeline = Depends(get_image_pipeline),
    quota: QuotaLedger = Depends(get_quota_ledger),
) -> PhotoCatalog:
    return PhotoCatalog(db, blob_store=blob_store, pipeline=pipeline, quota=quota)


def get_upload_coordinator(
    db: AsyncSession = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    pipeline: DerivedImagePipeline = Depends(get_image_pipeline),
    quota: QuotaLedger = Depends(get_quota_ledger),
    catalog: PhotoCatalog = Depends(get_photo_catalog),
    idempotency: IdempotencyStore = Depends(get_idempotency_store),
) -> UploadCoordinator:
    return UploadCoordinator(
        db,
        blob_store=blob_store,
        pipeline=pipeline,
        quota=quota,
        catalog=catalog,
        idempotency=idempotency,
        locks=get_upload_locks(),
    )
