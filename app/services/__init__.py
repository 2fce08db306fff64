"""
Services package.
Contains the business logic behind the routers.
"""
from app.services.album import AlbumService
from app.services.auth import AuthService
from app.services.blob_store import BlobStore
from app.services.idempotency import InMemoryIdempotencyStore
from app.services.image_versions import DerivedImagePipeline
from app.services.photo import PhotoCatalog
from app.services.quota import QuotaLedger
from app.services.tier_policy import TierPolicy
from app.services.upload import UploadCoordinator

__all__ = [
    "AlbumService",
    "AuthService",
    "BlobStore",
    "DerivedImagePipeline",
    "InMemoryIdempotencyStore",
    "PhotoCatalog",
    "QuotaLedger",
    "TierPolicy",
    "UploadCoordinator",
]
