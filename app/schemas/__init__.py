"""
Pydantic schemas package.
All schemas are exported here for easy import.
"""
from app.schemas.user import (
    UserCreate,
    UserResponse,
    UserLogin,
    UserProfileResponse,
    UserProfileUpdate,
    Token,
    TokenPayload,
)
from app.schemas.photo import (
    ImageUploadResponse,
    PagedPhotoResponse,
    PhotoDeleteResponse,
    PhotoResponse,
    PhotoUpdate,
    PhotoUploadRequest,
)
from app.schemas.album import (
    AlbumCreate,
    AlbumResponse,
    AlbumUpdate,
)
from app.schemas.quota import QuotaInfo

__all__ = [
    # User schemas
    "UserCreate",
    "UserResponse",
    "UserLogin",
    "UserProfileResponse",
    "UserProfileUpdate",
    "Token",
    "TokenPayload",
    # Photo schemas
    "ImageUploadResponse",
    "PagedPhotoResponse",
    "PhotoDeleteResponse",
    "PhotoResponse",
    "PhotoUpdate",
    "PhotoUploadRequest",
    # Album schemas
    "AlbumCreate",
    "AlbumResponse",
    "AlbumUpdate",
    # Quota
    "QuotaInfo",
]
