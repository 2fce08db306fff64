"""
Photo-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import List, Optional, Union

from pydantic import Field

from app.config import get_settings
from app.schemas.base import CamelModel


def to_public_url(relative_path: Optional[str]) -> Optional[str]:
    """Storage relative path -> public URL (settings.public_image_prefix + path)."""
    if not relative_path:
        return None
    prefix = get_settings().public_image_prefix.rstrip("/")
    return f"{prefix}/{relative_path.lstrip('/')}"


class PhotoMetadataFields(CamelModel):
    """Descriptive photo fields shared by create and update requests."""

    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, max_length=255)
    camera: Optional[str] = Field(None, max_length=255)
    lens: Optional[str] = Field(None, max_length=255)
    settings: Optional[str] = Field(None, max_length=255)
    # ISO date-time 또는 ISO date 문자열
    taken_at: Optional[str] = None


class PhotoUploadRequest(PhotoMetadataFields):
    """
    JSON create-or-update request for an already stored image.
    image_url may carry the public prefix or be the bare storage path.
    """

    image_url: str = Field(..., min_length=1, max_length=500)
    image_url_thumb: Optional[str] = Field(None, max_length=500)
    image_url_medium: Optional[str] = Field(None, max_length=500)
    album_id: Optional[int] = None


class PhotoUpdate(PhotoMetadataFields):
    """Partial update. An empty string album_id moves the photo out of its album."""

    album_id: Optional[Union[int, str]] = None


class PhotoResponse(CamelModel):
    """Schema for photo response. URLs are public URLs."""

    id: int
    owner_id: int
    album_id: Optional[int] = None
    image_url: str
    image_url_thumb: Optional[str] = None
    image_url_medium: Optional[str] = None
    file_size: int
    title: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    camera: Optional[str] = None
    lens: Optional[str] = None
    settings: Optional[str] = None
    taken_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_photo(cls, photo) -> "PhotoResponse":
        return cls(
            id=photo.id,
            owner_id=photo.owner_id,
            album_id=photo.album_id,
            image_url=to_public_url(photo.image_url),
            image_url_thumb=to_public_url(photo.image_url_thumb),
            image_url_medium=to_public_url(photo.image_url_medium),
            file_size=photo.file_size,
            title=photo.title,
            description=photo.description,
            location=photo.location,
            camera=photo.camera,
            lens=photo.lens,
            settings=photo.settings,
            taken_at=photo.taken_at,
            created_at=photo.created_at,
            updated_at=photo.updated_at,
        )


class PagedPhotoResponse(CamelModel):
    """Schema for one page of a user's photos (page is 1-based)."""

    photos: List[PhotoResponse]
    current_page: int
    page_size: int
    total_photos: int
    total_pages: int
    has_next: bool
    has_previous: bool


class ImageUploadResponse(CamelModel):
    """Schema for multipart image upload response."""

    id: Optional[int] = None  # catalog row id (photo category only)
    url: str
    url_thumb: Optional[str] = None
    url_medium: Optional[str] = None
    filename: str
    file_size: int


class PhotoDeleteResponse(CamelModel):
    success: bool = True
    message: str = "Photo deleted successfully"
    freed_bytes: int = 0
