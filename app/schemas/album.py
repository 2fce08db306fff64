"""
Album-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Optional

from pydantic import Field

from app.schemas.base import CamelModel


class AlbumBase(CamelModel):
    """Base schema with common album attributes."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    cover_photo: Optional[str] = Field(None, max_length=500)


class AlbumCreate(AlbumBase):
    """Schema for album creation."""

    pass


class AlbumUpdate(CamelModel):
    """Schema for updating album. Blank name is ignored."""

    name: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    cover_photo: Optional[str] = Field(None, max_length=500)


class AlbumResponse(AlbumBase):
    """Schema for album response."""

    id: int
    owner_id: int
    photo_count: int = 0
    created_at: datetime
    updated_at: datetime
