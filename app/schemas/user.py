"""
User-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from app.schemas.base import CamelModel
from app.schemas.photo import to_public_url


class UserBase(CamelModel):
    """Base schema with common user attributes."""

    email: EmailStr
    username: str = Field(..., min_length=3, max_length=100, pattern=r"^[A-Za-z0-9_.-]+$")


class UserCreate(UserBase):
    """Schema for user registration."""

    password: str = Field(..., min_length=8, max_length=100)
    display_name: Optional[str] = Field(None, max_length=100)


class UserLogin(BaseModel):
    """Schema for user login."""

    email: EmailStr
    password: str


class UserResponse(UserBase):
    """Schema for the authenticated user's own account (excludes password)."""

    id: int
    is_active: bool
    tier: str
    storage_used: int
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        response = cls.model_validate(user)
        response.avatar_url = to_public_url(user.avatar_url)
        return response


class UserProfileResponse(CamelModel):
    """Public profile. Quota fields are filled in only for the owner."""

    id: int
    username: str
    display_name: Optional[str] = None
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    photo_count: int = 0
    created_at: datetime

    tier: Optional[str] = None
    storage_used: Optional[int] = None
    storage_limit: Optional[int] = None
    photo_limit: Optional[int] = None
    single_file_limit: Optional[int] = None


class UserProfileUpdate(CamelModel):
    """Partial profile update. Avatar changes go through the image upload endpoint."""

    display_name: Optional[str] = Field(None, max_length=100)
    bio: Optional[str] = Field(None, max_length=2000)


class Token(BaseModel):
    """Schema for JWT token response."""

    access_token: str
    token_type: str = "bearer"


class TokenPayload(BaseModel):
    """Schema for JWT token payload."""

    sub: int  # User ID
    exp: datetime
    username: Optional[str] = None
