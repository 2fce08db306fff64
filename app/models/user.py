"""
User model for authentication, tier and storage accounting.
"""
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.photo import Photo
    from app.models.album import Album


class User(Base):
    """
    User model for storing account information.

    storage_used is the accounted byte total of the user's originals and is
    written only through QuotaLedger.
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("storage_used >= 0", name="ck_users_storage_used_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(
        String(255), unique=True, index=True, nullable=False
    )
    username: Mapped[str] = mapped_column(
        String(100), unique=True, index=True, nullable=False
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Quota
    tier: Mapped[str] = mapped_column(String(20), nullable=False, default="FREE")
    storage_used: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Profile
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    photos: Mapped[List["Photo"]] = relationship(
        "Photo", back_populates="owner", cascade="all, delete-orphan"
    )
    albums: Mapped[List["Album"]] = relationship(
        "Album", back_populates="owner", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, tier={self.tier})>"
