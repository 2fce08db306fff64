"""
Photo model for storing photo metadata.
Actual image files live on local disk under settings.storage_root; the
image_url columns hold paths relative to that root.
"""
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.models.user import User


class Photo(Base):
    """
    Photo catalog row. One row per (owner, original image).
    """

    __tablename__ = "photos"
    __table_args__ = (
        UniqueConstraint("owner_id", "image_url", name="uq_photos_owner_image_url"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    album_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("albums.id", ondelete="SET NULL"), nullable=True, index=True
    )

    # Storage paths (relative to storage_root)
    image_url: Mapped[str] = mapped_column(String(500), nullable=False)
    image_url_thumb: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    image_url_medium: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    # 기록 시점 크기 (참고용). 삭제 시 정산은 디스크 실제 크기 기준
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Optional metadata
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    camera: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    lens: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    settings: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    taken_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="photos")

    def __repr__(self) -> str:
        return f"<Photo(id={self.id}, image_url={self.image_url})>"
