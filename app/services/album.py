"""
Album service for managing albums.
"""
from typing import Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ForbiddenError, NotFoundError
from app.models.album import Album
from app.models.photo import Photo
from app.models.user import User
from app.schemas.album import AlbumCreate, AlbumResponse, AlbumUpdate
from app.utils.logger import log_info


class AlbumService:
    """
    Service for handling album operations.
    Photos reference albums through photos.album_id; albums never own photo files.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_album(
        self,
        user: User,
        album_data: AlbumCreate,
    ) -> Album:
        """
        Create a new album.

        Args:
            user: Owner of the album
            album_data: Album creation data

        Returns:
            Created Album model
        """
        album = Album(
            owner_id=user.id,
            name=album_data.name.strip(),
            description=album_data.description,
            cover_photo=album_data.cover_photo,
        )

        self.db.add(album)
        await self.db.flush()
        await self.db.refresh(album)
        log_info("Album created", event="album", album_id=album.id, user_id=user.id)
        return album

    async def get_album(self, user: User, album_id: int) -> Album:
        """
        Get an album owned by user.

        Raises:
            NotFoundError: album does not exist
            ForbiddenError: album belongs to another user
        """
        album = await self.db.get(Album, album_id)
        if album is None:
            raise NotFoundError(message=f"Album not found: {album_id}", details={"album_id": album_id})
        if album.owner_id != user.id:
            raise ForbiddenError(message="Album not owned by user")
        return album

    async def get_user_albums(self, user: User) -> List[Album]:
        """Get all albums for a user, newest first."""
        result = await self.db.execute(
            select(Album)
            .where(Album.owner_id == user.id)
            .order_by(Album.created_at.desc(), Album.id.desc())
        )
        return list(result.scalars().all())

    async def get_album_photo_count(self, album_id: int) -> int:
        """Get the number of photos in an album."""
        result = await self.db.execute(
            select(func.count()).select_from(Photo).where(Photo.album_id == album_id)
        )
        return int(result.scalar_one())

    async def get_photo_counts(self, album_ids: List[int]) -> Dict[int, int]:
        """Photo counts for several albums in one query."""
        if not album_ids:
            return {}
        result = await self.db.execute(
            select(Photo.album_id, func.count())
            .where(Photo.album_id.in_(album_ids))
            .group_by(Photo.album_id)
        )
        counts = {album_id: 0 for album_id in album_ids}
        counts.update({album_id: int(n) for album_id, n in result.all()})
        return counts

    async def update_album(
        self,
        album: Album,
        update_data: AlbumUpdate,
    ) -> Album:
        """
        Update album fields. A blank name is ignored, as are omitted fields.
        """
        if update_data.name is not None and update_data.name.strip():
            album.name = update_data.name.strip()
        if update_data.description is not None:
            album.description = update_data.description
        if update_data.cover_photo is not None:
            album.cover_photo = update_data.cover_photo

        await self.db.flush()
        await self.db.refresh(album)
        return album

    async def delete_album(self, album: Album) -> int:
        """
        Delete an album. Its photos become uncategorized, never deleted.
        Returns the number of photos that were detached.
        """
        result = await self.db.execute(
            update(Photo)
            .where(Photo.album_id == album.id)
            .values(album_id=None)
            .execution_options(synchronize_session="fetch")
        )
        detached = result.rowcount or 0
        album_id = album.id
        await self.db.delete(album)
        await self.db.flush()
        log_info("Album deleted", event="album", album_id=album_id, detached_photos=detached)
        return detached

    async def to_response(self, album: Album, photo_count: Optional[int] = None) -> AlbumResponse:
        if photo_count is None:
            photo_count = await self.get_album_photo_count(album.id)
        return AlbumResponse(
            id=album.id,
            owner_id=album.owner_id,
            name=album.name,
            description=album.description,
            cover_photo=album.cover_photo,
            photo_count=photo_count,
            created_at=album.created_at,
            updated_at=album.updated_at,
        )
