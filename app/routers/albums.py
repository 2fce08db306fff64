"""
Albums router for album management.
"""
from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_active_user, require_owner
from app.models.user import User
from app.schemas.album import AlbumCreate, AlbumResponse, AlbumUpdate
from app.services.album import AlbumService

router = APIRouter(prefix="/users/{username}/albums", tags=["Albums"])


@router.post(
    "",
    response_model=AlbumResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new album",
)
async def create_album(
    username: str,
    album_data: AlbumCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> AlbumResponse:
    """
    Create a new photo album.

    - **name**: Album name (required)
    - **description**: Optional album description
    - **coverPhoto**: Optional image URL used as the cover
    """
    require_owner(username, current_user)
    album_service = AlbumService(db)
    album = await album_service.create_album(current_user, album_data)
    return await album_service.to_response(album, photo_count=0)


@router.get(
    "",
    response_model=List[AlbumResponse],
    summary="List albums",
)
async def list_albums(
    username: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> List[AlbumResponse]:
    """All of your albums with their photo counts, newest first."""
    require_owner(username, current_user)
    album_service = AlbumService(db)
    albums = await album_service.get_user_albums(current_user)
    counts = await album_service.get_photo_counts([a.id for a in albums])
    return [await album_service.to_response(a, photo_count=counts[a.id]) for a in albums]


@router.get(
    "/{album_id}",
    response_model=AlbumResponse,
    summary="Get album",
)
async def get_album(
    username: str,
    album_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> AlbumResponse:
    require_owner(username, current_user)
    album_service = AlbumService(db)
    album = await album_service.get_album(current_user, album_id)
    return await album_service.to_response(album)


@router.patch(
    "/{album_id}",
    response_model=AlbumResponse,
    summary="Update album",
)
async def update_album(
    username: str,
    album_id: int,
    update_data: AlbumUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> AlbumResponse:
    """Omitted fields keep their value; a blank name is ignored."""
    require_owner(username, current_user)
    album_service = AlbumService(db)
    album = await album_service.get_album(current_user, album_id)
    album = await album_service.update_album(album, update_data)
    return await album_service.to_response(album)


@router.delete(
    "/{album_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete album",
)
async def delete_album(
    username: str,
    album_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Response:
    """
    Delete an album. Photos in it are kept and become uncategorized.
    """
    require_owner(username, current_user)
    album_service = AlbumService(db)
    album = await album_service.get_album(current_user, album_id)
    await album_service.delete_album(album)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
