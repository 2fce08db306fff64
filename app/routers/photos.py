"""
Photos router: a user's photo records.

The image bytes themselves are uploaded through POST /images/upload; these
endpoints register, page through, edit and delete the catalog rows.
"""
import logging

from fastapi import APIRouter, Depends, Query, Response, status

from app.dependencies.auth import get_current_active_user, require_owner
from app.dependencies.services import get_photo_catalog
from app.models.user import User
from app.schemas.photo import (
    PagedPhotoResponse,
    PhotoDeleteResponse,
    PhotoResponse,
    PhotoUpdate,
    PhotoUploadRequest,
)
from app.services.photo import MAX_PAGE_SIZE, PhotoCatalog
from app.utils.prometheus_metrics import photo_upload_total

logger = logging.getLogger("app.photos")

router = APIRouter(prefix="/users/{username}/photos", tags=["Photos"])


@router.post(
    "",
    response_model=PhotoResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create or update a photo record for a stored image",
)
async def create_photo(
    username: str,
    request: PhotoUploadRequest,
    response: Response,
    catalog: PhotoCatalog = Depends(get_photo_catalog),
    current_user: User = Depends(get_current_active_user),
) -> PhotoResponse:
    """
    Register metadata for an image previously uploaded with `type=photo`.

    - **imageUrl**: public URL (`/images/...`) or bare storage path; must be one of your files
    - Re-sending the same imageUrl updates the existing record (200 instead of 201)
    """
    require_owner(username, current_user)
    photo, created = await catalog.create_or_update_from_request(current_user, request)
    if not created:
        response.status_code = status.HTTP_200_OK
    photo_upload_total.labels(category="photo", result="success" if created else "duplicate").inc()
    return PhotoResponse.from_photo(photo)


@router.get(
    "",
    response_model=PagedPhotoResponse,
    summary="List a user's photos",
)
async def list_photos(
    username: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    catalog: PhotoCatalog = Depends(get_photo_catalog),
    current_user: User = Depends(get_current_active_user),
) -> PagedPhotoResponse:
    """Newest first. `page` is 1-based."""
    require_owner(username, current_user)
    photos, total = await catalog.list_for_user(current_user, page, page_size)
    total_pages = catalog.total_pages(total, page_size)
    return PagedPhotoResponse(
        photos=[PhotoResponse.from_photo(p) for p in photos],
        current_page=page,
        page_size=page_size,
        total_photos=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1,
    )


@router.get(
    "/{photo_id}",
    response_model=PhotoResponse,
    summary="Get one photo",
)
async def get_photo(
    username: str,
    photo_id: int,
    catalog: PhotoCatalog = Depends(get_photo_catalog),
    current_user: User = Depends(get_current_active_user),
) -> PhotoResponse:
    require_owner(username, current_user)
    return PhotoResponse.from_photo(await catalog.get(current_user, photo_id))


@router.patch(
    "/{photo_id}",
    response_model=PhotoResponse,
    summary="Update photo metadata",
)
async def update_photo(
    username: str,
    photo_id: int,
    update_data: PhotoUpdate,
    catalog: PhotoCatalog = Depends(get_photo_catalog),
    current_user: User = Depends(get_current_active_user),
) -> PhotoResponse:
    """
    Partial update. `albumId: ""` (or null) moves the photo out of its album.
    """
    require_owner(username, current_user)
    photo = await catalog.update(current_user, photo_id, update_data)
    return PhotoResponse.from_photo(photo)


@router.delete(
    "/{photo_id}",
    response_model=PhotoDeleteResponse,
    summary="Delete a photo",
)
async def delete_photo(
    username: str,
    photo_id: int,
    catalog: PhotoCatalog = Depends(get_photo_catalog),
    current_user: User = Depends(get_current_active_user),
) -> PhotoDeleteResponse:
    """
    Delete the photo, its thumbnail and medium renditions, and release the
    original's size from your storage quota.
    """
    require_owner(username, current_user)
    freed = await catalog.delete(current_user, photo_id)
    return PhotoDeleteResponse(success=True, message="Photo deleted successfully", freed_bytes=freed)
