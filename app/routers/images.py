"""
Images router: multipart upload and stored file delivery.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile, status

from app.dependencies.auth import get_current_active_user
from app.dependencies.services import get_upload_coordinator
from app.exceptions import INVALID_INPUT, NotFoundError, PathTraversalError, ValidationError
from app.middlewares.rate_limit_middleware import upload_rate_limit
from app.models.user import User
from app.schemas.photo import ImageUploadResponse
from app.services.blob_store import BlobStore, get_blob_store
from app.services.photo import PhotoMetadata
from app.services.upload import UploadCoordinator
from app.utils.prometheus_metrics import image_access_total

logger = logging.getLogger("app.images")

router = APIRouter(prefix="/images", tags=["Images"])

IMAGE_CACHE_CONTROL = "private, max-age=86400"


def _parse_album_id(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(
            message=f"Invalid album ID format: {raw}",
            error_code=INVALID_INPUT,
            details={"album_id": raw},
        )


@router.post(
    "/upload",
    response_model=ImageUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a JPEG image",
)
@upload_rate_limit()
async def upload_image(
    request: Request,
    image: UploadFile = File(...),
    category: str = Form("photo", alias="type"),
    album_id: Optional[str] = Form(None, alias="albumId"),
    idempotency_key: Optional[str] = Form(None, alias="idempotencyKey"),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    location: Optional[str] = Form(None),
    camera: Optional[str] = Form(None),
    lens: Optional[str] = Form(None),
    settings: Optional[str] = Form(None),
    taken_at: Optional[str] = Form(None, alias="takenAt"),
    coordinator: UploadCoordinator = Depends(get_upload_coordinator),
    current_user: User = Depends(get_current_active_user),
) -> ImageUploadResponse:
    """
    Store one JPEG and generate its thumbnail and medium renditions.

    - **image**: the file (JPEG only; magic bytes are checked)
    - **type**: `photo` (default, creates a photo record), `avatar`, `postcard` or `other`
    - **albumId**, **title**, ...: photo metadata (type=photo only)
    - **idempotencyKey**: optional; repeated submissions within a short window return the first response

    The file's size is charged against your tier's storage quota.
    """
    content = await image.read()
    metadata = PhotoMetadata(
        album_id=_parse_album_id(album_id),
        title=title,
        description=description,
        location=location,
        camera=camera,
        lens=lens,
        settings=settings,
        taken_at=taken_at,
    )
    result = await coordinator.upload(
        current_user,
        content,
        category=category,
        filename=image.filename,
        content_type=image.content_type,
        metadata=metadata,
        idempotency_key=idempotency_key or request.headers.get("Idempotency-Key"),
    )
    return result.to_response()


@router.get(
    "/{path:path}",
    summary="Get a stored image",
    responses={200: {"content": {"image/jpeg": {}}}},
)
async def get_image(
    path: str,
    blob_store: BlobStore = Depends(get_blob_store),
) -> Response:
    """Stored file bytes by storage path (`{username}/{type}/{name}.jpg`)."""
    try:
        content = await blob_store.read(path)
    except PathTraversalError:
        image_access_total.labels(result="denied").inc()
        raise
    except NotFoundError:
        image_access_total.labels(result="not_found").inc()
        raise
    image_access_total.labels(result="success").inc()
    return Response(
        content=content,
        media_type="image/jpeg",
        headers={"Cache-Control": IMAGE_CACHE_CONTROL},
    )
