"""
Users router: public profiles, profile edits and storage quota.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_active_user, get_optional_current_user, require_owner
from app.dependencies.services import get_quota_ledger
from app.models.user import User
from app.schemas.photo import to_public_url
from app.schemas.quota import QuotaInfo
from app.schemas.user import UserProfileResponse, UserProfileUpdate
from app.services.auth import AuthService
from app.services.blob_store import BlobStore, get_blob_store
from app.services.quota import QuotaLedger

router = APIRouter(prefix="/users", tags=["Users"])


async def _profile_response(
    user: User, quota: QuotaLedger, include_quota: bool
) -> UserProfileResponse:
    response = UserProfileResponse(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        bio=user.bio,
        avatar_url=to_public_url(user.avatar_url),
        photo_count=await quota.count_photos(user),
        created_at=user.created_at,
    )
    if include_quota:
        limits = quota.tier_policy.limits_for(user.tier)
        response.tier = quota.tier_policy.normalize(user.tier)
        response.storage_used = user.storage_used
        response.storage_limit = limits.storage_limit_bytes
        response.photo_limit = limits.photo_count_limit
        response.single_file_limit = limits.single_file_limit_bytes
    return response


@router.get(
    "/{username}",
    response_model=UserProfileResponse,
    response_model_exclude_none=True,
    summary="Get a user profile",
)
async def get_profile(
    username: str,
    db: AsyncSession = Depends(get_db),
    quota: QuotaLedger = Depends(get_quota_ledger),
    current_user: Optional[User] = Depends(get_optional_current_user),
) -> UserProfileResponse:
    """
    Public profile. Tier and storage figures are included only when the
    caller is the profile owner.
    """
    user = await AuthService(db).require_user(username)
    is_owner = current_user is not None and current_user.id == user.id
    return await _profile_response(user, quota, include_quota=is_owner)


@router.patch(
    "/{username}",
    response_model=UserProfileResponse,
    response_model_exclude_none=True,
    summary="Update own profile",
)
async def update_profile(
    username: str,
    update_data: UserProfileUpdate,
    db: AsyncSession = Depends(get_db),
    quota: QuotaLedger = Depends(get_quota_ledger),
    current_user: User = Depends(get_current_active_user),
) -> UserProfileResponse:
    require_owner(username, current_user)
    user = await AuthService(db).update_profile(current_user, update_data)
    return await _profile_response(user, quota, include_quota=True)


@router.get(
    "/{username}/quota",
    response_model=QuotaInfo,
    summary="Get storage quota usage",
)
async def get_quota(
    username: str,
    quota: QuotaLedger = Depends(get_quota_ledger),
    current_user: User = Depends(get_current_active_user),
) -> QuotaInfo:
    require_owner(username, current_user)
    return await quota.quota_info(current_user)


@router.post(
    "/{username}/quota/reconcile",
    response_model=QuotaInfo,
    summary="Recompute storage usage from disk",
)
async def reconcile_quota(
    username: str,
    quota: QuotaLedger = Depends(get_quota_ledger),
    blob_store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_active_user),
) -> QuotaInfo:
    """
    Recount storage_used from the originals actually stored for the user.
    Used to repair drift left by a failed compensation.
    """
    require_owner(username, current_user)
    await quota.reconcile(current_user, blob_store)
    return await quota.quota_info(current_user)
