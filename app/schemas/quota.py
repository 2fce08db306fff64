"""
Storage quota schema returned by GET /users/{username}/quota.
"""
from app.schemas.base import CamelModel


class QuotaInfo(CamelModel):
    tier: str
    tier_display_name: str
    storage_used: int
    storage_limit: int
    storage_available: int
    storage_used_formatted: str
    storage_limit_formatted: str
    # used * 100 // limit (정수 퍼센트)
    storage_percentage: int
    photo_count: int
    photo_limit: int
    single_file_limit: int
    single_file_limit_formatted: str
