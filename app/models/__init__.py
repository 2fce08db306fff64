"""
Database models package.
All models are exported here for easy import.
"""
from app.models.user import User
from app.models.photo import Photo
from app.models.album import Album

__all__ = ["User", "Photo", "Album"]
