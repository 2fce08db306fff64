"""
API routers package.
"""
from app.routers.auth import router as auth_router
from app.routers.albums import router as albums_router
from app.routers.health import router as health_router
from app.routers.images import router as images_router
from app.routers.photos import router as photos_router
from app.routers.users import router as users_router

__all__ = [
    "auth_router",
    "albums_router",
    "health_router",
    "images_router",
    "photos_router",
    "users_router",
]
