"""
Utility functions package.
"""
from app.utils.security import (
    authenticate,
    hash_password,
    verify_password,
    create_access_token,
    decode_access_token,
)

__all__ = [
    "authenticate",
    "hash_password",
    "verify_password",
    "create_access_token",
    "decode_access_token",
]
