"""
Authentication service for user management.
"""
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ConflictError, NotFoundError
from app.models.user import User
from app.schemas.user import Token, UserCreate, UserProfileUpdate
from app.utils.logger import log_info, log_warning
from app.utils.security import create_access_token, hash_password, verify_password


class AuthService:
    """
    Service for handling user authentication.
    Provides methods for registration, login, and profile management.
    """
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def register(self, user_data: UserCreate) -> User:
        """
        Register a new user on the FREE tier with zero storage used.
        
        Args:
            user_data: User registration data
            
        Returns:
            Created User model
            
        Raises:
            ConflictError: If email or username already exists
        """
        existing_email = await self._get_user_by_email(user_data.email)
        if existing_email:
            log_warning("Registration failed", event="auth", reason="email_exists")
            raise ConflictError(message="Email already registered")
        existing_username = await self.get_user_by_username(user_data.username)
        if existing_username:
            log_warning("Registration failed", event="auth", username=user_data.username, reason="username_exists")
            raise ConflictError(message="Username already taken")
        
        user = User(
            email=user_data.email,
            username=user_data.username,
            hashed_password=hash_password(user_data.password),
            display_name=user_data.display_name or user_data.username,
            tier="FREE",
            storage_used=0,
        )
        
        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        log_info("Registration", event="auth", user_id=user.id)
        return user
    
    async def authenticate(self, email: str, password: str) -> Optional[User]:
        """
        Authenticate a user with email and password.
        
        Returns:
            User if authentication successful, None otherwise
        """
        user = await self._get_user_by_email(email)
        
        if not user:
            log_warning("Login failed", event="auth", reason="user_not_found")
            return None
        if not user.is_active:
            log_warning("Login failed", event="auth", reason="inactive", user_id=user.id)
            return None
        if not verify_password(password, user.hashed_password):
            log_warning("Login failed", event="auth", reason="invalid_password", user_id=user.id)
            return None
        log_info("Login", event="auth", user_id=user.id)
        return user
    
    async def login(self, email: str, password: str) -> Optional[Token]:
        """Login user and return JWT token, None on bad credentials."""
        user = await self.authenticate(email, password)
        
        if not user:
            return None
        
        access_token = create_access_token(user.id, username=user.username)
        return Token(access_token=access_token)
    
    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()
    
    async def get_user_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.username == username)
        )
        return result.scalar_one_or_none()
    
    async def require_user(self, username: str) -> User:
        user = await self.get_user_by_username(username)
        if user is None:
            raise NotFoundError(message=f"User not found: {username}")
        return user
    
    async def update_profile(self, user: User, update_data: UserProfileUpdate) -> User:
        """Apply provided profile fields; omitted fields keep their value."""
        if update_data.display_name is not None:
            user.display_name = update_data.display_name
        if update_data.bio is not None:
            user.bio = update_data.bio
        await self.db.flush()
        await self.db.refresh(user)
        log_info("Profile updated", event="auth", user_id=user.id)
        return user
    
    async def _get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        result = await self.db.execute(
            select(User).where(User.email == email)
        )
        return result.scalar_one_or_none()
