"""
Authentication router for user registration and login.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies.auth import get_current_active_user
from app.models.user import User
from app.schemas.user import Token, UserCreate, UserLogin, UserResponse
from app.services.auth import AuthService
from app.utils.logger import log_info, log_warning

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    user_data: UserCreate,
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """
    Register a new user account on the FREE tier.

    - **email**: Valid email address (must be unique)
    - **username**: 3-100 characters of letters, digits, `_ . -` (must be unique)
    - **password**: Password (8-100 characters)
    """
    user = await AuthService(db).register(user_data)
    log_info("User registration completed", event="user_registration", user_id=user.id)
    return UserResponse.from_user(user)


@router.post(
    "/login",
    response_model=Token,
    summary="Login to get access token",
)
async def login(
    login_data: UserLogin,
    db: AsyncSession = Depends(get_db),
) -> Token:
    """
    Login with email and password to get a JWT access token.

    Send it as `Authorization: Bearer <token>` on authenticated endpoints.
    """
    token = await AuthService(db).login(login_data.email, login_data.password)

    if not token:
        # 무차별 대입 탐지용
        log_warning("Login failed - invalid credentials", event="user_login")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    log_info("User login successful", event="user_login")
    return token


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get current user account",
)
async def get_me(
    current_user: User = Depends(get_current_active_user),
) -> UserResponse:
    return UserResponse.from_user(current_user)
