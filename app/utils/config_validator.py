"""
설정 검증 유틸리티.

애플리케이션 시작 시 필수 설정을 검증합니다.
프로덕션 환경에서만 실패 시 기동을 중단합니다.
"""
import logging
import os
from pathlib import Path
from typing import List

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import Environment, Settings, get_settings
from app.database import engine
from app.services.tier_policy import get_tier_policy

logger = logging.getLogger("app.config_validator")

DEFAULT_JWT_SECRET = "jwt-secret-change-in-production"


async def validate_configuration() -> None:
    """
    애플리케이션 설정을 검증합니다.

    개발 환경에서는 문제를 경고로만 남기고, 프로덕션 환경에서는
    ValueError를 발생시켜 애플리케이션 시작을 중단합니다.
    """
    settings = get_settings()
    errors: List[str] = []

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection: OK", extra={"event": "config"})
    except SQLAlchemyError as e:
        errors.append(f"Database connection failed: {type(e).__name__}")

    errors.extend(_validate_storage_root(settings))
    errors.extend(_validate_security(settings))

    # 잘못된 tier override는 여기서 ValueError로 드러난다
    get_tier_policy()

    if not errors:
        logger.info("Configuration validation completed successfully", extra={"event": "config"})
        return

    if settings.environment != Environment.PRODUCTION:
        for error in errors:
            logger.warning(error, extra={"event": "config"})
        return

    error_summary = "\n".join(f"  - {e}" for e in errors)
    raise ValueError(
        f"Configuration validation failed:\n{error_summary}\n"
        "Please check your environment variables and configuration."
    )


def _validate_storage_root(settings: Settings) -> List[str]:
    """STORAGE_ROOT는 존재(또는 생성 가능)하고 쓰기 가능해야 한다."""
    root = Path(settings.storage_root)
    try:
        root.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        return [f"STORAGE_ROOT is not creatable: {root} ({e.strerror})"]
    if not os.access(root, os.W_OK):
        return [f"STORAGE_ROOT is not writable: {root}"]
    logger.info("Storage root: OK", extra={"event": "config", "path": str(root)})
    return []


def _validate_security(settings: Settings) -> List[str]:
    if settings.jwt_secret_key == DEFAULT_JWT_SECRET:
        return ["JWT_SECRET_KEY must be changed from the default value"]
    return []
