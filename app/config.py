"""
Application configuration using Pydantic Settings.
Manages all environment variables and settings.
"""
from enum import Enum
from functools import lru_cache
from typing import Dict

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator, model_validator


class Environment(str, Enum):
    """Application environment modes."""
    DEV = "DEV"
    PRODUCTION = "PRODUCTION"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Environment = Field(
        default=Environment.DEV,
        description="Application environment: DEV or PRODUCTION"
    )

    # Application
    app_name: str = Field(default="Film Photo API")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    @model_validator(mode='after')
    def set_debug_from_environment(self):
        """Set debug mode based on environment if not explicitly set via environment variable."""
        # DEBUG 환경 변수가 명시적으로 설정되지 않은 경우에만 환경 모드에 따라 설정
        import os
        if 'DEBUG' not in os.environ:
            self.debug = self.environment == Environment.DEV
        return self

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEV

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    # Database (빈 문자열이면 기본값 사용)
    database_url: str = Field(default="sqlite+aiosqlite:///./photo_api.db")
    db_pool_size: int = Field(default=10)
    db_max_overflow: int = Field(default=20)
    db_pool_timeout: int = Field(default=30)
    db_pool_recycle: int = Field(default=1800)

    @field_validator("database_url", mode="before")
    @classmethod
    def coerce_empty_database_url(cls, v: str) -> str:
        if not v or not str(v).strip():
            return "sqlite+aiosqlite:///./photo_api.db"
        return v

    # JWT
    jwt_secret_key: str = Field(default="jwt-secret-change-in-production")
    jwt_algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=60 * 24)

    # Local file storage: {storage_root}/{username}/{category}/{name}.jpg
    storage_root: str = Field(default="uploads", description="업로드 파일 저장 루트 디렉터리")
    public_image_prefix: str = Field(
        default="/images/",
        description="응답 URL에 붙는 공개 경로 prefix (DB에는 상대 경로만 저장)",
    )
    storage_io_timeout_seconds: float = Field(default=10.0, description="디스크 I/O 1회 최대 대기 시간(초)")
    image_processing_timeout_seconds: float = Field(default=30.0, description="썸네일/미디엄 생성 최대 시간(초)")

    # Tier limits override. JSON 예: {"PRO": {"storage_limit_bytes": 5368709120, "photo_count_limit": 500}}
    tier_limits: Dict[str, Dict[str, int]] = Field(default_factory=dict)

    # Duplicate upload suppression (best-effort, in-process)
    idempotency_ttl_seconds: int = Field(default=30)

    # Orphan blob sweep
    orphan_sweep_enabled: bool = Field(default=False)
    orphan_sweep_interval_seconds: int = Field(default=3600)
    orphan_sweep_grace_seconds: int = Field(default=3600)

    @field_validator("orphan_sweep_interval_seconds", mode="before")
    @classmethod
    def coerce_sweep_interval(cls, v: object) -> int:
        if v is None or v == "":
            return 3600
        return int(v)

    # Rate limiting (slowapi)
    rate_limit_enabled: bool = Field(default=True)
    rate_limit_per_minute: int = Field(default=120)
    upload_rate_limit: str = Field(default="30/minute")

    # Logging: NDJSON 파일 로그 디렉터리. 비우면 파일 로그 비활성화
    log_dir: str = Field(default="/var/log/film-photo-api")

    # 인스턴스 식별용 사설 IP (로그·메트릭용). 비우면 hostname 사용
    instance_ip: str = Field(default="", description="서버 사설 IP (비우면 hostname)")

    class Config:
        # 환경변수만 사용 (.env 파일 미사용)
        env_file = None
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Using lru_cache to avoid reading the environment on every request.
    """
    return Settings()
