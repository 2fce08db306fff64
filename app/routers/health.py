"""
Health Check 라우터.

애플리케이션의 상태를 확인하는 엔드포인트를 제공합니다.
"""
import asyncio
import logging
import os
import time
import uuid
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.config import get_settings
from app.database import engine
from app.services.blob_store import get_blob_store
from app.utils.prometheus_metrics import health_check_status, ready

logger = logging.getLogger("app.health")
router = APIRouter(prefix="/health", tags=["Health"])

settings = get_settings()


def _is_ready() -> bool:
    return ready._value.get() != 0


async def _check_db(timeout: float = 1.0) -> None:
    async def _select_one():
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

    await asyncio.wait_for(_select_one(), timeout=timeout)


def _probe_storage_root() -> None:
    """Write and remove a marker file under the storage root."""
    root = get_blob_store().root
    root.mkdir(parents=True, exist_ok=True)
    marker = root / f".health-{uuid.uuid4().hex}"
    marker.write_bytes(b"ok")
    os.unlink(marker)


@router.get(
    "",
    summary="Health check (fast)",
)
async def health_check() -> Dict[str, Any]:
    """
    빠른 Health Check (로드밸런서용).

    - 애플리케이션 실행 상태 + DB 연결 (타임아웃 1초)
    """
    start_time = time.perf_counter()

    if not _is_ready():
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is shutting down",
        )

    try:
        await _check_db()
    except asyncio.TimeoutError:
        logger.warning("DB health check timeout", extra={"event": "health"})
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection timeout",
        )
    except SQLAlchemyError as e:
        logger.warning("DB health check failed", extra={"event": "health", "error_type": type(e).__name__})
        health_check_status.labels(check_type="fast").set(0)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database connection failed",
        )

    health_check_status.labels(check_type="fast").set(1)
    return {
        "status": "healthy",
        "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
        "instance": settings.instance_ip or "unknown",
    }


@router.get(
    "/liveness",
    summary="Liveness probe (Kubernetes)",
)
async def liveness_probe() -> Dict[str, str]:
    """애플리케이션이 살아있는지만 확인합니다."""
    if not _is_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is shutting down",
        )
    return {"status": "alive"}


@router.get(
    "/readiness",
    summary="Readiness probe (Kubernetes)",
)
async def readiness_probe() -> Dict[str, str]:
    """요청을 처리할 준비가 되었는지 (ready 플래그 + DB) 확인합니다."""
    if not _is_ready():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Application is not ready",
        )

    try:
        await _check_db()
    except (asyncio.TimeoutError, SQLAlchemyError) as e:
        logger.warning(
            "Readiness check failed: DB",
            extra={"event": "health", "error_type": type(e).__name__},
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready",
        )

    return {"status": "ready"}


@router.get(
    "/detailed",
    summary="Detailed health check (monitoring)",
)
async def detailed_health_check() -> Dict[str, Any]:
    """
    상세 Health Check (모니터링 시스템용).

    - DB 연결 확인
    - 스토리지 루트 쓰기 가능 여부 (마커 파일 생성/삭제)
    """
    start_time = time.perf_counter()
    checks: Dict[str, Any] = {"status": "healthy", "checks": {}}

    if not _is_ready():
        checks["status"] = "unhealthy"
        checks["checks"]["ready"] = {"status": "down", "error": "Application is shutting down"}
        health_check_status.labels(check_type="detailed").set(0)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=checks)

    try:
        await _check_db()
        checks["checks"]["database"] = {"status": "up"}
    except asyncio.TimeoutError:
        checks["status"] = "unhealthy"
        checks["checks"]["database"] = {"status": "down", "error": "Timeout"}
    except SQLAlchemyError as e:
        checks["status"] = "unhealthy"
        checks["checks"]["database"] = {"status": "down", "error": type(e).__name__}
        logger.warning("DB health check failed", extra={"event": "health", "error_type": type(e).__name__})

    try:
        await asyncio.wait_for(asyncio.to_thread(_probe_storage_root), timeout=settings.storage_io_timeout_seconds)
        checks["checks"]["storage"] = {"status": "up"}
    except asyncio.TimeoutError:
        checks["status"] = "unhealthy"
        checks["checks"]["storage"] = {"status": "down", "error": "Timeout"}
    except OSError as e:
        checks["status"] = "unhealthy"
        checks["checks"]["storage"] = {"status": "down", "error": e.strerror or type(e).__name__}
        logger.warning("Storage health check failed", extra={"event": "health", "error_type": type(e).__name__})

    checks["duration_ms"] = round((time.perf_counter() - start_time) * 1000, 2)
    checks["instance"] = settings.instance_ip or "unknown"

    if checks["status"] == "unhealthy":
        health_check_status.labels(check_type="detailed").set(0)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=checks)

    health_check_status.labels(check_type="detailed").set(1)
    return checks
