"""
Prometheus metrics for stability and the upload pipeline.

- FastAPI: request count, latency (Instrumentator)
- Stability: exceptions_total, db_errors_total
- HA: ready gauge (1=up, 0=shutting down), in_flight_requests
- Upload pipeline: upload outcomes, file sizes, quota rejections,
  compensations, reconciliation anomalies
- Storage: disk I/O latency, bytes accounted, image access
"""
import logging
import socket
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from prometheus_fastapi_instrumentator import Instrumentator

from app.config import get_settings

logger = logging.getLogger(__name__)

# --- Stability ---
exceptions_total = Counter(
    "photo_api_exceptions_total",
    "Total unhandled exceptions",
    registry=REGISTRY,
)
db_errors_total = Counter(
    "photo_api_db_errors_total",
    "Total database session/transaction errors",
    registry=REGISTRY,
)

# --- HA ---
ready = Gauge(
    "photo_api_ready",
    "Application ready (1=up, 0=shutting down)",
    registry=REGISTRY,
)

# 진행 중인 요청 수 (Graceful shutdown용)
in_flight_requests = Gauge(
    "photo_api_in_flight_requests",
    "Number of requests currently being processed",
    registry=REGISTRY,
)

# Health check 상태 (1=healthy, 0=unhealthy)
health_check_status = Gauge(
    "photo_api_health_check_status",
    "Health check status (1=healthy, 0=unhealthy)",
    ["check_type"],
    registry=REGISTRY,
)

# --- Rate Limiting ---
rate_limit_hits_total = Counter(
    "photo_api_rate_limit_hits_total",
    "Total number of rate limit hits (requests blocked)",
    ["endpoint"],
    registry=REGISTRY,
)

# --- Upload pipeline ---
photo_upload_total = Counter(
    "photo_api_photo_upload_total",
    "Total number of image upload attempts",
    ["category", "result"],  # result: success | rejected | failure | duplicate
    registry=REGISTRY,
)

photo_upload_file_size_bytes = Histogram(
    "photo_api_photo_upload_file_size_bytes",
    "Stored original file size in bytes",
    ["category"],
    buckets=(
        102400, 512000, 1048576, 2097152, 5242880,
        10485760, 20971520, 31457280,
    ),  # 100KB to 30MB
    registry=REGISTRY,
)

upload_stage_duration_seconds = Histogram(
    "photo_api_upload_stage_duration_seconds",
    "Duration of each upload coordinator stage",
    ["stage"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

quota_rejections_total = Counter(
    "photo_api_quota_rejections_total",
    "Uploads rejected by the quota ledger",
    ["reason", "tier"],  # reason: file_too_large | storage_exceeded | photo_count_exceeded
    registry=REGISTRY,
)

upload_compensations_total = Counter(
    "photo_api_upload_compensations_total",
    "Compensation actions executed after a failed upload step",
    ["action", "result"],  # result: success | failure
    registry=REGISTRY,
)

reconciliation_anomalies_total = Counter(
    "photo_api_reconciliation_anomalies_total",
    "Compensations that failed and need out-of-band cleanup",
    ["action"],
    registry=REGISTRY,
)

idempotent_replays_total = Counter(
    "photo_api_idempotent_replays_total",
    "Upload requests answered from the duplicate-submission cache",
    registry=REGISTRY,
)

storage_accounted_bytes_total = Counter(
    "photo_api_storage_accounted_bytes_total",
    "Bytes added to users' accounted storage (cumulative)",
    ["tier"],
    registry=REGISTRY,
)

storage_freed_bytes_total = Counter(
    "photo_api_storage_freed_bytes_total",
    "Bytes released from users' accounted storage (cumulative)",
    ["tier"],
    registry=REGISTRY,
)

orphan_blobs_deleted_total = Counter(
    "photo_api_orphan_blobs_deleted_total",
    "Original blobs removed by the orphan sweep",
    registry=REGISTRY,
)

# --- Storage I/O ---
storage_io_duration_seconds = Histogram(
    "photo_api_storage_io_duration_seconds",
    "Local storage operation duration in seconds",
    ["operation", "result"],  # operation: write | delete | read | resize
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=REGISTRY,
)

image_access_total = Counter(
    "photo_api_image_access_total",
    "Total number of stored image access attempts",
    ["result"],  # result: success | not_found | denied
    registry=REGISTRY,
)

app_info = Gauge(
    "photo_api_app_info",
    "Application and node identity (labels only, value is 1)",
    ["node", "app", "version", "environment"],
    registry=REGISTRY,
)


def _node_identity() -> str:
    settings = get_settings()
    return (settings.instance_ip or "").strip() or socket.gethostname()


@asynccontextmanager
async def record_storage_operation(operation: str) -> AsyncGenerator[None, None]:
    """
    Time a storage operation and record its outcome.

    Usage:
        async with record_storage_operation("write"):
            await asyncio.to_thread(...)
    """
    start = time.perf_counter()
    result = "success"
    try:
        yield
    except BaseException:
        result = "failure"
        raise
    finally:
        storage_io_duration_seconds.labels(operation=operation, result=result).observe(
            time.perf_counter() - start
        )


def setup_prometheus(app) -> None:
    """
    Register Prometheus instrumentation.

    1. app_info (node identity).
    2. Instrumentator (FastAPI request metrics).
    3. /metrics 엔드포인트 노출 (스크래핑용).
    """
    settings = get_settings()
    app_info.labels(
        node=_node_identity(),
        app=settings.app_name,
        version=settings.app_version,
        environment=settings.environment.value,
    ).set(1)

    # status 라벨을 2xx/3xx 대신 구체 코드(200, 201, 404, 500 등)로 노출
    Instrumentator(should_group_status_codes=False).instrument(app).expose(
        app, endpoint="/metrics"
    )
