"""
FastAPI Film Photo API Application.

Main application entry point that configures:
- CORS middleware
- API routers
- Database lifecycle
- Logging system
- Exception handlers
- Prometheus metrics
- Orphan blob sweep (optional background task)
- Graceful shutdown
"""
import asyncio
import logging
import signal
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.middleware import SlowAPIMiddleware

from app.config import get_settings
from app.database import close_db, init_db
from app.exceptions import PhotoApiError
from app.middlewares.logging_middleware import LoggingMiddleware
from app.middlewares.rate_limit_middleware import setup_rate_limit_exception_handler
from app.middlewares.request_tracking_middleware import RequestTrackingMiddleware, in_flight
from app.routers import (
    albums_router,
    auth_router,
    health_router,
    images_router,
    photos_router,
    users_router,
)
from app.services.blob_store import get_blob_store
from app.services.orphan_sweep import orphan_sweep_loop
from app.utils.config_validator import validate_configuration
from app.utils.logger import get_request_id, log_error, log_info, log_warning, setup_logging
from app.utils.prometheus_metrics import exceptions_total, ready, setup_prometheus

settings = get_settings()
logger = logging.getLogger("app")

setup_logging()

SHUTDOWN_WAIT_SECONDS = 30.0


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def signal_handler():
        shutdown_event.set()
        # 로드밸런서가 새 요청을 보내지 않도록 즉시 not-ready
        ready.set(0)
        log_info("Shutdown signal received", event="lifecycle")

    for sig in (getattr(signal, "SIGTERM", None), getattr(signal, "SIGINT", None)):
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, signal_handler)
        except (NotImplementedError, RuntimeError):
            # Windows / 메인 스레드가 아닌 루프 (TestClient)
            return


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Startup: config validation, DB schema, storage root, optional orphan sweep.
    Shutdown: not-ready -> wait for in-flight uploads -> stop background tasks -> close DB.
    """
    shutdown_event = asyncio.Event()
    _install_signal_handlers(shutdown_event)

    await init_db()
    get_blob_store().ensure_root()
    await validate_configuration()

    sweep_task: Optional[asyncio.Task] = None
    if settings.orphan_sweep_enabled:
        sweep_task = asyncio.create_task(orphan_sweep_loop())

    ready.set(1)
    log_info(
        "Application startup completed",
        event="lifecycle",
        version=settings.app_version,
        environment=settings.environment.value,
        storage_root=str(get_blob_store().root),
    )

    yield

    ready.set(0)
    log_info("Application shutdown initiated", event="lifecycle")
    await in_flight.wait_idle(timeout=SHUTDOWN_WAIT_SECONDS)

    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass

    await close_db()
    log_info("Graceful shutdown completed", event="lifecycle")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
## Film Photo API

Photo storage backend with per-tier quotas.

### Features
- **Users**: registration, JWT authentication, public profiles, avatars
- **Images**: JPEG upload with thumbnail (300px) and medium (1280px) renditions
- **Photos**: metadata records, paging, albums
- **Quota**: FREE / BASIC / PRO storage, photo count and single file limits

### Authentication
Most endpoints require authentication via Bearer token.
Use the `/auth/login` endpoint to get a token.
    """,
    openapi_tags=[
        {"name": "Authentication", "description": "User registration and login"},
        {"name": "Users", "description": "Profiles and storage quota"},
        {"name": "Images", "description": "Image upload and delivery"},
        {"name": "Photos", "description": "Photo records"},
        {"name": "Albums", "description": "Album management and photo organization"},
    ],
    lifespan=lifespan,
)

setup_prometheus(app)

setup_rate_limit_exception_handler(app)

app.add_middleware(SlowAPIMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestTrackingMiddleware)


@app.exception_handler(PhotoApiError)
async def photo_api_exception_handler(request: Request, exc: PhotoApiError):
    """
    Domain errors -> {"error", "message", "code", "details", "request_id"}.
    Server faults keep their details in the log only.
    """
    rid = get_request_id()
    body = {
        "error": type(exc).__name__,
        "message": exc.message,
        "code": exc.error_code,
        "details": {} if exc.is_server_fault else exc.details,
        "request_id": rid,
    }
    if exc.is_server_fault:
        log_error(
            "Request failed - server fault",
            error_type=type(exc).__name__,
            error_code=exc.error_code,
            details=exc.details,
            http_method=request.method,
            http_path=request.url.path,
            event="exception",
        )
    else:
        log_warning(
            "Request rejected",
            error_type=type(exc).__name__,
            error_code=exc.error_code,
            http_method=request.method,
            http_path=request.url.path,
            event="exception",
        )
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Unhandled exception -> 500 with the request id so users can report it.
    """
    exceptions_total.inc()
    rid = get_request_id()

    log_error(
        "Unhandled exception occurred",
        error_type=type(exc).__name__,
        error_message=str(exc),
        error_code="INTERNAL_SERVER_ERROR",
        http_method=request.method,
        http_path=request.url.path,
        event="exception",
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "Internal server error",
            "code": "INTERNAL_SERVER_ERROR",
            "details": {},
            "request_id": rid,
        },
    )


app.include_router(health_router)
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(photos_router)
app.include_router(albums_router)
app.include_router(images_router)


@app.get(
    "/",
    tags=["Root"],
    summary="API information",
)
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
