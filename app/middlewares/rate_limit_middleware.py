"""
Rate limiting using slowapi.

전역 기본 한도(RATE_LIMIT_PER_MINUTE)와 업로드 엔드포인트 전용 한도(UPLOAD_RATE_LIMIT)를 둔다.
"""
import logging
from typing import Callable

from fastapi import Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.config import get_settings
from app.utils.client_ip import rate_limit_key
from app.utils.prometheus_metrics import rate_limit_hits_total

logger = logging.getLogger("app.rate_limit")
settings = get_settings()

limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"] if settings.rate_limit_enabled else [],
    storage_uri="memory://",
    enabled=settings.rate_limit_enabled,
)


def setup_rate_limit_exception_handler(app) -> None:
    """Register the 429 handler and attach the limiter to app.state."""
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        endpoint = request.url.path
        rate_limit_hits_total.labels(endpoint=endpoint).inc()
        logger.warning(
            "Rate limit exceeded",
            extra={
                "event": "rate_limit",
                "client_ip": rate_limit_key(request),
                "endpoint": endpoint,
                "limit": getattr(exc, "detail", "unknown"),
            },
        )
        return _rate_limit_exceeded_handler(request, exc)


def upload_rate_limit() -> Callable[[Callable], Callable]:
    """Decorator applying UPLOAD_RATE_LIMIT to an upload endpoint."""
    if not settings.rate_limit_enabled:
        def noop_decorator(func: Callable) -> Callable:
            return func
        return noop_decorator
    return limiter.limit(settings.upload_rate_limit)
