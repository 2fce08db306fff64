"""
진행 중인 요청 추적 미들웨어.

Graceful shutdown 시 진행 중인 업로드가 끝날 때까지 기다릴 수 있게 합니다.
(업로드 도중 종료되면 보상 작업 대신 orphan sweep에 의존하게 됨)
"""
import asyncio
import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.prometheus_metrics import in_flight_requests

logger = logging.getLogger("app.request_tracking")

# shutdown 중에도 체크 가능해야 함
EXCLUDED_PATHS = {"/health", "/health/liveness", "/health/readiness", "/health/detailed", "/metrics"}


class InFlightCounter:
    """Process-wide in-flight request count shared by the middleware and the lifespan."""

    def __init__(self):
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    def enter(self) -> None:
        self._count += 1
        in_flight_requests.set(self._count)

    def leave(self) -> None:
        self._count = max(0, self._count - 1)
        in_flight_requests.set(self._count)

    async def wait_idle(self, timeout: float = 30.0, poll_interval: float = 0.5) -> bool:
        """True when all requests finished before timeout."""
        deadline = time.monotonic() + timeout
        while self._count > 0:
            if time.monotonic() >= deadline:
                logger.warning(
                    "Timeout waiting for requests",
                    extra={"event": "shutdown", "remaining_requests": self._count, "timeout": timeout},
                )
                return False
            await asyncio.sleep(poll_interval)
        logger.info("All in-flight requests completed", extra={"event": "shutdown"})
        return True


in_flight = InFlightCounter()


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        in_flight.enter()
        try:
            return await call_next(request)
        finally:
            in_flight.leave()
