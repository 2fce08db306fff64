"""
구조화된 로깅 미들웨어.

모든 HTTP 요청에 Request ID를 부여하고, 실패·지연 요청을 구조화 로그로 남깁니다.
정상 응답은 로깅하지 않습니다 (업로드 성공 등은 서비스 계층에서 남김).
"""
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.client_ip import get_client_ip
from app.utils.logger import log_error, log_warning, set_request_id

# 느린 응답 임계값 (ms). 업로드는 썸네일 생성 때문에 더 관대하게
SLOW_REQUEST_THRESHOLD_MS = 3000
SLOW_UPLOAD_THRESHOLD_MS = 10000

REQUEST_ID_HEADER = "X-Request-ID"

EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc", "/metrics", "/favicon.ico"}


def _slow_threshold_ms(request: Request) -> int:
    if request.method == "POST" and (
        request.url.path == "/images/upload" or request.url.path.endswith("/photos")
    ):
        return SLOW_UPLOAD_THRESHOLD_MS
    return SLOW_REQUEST_THRESHOLD_MS


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    로깅 기준:
    - 5xx → ERROR
    - 4xx → WARNING (이미지 GET 404 제외: 삭제된 사진 링크는 정상 흐름)
    - 느린 응답 → WARNING
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        rid = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        fields = {
            "http_method": request.method,
            "http_path": request.url.path,
            "client_ip": get_client_ip(request),
            "user_agent": request.headers.get("user-agent"),
            "event": "request",
        }
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            log_error(
                "Request exception",
                error_type=type(e).__name__,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
                exc_info=True,
                **fields,
            )
            # global exception handler가 처리
            raise

        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = rid
        status_code = response.status_code

        if status_code >= 500:
            log_error(
                "Request error - Server error occurred",
                error_code=f"HTTP_{status_code}",
                http_status=status_code,
                duration_ms=duration_ms,
                **fields,
            )
        elif status_code >= 400:
            if not (status_code == 404 and request.method == "GET" and request.url.path.startswith("/images/")):
                log_warning(
                    "Request failed - Client error",
                    http_status=status_code,
                    duration_ms=duration_ms,
                    **fields,
                )
        elif duration_ms >= _slow_threshold_ms(request):
            log_warning(
                "Slow request detected",
                http_status=status_code,
                duration_ms=duration_ms,
                performance_issue=True,
                **fields,
            )

        return response
