"""
재시도 로직 구현 (Exponential Backoff).

일시적인 디스크 I/O 실패(보상 작업의 파일 삭제 등)에 대해 자동 재시도를 제공합니다.
"""
import asyncio
import inspect
import logging
import random
from typing import Any, Callable, Optional, Type

logger = logging.getLogger("app.retry")


async def retry_with_backoff(
    func: Callable[..., Any],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 10.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: tuple[Type[Exception], ...] = (Exception,),
    target: Optional[str] = None,
    *args,
    **kwargs,
) -> Any:
    """
    Exponential Backoff를 사용한 재시도 로직.

    Args:
        func: 호출할 함수. 반환값이 awaitable이면 await 한다 (partial로 감싼 코루틴 포함)
        max_attempts: 총 시도 횟수
        initial_delay: 초기 지연 시간 (초)
        max_delay: 최대 지연 시간 (초)
        exponential_base: 지수 백오프 베이스
        jitter: 지터(랜덤 지연) 추가 여부
        retryable_exceptions: 재시도할 예외 타입. 그 외 예외는 즉시 전파
        target: 재시도 대상 식별 (예: "compensation.delete_original") - 로그용

    Raises:
        마지막 시도에서 발생한 예외
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(max_attempts):
        try:
            result = func(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

        except retryable_exceptions as e:
            if attempt == max_attempts - 1:
                extra_err = {
                    "event": "retry",
                    "attempt": attempt + 1,
                    "max_attempts": max_attempts,
                    "error_type": type(e).__name__,
                }
                if target is not None:
                    extra_err["retry_target"] = target
                logger.error(
                    f"Retry exhausted after {max_attempts} attempts",
                    extra=extra_err,
                )
                raise

            delay = min(initial_delay * (exponential_base ** attempt), max_delay)
            if jitter:
                delay = delay * (0.5 + random.random() * 0.5)

            extra_warn = {
                "event": "retry",
                "attempt": attempt + 1,
                "max_attempts": max_attempts,
                "delay": delay,
                "error_type": type(e).__name__,
            }
            if target is not None:
                extra_warn["retry_target"] = target
            logger.warning(
                f"Retry attempt {attempt + 1}/{max_attempts} after {delay:.2f}s",
                extra=extra_warn,
            )

            await asyncio.sleep(delay)

    raise RuntimeError("Retry logic error")
