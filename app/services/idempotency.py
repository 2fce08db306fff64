"""
Duplicate upload suppression.

같은 업로드가 짧은 시간 안에 다시 들어오면(더블 클릭, 클라이언트 재시도)
직전 응답을 그대로 돌려준다. 프로세스 내 캐시이므로 best-effort이며,
영구적인 중복 방지는 photos (owner_id, image_url) 유니크 제약이 담당한다.
"""
import hashlib
import threading
import time
from typing import Any, Callable, Optional, Protocol

from cachetools import TLRUCache

from app.config import get_settings

DEFAULT_TTL_SECONDS = 30
DEFAULT_MAXSIZE = 10_000
_SHA_PREFIX_LEN = 16


class IdempotencyStore(Protocol):
    """Cache of upload responses keyed by request fingerprint."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ...


def upload_fingerprint(
    username: str,
    content: bytes,
    filename: Optional[str],
    idempotency_key: Optional[str] = None,
) -> str:
    """
    Client key when given, otherwise size + filename + content hash prefix.
    Always scoped to the user.
    """
    if idempotency_key and idempotency_key.strip():
        return f"{username}:{idempotency_key.strip()}"
    digest = hashlib.sha256(content).hexdigest()[:_SHA_PREFIX_LEN]
    return f"{username}:{len(content)}:{filename or ''}:{digest}"


class InMemoryIdempotencyStore:
    """
    Thread-safe TTL cache (cachetools TLRUCache, per-entry TTL). Expired
    entries are dropped on access and on every write.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = DEFAULT_MAXSIZE,
    ):
        self.ttl_seconds = ttl_seconds
        # 값은 (ttl, response) 튜플로 저장
        self._cache: TLRUCache = TLRUCache(
            maxsize=maxsize, ttu=lambda _key, entry, now: now + entry[0], timer=clock
        )
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._cache.get(key)
        return None if entry is None else entry[1]

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        with self._lock:
            self._cache[key] = (ttl if ttl is not None else self.ttl_seconds, value)

    def __len__(self) -> int:
        with self._lock:
            self._cache.expire()
            return len(self._cache)


_store: Optional[InMemoryIdempotencyStore] = None


def get_idempotency_store() -> IdempotencyStore:
    """FastAPI dependency. Override via app.dependency_overrides for a shared cache."""
    global _store
    if _store is None:
        _store = InMemoryIdempotencyStore(ttl_seconds=get_settings().idempotency_ttl_seconds)
    return _store
