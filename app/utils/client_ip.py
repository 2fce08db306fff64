"""
클라이언트 IP 추출 유틸리티.

프록시나 로드밸런서를 거치는 경우 실제 클라이언트 IP를 추출합니다.
요청 로그와 rate limit 키에 사용됩니다.
"""
from typing import Optional

from fastapi import Request


def get_client_ip(request: Request) -> Optional[str]:
    """
    요청에서 실제 클라이언트 IP를 추출합니다.

    확인 순서: X-Forwarded-For(첫 번째 IP) -> X-Real-IP -> request.client.host

    Security:
        이 헤더들은 위조 가능하므로 신뢰할 수 있는 프록시 뒤에서만 의미가 있습니다.
    """
    x_forwarded_for = request.headers.get("X-Forwarded-For")
    if x_forwarded_for:
        client_ip = x_forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    x_real_ip = request.headers.get("X-Real-IP")
    if x_real_ip and x_real_ip.strip():
        return x_real_ip.strip()

    if request.client:
        return request.client.host

    return None


def rate_limit_key(request: Request) -> str:
    """slowapi key_func. IP를 알 수 없으면 하나의 버킷을 공유."""
    return get_client_ip(request) or "unknown"
