"""요청/응답 구조화 로깅 미들웨어"""
import json
import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("codeguardian.access")

# 로깅에서 제외할 경로 (헬스체크 등 반복적 요청)
_SKIP_PATHS = {"/health", "/health/detailed"}


def mask_headers(headers: dict[str, str]) -> dict[str, str]:
    """민감 헤더(Authorization)를 마스킹한 사본을 반환한다."""
    masked = dict(headers)
    if "authorization" in masked:
        masked["authorization"] = "Bearer ***"
    return masked


class LoggingMiddleware(BaseHTTPMiddleware):
    """HTTP 요청마다 JSON 한 줄의 접근 로그를 남긴다.

    - 4xx/5xx 응답은 WARNING, 나머지는 INFO
    - 응답 헤더에 X-Request-ID 추가
    """

    async def dispatch(self, request: Request, call_next: object) -> Response:
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)  # type: ignore[operator]

        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()
        headers = mask_headers(dict(request.headers))

        response: Response = await call_next(request)  # type: ignore[operator]

        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round((time.time() - start_time) * 1000, 2),
            "client_ip": request.client.host if request.client else None,
            "user_agent": headers.get("user-agent"),
            "authorization": headers.get("authorization"),
        }

        if response.status_code >= 400:
            logger.warning(json.dumps(log_data))
        else:
            logger.info(json.dumps(log_data))

        response.headers["X-Request-ID"] = request_id
        return response
