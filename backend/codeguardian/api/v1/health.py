"""헬스체크 엔드포인트"""

import redis.asyncio as aioredis
from fastapi import APIRouter, Request

from codeguardian.config import get_settings

router = APIRouter()

settings = get_settings()

_APP_VERSION = "1.0.0"


@router.get("/health", tags=["system"])
async def health() -> dict[str, str]:
    """기본 헬스체크 — 로드밸런서 및 컨테이너 헬스체크용"""
    return {
        "status": "ok",
        "app": settings.APP_NAME,
        "env": settings.APP_ENV,
    }


@router.get("/health/detailed", tags=["system"])
async def health_detailed(request: Request) -> dict[str, object]:
    """작업 저장소, Redis 연결 상태 포함 상세 헬스체크.

    - job_store: 저장소 연결 확인 결과
    - redis: PING 결과 (큐 전략을 사용할 때만 검사)
    - overall: 모든 항목이 ok일 때 "ok", 하나라도 오류면 "degraded"
    """
    checks: dict[str, str] = {}

    store = request.app.state.job_store
    checks["job_store"] = "ok" if await store.ping() else "error: unreachable"

    strategy = request.app.state.execution_strategy
    if strategy.name == "queued":
        try:
            r = aioredis.from_url(
                settings.REDIS_URL,
                socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
                socket_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
            )
            await r.ping()  # type: ignore[misc]
            await r.aclose()
            checks["redis"] = "ok"
        except Exception as exc:
            checks["redis"] = f"error: {str(exc)[:50]}"

    overall = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {
        "status": overall,
        "checks": checks,
        "execution_strategy": strategy.name,
        "version": _APP_VERSION,
    }
