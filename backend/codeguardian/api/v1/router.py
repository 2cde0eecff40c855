"""API v1 라우터 — 모든 엔드포인트 라우터를 통합한다"""

from fastapi import APIRouter

from codeguardian.api.v1 import analysis

api_router = APIRouter()

# 저장소 분석
api_router.include_router(
    analysis.router,
    prefix="/analyze",
    tags=["analysis"],
)
