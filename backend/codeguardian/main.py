"""FastAPI 앱 진입점 — CORS, 라우터, lifespan 이벤트 핸들러 설정"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codeguardian.api.v1.health import router as health_router
from codeguardian.api.v1.router import api_router
from codeguardian.config import get_settings
from codeguardian.middleware.logging_middleware import LoggingMiddleware
from codeguardian.services.analysis_pipeline import create_pipeline
from codeguardian.services.execution_strategy import select_execution_strategy
from codeguardian.services.job_manager import AnalysisJobManager
from codeguardian.services.job_store import create_job_store

settings = get_settings()

# 구조화 로깅 기본 설정
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

logger = logging.getLogger("codeguardian")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """앱 생명주기 이벤트 핸들러.

    startup: 작업 저장소 준비, 파이프라인 조립, 실행 전략 결정
    shutdown: 실행 중인 작업 대기, 저장소 연결 정리
    """
    # ---- startup ----
    logger.info("[%s] 서버 시작 중... (env=%s)", settings.APP_NAME, settings.APP_ENV)

    store = await create_job_store(settings)
    manager = AnalysisJobManager(store)
    pipeline = create_pipeline(manager, settings)
    strategy = select_execution_strategy(settings, store, pipeline.run)
    manager.set_execution_strategy(strategy)

    app.state.job_store = store
    app.state.job_manager = manager
    app.state.execution_strategy = strategy

    yield

    # ---- shutdown ----
    await strategy.shutdown()
    await store.close()
    logger.info("[%s] 서버 종료", settings.APP_NAME)


def create_app() -> FastAPI:
    """FastAPI 앱 팩토리"""
    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="GitHub 저장소 코드 품질/보안 분석 API",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # CORS 미들웨어 설정
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 구조화 로깅 미들웨어 (CORS 다음에 등록, 실제 요청만 로깅)
    app.add_middleware(LoggingMiddleware)

    # 헬스체크 라우터 등록 (prefix 없이 최상위 경로)
    app.include_router(health_router)

    # API v1 라우터 등록
    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()
