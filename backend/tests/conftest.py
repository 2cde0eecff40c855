"""pytest 공통 픽스처 — 분석 작업 테스트"""

import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

# 테스트용 환경변수. 모듈 수준 settings가 import 시점에 읽으므로 수집 전에 적용한다
TEST_ENV = {
    "APP_ENV": "test",
    "JOB_STORE_BACKEND": "memory",
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "REDIS_URL": "redis://localhost:6379",
    "ANALYSIS_QUEUE_ENABLED": "false",
    "ANTHROPIC_API_KEY": "",
    "NOTIFICATION_WEBHOOK_URL": "",
    "JWT_SECRET_KEY": "test_jwt_secret_key_for_testing",
    "TOKEN_ENCRYPTION_KEY": "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=",
}
os.environ.update(TEST_ENV)

from codeguardian.services.analysis_types import (  # noqa: E402
    AnalysisFindings,
    AnalysisMetrics,
    AnalysisResult,
    AnalysisSummary,
    CodeQualityMetrics,
    ComplexityMetrics,
    Principal,
    SecurityFinding,
    TechStack,
)
from codeguardian.services.job_manager import AnalysisJobManager  # noqa: E402
from codeguardian.services.job_store import InMemoryJobStore  # noqa: E402


@pytest.fixture(autouse=True, scope="session")
def patch_settings_env():
    """테스트 세션 전체에 환경변수를 패치하여 외부 서비스 연결을 차단한다."""
    with patch.dict("os.environ", TEST_ENV):
        # Settings lru_cache 초기화
        from codeguardian.config import get_settings
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()


class RecordingStrategy:
    """submit된 요청을 기록만 하는 실행 전략 (디스패치 검증용)"""

    name = "recording"

    def __init__(self, fail_with: Exception | None = None) -> None:
        self.submitted = []
        self._fail_with = fail_with

    async def submit(self, request) -> None:
        if self._fail_with is not None:
            raise self._fail_with
        self.submitted.append(request)

    async def shutdown(self) -> None:
        return None


@pytest.fixture
def principal() -> Principal:
    return Principal(user_id="user-1", github_token="gho_test_token")


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def recording_strategy() -> RecordingStrategy:
    return RecordingStrategy()


@pytest.fixture
def job_manager(job_store, recording_strategy) -> AnalysisJobManager:
    """인메모리 저장소 + 기록용 전략을 사용하는 작업 관리자"""
    return AnalysisJobManager(job_store, recording_strategy)


def make_result(security_count: int = 1) -> AnalysisResult:
    """테스트용 최소 분석 결과"""
    security = [
        SecurityFinding(
            file="src/db.js",
            line=i + 1,
            severity="high",
            message="Hardcoded password detected",
        )
        for i in range(security_count)
    ]
    return AnalysisResult(
        summary=AnalysisSummary(
            total_files=1,
            total_lines=10,
            languages={"JavaScript": 10},
            tech_stack=TechStack(frameworks=["React"]),
        ),
        metrics=AnalysisMetrics(
            complexity=ComplexityMetrics(average=2.0, max=2),
            code_quality=CodeQualityMetrics(score=95, issue_count=security_count),
        ),
        findings=AnalysisFindings(security=security, best_practices=[]),
    )


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def result_factory():
    """make_result 팩토리 픽스처"""
    return make_result


@pytest.fixture
def strategy_factory():
    """RecordingStrategy 팩토리 픽스처"""
    return RecordingStrategy
