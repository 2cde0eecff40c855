"""헬스체크 API 테스트"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from codeguardian.main import create_app
from codeguardian.services.job_store import InMemoryJobStore


def _strategy(name: str) -> MagicMock:
    strategy = MagicMock()
    strategy.name = name
    return strategy


@pytest.fixture
def app():
    """lifespan 없이 app.state만 채운 앱"""
    application = create_app()
    application.state.job_store = InMemoryJobStore()
    application.state.execution_strategy = _strategy("immediate")
    return application


def test_health(app):
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_detailed_health_with_immediate_strategy_skips_redis(app):
    with patch("codeguardian.api.v1.health.aioredis.from_url") as mock_from_url:
        response = TestClient(app).get("/health/detailed")

    body = response.json()
    assert body["status"] == "ok"
    assert body["checks"] == {"job_store": "ok"}
    assert body["execution_strategy"] == "immediate"
    mock_from_url.assert_not_called()


def test_detailed_health_reports_redis_failure_when_queued(app):
    app.state.execution_strategy = _strategy("queued")
    mock_redis = MagicMock()
    mock_redis.ping = AsyncMock(side_effect=ConnectionError("Connection refused"))

    with patch("codeguardian.api.v1.health.aioredis.from_url", return_value=mock_redis):
        response = TestClient(app).get("/health/detailed")

    body = response.json()
    assert body["status"] == "degraded"
    assert body["checks"]["redis"].startswith("error:")


def test_detailed_health_reports_store_failure(app):
    store = MagicMock()
    store.ping = AsyncMock(return_value=False)
    app.state.job_store = store

    body = TestClient(app).get("/health/detailed").json()

    assert body["status"] == "degraded"
    assert body["checks"]["job_store"] != "ok"
