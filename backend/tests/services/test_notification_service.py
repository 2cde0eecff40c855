"""NotificationService 테스트 — webhook 발송은 httpx Mock 처리"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from codeguardian.services.analysis_types import AnalysisJob, RepositoryRef
from codeguardian.services.notification_service import NotificationService, build_payload

WEBHOOK_URL = "https://hooks.example.test/codeguardian"


def _job(status: str, **kwargs) -> AnalysisJob:
    return AnalysisJob(
        id="job-1",
        owner_id="user-1",
        repository=RepositoryRef(owner="octo", name="app"),
        status=status,
        **kwargs,
    )


def _mock_http(status_code: int = 200, text: str = "") -> AsyncMock:
    mock_response = MagicMock()
    mock_response.status_code = status_code
    mock_response.text = text

    mock_client = AsyncMock()
    mock_client.post = AsyncMock(return_value=mock_response)
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


# ──────────────────────────────────────────────────────────────
# payload
# ──────────────────────────────────────────────────────────────

def test_completed_payload_contains_summary(result_factory):
    payload = build_payload(_job("completed", progress=100, result=result_factory(security_count=3)))

    assert payload["event"] == "analysis.completed"
    assert payload["jobId"] == "job-1"
    assert payload["repository"] == "octo/app"
    assert payload["summary"] == {
        "totalFiles": 1,
        "totalLines": 10,
        "qualityScore": 95,
        "securityIssues": 3,
        "bestPracticeIssues": 0,
    }
    assert "error" not in payload


def test_failed_payload_contains_error():
    payload = build_payload(_job("failed", error="GitHub 인증에 실패했습니다."))

    assert payload["event"] == "analysis.failed"
    assert payload["error"] == "GitHub 인증에 실패했습니다."
    assert "summary" not in payload


# ──────────────────────────────────────────────────────────────
# 발송
# ──────────────────────────────────────────────────────────────

async def test_disabled_without_url():
    service = NotificationService(webhook_url="")

    with patch("httpx.AsyncClient") as mock_cls:
        sent = await service.notify_job_finished(_job("failed", error="x"))

    assert sent is False
    mock_cls.assert_not_called()


async def test_sends_payload_to_webhook(result_factory):
    """Given: webhook URL이 설정된 서비스와 completed 작업
    When: notify_job_finished 호출
    Then: 결과 요약이 JSON으로 POST됨
    """
    mock_client = _mock_http(200)
    service = NotificationService(webhook_url=WEBHOOK_URL)

    with patch("httpx.AsyncClient", return_value=mock_client):
        sent = await service.notify_job_finished(
            _job("completed", progress=100, result=result_factory())
        )

    assert sent is True
    call = mock_client.post.call_args
    assert call.args[0] == WEBHOOK_URL
    assert call.kwargs["json"]["status"] == "completed"


async def test_non_terminal_job_is_not_sent():
    service = NotificationService(webhook_url=WEBHOOK_URL)

    with patch("httpx.AsyncClient") as mock_cls:
        sent = await service.notify_job_finished(_job("processing"))

    assert sent is False
    mock_cls.assert_not_called()


async def test_error_response_returns_false():
    service = NotificationService(webhook_url=WEBHOOK_URL)

    with patch("httpx.AsyncClient", return_value=_mock_http(500, "internal error")):
        assert await service.notify_job_finished(_job("failed", error="x")) is False


@pytest.mark.parametrize("error", [httpx.ConnectError("refused"), httpx.ReadTimeout("slow")])
async def test_network_error_is_swallowed(error):
    mock_client = _mock_http()
    mock_client.post.side_effect = error
    service = NotificationService(webhook_url=WEBHOOK_URL)

    with patch("httpx.AsyncClient", return_value=mock_client):
        assert await service.notify_job_finished(_job("failed", error="x")) is False
