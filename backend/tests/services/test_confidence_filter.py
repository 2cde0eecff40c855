"""ConfidenceFilter 단위 테스트 — Claude API 호출은 모두 Mock 처리"""

import json
from unittest.mock import AsyncMock, MagicMock

import anthropic
import pytest

from codeguardian.exceptions import LLMQuotaExceededError
from codeguardian.services.analysis_types import BestPracticeFinding, SecurityFinding
from codeguardian.services.circuit_breaker import QuotaCircuitBreaker
from codeguardian.services.confidence_filter import (
    ConfidenceFilter,
    build_context,
    parse_verdict,
)


# ──────────────────────────────────────────────────────────────
# 헬퍼 / 픽스처
# ──────────────────────────────────────────────────────────────

def _make_claude_message(text: str) -> MagicMock:
    """Claude API 응답 Mock 객체를 생성한다."""
    message = MagicMock()
    message.content = [MagicMock(text=text)]
    return message


def _verdict(valid: bool, confidence: float, **extra) -> MagicMock:
    return _make_claude_message(json.dumps({"isValidIssue": valid, "confidence": confidence, **extra}))


def _rate_limit_error() -> anthropic.RateLimitError:
    return anthropic.RateLimitError(
        message="Rate limit exceeded",
        response=MagicMock(status_code=429),
        body={"error": {"type": "rate_limit_error"}},
    )


def _security(line: int, path: str = "src/db.js") -> SecurityFinding:
    return SecurityFinding(
        file=path,
        line=line,
        severity="high",
        message="Hardcoded password detected",
        recommendation="Use environment variables",
        code_snippet='const password = "hunter2hunter";',
    )


@pytest.fixture
def mock_client() -> MagicMock:
    client = MagicMock()
    client.messages = MagicMock()
    client.messages.create = AsyncMock()
    return client


@pytest.fixture
def breaker() -> QuotaCircuitBreaker:
    return QuotaCircuitBreaker(cooldown_seconds=3600)


@pytest.fixture
def confidence_filter(mock_client, breaker) -> ConfidenceFilter:
    return ConfidenceFilter(client=mock_client, breaker=breaker, model="claude-test")


FILE_CONTENT = "\n".join(f"line {i}" for i in range(1, 21))


# ──────────────────────────────────────────────────────────────
# 필터링 규칙
# ──────────────────────────────────────────────────────────────

async def test_disabled_filter_returns_input_unchanged():
    """Given: API 키와 클라이언트가 없는 필터
    When: filter_findings 호출
    Then: 입력을 그대로 반환
    """
    disabled = ConfidenceFilter()
    findings = [_security(1), _security(2)]

    assert disabled.enabled is False
    assert await disabled.filter_findings(findings, FILE_CONTENT) == findings


async def test_keeps_only_valid_findings_above_threshold(confidence_filter, mock_client):
    mock_client.messages.create.side_effect = [
        _verdict(True, 0.9),
        _verdict(True, 0.6),
        _verdict(False, 0.95),
    ]
    findings = [_security(1), _security(2), _security(3)]

    result = await confidence_filter.filter_findings(findings, FILE_CONTENT)

    assert [f.line for f in result] == [1]


async def test_improved_values_overwrite_security_finding(confidence_filter, mock_client):
    mock_client.messages.create.return_value = _verdict(
        True,
        0.8,
        improvedMessage="Hardcoded database password",
        improvedRecommendation="Load DB_PASSWORD from the environment",
        severity="medium",
    )

    [finding] = await confidence_filter.filter_findings([_security(4)], FILE_CONTENT)

    assert finding.message == "Hardcoded database password"
    assert finding.recommendation == "Load DB_PASSWORD from the environment"
    assert finding.severity == "medium"
    assert finding.line == 4


async def test_best_practice_finding_keeps_shape(confidence_filter, mock_client):
    mock_client.messages.create.return_value = _verdict(
        True, 0.7, improvedMessage="Use strict equality", severity="high"
    )
    finding = BestPracticeFinding(file="src/a.js", line=1, message="Loose equality")

    [kept] = await confidence_filter.filter_findings([finding], "if (a == b) {}")

    assert isinstance(kept, BestPracticeFinding)
    assert kept.message == "Use strict equality"


async def test_filter_never_adds_findings(confidence_filter, mock_client):
    mock_client.messages.create.return_value = _verdict(True, 0.99)
    findings = [_security(i) for i in range(1, 8)]

    result = await confidence_filter.filter_findings(findings, FILE_CONTENT)

    assert len(result) == len(findings)
    assert all(f in findings for f in result)


async def test_only_first_50_findings_are_validated(confidence_filter, mock_client):
    """51번째 이후 항목은 검증 없이 뒤에 붙는다."""
    mock_client.messages.create.return_value = _verdict(False, 0.9)
    findings = [_security(i) for i in range(1, 56)]

    result = await confidence_filter.filter_findings(findings, FILE_CONTENT)

    assert mock_client.messages.create.await_count == 50
    assert [f.line for f in result] == [51, 52, 53, 54, 55]


async def test_response_wrapped_in_json_fence_is_parsed(confidence_filter, mock_client):
    mock_client.messages.create.return_value = _make_claude_message(
        '```json\n{"isValidIssue": false, "confidence": 0.9}\n```'
    )

    assert await confidence_filter.filter_findings([_security(1)], FILE_CONTENT) == []


async def test_request_uses_configured_model_and_context(confidence_filter, mock_client):
    mock_client.messages.create.return_value = _verdict(True, 0.9)

    await confidence_filter.filter_findings([_security(10)], FILE_CONTENT)

    kwargs = mock_client.messages.create.call_args.kwargs
    assert kwargs["model"] == "claude-test"
    prompt = kwargs["messages"][0]["content"]
    assert "line 6\n" in prompt
    assert "line 15" in prompt
    assert "line 16" not in prompt


# ──────────────────────────────────────────────────────────────
# 오류 처리 / 서킷 브레이커
# ──────────────────────────────────────────────────────────────

async def test_generic_error_keeps_finding_unmodified(confidence_filter, mock_client, breaker):
    mock_client.messages.create.side_effect = RuntimeError("connection reset")
    finding = _security(1)

    result = await confidence_filter.filter_findings([finding], FILE_CONTENT)

    assert result == [finding]
    assert breaker.is_open is False


async def test_unparseable_response_keeps_finding(confidence_filter, mock_client):
    mock_client.messages.create.return_value = _make_claude_message("I think this is fine")
    finding = _security(1)

    assert await confidence_filter.filter_findings([finding], FILE_CONTENT) == [finding]


async def test_rate_limit_opens_breaker_and_keeps_findings(
    confidence_filter, mock_client, breaker
):
    mock_client.messages.create.side_effect = _rate_limit_error()
    findings = [_security(1), _security(2), _security(3)]

    result = await confidence_filter.filter_findings(findings, FILE_CONTENT)

    assert result == findings
    assert breaker.is_open is True


async def test_quota_message_opens_breaker(confidence_filter, mock_client, breaker):
    mock_client.messages.create.side_effect = Exception("You exceeded your current quota")

    await confidence_filter.filter_findings([_security(1)], FILE_CONTENT)

    assert breaker.is_open is True


async def test_call_claude_translates_rate_limit_to_quota_error(confidence_filter, mock_client):
    """Given: Claude API가 429 RateLimitError 응답
    When: _call_claude 호출
    Then: 원인을 보존한 LLMQuotaExceededError 발생
    """
    rate_limit = _rate_limit_error()
    mock_client.messages.create.side_effect = rate_limit

    with pytest.raises(LLMQuotaExceededError) as exc_info:
        await confidence_filter._call_claude("prompt", "system")

    assert exc_info.value.__cause__ is rate_limit


async def test_server_error_does_not_open_breaker(confidence_filter, mock_client, breaker):
    mock_client.messages.create.side_effect = anthropic.InternalServerError(
        message="Internal server error",
        response=MagicMock(status_code=500),
        body=None,
    )

    with pytest.raises(anthropic.InternalServerError):
        await confidence_filter._call_claude("prompt", "system")

    result = await confidence_filter.filter_findings([_security(1)], FILE_CONTENT)

    assert result == [_security(1)]
    assert breaker.is_open is False



async def test_open_breaker_makes_zero_outbound_calls(confidence_filter, mock_client, breaker):
    """Given: quota 초과로 열린 브레이커
    When: 쿨다운 중 filter_findings 호출
    Then: Claude API를 호출하지 않고 입력을 그대로 반환
    """
    breaker.record_quota_exceeded()
    findings = [_security(1), _security(2)]

    result = await confidence_filter.filter_findings(findings, FILE_CONTENT)

    assert result == findings
    mock_client.messages.create.assert_not_called()


async def test_validate_returns_pass_through_verdict_when_open(
    confidence_filter, mock_client, breaker
):
    breaker.record_quota_exceeded()

    verdict = await confidence_filter.validate(_security(1), FILE_CONTENT)

    assert verdict.is_valid_issue is True
    assert verdict.confidence == 1.0
    mock_client.messages.create.assert_not_called()


# ──────────────────────────────────────────────────────────────
# 파일별 그룹화 / 헬퍼
# ──────────────────────────────────────────────────────────────

async def test_filter_by_file_groups_and_preserves_file_order(confidence_filter, mock_client):
    mock_client.messages.create.return_value = _verdict(True, 0.9)
    findings = [_security(1, "a.js"), _security(1, "b.js"), _security(2, "a.js")]

    result = await confidence_filter.filter_by_file(
        findings, {"a.js": FILE_CONTENT, "b.js": FILE_CONTENT}
    )

    assert [(f.file, f.line) for f in result] == [("a.js", 1), ("a.js", 2), ("b.js", 1)]


def test_build_context_window():
    context = build_context(FILE_CONTENT, 10)

    assert context.split("\n") == [f"line {i}" for i in range(6, 16)]


def test_build_context_clamps_at_file_start():
    assert build_context("a\nb\nc", 1).split("\n") == ["a", "b", "c"]


def test_parse_verdict_ignores_unknown_severity():
    verdict = parse_verdict('{"isValidIssue": true, "confidence": 0.8, "severity": "critical"}')

    assert verdict.severity is None
    assert verdict.keep is True


def test_parse_verdict_requires_is_valid_issue():
    with pytest.raises(ValueError):
        parse_verdict('{"confidence": 0.8}')
