"""2차 검증 — Claude API로 정규식 탐지 결과의 오탐을 제거한다

탐지 항목을 추가하지 않는다. 유지/제거/메시지 개선만 수행한다.
LLM 호출 실패는 탐지 항목을 제거하는 사유가 되지 않는다.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, replace
from typing import TypeVar

import anthropic

from codeguardian.config import get_settings
from codeguardian.exceptions import LLMQuotaExceededError
from codeguardian.services.analysis_types import BestPracticeFinding, SecurityFinding
from codeguardian.services.circuit_breaker import QuotaCircuitBreaker

logger = logging.getLogger(__name__)

# 동시에 검증할 탐지 항목 수
BATCH_SIZE = 5

# 파일·분류당 검증 상한 (초과분은 검증 없이 그대로 유지)
MAX_VALIDATED_PER_FILE = 50

# 이 값을 초과해야 유효한 이슈로 유지
CONFIDENCE_THRESHOLD = 0.6

# 탐지 라인 전후 컨텍스트 라인 수
CONTEXT_LINES = 5

_VALID_SEVERITIES = frozenset({"low", "medium", "high"})

F = TypeVar("F", SecurityFinding, BestPracticeFinding)

SECURITY_SYSTEM_PROMPT = (
    "You are a security code reviewer. Analyze code issues and respond only with valid JSON."
)
BEST_PRACTICE_SYSTEM_PROMPT = (
    "You are a code quality reviewer. Analyze code issues and respond only with valid JSON."
)


@dataclass(frozen=True)
class ValidationVerdict:
    """단일 탐지 항목에 대한 LLM 판정.

    fallback=True는 LLM 판정이 아닌 기본값(차단/오류)을 뜻하며
    해당 항목은 수정 없이 유지된다.
    """

    is_valid_issue: bool
    confidence: float
    reasoning: str | None = None
    improved_message: str | None = None
    improved_recommendation: str | None = None
    severity: str | None = None
    fallback: bool = False

    @property
    def keep(self) -> bool:
        if self.fallback:
            return True
        return self.is_valid_issue and self.confidence > CONFIDENCE_THRESHOLD


# 브레이커 OPEN 상태: 호출 없이 유지
_BREAKER_OPEN_VERDICT = ValidationVerdict(is_valid_issue=True, confidence=1.0, fallback=True)
# 개별 호출 실패: 수정 없이 유지
_ERROR_VERDICT = ValidationVerdict(is_valid_issue=True, confidence=0.5, fallback=True)


def _strip_json_wrapper(text: str) -> str:
    """```json ... ``` 또는 ``` ... ``` 래퍼를 제거한다."""
    stripped = text.strip()
    if stripped.startswith("```json"):
        stripped = stripped[7:]
    elif stripped.startswith("```"):
        stripped = stripped[3:]
    if stripped.endswith("```"):
        stripped = stripped[:-3]
    return stripped.strip()


def _is_quota_error(error: Exception) -> bool:
    if isinstance(error, LLMQuotaExceededError):
        return True
    return "quota" in str(error).lower()


def build_context(file_content: str, line: int) -> str:
    """탐지 라인 전후 CONTEXT_LINES 라인을 잘라낸다 (1-based line)."""
    lines = file_content.split("\n")
    start = max(0, line - CONTEXT_LINES)
    end = min(len(lines), line + CONTEXT_LINES)
    return "\n".join(lines[start:end])


def _build_prompt(finding: SecurityFinding | BestPracticeFinding, context: str) -> str:
    if isinstance(finding, SecurityFinding):
        return f"""You are a security code reviewer. Analyze this security issue detection:

File: {finding.file}
Line: {finding.line}
Issue: {finding.message}
Severity: {finding.severity}

Code Context:
{context}

Detected Code Snippet:
{finding.code_snippet or 'N/A'}

Determine if this is a REAL security issue or a FALSE POSITIVE. Consider:
1. Is this actually a security vulnerability?
2. Is the code in a test file, example, or comment?
3. Is this a false positive from pattern matching?
4. What is the actual severity?

Respond in JSON format:
{{
  "isValidIssue": true/false,
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation",
  "improvedMessage": "more accurate message if needed",
  "improvedRecommendation": "better recommendation if needed",
  "severity": "low|medium|high"
}}"""

    return f"""You are a code quality reviewer. Analyze this best practice issue detection:

File: {finding.file}
Line: {finding.line}
Issue: {finding.message}

Code Context:
{context}

Detected Code Snippet:
{finding.code_snippet or 'N/A'}

Determine if this is a REAL code quality issue worth fixing or a FALSE POSITIVE. Consider:
1. Does this actually hurt readability, maintainability or correctness?
2. Is the code in a test file, example, generated file, or comment?
3. Is this a false positive from pattern matching?

Respond in JSON format:
{{
  "isValidIssue": true/false,
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation",
  "improvedMessage": "more accurate message if needed",
  "improvedRecommendation": "better recommendation if needed"
}}"""


def parse_verdict(raw: str) -> ValidationVerdict:
    """LLM 응답 JSON을 판정으로 변환한다.

    Raises:
        ValueError: JSON이 아니거나 필수 필드가 없을 때
    """
    data = json.loads(_strip_json_wrapper(raw))
    if not isinstance(data, dict) or "isValidIssue" not in data:
        raise ValueError("isValidIssue 필드가 없는 응답")

    severity = data.get("severity")
    return ValidationVerdict(
        is_valid_issue=bool(data["isValidIssue"]),
        confidence=float(data.get("confidence", 0.0)),
        reasoning=data.get("reasoning"),
        improved_message=data.get("improvedMessage") or None,
        improved_recommendation=data.get("improvedRecommendation") or None,
        severity=severity if severity in _VALID_SEVERITIES else None,
    )


def apply_verdict(finding: F, verdict: ValidationVerdict) -> F:
    """유지 판정된 항목에 개선된 메시지/권고/심각도를 덮어쓴다."""
    if verdict.fallback:
        return finding
    changes: dict[str, str] = {}
    if verdict.improved_message:
        changes["message"] = verdict.improved_message
    if verdict.improved_recommendation:
        changes["recommendation"] = verdict.improved_recommendation
    if isinstance(finding, SecurityFinding) and verdict.severity:
        changes["severity"] = verdict.severity
    return replace(finding, **changes) if changes else finding


class ConfidenceFilter:
    """Claude API 기반 오탐 필터.

    API 키가 없으면 비활성화되어 입력을 그대로 반환한다.
    quota 초과 시 서킷 브레이커가 열려 쿨다운 동안 호출하지 않는다.
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic | None = None,
        breaker: QuotaCircuitBreaker | None = None,
        model: str | None = None,
        api_key: str | None = None,
    ) -> None:
        settings = get_settings()
        self._model = model or settings.LLM_MODEL
        api_key = api_key if api_key is not None else settings.ANTHROPIC_API_KEY
        if client is None and api_key:
            client = anthropic.AsyncAnthropic(
                api_key=api_key,
                timeout=settings.LLM_TIMEOUT_SECONDS,
                max_retries=0,
            )
        self._client = client
        self._breaker = breaker or QuotaCircuitBreaker(
            cooldown_seconds=settings.LLM_QUOTA_COOLDOWN_SECONDS,
        )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def breaker(self) -> QuotaCircuitBreaker:
        return self._breaker

    async def filter_findings(self, findings: list[F], file_content: str) -> list[F]:
        """한 파일의 같은 분류 탐지 항목을 검증한다.

        앞의 MAX_VALIDATED_PER_FILE개만 검증하고 나머지는 그대로 뒤에 붙인다.
        반환 목록은 항상 입력의 부분집합(메시지 개선 포함)이다.
        """
        if not self.enabled or not findings or self._breaker.is_open:
            return findings

        to_validate = findings[:MAX_VALIDATED_PER_FILE]
        remaining = findings[MAX_VALIDATED_PER_FILE:]
        kept: list[F] = []

        for start in range(0, len(to_validate), BATCH_SIZE):
            batch = to_validate[start:start + BATCH_SIZE]
            verdicts = await asyncio.gather(
                *(self.validate(finding, file_content) for finding in batch)
            )
            for finding, verdict in zip(batch, verdicts):
                if verdict.keep:
                    kept.append(apply_verdict(finding, verdict))

        logger.info(
            f"[ConfidenceFilter] {findings[0].file}: "
            f"{len(to_validate)}건 중 {len(kept)}건 유지 (미검증 {len(remaining)}건)"
        )
        return kept + remaining

    async def filter_by_file(
        self,
        findings: list[F],
        contents: dict[str, str],
    ) -> list[F]:
        """탐지 항목을 파일별로 묶어 filter_findings()를 동시에 적용한다. 파일 순서는 유지된다."""
        if not self.enabled or not findings:
            return findings

        grouped: dict[str, list[F]] = {}
        for finding in findings:
            grouped.setdefault(finding.file, []).append(finding)

        filtered = await asyncio.gather(
            *(self.filter_findings(group, contents.get(path, "")) for path, group in grouped.items())
        )
        return [finding for group in filtered for finding in group]

    async def validate(
        self,
        finding: SecurityFinding | BestPracticeFinding,
        file_content: str,
    ) -> ValidationVerdict:
        """탐지 항목 하나를 LLM으로 검증한다. 예외를 던지지 않는다."""
        if self._client is None or not self._breaker.allow_request():
            return _BREAKER_OPEN_VERDICT

        prompt = _build_prompt(finding, build_context(file_content, finding.line))
        system = (
            SECURITY_SYSTEM_PROMPT
            if isinstance(finding, SecurityFinding)
            else BEST_PRACTICE_SYSTEM_PROMPT
        )

        try:
            raw = await self._call_claude(prompt, system)
        except Exception as e:
            if _is_quota_error(e):
                self._breaker.record_quota_exceeded()
                return _BREAKER_OPEN_VERDICT
            self._breaker.record_failure()
            logger.warning(
                f"[ConfidenceFilter] 검증 실패 ({finding.file}:{finding.line}), 원본 유지: {e}"
            )
            return _ERROR_VERDICT

        self._breaker.record_success()

        try:
            return parse_verdict(raw)
        except (ValueError, TypeError) as e:
            logger.warning(f"[ConfidenceFilter] 응답 파싱 실패, 원본 유지: {e}. 응답: {raw[:200]}")
            return _ERROR_VERDICT

    async def _call_claude(self, prompt: str, system: str) -> str:
        """Claude Messages API 호출. 재시도하지 않는다 (quota는 브레이커가 처리).

        Raises:
            LLMQuotaExceededError: rate limit 또는 quota 초과 (HTTP 429)
        """
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=300,
                temperature=0.0,
                system=system,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            if e.status_code == 429:
                raise LLMQuotaExceededError(str(e)) from e
            raise
        if not response.content:
            raise ValueError("빈 LLM 응답")
        return response.content[0].text
