"""알림 서비스 — 작업 종료 시 webhook으로 결과 요약 발송 (best-effort)"""

import logging

import httpx

from codeguardian.config import get_settings
from codeguardian.services.analysis_types import AnalysisJob

logger = logging.getLogger(__name__)

# webhook 요청 타임아웃 (초)
WEBHOOK_TIMEOUT_SECONDS = 10.0


def build_payload(job: AnalysisJob) -> dict:
    """종료된 작업의 알림 payload를 만든다.

    completed: summary (파일 수, 품질 점수, 탐지 건수)
    failed: error
    """
    payload: dict = {
        "event": f"analysis.{job.status}",
        "jobId": job.id,
        "repository": job.repository.full_name,
        "status": job.status,
    }
    if job.status == "completed" and job.result is not None:
        result = job.result
        payload["summary"] = {
            "totalFiles": result.summary.total_files,
            "totalLines": result.summary.total_lines,
            "qualityScore": result.metrics.code_quality.score,
            "securityIssues": len(result.findings.security),
            "bestPracticeIssues": len(result.findings.best_practices),
        }
    else:
        payload["error"] = job.error
    return payload


class NotificationService:
    """작업 종료 알림 발송기. URL이 비어 있으면 아무것도 하지 않는다."""

    def __init__(self, webhook_url: str | None = None) -> None:
        self._webhook_url = webhook_url if webhook_url is not None else (
            get_settings().NOTIFICATION_WEBHOOK_URL
        )

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    async def notify_job_finished(self, job: AnalysisJob) -> bool:
        """종료된 작업 알림을 발송한다. 실패해도 예외를 던지지 않는다.

        Returns:
            발송 성공 여부 (비활성화 상태면 False)
        """
        if not self.enabled or not job.is_terminal:
            return False
        return await self._send_webhook(self._webhook_url, build_payload(job), job.id)

    async def _send_webhook(self, url: str, payload: dict, job_id: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except Exception as e:
            logger.error(f"[NotificationService] [JobID={job_id}] webhook 발송 실패: {e}")
            return False

        if not 200 <= response.status_code < 300:
            # 오류 응답은 앞 200자만 기록
            error_text = response.text[:200] if response.text else ""
            logger.warning(
                f"[NotificationService] [JobID={job_id}] webhook 응답 오류 "
                f"HTTP {response.status_code}: {error_text}"
            )
            return False

        logger.info(f"[NotificationService] [JobID={job_id}] webhook 발송 완료")
        return True
