"""분석 파이프라인 — 실행 전략과 무관한 작업 처리 본문

즉시 실행 전략(asyncio 태스크)과 RQ 워커가 같은 run()을 호출한다.
진행률: 10 (처리 시작) -> 30 (조회 완료) -> 90/95 (탐지/검증 완료) -> 100 (완료)
"""

import asyncio
import logging
from collections.abc import Callable

from codeguardian.config import Settings
from codeguardian.exceptions import InvalidJobTransitionError, JobNotFoundError
from codeguardian.services.analysis_types import (
    AnalysisFindings,
    AnalysisJob,
    AnalysisMetrics,
    AnalysisRequest,
    AnalysisResult,
    AnalysisSummary,
    BestPracticeFinding,
    CodeQualityMetrics,
    ComplexityMetrics,
    SecurityFinding,
    SourceFile,
)
from codeguardian.services.circuit_breaker import QuotaCircuitBreaker
from codeguardian.services.confidence_filter import ConfidenceFilter
from codeguardian.services.job_manager import AnalysisJobManager
from codeguardian.services.notification_service import NotificationService
from codeguardian.services.pattern_detector import PatternDetector, calculate_quality_score
from codeguardian.services.repo_fetcher import GitHubContentFetcher, RepositoryContentFetcher
from codeguardian.services.tech_stack_detector import detect_tech_stack

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 10
PROGRESS_FETCHED = 30
PROGRESS_DETECTED = 90
PROGRESS_FILTERED = 95

FetcherFactory = Callable[[str], RepositoryContentFetcher]


class AnalysisPipeline:
    """저장소 조회 -> 1차 탐지 -> LLM 검증 -> 결과 기록 -> 알림.

    Args:
        manager: 상태 갱신에 사용할 작업 관리자
        confidence_filter: LLM 검증기 (None이면 생략)
        notifier: 종료 알림 발송기 (None이면 생략)
        fetcher_factory: GitHub 토큰으로 조회기를 만드는 팩토리
    """

    def __init__(
        self,
        manager: AnalysisJobManager,
        confidence_filter: ConfidenceFilter | None = None,
        notifier: NotificationService | None = None,
        fetcher_factory: FetcherFactory = GitHubContentFetcher,
        detector: PatternDetector | None = None,
    ) -> None:
        self._manager = manager
        self._filter = confidence_filter
        self._notifier = notifier
        self._fetcher_factory = fetcher_factory
        self._detector = detector or PatternDetector()

    @property
    def llm_enabled(self) -> bool:
        return self._filter is not None and self._filter.enabled

    async def run(self, request: AnalysisRequest) -> None:
        """작업 하나를 끝까지 처리한다. 예외를 밖으로 던지지 않는다.

        모든 실패는 작업의 failed 상태와 error 메시지로 기록된다.
        """
        job_id = request.job_id
        repository = request.repository
        logger.info(f"[JobID={job_id}] 분석 시작: {repository.full_name}")

        try:
            await self._manager.update_status(
                job_id, status="processing", progress=PROGRESS_STARTED
            )

            fetcher = self._fetcher_factory(request.github_token)
            files = await fetcher.fetch_files(repository.owner, repository.name)
            await self._manager.update_status(job_id, progress=PROGRESS_FETCHED)

            result = await self.analyze(files)
            await self._manager.update_status(
                job_id,
                progress=PROGRESS_FILTERED if self.llm_enabled else PROGRESS_DETECTED,
            )

            job = await self._manager.update_status(job_id, status="completed", result=result)
            logger.info(
                f"[JobID={job_id}] 분석 완료: 파일 {result.summary.total_files}개, "
                f"이슈 {result.metrics.code_quality.issue_count}건, "
                f"점수 {result.metrics.code_quality.score}"
            )

        except (InvalidJobTransitionError, JobNotFoundError) as e:
            # 이미 종료된 작업 (예: 재전달된 큐 메시지): 무시
            logger.warning(f"[JobID={job_id}] 상태 갱신 거부, 처리 중단: {e}")
            return

        except Exception as e:
            logger.error(f"[JobID={job_id}] 분석 실패: {e}", exc_info=True)
            job = await self._mark_failed(job_id, str(e))
            if job is None:
                return

        await self._notify(job)

    async def analyze(self, files: list[SourceFile]) -> AnalysisResult:
        """가져온 파일들로 분석 결과를 계산한다.

        파일별 탐지는 스레드에서 동시에 실행되며 결과 순서는 입력 순서를 따른다.
        """
        outcomes = await asyncio.gather(
            *(asyncio.to_thread(self._detector.detect, f) for f in files)
        )

        security: list[SecurityFinding] = []
        best_practices: list[BestPracticeFinding] = []
        languages: dict[str, int] = {}
        total_lines = 0
        total_complexity = 0
        max_complexity = 0

        for file, outcome in zip(files, outcomes):
            line_count = len(file.content.split("\n"))
            total_lines += line_count
            languages[file.language] = languages.get(file.language, 0) + line_count
            total_complexity += outcome.complexity
            max_complexity = max(max_complexity, outcome.complexity)
            security.extend(outcome.security)
            best_practices.extend(outcome.best_practices)

        if self.llm_enabled:
            contents = {f.path: f.content for f in files}
            security, best_practices = await asyncio.gather(
                self._filter.filter_by_file(security, contents),
                self._filter.filter_by_file(best_practices, contents),
            )

        avg_complexity = total_complexity / len(files) if files else 0.0
        return AnalysisResult(
            summary=AnalysisSummary(
                total_files=len(files),
                total_lines=total_lines,
                languages=languages,
                tech_stack=detect_tech_stack(files),
            ),
            metrics=AnalysisMetrics(
                complexity=ComplexityMetrics(
                    average=round(avg_complexity, 2),
                    max=max_complexity,
                ),
                code_quality=CodeQualityMetrics(
                    score=calculate_quality_score(
                        len(security), len(best_practices), avg_complexity
                    ),
                    issue_count=len(security) + len(best_practices),
                ),
            ),
            findings=AnalysisFindings(
                security=list(security),
                best_practices=list(best_practices),
            ),
        )

    async def _mark_failed(self, job_id: str, error: str) -> AnalysisJob | None:
        try:
            return await self._manager.update_status(job_id, status="failed", error=error)
        except (InvalidJobTransitionError, JobNotFoundError) as e:
            logger.warning(f"[JobID={job_id}] failed 기록 불가: {e}")
            return None

    async def _notify(self, job: AnalysisJob) -> None:
        if self._notifier is None:
            return
        await self._notifier.notify_job_finished(job)


def create_pipeline(
    manager: AnalysisJobManager,
    settings: Settings,
    breaker: QuotaCircuitBreaker | None = None,
    fetcher_factory: FetcherFactory = GitHubContentFetcher,
) -> AnalysisPipeline:
    """설정에 맞춰 파이프라인을 조립한다 (API 프로세스와 워커 공용).

    ANTHROPIC_API_KEY가 없으면 LLM 검증, NOTIFICATION_WEBHOOK_URL이 없으면 알림을 생략한다.
    """
    confidence_filter = (
        ConfidenceFilter(
            breaker=breaker,
            model=settings.LLM_MODEL,
            api_key=settings.ANTHROPIC_API_KEY,
        )
        if settings.llm_enabled
        else None
    )
    notifier = (
        NotificationService(settings.NOTIFICATION_WEBHOOK_URL)
        if settings.NOTIFICATION_WEBHOOK_URL
        else None
    )
    logger.info(
        f"[AnalysisPipeline] LLM 검증: {'사용' if confidence_filter else '미사용'}, "
        f"알림: {'사용' if notifier else '미사용'}"
    )
    return AnalysisPipeline(
        manager,
        confidence_filter=confidence_filter,
        notifier=notifier,
        fetcher_factory=fetcher_factory,
    )
