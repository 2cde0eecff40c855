"""분석 작업 관리자 — 작업 생성, 상태 전이, 조회

상태 머신: pending -> processing -> completed / failed (pending -> failed 허용)
작업 상태를 바꾸는 경로는 update_status() 하나뿐이다.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from codeguardian.exceptions import (
    BatchLimitExceededError,
    InvalidAnalysisRequestError,
    InvalidJobTransitionError,
    JobNotFoundError,
)
from codeguardian.services.analysis_types import (
    ALLOWED_TRANSITIONS,
    AnalysisJob,
    AnalysisRequest,
    AnalysisResult,
    JobStatus,
    Principal,
    RepositoryRef,
)
from codeguardian.services.job_store import JobStore

if TYPE_CHECKING:
    from codeguardian.services.execution_strategy import ExecutionStrategy

logger = logging.getLogger(__name__)

# 일괄 분석 최대 저장소 수
BATCH_LIMIT = 10

# 히스토리 조회 최대 건수
HISTORY_LIMIT = 50


def _validate_repository(owner: str | None, repo: str | None) -> RepositoryRef:
    owner = (owner or "").strip()
    repo = (repo or "").strip()
    if not owner or not repo:
        raise InvalidAnalysisRequestError("owner와 repo는 필수입니다")
    return RepositoryRef(owner=owner, name=repo)


class AnalysisJobManager:
    """분석 작업의 생명주기를 관리한다.

    역할:
    - 작업 생성 후 실행 전략에 디스패치 (즉시 반환)
    - 상태/진행률 갱신 (단일 쓰기 경로)
    - 상태 및 히스토리 조회
    """

    def __init__(self, store: JobStore, strategy: "ExecutionStrategy | None" = None) -> None:
        self._store = store
        self._strategy = strategy

    @property
    def store(self) -> JobStore:
        return self._store

    def set_execution_strategy(self, strategy: "ExecutionStrategy") -> None:
        """실행 전략 주입 (전략이 파이프라인을 통해 관리자를 참조하므로 생성 후 설정)."""
        self._strategy = strategy

    async def start_analysis(self, principal: Principal, owner: str, repo: str) -> str:
        """분석 작업을 생성하고 실행 전략에 넘긴 뒤 작업 ID를 즉시 반환한다.

        디스패치 실패는 예외로 전파하지 않고 작업을 failed로 기록한다.

        Raises:
            InvalidAnalysisRequestError: owner/repo 누락
        """
        repository = _validate_repository(owner, repo)
        return await self._create_and_dispatch(principal, repository)

    async def start_batch(
        self,
        principal: Principal,
        repositories: list[tuple[str, str]],
    ) -> list[str]:
        """여러 저장소 분석을 시작한다. 입력 순서대로 작업 ID를 반환한다.

        모든 항목을 먼저 검증하므로 잘못된 요청이면 작업이 하나도 생성되지 않는다.

        Raises:
            InvalidAnalysisRequestError: 빈 목록 또는 owner/repo 누락
            BatchLimitExceededError: BATCH_LIMIT 초과
        """
        if not repositories:
            raise InvalidAnalysisRequestError("분석할 저장소를 1개 이상 지정해야 합니다")
        if len(repositories) > BATCH_LIMIT:
            raise BatchLimitExceededError(requested=len(repositories), limit=BATCH_LIMIT)

        refs = [_validate_repository(owner, repo) for owner, repo in repositories]
        return [await self._create_and_dispatch(principal, ref) for ref in refs]

    async def _create_and_dispatch(self, principal: Principal, repository: RepositoryRef) -> str:
        job_id = str(uuid.uuid4())
        job = AnalysisJob(
            id=job_id,
            owner_id=principal.user_id,
            repository=repository,
            created_at=datetime.now(timezone.utc),
        )
        await self._store.create(job)
        logger.info(f"[JobID={job_id}] 분석 작업 생성: {repository.full_name}")

        request = AnalysisRequest(
            job_id=job_id,
            owner_id=principal.user_id,
            repository=repository,
            github_token=principal.github_token,
        )
        try:
            if self._strategy is None:
                raise RuntimeError("실행 전략이 설정되지 않았습니다")
            await self._strategy.submit(request)
        except Exception as e:
            logger.error(f"[JobID={job_id}] 작업 디스패치 실패: {e}")
            await self.update_status(job_id, status="failed", error=str(e))

        return job_id

    async def get_status(self, job_id: str, owner_id: str | None = None) -> AnalysisJob:
        """작업을 조회한다. owner_id가 주어지면 다른 사용자의 작업은 없는 것으로 본다.

        Raises:
            JobNotFoundError: 작업이 없을 때
        """
        job = await self._store.get(job_id)
        if job is None or (owner_id is not None and job.owner_id != owner_id):
            raise JobNotFoundError(job_id)
        return job

    async def update_status(
        self,
        job_id: str,
        status: JobStatus | None = None,
        progress: int | None = None,
        result: AnalysisResult | None = None,
        error: str | None = None,
    ) -> AnalysisJob:
        """작업 상태/진행률을 갱신한다.

        - 종료 상태(completed/failed) 작업은 어떤 갱신도 거부한다.
        - 진행률은 감소하지 않는다 (더 작은 값은 무시).
        - completed는 result, failed는 error와 함께 기록된다.

        Raises:
            JobNotFoundError: 작업이 없을 때
            InvalidJobTransitionError: 허용되지 않는 전이
            ValueError: completed에 result가 없을 때
        """

        def mutate(job: AnalysisJob) -> AnalysisJob:
            target = status or job.status
            if target not in ALLOWED_TRANSITIONS[job.status]:
                raise InvalidJobTransitionError(job_id, job.status, target)

            now = datetime.now(timezone.utc)
            changes: dict = {"status": target}

            if progress is not None and progress > job.progress:
                changes["progress"] = min(progress, 100)

            if target == "processing" and job.started_at is None:
                changes["started_at"] = now
            elif target == "completed":
                if result is None:
                    raise ValueError("completed 전이에는 분석 결과가 필요합니다")
                changes.update(result=result, progress=100, error=None, completed_at=now)
            elif target == "failed":
                changes.update(result=None, error=error or "알 수 없는 오류", completed_at=now)

            return replace(job, **changes)

        updated = await self._store.update(job_id, mutate)
        if status is not None:
            logger.info(
                f"[JobID={job_id}] 상태 갱신: {updated.status} (progress={updated.progress})"
            )
        return updated

    async def get_history(self, owner_id: str) -> list[AnalysisJob]:
        """owner_id의 완료 작업을 최근 완료 순으로 최대 HISTORY_LIMIT개 반환한다."""
        return await self._store.list_completed(owner_id, HISTORY_LIMIT)
