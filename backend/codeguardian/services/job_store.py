"""분석 작업 저장소 — 작업 ID 단위로 쓰기를 직렬화한다

InMemoryJobStore: 단일 프로세스용 (즉시 실행 전략)
SqlAlchemyJobStore: API 프로세스와 RQ 워커가 공유 (큐 전략)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from codeguardian.config import Settings
from codeguardian.exceptions import JobNotFoundError
from codeguardian.models import AnalysisJobRecord, Base
from codeguardian.services.analysis_types import AnalysisJob, AnalysisResult, RepositoryRef

logger = logging.getLogger(__name__)

JobMutation = Callable[[AnalysisJob], AnalysisJob]


class JobStore(ABC):
    """작업 저장소 인터페이스.

    update()는 같은 작업에 대해 읽기-수정-쓰기를 원자적으로 수행해야 한다.
    """

    # 다른 프로세스(RQ 워커)와 공유 가능한 저장소인지
    shared: bool = False

    @abstractmethod
    async def create(self, job: AnalysisJob) -> None:
        """새 작업을 저장한다."""

    @abstractmethod
    async def get(self, job_id: str) -> AnalysisJob | None:
        """작업을 조회한다. 없으면 None."""

    @abstractmethod
    async def update(self, job_id: str, mutate: JobMutation) -> AnalysisJob:
        """현재 작업을 mutate에 넘기고 반환값으로 교체한다.

        mutate가 예외를 던지면 아무것도 저장하지 않고 예외를 전파한다.

        Raises:
            JobNotFoundError: 작업이 없을 때
        """

    @abstractmethod
    async def list_completed(self, owner_id: str, limit: int) -> list[AnalysisJob]:
        """owner_id의 completed 작업을 completed_at 내림차순으로 최대 limit개 반환한다."""

    async def ping(self) -> bool:
        """헬스체크용 연결 확인"""
        return True

    async def close(self) -> None:
        """리소스 정리"""
        return None


class InMemoryJobStore(JobStore):
    """프로세스 메모리 저장소. 작업별 asyncio.Lock으로 쓰기를 직렬화한다."""

    shared = False

    def __init__(self) -> None:
        self._jobs: dict[str, AnalysisJob] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    async def create(self, job: AnalysisJob) -> None:
        self._locks[job.id] = asyncio.Lock()
        self._jobs[job.id] = replace(job)

    async def get(self, job_id: str) -> AnalysisJob | None:
        job = self._jobs.get(job_id)
        return replace(job) if job is not None else None

    async def update(self, job_id: str, mutate: JobMutation) -> AnalysisJob:
        lock = self._locks.get(job_id)
        if lock is None:
            raise JobNotFoundError(job_id)
        async with lock:
            updated = mutate(replace(self._jobs[job_id]))
            self._jobs[job_id] = updated
            return replace(updated)

    async def list_completed(self, owner_id: str, limit: int) -> list[AnalysisJob]:
        completed = [
            job for job in self._jobs.values()
            if job.owner_id == owner_id and job.status == "completed" and job.result is not None
        ]
        completed.sort(
            key=lambda j: j.completed_at or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        return [replace(job) for job in completed[:limit]]


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite는 tzinfo를 저장하지 않는다
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def record_to_job(record: AnalysisJobRecord) -> AnalysisJob:
    return AnalysisJob(
        id=record.id,
        owner_id=record.owner_id,
        repository=RepositoryRef(owner=record.repo_owner, name=record.repo_name),
        status=record.status,  # type: ignore[arg-type]
        progress=record.progress,
        result=AnalysisResult.from_dict(record.result) if record.result else None,
        error=record.error_message,
        created_at=_as_utc(record.created_at),
        started_at=_as_utc(record.started_at),
        completed_at=_as_utc(record.completed_at),
    )


def _apply_job(record: AnalysisJobRecord, job: AnalysisJob) -> None:
    record.status = job.status
    record.progress = job.progress
    record.result = job.result.to_dict() if job.result is not None else None
    record.error_message = job.error
    record.started_at = job.started_at
    record.completed_at = job.completed_at


class SqlAlchemyJobStore(JobStore):
    """SQLAlchemy 비동기 저장소. 작업 갱신은 트랜잭션 안에서 행 잠금 후 수행한다."""

    shared = True

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self._engine: AsyncEngine = create_async_engine(
            database_url,
            echo=echo,
            pool_pre_ping=True,
        )
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            expire_on_commit=False,
            autoflush=False,
        )

    async def create_tables(self) -> None:
        """테이블이 없으면 생성한다 (앱/워커 시작 시 호출)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def create(self, job: AnalysisJob) -> None:
        record = AnalysisJobRecord(
            id=job.id,
            owner_id=job.owner_id,
            repo_owner=job.repository.owner,
            repo_name=job.repository.name,
            created_at=job.created_at or datetime.now(timezone.utc),
        )
        _apply_job(record, job)
        async with self._session_factory() as session, session.begin():
            session.add(record)

    async def get(self, job_id: str) -> AnalysisJob | None:
        async with self._session_factory() as session:
            record = await session.get(AnalysisJobRecord, job_id)
            return record_to_job(record) if record is not None else None

    async def update(self, job_id: str, mutate: JobMutation) -> AnalysisJob:
        async with self._session_factory() as session, session.begin():
            record = await session.get(AnalysisJobRecord, job_id, with_for_update=True)
            if record is None:
                raise JobNotFoundError(job_id)
            updated = mutate(record_to_job(record))
            _apply_job(record, updated)
        return updated

    async def list_completed(self, owner_id: str, limit: int) -> list[AnalysisJob]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AnalysisJobRecord)
                .where(
                    AnalysisJobRecord.owner_id == owner_id,
                    AnalysisJobRecord.status == "completed",
                    AnalysisJobRecord.result.is_not(None),
                )
                .order_by(AnalysisJobRecord.completed_at.desc())
                .limit(limit)
            )
            return [record_to_job(r) for r in result.scalars().all()]

    async def ping(self) -> bool:
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"[JobStore] DB 연결 확인 실패: {e}")
            return False

    async def close(self) -> None:
        await self._engine.dispose()


async def create_job_store(settings: Settings) -> JobStore:
    """설정에 맞는 저장소를 생성한다. database 백엔드는 테이블까지 준비한다."""
    if settings.JOB_STORE_BACKEND == "database":
        store = SqlAlchemyJobStore(settings.DATABASE_URL, echo=settings.DEBUG)
        await store.create_tables()
        logger.info("[JobStore] SQLAlchemy 저장소 사용")
        return store

    logger.info("[JobStore] 인메모리 저장소 사용 (단일 프로세스 전용)")
    return InMemoryJobStore()
