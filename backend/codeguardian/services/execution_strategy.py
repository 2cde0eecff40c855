"""분석 작업 실행 전략 (Strategy Pattern)

QueuedExecutionStrategy: RQ 큐에 등록하고 별도 워커 프로세스가 처리
ImmediateExecutionStrategy: 현재 이벤트 루프에서 asyncio 태스크로 처리

전략은 앱 시작 시 select_execution_strategy()로 한 번만 결정된다.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

import redis
from rq import Queue

from codeguardian.config import Settings
from codeguardian.services.analysis_types import AnalysisRequest
from codeguardian.services.job_store import JobStore
from codeguardian.services.token_crypto import encrypt_token, is_encryption_configured

logger = logging.getLogger(__name__)

# RQ 워커가 실행할 함수 경로
WORKER_FUNCTION = "codeguardian.workers.analysis_worker.run_analysis"

# RQ 작업 타임아웃
JOB_TIMEOUT = "10m"

# 종료 시 실행 중인 태스크를 기다리는 최대 시간 (초)
SHUTDOWN_GRACE_SECONDS = 30.0

PipelineRunner = Callable[[AnalysisRequest], Awaitable[None]]


class ExecutionStrategy(ABC):
    """분석 작업 디스패치 인터페이스.

    submit()은 작업 완료를 기다리지 않고 즉시 반환해야 한다.
    """

    name: str = ""

    @abstractmethod
    async def submit(self, request: AnalysisRequest) -> None:
        """작업을 실행 대기열에 넣는다.

        Raises:
            Exception: 디스패치 실패 (호출자가 작업을 failed로 기록)
        """

    async def shutdown(self) -> None:
        """앱 종료 시 정리"""
        return None


class QueuedExecutionStrategy(ExecutionStrategy):
    """RQ(Redis) 큐 전략. GitHub 토큰은 암호화하여 메시지에 담는다."""

    name = "queued"

    def __init__(self, queue: Queue) -> None:
        self._queue = queue

    async def submit(self, request: AnalysisRequest) -> None:
        message = request.to_message()
        message["github_token"] = encrypt_token(request.github_token)

        # rq.enqueue는 동기 Redis 호출
        await asyncio.to_thread(
            self._queue.enqueue,
            WORKER_FUNCTION,
            args=(message,),
            job_id=request.job_id,
            job_timeout=JOB_TIMEOUT,
        )
        logger.info(f"[JobID={request.job_id}] RQ 큐 등록 완료 (queue={self._queue.name})")


class ImmediateExecutionStrategy(ExecutionStrategy):
    """프로세스 내 즉시 실행 전략.

    동시 실행 수는 세마포어로 제한하며, 초과분은 태스크로 생성된 뒤 대기한다.
    실행 중인 태스크는 가비지 컬렉션되지 않도록 참조를 유지한다.
    """

    name = "immediate"

    def __init__(self, runner: PipelineRunner, max_concurrent: int = 4) -> None:
        self._runner = runner
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._tasks: set[asyncio.Task] = set()

    @property
    def running_count(self) -> int:
        return len(self._tasks)

    async def submit(self, request: AnalysisRequest) -> None:
        task = asyncio.create_task(self._run(request), name=f"analysis-{request.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, request: AnalysisRequest) -> None:
        async with self._semaphore:
            await self._runner(request)

    async def wait_idle(self) -> None:
        """현재 실행 중인 모든 태스크가 끝날 때까지 기다린다."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        if not self._tasks:
            return
        logger.info(f"[ExecutionStrategy] 실행 중인 분석 {len(self._tasks)}건 종료 대기")
        done, pending = await asyncio.wait(list(self._tasks), timeout=SHUTDOWN_GRACE_SECONDS)
        if pending:
            logger.warning(f"[ExecutionStrategy] 종료 시점까지 미완료 분석 {len(pending)}건")


def select_execution_strategy(
    settings: Settings,
    store: JobStore,
    runner: PipelineRunner,
) -> ExecutionStrategy:
    """설정과 Redis 연결 상태로 실행 전략을 결정한다.

    큐 전략 조건:
    - ANALYSIS_QUEUE_ENABLED=True
    - 워커와 공유 가능한 저장소 (JOB_STORE_BACKEND=database)
    - TOKEN_ENCRYPTION_KEY 설정
    - Redis PING 성공
    하나라도 만족하지 않으면 즉시 실행 전략으로 대체한다.
    """
    immediate = ImmediateExecutionStrategy(
        runner, max_concurrent=settings.IMMEDIATE_MAX_CONCURRENT_JOBS
    )

    if not settings.ANALYSIS_QUEUE_ENABLED:
        logger.info("[ExecutionStrategy] 즉시 실행 전략 사용 (큐 비활성화)")
        return immediate

    if not store.shared:
        logger.warning(
            "[ExecutionStrategy] 인메모리 저장소는 워커와 공유할 수 없음, 즉시 실행 전략으로 대체"
        )
        return immediate

    if not is_encryption_configured(settings.TOKEN_ENCRYPTION_KEY):
        logger.warning(
            "[ExecutionStrategy] TOKEN_ENCRYPTION_KEY 미설정, 즉시 실행 전략으로 대체"
        )
        return immediate

    try:
        redis_conn = redis.from_url(
            settings.REDIS_URL,
            socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
            socket_timeout=settings.REDIS_CONNECT_TIMEOUT_SECONDS,
        )
        redis_conn.ping()
    except redis.RedisError as e:
        logger.warning(f"[ExecutionStrategy] Redis 연결 실패 ({e}), 즉시 실행 전략으로 대체")
        return immediate

    redis_host = settings.REDIS_URL.split("@")[-1] if "@" in settings.REDIS_URL else settings.REDIS_URL
    logger.info(
        f"[ExecutionStrategy] RQ 큐 전략 사용 (queue={settings.ANALYSIS_QUEUE_NAME}, Redis: {redis_host})"
    )
    return QueuedExecutionStrategy(Queue(settings.ANALYSIS_QUEUE_NAME, connection=redis_conn))
