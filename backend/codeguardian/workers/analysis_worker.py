"""RQ 분석 워커 — Redis 큐에서 분석 작업을 가져와 처리한다.

실행 방법:
    python -m codeguardian.workers.analysis_worker

또는 rq CLI로 실행:
    rq worker -w rq.worker.SimpleWorker analysis --url $REDIS_URL

API 프로세스와 같은 DATABASE_URL, TOKEN_ENCRYPTION_KEY를 사용해야 한다.
"""

import asyncio
import logging

import redis
from rq import Queue, SimpleWorker

from codeguardian.config import get_settings
from codeguardian.services.analysis_pipeline import create_pipeline
from codeguardian.services.analysis_types import AnalysisRequest
from codeguardian.services.circuit_breaker import QuotaCircuitBreaker
from codeguardian.services.job_manager import AnalysisJobManager
from codeguardian.services.job_store import SqlAlchemyJobStore
from codeguardian.services.token_crypto import decrypt_token

logger = logging.getLogger(__name__)
settings = get_settings()

# 워커 프로세스 수명 동안 유지되는 quota 브레이커.
# SimpleWorker가 작업을 같은 프로세스에서 실행하므로 작업 간에 상태가 이어진다
_breaker = QuotaCircuitBreaker(cooldown_seconds=settings.LLM_QUOTA_COOLDOWN_SECONDS)


# ──────────────────────────────────────────────────────────────
# 워커 진입점
# ──────────────────────────────────────────────────────────────

def run_analysis(message: dict) -> None:
    """분석 작업 하나를 처리한다.

    RQ 워커가 Redis 큐에서 이 함수를 호출한다.
    동기 함수이지만 내부적으로 asyncio.run()으로 비동기 로직을 실행한다.

    Args:
        message: AnalysisRequest.to_message() 형식 (github_token은 암호문)
    """
    job_id = message.get("job_id")
    logger.info(f"[WorkerID={job_id}] 분석 작업 수신")
    try:
        asyncio.run(_run_analysis_async(message))
        logger.info(f"[WorkerID={job_id}] 분석 작업 종료")
    except Exception as e:
        logger.error(f"[WorkerID={job_id}] 분석 작업 처리 실패: {e}")
        raise


async def _run_analysis_async(message: dict) -> None:
    """저장소를 열고 파이프라인을 실행한 뒤 연결을 정리한다."""
    store = SqlAlchemyJobStore(settings.DATABASE_URL)
    try:
        await store.create_tables()
        manager = AnalysisJobManager(store)
        job_id = message["job_id"]

        try:
            token = decrypt_token(message["github_token"])
        except ValueError as e:
            logger.error(f"[WorkerID={job_id}] {e}")
            await manager.update_status(job_id, status="failed", error=str(e))
            return

        request = AnalysisRequest.from_message({**message, "github_token": token})
        pipeline = create_pipeline(manager, settings, breaker=_breaker)
        await pipeline.run(request)
    finally:
        await store.close()


def start_worker() -> None:
    """RQ 워커를 시작한다.

    ANALYSIS_QUEUE_NAME 큐를 리스닝하며 분석 작업을 처리한다.
    """
    redis_conn = redis.from_url(settings.REDIS_URL)
    queues = [Queue(settings.ANALYSIS_QUEUE_NAME, connection=redis_conn)]

    # fork하는 Worker는 작업마다 브레이커 상태를 잃는다
    worker = SimpleWorker(queues, connection=redis_conn)
    redis_host = settings.REDIS_URL.split("@")[-1] if "@" in settings.REDIS_URL else settings.REDIS_URL
    logger.info(f"[AnalysisWorker] 워커 시작 (queue={settings.ANALYSIS_QUEUE_NAME}, Redis: {redis_host})")
    worker.work()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    start_worker()
