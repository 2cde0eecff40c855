"""JobStore 구현체 테스트 — 인메모리 / SQLAlchemy(aiosqlite)"""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from codeguardian.exceptions import JobNotFoundError
from codeguardian.services.analysis_types import AnalysisJob, RepositoryRef
from codeguardian.services.job_store import InMemoryJobStore, SqlAlchemyJobStore


def _job(job_id: str, owner_id: str = "user-1", **kwargs) -> AnalysisJob:
    return AnalysisJob(
        id=job_id,
        owner_id=owner_id,
        repository=RepositoryRef(owner="octo", name="app"),
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        **kwargs,
    )


@pytest.fixture(params=["memory", "database"])
async def store(request, tmp_path):
    """두 저장소 구현에 같은 계약 테스트를 적용한다."""
    if request.param == "memory":
        yield InMemoryJobStore()
        return

    sql_store = SqlAlchemyJobStore(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    await sql_store.create_tables()
    yield sql_store
    await sql_store.close()


# ──────────────────────────────────────────────────────────────
# 저장소 공통 계약
# ──────────────────────────────────────────────────────────────

async def test_create_and_get(store):
    await store.create(_job("job-1"))

    job = await store.get("job-1")

    assert job is not None
    assert job.status == "pending"
    assert job.progress == 0
    assert job.repository.full_name == "octo/app"
    assert job.result is None


async def test_get_unknown_returns_none(store):
    assert await store.get("missing") is None


async def test_update_applies_mutation(store):
    await store.create(_job("job-1"))
    started = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    updated = await store.update(
        "job-1", lambda j: replace(j, status="processing", progress=10, started_at=started)
    )

    assert updated.status == "processing"
    fetched = await store.get("job-1")
    assert fetched.progress == 10
    assert fetched.started_at == started


async def test_update_unknown_job_raises(store):
    with pytest.raises(JobNotFoundError):
        await store.update("missing", lambda j: j)


async def test_failed_mutation_persists_nothing(store):
    await store.create(_job("job-1"))

    def reject(job: AnalysisJob) -> AnalysisJob:
        raise ValueError("rejected")

    with pytest.raises(ValueError):
        await store.update("job-1", reject)

    assert (await store.get("job-1")).status == "pending"


async def test_result_survives_storage(store, result_factory):
    await store.create(_job("job-1"))
    result = result_factory(security_count=2)

    await store.update(
        "job-1",
        lambda j: replace(
            j,
            status="completed",
            progress=100,
            result=result,
            completed_at=datetime(2026, 1, 2, tzinfo=timezone.utc),
        ),
    )

    job = await store.get("job-1")
    assert job.result == result


async def test_returned_job_is_a_copy(store):
    await store.create(_job("job-1"))

    job = await store.get("job-1")
    job.progress = 99

    assert (await store.get("job-1")).progress == 0


async def test_list_completed_orders_newest_first_and_scopes_owner(store, result_factory):
    for job_id, owner, day in [("a", "user-1", 1), ("b", "user-1", 3), ("c", "user-2", 2)]:
        await store.create(_job(job_id, owner_id=owner))
        await store.update(
            job_id,
            lambda j, day=day: replace(
                j,
                status="completed",
                progress=100,
                result=result_factory(),
                completed_at=datetime(2026, 1, day, tzinfo=timezone.utc),
            ),
        )
    await store.create(_job("pending-one"))

    jobs = await store.list_completed("user-1", limit=50)

    assert [j.id for j in jobs] == ["b", "a"]


async def test_list_completed_respects_limit(store, result_factory):
    for i in range(3):
        await store.create(_job(f"job-{i}"))
        await store.update(
            f"job-{i}",
            lambda j, i=i: replace(
                j,
                status="completed",
                progress=100,
                result=result_factory(),
                completed_at=datetime(2026, 1, i + 1, tzinfo=timezone.utc),
            ),
        )

    jobs = await store.list_completed("user-1", limit=2)

    assert [j.id for j in jobs] == ["job-2", "job-1"]


async def test_ping(store):
    assert await store.ping() is True


# ──────────────────────────────────────────────────────────────
# 구현별 특성
# ──────────────────────────────────────────────────────────────

def test_only_database_store_is_shared():
    assert InMemoryJobStore.shared is False
    assert SqlAlchemyJobStore.shared is True


async def test_database_store_shared_between_instances(tmp_path):
    """Given: 같은 DB 파일을 가리키는 두 저장소 (API 프로세스 / 워커)
    When: 한쪽에서 상태를 갱신
    Then: 다른 쪽에서 조회 가능
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'shared.db'}"
    api_store = SqlAlchemyJobStore(url)
    worker_store = SqlAlchemyJobStore(url)
    await api_store.create_tables()
    await worker_store.create_tables()

    try:
        await api_store.create(_job("job-1"))
        await worker_store.update("job-1", lambda j: replace(j, status="processing", progress=30))

        job = await api_store.get("job-1")
        assert job.status == "processing"
        assert job.progress == 30
        assert job.created_at.tzinfo is not None
    finally:
        await api_store.close()
        await worker_store.close()
