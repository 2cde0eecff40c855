"""저장소 분석 엔드포인트"""

from fastapi import APIRouter, HTTPException, status

from codeguardian.api.deps import CurrentPrincipal, JobManager
from codeguardian.exceptions import InvalidAnalysisRequestError, JobNotFoundError
from codeguardian.schemas.analysis import (
    AnalysisJobResponse,
    AnalyzeRequest,
    AnalyzeStartedResponse,
    BatchAnalyzeRequest,
    BatchStartedResponse,
)
from codeguardian.schemas.common import ApiResponse

router = APIRouter()


def _status_url(job_id: str) -> str:
    return f"/api/v1/analyze/{job_id}"


@router.post(
    "",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ApiResponse[AnalyzeStartedResponse],
)
async def start_analysis(
    request: AnalyzeRequest,
    principal: CurrentPrincipal,
    manager: JobManager,
) -> ApiResponse[AnalyzeStartedResponse]:
    """저장소 분석을 시작한다.

    작업을 생성하고 즉시 202를 반환한다. 진행 상황은 statusUrl로 조회한다.
    owner/repo 누락 시 400 (작업을 생성하지 않음).
    """
    try:
        job_id = await manager.start_analysis(principal, request.owner, request.repo)
    except InvalidAnalysisRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ApiResponse(
        success=True,
        data=AnalyzeStartedResponse(job_id=job_id, status_url=_status_url(job_id)),
    )


@router.post(
    "/batch",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ApiResponse[BatchStartedResponse],
)
async def start_batch_analysis(
    request: BatchAnalyzeRequest,
    principal: CurrentPrincipal,
    manager: JobManager,
) -> ApiResponse[BatchStartedResponse]:
    """여러 저장소 분석을 한 번에 시작한다 (최대 10개, 초과 시 400)."""
    try:
        job_ids = await manager.start_batch(
            principal,
            [(item.owner, item.repo) for item in request.repositories],
        )
    except InvalidAnalysisRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return ApiResponse(success=True, data=BatchStartedResponse(job_ids=job_ids))


@router.get("/history", response_model=ApiResponse[list[AnalysisJobResponse]])
async def get_analysis_history(
    principal: CurrentPrincipal,
    manager: JobManager,
) -> ApiResponse[list[AnalysisJobResponse]]:
    """현재 사용자의 완료된 분석 작업을 최근 완료 순으로 최대 50개 반환한다."""
    jobs = await manager.get_history(principal.user_id)
    return ApiResponse(
        success=True,
        data=[AnalysisJobResponse.model_validate(job) for job in jobs],
    )


@router.get("/{job_id}", response_model=ApiResponse[AnalysisJobResponse])
async def get_analysis_status(
    job_id: str,
    principal: CurrentPrincipal,
    manager: JobManager,
) -> ApiResponse[AnalysisJobResponse]:
    """분석 작업 상태와 (완료 시) 결과를 조회한다.

    다른 사용자의 작업은 존재하지 않는 것으로 응답한다 (404).
    """
    try:
        job = await manager.get_status(job_id, owner_id=principal.user_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return ApiResponse(success=True, data=AnalysisJobResponse.model_validate(job))
