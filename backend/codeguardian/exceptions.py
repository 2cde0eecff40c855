"""도메인 예외 — API 계층에서 HTTP 상태 코드로 변환된다"""


class CodeGuardianError(Exception):
    """모든 도메인 예외의 기반 클래스"""


class InvalidAnalysisRequestError(CodeGuardianError):
    """owner/repo 누락 등 잘못된 분석 요청"""


class BatchLimitExceededError(InvalidAnalysisRequestError):
    """일괄 분석 요청 개수 초과"""

    def __init__(self, requested: int, limit: int) -> None:
        super().__init__(f"한 번에 최대 {limit}개 저장소만 분석할 수 있습니다 (요청: {requested}개)")
        self.requested = requested
        self.limit = limit


class JobNotFoundError(CodeGuardianError):
    """존재하지 않는 분석 작업 ID"""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"분석 작업을 찾을 수 없습니다: {job_id}")
        self.job_id = job_id


class InvalidJobTransitionError(CodeGuardianError):
    """허용되지 않는 상태 전이 (예: 종료 상태 이후의 업데이트)"""

    def __init__(self, job_id: str, current: str, requested: str) -> None:
        super().__init__(f"작업 {job_id}: {current} -> {requested} 전이는 허용되지 않습니다")
        self.job_id = job_id
        self.current = current
        self.requested = requested


class RepositoryFetchError(CodeGuardianError):
    """저장소 내용 조회 실패 (작업 전체 실패 사유)"""


class RepositoryAuthError(RepositoryFetchError):
    """GitHub 자격증명이 유효하지 않음 (HTTP 401)"""


class RepositoryNotFoundError(RepositoryFetchError):
    """저장소 또는 브랜치를 찾을 수 없음 (HTTP 404)"""


class LLMQuotaExceededError(CodeGuardianError):
    """LLM API rate limit / quota 초과 (HTTP 429)"""
