"""분석 관련 요청/응답 스키마

응답 필드는 camelCase로 직렬화된다 (예: job_id -> jobId).
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

_RESPONSE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    from_attributes=True,
)


class AnalyzeRequest(BaseModel):
    """단일 저장소 분석 요청. 누락 검증은 서비스 계층에서 400으로 처리한다."""

    owner: str | None = Field(default=None, description="저장소 소유자 (GitHub 사용자/조직)")
    repo: str | None = Field(default=None, description="저장소 이름")


class BatchAnalyzeRequest(BaseModel):
    """일괄 분석 요청 (최대 10개)"""

    repositories: list[AnalyzeRequest] = Field(default_factory=list, description="분석할 저장소 목록")


class AnalyzeStartedResponse(BaseModel):
    """분석 시작 응답"""

    model_config = _RESPONSE_CONFIG

    job_id: str
    message: str = "Analysis started"
    status_url: str


class BatchStartedResponse(BaseModel):
    model_config = _RESPONSE_CONFIG

    job_ids: list[str]
    message: str = "Batch analysis started"


class RepositorySchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    owner: str
    name: str
    full_name: str


class TechStackSchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    frameworks: list[str]
    libraries: list[str]
    build_tools: list[str]
    databases: list[str]
    other: list[str]


class SummarySchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    total_files: int
    total_lines: int
    languages: dict[str, int]
    tech_stack: TechStackSchema


class ComplexitySchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    average: float
    max: int


class CodeQualitySchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    score: int = Field(ge=0, le=100)
    issue_count: int


class MetricsSchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    complexity: ComplexitySchema
    code_quality: CodeQualitySchema


class SecurityFindingSchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    file: str
    line: int
    severity: Literal["low", "medium", "high"]
    message: str
    recommendation: str | None = None
    code_snippet: str | None = None


class BestPracticeFindingSchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    file: str
    line: int
    message: str
    recommendation: str | None = None
    code_snippet: str | None = None


class FindingsSchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    security: list[SecurityFindingSchema]
    best_practices: list[BestPracticeFindingSchema]


class AnalysisResultSchema(BaseModel):
    model_config = _RESPONSE_CONFIG

    summary: SummarySchema
    metrics: MetricsSchema
    findings: FindingsSchema


class AnalysisJobResponse(BaseModel):
    """분석 작업 상태 응답 (결과 포함)"""

    model_config = _RESPONSE_CONFIG

    id: str
    repository: RepositorySchema
    status: Literal["pending", "processing", "completed", "failed"]
    progress: int = Field(ge=0, le=100)
    result: AnalysisResultSchema | None = None
    error: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
