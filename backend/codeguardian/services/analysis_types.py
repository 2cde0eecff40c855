"""분석 파이프라인 공통 데이터 구조 — 작업, 결과, 탐지 항목"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal

JobStatus = Literal["pending", "processing", "completed", "failed"]
Severity = Literal["low", "medium", "high"]

# 종료 상태: 이후 어떤 업데이트도 허용하지 않는다
TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})

# 허용되는 상태 전이 (자기 자신으로의 전이는 진행률 업데이트용)
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"pending", "processing", "failed"}),
    "processing": frozenset({"processing", "completed", "failed"}),
    "completed": frozenset(),
    "failed": frozenset(),
}

# 코드 스니펫 최대 길이
SNIPPET_MAX_LENGTH = 100


@dataclass(frozen=True)
class SourceFile:
    """GitHub에서 가져온 분석 대상 파일"""

    path: str
    content: str
    language: str


@dataclass(frozen=True)
class SecurityFinding:
    """보안 탐지 항목 (불변)"""

    file: str
    line: int               # 1부터 시작
    severity: Severity
    message: str
    recommendation: str | None = None
    code_snippet: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SecurityFinding:
        return cls(
            file=data["file"],
            line=int(data["line"]),
            severity=data["severity"],
            message=data["message"],
            recommendation=data.get("recommendation"),
            code_snippet=data.get("code_snippet"),
        )


@dataclass(frozen=True)
class BestPracticeFinding:
    """코드 품질(베스트 프랙티스) 탐지 항목 (불변)"""

    file: str
    line: int
    message: str
    recommendation: str | None = None
    code_snippet: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BestPracticeFinding:
        return cls(
            file=data["file"],
            line=int(data["line"]),
            message=data["message"],
            recommendation=data.get("recommendation"),
            code_snippet=data.get("code_snippet"),
        )


Finding = SecurityFinding | BestPracticeFinding


@dataclass
class TechStack:
    """탐지된 기술 스택. 각 분류는 탐지 순서를 유지하는 중복 없는 목록."""

    frameworks: list[str] = field(default_factory=list)
    libraries: list[str] = field(default_factory=list)
    build_tools: list[str] = field(default_factory=list)
    databases: list[str] = field(default_factory=list)
    other: list[str] = field(default_factory=list)


@dataclass
class AnalysisSummary:
    total_files: int
    total_lines: int
    languages: dict[str, int]
    tech_stack: TechStack


@dataclass
class ComplexityMetrics:
    average: float
    max: int


@dataclass
class CodeQualityMetrics:
    score: int              # 0 ~ 100
    issue_count: int


@dataclass
class AnalysisMetrics:
    complexity: ComplexityMetrics
    code_quality: CodeQualityMetrics


@dataclass
class AnalysisFindings:
    security: list[SecurityFinding] = field(default_factory=list)
    best_practices: list[BestPracticeFinding] = field(default_factory=list)


@dataclass
class AnalysisResult:
    """최종 분석 결과. 작업에 한 번 첨부되면 변경하지 않는다."""

    summary: AnalysisSummary
    metrics: AnalysisMetrics
    findings: AnalysisFindings

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisResult:
        summary = data["summary"]
        metrics = data["metrics"]
        findings = data["findings"]
        return cls(
            summary=AnalysisSummary(
                total_files=summary["total_files"],
                total_lines=summary["total_lines"],
                languages=dict(summary["languages"]),
                tech_stack=TechStack(**summary["tech_stack"]),
            ),
            metrics=AnalysisMetrics(
                complexity=ComplexityMetrics(**metrics["complexity"]),
                code_quality=CodeQualityMetrics(**metrics["code_quality"]),
            ),
            findings=AnalysisFindings(
                security=[SecurityFinding.from_dict(f) for f in findings["security"]],
                best_practices=[
                    BestPracticeFinding.from_dict(f) for f in findings["best_practices"]
                ],
            ),
        )


@dataclass(frozen=True)
class RepositoryRef:
    """분석 대상 저장소 식별자 (생성 후 불변)"""

    owner: str
    name: str

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass
class AnalysisJob:
    """분석 작업과 그 결과.

    상태 머신: pending -> processing -> completed / failed
    모든 변경은 AnalysisJobManager.update_status()를 통해서만 이루어진다.
    """

    id: str
    owner_id: str
    repository: RepositoryRef
    status: JobStatus = "pending"
    progress: int = 0
    result: AnalysisResult | None = None
    error: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class Principal:
    """인증된 요청자. github_token은 저장소 조회에만 사용되며 저장하지 않는다."""

    user_id: str
    github_token: str = field(repr=False)


@dataclass(frozen=True)
class AnalysisRequest:
    """실행 전략에 전달되는 분석 요청 메시지"""

    job_id: str
    owner_id: str
    repository: RepositoryRef
    github_token: str = field(repr=False)

    def to_message(self) -> dict[str, str]:
        """큐 직렬화용 dict (토큰 암호화는 호출자 책임)."""
        return {
            "job_id": self.job_id,
            "owner_id": self.owner_id,
            "repo_owner": self.repository.owner,
            "repo_name": self.repository.name,
            "github_token": self.github_token,
        }

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> AnalysisRequest:
        return cls(
            job_id=message["job_id"],
            owner_id=message["owner_id"],
            repository=RepositoryRef(owner=message["repo_owner"], name=message["repo_name"]),
            github_token=message["github_token"],
        )
