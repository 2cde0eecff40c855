"""AnalysisJobRecord 모델 — API 프로세스와 RQ 워커가 공유하는 분석 작업 행"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from codeguardian.models.base import Base, TimestampMixin


class AnalysisJobRecord(TimestampMixin, Base):
    """분석 작업 테이블.

    상태 머신: pending -> processing -> completed / failed
    result(JSON)는 completed일 때만, error는 failed일 때만 채워진다.
    """

    __tablename__ = "analysis_job"
    __table_args__ = {"comment": "저장소 분석 작업"}

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment="작업 ID (UUID 문자열, 재사용하지 않음)",
    )
    owner_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="작업을 요청한 사용자 ID",
    )
    repo_owner: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="저장소 소유자 (GitHub 사용자/조직)",
    )
    repo_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="저장소 이름",
    )

    # 작업 상태: pending / processing / completed / failed
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="작업 상태 (pending / processing / completed / failed)",
    )
    progress: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="진행률 (0 ~ 100)",
    )
    result: Mapped[dict | None] = mapped_column(
        JSON(none_as_null=True),
        nullable=True,
        comment="분석 결과 (AnalysisResult.to_dict())",
    )
    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        comment="실패 시 에러 메시지",
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="처리 시작 시각",
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
        comment="종료 시각 (completed / failed)",
    )

    def __repr__(self) -> str:
        return f"<AnalysisJobRecord id={self.id} repo={self.repo_owner}/{self.repo_name} status={self.status}>"
