"""SQLAlchemy 모델 패키지 — create_all()이 모든 모델을 인식할 수 있도록 일괄 import"""

from codeguardian.models.analysis_job import AnalysisJobRecord
from codeguardian.models.base import Base

__all__ = [
    "Base",
    "AnalysisJobRecord",
]
