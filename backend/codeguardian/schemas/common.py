"""공통 응답 스키마 — 모든 API 응답의 표준 형식"""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """표준 API 응답 래퍼.

    모든 엔드포인트는 이 형식으로 응답한다.

    Example:
        {
            "success": true,
            "data": { ... },
            "error": null
        }
    """

    success: bool = Field(description="요청 성공 여부")
    data: T | None = Field(default=None, description="응답 데이터")
    error: str | None = Field(default=None, description="에러 메시지 (실패 시)")
