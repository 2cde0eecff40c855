"""공통 의존성 — 현재 사용자 인증, 작업 관리자 등 FastAPI Depends로 주입"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from codeguardian.config import get_settings
from codeguardian.services.analysis_types import Principal
from codeguardian.services.job_manager import AnalysisJobManager

settings = get_settings()


# ---- 작업 관리자 (lifespan에서 app.state에 등록) ----

def get_job_manager(request: Request) -> AnalysisJobManager:
    """앱 시작 시 생성된 AnalysisJobManager를 반환한다."""
    return request.app.state.job_manager


# ---- 인증 의존성 ----
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> Principal:
    """JWT Bearer 토큰을 검증하고 요청자 정보를 반환한다.

    JWT claims:
        sub: 사용자 ID
        github_token: 저장소 조회에 사용할 GitHub 액세스 토큰

    Raises:
        HTTPException: 401 - 토큰 누락, 서명 오류, 필수 claim 누락
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="유효하지 않은 인증 정보입니다.",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except JWTError:
        raise credentials_exception

    user_id: str | None = payload.get("sub")
    github_token: str | None = payload.get("github_token")
    if not user_id or not github_token:
        raise credentials_exception

    return Principal(user_id=str(user_id), github_token=github_token)


# 타입 별칭: 라우터에서 간결하게 사용
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
JobManager = Annotated[AnalysisJobManager, Depends(get_job_manager)]
