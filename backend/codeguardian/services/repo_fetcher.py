"""저장소 내용 조회 — 분석 대상 파일 목록 선정 및 내용 다운로드

GitHub REST API v3 구현을 제공한다. 다른 호스팅 플랫폼은
RepositoryContentFetcher 계약을 구현하면 된다.
"""

import asyncio
import base64
import binascii
import logging
from abc import ABC, abstractmethod
from urllib.parse import quote

import httpx

from codeguardian.config import get_settings
from codeguardian.exceptions import (
    RepositoryAuthError,
    RepositoryFetchError,
    RepositoryNotFoundError,
)
from codeguardian.services.analysis_types import SourceFile
from codeguardian.services.pattern_detector import (
    detect_language,
    is_code_file,
    is_config_file,
)

logger = logging.getLogger(__name__)


def select_paths(paths: list[str], max_source_files: int) -> list[str]:
    """분석할 파일 경로를 고른다.

    매니페스트/설정 파일은 모두, 소스 코드 파일은 트리 순서대로
    max_source_files개까지. 매니페스트가 먼저 온다.
    """
    manifests = [p for p in paths if is_config_file(p)]
    sources = [p for p in paths if is_code_file(p) and not is_config_file(p)]
    return manifests + sources[:max_source_files]


class RepositoryContentFetcher(ABC):
    """저장소 조회 공통 인터페이스.

    get_default_branch / list_tree / get_file_content를 구현하면
    fetch_files()의 파일 선정과 동시 다운로드는 공통으로 제공된다.
    """

    def __init__(self, max_source_files: int, concurrency: int) -> None:
        self._max_source_files = max_source_files
        self._concurrency = concurrency

    @abstractmethod
    async def get_default_branch(self, owner: str, repo: str) -> str:
        """기본 브랜치 이름을 조회한다.

        Raises:
            RepositoryAuthError: 자격증명 오류
            RepositoryNotFoundError: 저장소 없음
        """

    @abstractmethod
    async def list_tree(self, owner: str, repo: str, ref: str) -> list[str]:
        """ref 기준 전체 트리의 파일(blob) 경로 목록을 조회한다."""

    @abstractmethod
    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str | None:
        """파일 내용을 텍스트로 반환한다. 바이너리 등 읽을 수 없으면 None."""

    async def fetch_files(self, owner: str, repo: str) -> list[SourceFile]:
        """분석 대상 파일을 선정하고 내용을 동시에 가져온다.

        개별 파일 실패는 로그만 남기고 건너뛴다.
        브랜치/트리 조회 실패는 예외로 전파한다 (작업 실패 사유).
        """
        branch = await self.get_default_branch(owner, repo)
        paths = select_paths(await self.list_tree(owner, repo, branch), self._max_source_files)
        logger.info(
            f"[RepoFetcher] {owner}/{repo}@{branch}: 분석 대상 {len(paths)}개 파일"
        )

        semaphore = asyncio.Semaphore(self._concurrency)

        async def fetch_one(path: str) -> SourceFile | None:
            async with semaphore:
                try:
                    content = await self.get_file_content(owner, repo, path, branch)
                except (RepositoryFetchError, httpx.HTTPError) as e:
                    logger.warning(f"[RepoFetcher] 파일 조회 실패, 건너뜀 ({path}): {e}")
                    return None
            if content is None:
                return None
            return SourceFile(path=path, content=content, language=detect_language(path))

        results = await asyncio.gather(*(fetch_one(p) for p in paths))
        return [f for f in results if f is not None]


class GitHubContentFetcher(RepositoryContentFetcher):
    """GitHub REST API 기반 구현 (Bearer 토큰 인증)."""

    def __init__(
        self,
        access_token: str,
        base_url: str | None = None,
        timeout: float | None = None,
        max_source_files: int | None = None,
        concurrency: int | None = None,
    ) -> None:
        settings = get_settings()
        super().__init__(
            max_source_files=max_source_files or settings.MAX_SOURCE_FILES,
            concurrency=concurrency or settings.FETCH_CONCURRENCY,
        )
        self._access_token = access_token
        self._base_url = (base_url or settings.GITHUB_API_URL).rstrip("/")
        self._timeout = timeout or settings.GITHUB_TIMEOUT_SECONDS

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    async def _get_json(self, path: str, params: dict | None = None) -> dict:
        """GET 요청 후 상태 코드를 도메인 예외로 변환한다.

        Raises:
            RepositoryAuthError: 401
            RepositoryNotFoundError: 404
            RepositoryFetchError: 그 외 4xx/5xx 또는 네트워크 오류
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    f"{self._base_url}{path}",
                    headers=self._headers(),
                    params=params,
                )
        except httpx.HTTPError as e:
            raise RepositoryFetchError(f"GitHub API 요청 실패 ({path}): {e}") from e

        if response.status_code == 401:
            raise RepositoryAuthError("GitHub 인증에 실패했습니다. 다시 로그인해 주세요.")
        if response.status_code == 404:
            raise RepositoryNotFoundError(f"GitHub 리소스를 찾을 수 없습니다: {path}")
        if response.status_code >= 400:
            raise RepositoryFetchError(
                f"GitHub API 오류 (HTTP {response.status_code}): {path}"
            )
        return response.json()

    async def get_default_branch(self, owner: str, repo: str) -> str:
        data = await self._get_json(f"/repos/{owner}/{repo}")
        return data.get("default_branch") or "main"

    async def list_tree(self, owner: str, repo: str, ref: str) -> list[str]:
        data = await self._get_json(
            f"/repos/{owner}/{repo}/git/trees/{quote(ref, safe='')}",
            params={"recursive": "1"},
        )
        if data.get("truncated"):
            logger.warning(f"[RepoFetcher] {owner}/{repo} 트리가 잘려서 반환됨 (파일 수 과다)")
        return [
            item["path"]
            for item in data.get("tree", [])
            if item.get("type") == "blob" and item.get("path")
        ]

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str | None:
        data = await self._get_json(
            f"/repos/{owner}/{repo}/contents/{quote(path)}",
            params={"ref": ref},
        )
        if data.get("encoding") != "base64" or not isinstance(data.get("content"), str):
            logger.debug(f"[RepoFetcher] base64 내용이 아님, 건너뜀: {path}")
            return None

        # GitHub API는 개행 포함 base64를 반환한다
        try:
            raw = base64.b64decode(data["content"].replace("\n", ""))
            return raw.decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.debug(f"[RepoFetcher] 텍스트로 디코딩할 수 없음, 건너뜀: {path}")
            return None
