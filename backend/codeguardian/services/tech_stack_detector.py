"""매니페스트 파일에서 프레임워크/라이브러리/빌드 도구/DB를 탐지한다"""

import json
import logging
import re
from pathlib import PurePosixPath

from codeguardian.services.analysis_types import SourceFile, TechStack

logger = logging.getLogger(__name__)

# package.json 의존성 키 -> (표시 이름, 분류)
_NPM_DEPENDENCIES: tuple[tuple[str, str, str], ...] = (
    ("react", "React", "frameworks"),
    ("vue", "Vue", "frameworks"),
    ("@angular/core", "Angular", "frameworks"),
    ("angular", "Angular", "frameworks"),
    ("@nestjs/core", "NestJS", "frameworks"),
    ("express", "Express", "frameworks"),
    ("next", "Next.js", "frameworks"),
    ("@remix-run/react", "Remix", "frameworks"),
    ("axios", "Axios", "libraries"),
    ("lodash", "Lodash", "libraries"),
    ("moment", "Moment.js", "libraries"),
    ("date-fns", "date-fns", "libraries"),
    ("tailwindcss", "Tailwind CSS", "libraries"),
    ("webpack", "Webpack", "build_tools"),
    ("vite", "Vite", "build_tools"),
    ("@vitejs/plugin-react", "Vite", "build_tools"),
    ("turbo", "Turborepo", "build_tools"),
    ("mongoose", "MongoDB", "databases"),
    ("@prisma/client", "Prisma", "databases"),
    ("typeorm", "TypeORM", "databases"),
    ("sequelize", "Sequelize", "databases"),
    ("pg", "PostgreSQL", "databases"),
    ("mysql", "MySQL", "databases"),
    ("mysql2", "MySQL", "databases"),
    ("redis", "Redis", "databases"),
    ("ioredis", "Redis", "databases"),
)

# Python 패키지 이름 -> (표시 이름, 분류)
_PYTHON_PACKAGES: tuple[tuple[str, str, str], ...] = (
    ("django", "Django", "frameworks"),
    ("flask", "Flask", "frameworks"),
    ("fastapi", "FastAPI", "frameworks"),
    ("sqlalchemy", "SQLAlchemy", "libraries"),
    ("psycopg2", "PostgreSQL", "databases"),
    ("psycopg2-binary", "PostgreSQL", "databases"),
    ("psycopg", "PostgreSQL", "databases"),
    ("asyncpg", "PostgreSQL", "databases"),
    ("pymongo", "MongoDB", "databases"),
    ("redis", "Redis", "databases"),
)

# 파일명(소문자) -> (표시 이름, 분류)
_BUILD_MANIFESTS: dict[str, tuple[str, str]] = {
    "go.mod": ("Go Modules", "build_tools"),
    "cargo.toml": ("Cargo", "build_tools"),
    "pom.xml": ("Maven", "build_tools"),
    "build.gradle": ("Gradle", "build_tools"),
    "tsconfig.json": ("TypeScript", "other"),
}

_PYTHON_MANIFESTS = frozenset({"requirements.txt", "pipfile", "pyproject.toml"})
_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")


def _add(stack: TechStack, category: str, label: str) -> None:
    """분류 목록에 없을 때만 추가한다 (먼저 탐지된 순서 유지)."""
    bucket: list[str] = getattr(stack, category)
    if label not in bucket:
        bucket.append(label)


def _detect_package_json(stack: TechStack, content: str, path: str) -> None:
    try:
        manifest = json.loads(content)
    except json.JSONDecodeError:
        logger.warning(f"[TechStack] package.json 파싱 실패: {path}")
        return
    if not isinstance(manifest, dict):
        return

    deps: dict[str, object] = {}
    for section in ("dependencies", "devDependencies"):
        value = manifest.get(section)
        if isinstance(value, dict):
            deps.update(value)

    for key, label, category in _NPM_DEPENDENCIES:
        if key in deps:
            _add(stack, category, label)

    # 스크립트에서 turbo 사용 (예: "build": "turbo run build")
    scripts = manifest.get("scripts")
    if isinstance(scripts, dict) and any(
        "turbo" in str(name) or "turbo" in str(command)
        for name, command in scripts.items()
    ):
        _add(stack, "build_tools", "Turborepo")


def _python_package_names(file_name: str, content: str) -> set[str]:
    """requirements.txt는 라인별 패키지명, 그 외는 소문자 전체 내용에서 검색한다."""
    if file_name == "requirements.txt":
        names: set[str] = set()
        for line in content.splitlines():
            line = line.split("#", 1)[0]
            match = _REQUIREMENT_NAME.match(line)
            if match:
                names.add(match.group(1).lower().replace("_", "-"))
        return names

    lowered = content.lower()
    return {name for name, _, _ in _PYTHON_PACKAGES if name in lowered}


def detect_tech_stack(files: list[SourceFile]) -> TechStack:
    """매니페스트 파일 이름과 의존성 키로 기술 스택을 탐지한다.

    코드 파일은 건너뛴다. 같은 항목은 한 번만 기록된다.
    """
    stack = TechStack()

    for file in files:
        name = PurePosixPath(file.path).name.lower()

        if name == "package.json":
            _detect_package_json(stack, file.content, file.path)
        elif name in _PYTHON_MANIFESTS:
            found = _python_package_names(name, file.content)
            for package, label, category in _PYTHON_PACKAGES:
                if package in found:
                    _add(stack, category, label)
        elif name == "dockerfile" or name.startswith("docker-compose"):
            _add(stack, "other", "Docker")
        elif name.startswith("tailwind.config"):
            _add(stack, "libraries", "Tailwind CSS")
        elif name in _BUILD_MANIFESTS:
            label, category = _BUILD_MANIFESTS[name]
            _add(stack, category, label)

    return stack
