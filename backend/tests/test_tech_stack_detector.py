"""detect_tech_stack 단위 테스트"""

import json

from codeguardian.services.analysis_types import SourceFile
from codeguardian.services.tech_stack_detector import detect_tech_stack


def _manifest(path: str, content: str) -> SourceFile:
    return SourceFile(path=path, content=content, language="Unknown")


def test_package_json_dependencies_and_turbo_script():
    """Given: dependencies/devDependencies와 turbo 스크립트가 있는 package.json
    When: detect_tech_stack 호출
    Then: 분류별로 탐지 순서대로 기록
    """
    package_json = json.dumps({
        "dependencies": {"react": "^18.2.0", "axios": "^1.6.0"},
        "devDependencies": {"vite": "^5.0.0", "typescript": "^5.3.0"},
        "scripts": {"build": "turbo run build"},
    })

    stack = detect_tech_stack([_manifest("package.json", package_json)])

    assert stack.frameworks == ["React"]
    assert stack.libraries == ["Axios"]
    assert stack.build_tools == ["Vite", "Turborepo"]
    assert stack.databases == []


def test_package_json_database_drivers():
    package_json = json.dumps({"dependencies": {"pg": "^8", "ioredis": "^5", "redis": "^4"}})

    stack = detect_tech_stack([_manifest("api/package.json", package_json)])

    assert stack.databases == ["PostgreSQL", "Redis"]


def test_requirements_txt_packages():
    requirements = (
        "Django==4.2\n"
        "fastapi>=0.100  # api\n"
        "SQLAlchemy[asyncio]==2.0\n"
        "psycopg2-binary==2.9\n"
    )

    stack = detect_tech_stack([_manifest("requirements.txt", requirements)])

    assert stack.frameworks == ["Django", "FastAPI"]
    assert stack.libraries == ["SQLAlchemy"]
    assert stack.databases == ["PostgreSQL"]


def test_requirements_comment_does_not_count_as_dependency():
    stack = detect_tech_stack([_manifest("requirements.txt", "# flask was removed\nrequests\n")])

    assert stack.frameworks == []


def test_docker_files_are_deduplicated():
    stack = detect_tech_stack([
        _manifest("Dockerfile", "FROM python:3.12"),
        _manifest("docker-compose.yml", "services: {}"),
    ])

    assert stack.other == ["Docker"]


def test_tsconfig_and_tailwind_config():
    stack = detect_tech_stack([
        _manifest("tsconfig.json", "{}"),
        _manifest("tailwind.config.js", "module.exports = {}"),
    ])

    assert stack.other == ["TypeScript"]
    assert stack.libraries == ["Tailwind CSS"]


def test_invalid_package_json_is_skipped():
    stack = detect_tech_stack([_manifest("package.json", "{not json")])

    assert stack.frameworks == []
    assert stack.build_tools == []


def test_source_files_are_not_inspected():
    stack = detect_tech_stack([
        SourceFile(path="src/app.py", content="import django\nimport flask", language="Python"),
    ])

    assert stack.frameworks == []
