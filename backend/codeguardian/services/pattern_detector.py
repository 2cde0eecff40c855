"""1차 탐지 엔진 — 라인 단위 정규식 규칙으로 보안/품질 이슈와 복잡도를 계산한다

순수 함수만으로 구성되어 있으며 I/O나 공유 상태가 없다.
파일 단위로 여러 스레드에서 동시에 호출해도 안전하다.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from codeguardian.services.analysis_types import (
    SNIPPET_MAX_LENGTH,
    BestPracticeFinding,
    SecurityFinding,
    SourceFile,
)

logger = logging.getLogger(__name__)

# 긴 라인 기준 (이 길이를 초과하면 탐지)
LONG_LINE_THRESHOLD = 150

# ──────────────────────────────────────────────────────────────
# 파일 분류
# ──────────────────────────────────────────────────────────────

_CODE_EXTENSIONS: tuple[str, ...] = (
    ".ts", ".tsx", ".js", ".jsx", ".py", ".java", ".cpp", ".c", ".cs", ".go",
    ".rs", ".rb", ".php", ".swift", ".kt", ".scala", ".clj", ".sh", ".bash",
    ".zsh", ".html", ".css",
)

# 기술 스택 탐지용 매니페스트/설정 파일 (파일명 기준, 소문자)
_CONFIG_FILE_NAMES: frozenset[str] = frozenset({
    "package.json",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "requirements.txt",
    "pipfile",
    "pyproject.toml",
    "go.mod",
    "cargo.toml",
    "pom.xml",
    "build.gradle",
    "dockerfile",
    "docker-compose.yml",
    "docker-compose.yaml",
    "tsconfig.json",
    "tailwind.config.js",
    "tailwind.config.ts",
    "webpack.config.js",
    "vite.config.js",
    "vite.config.ts",
    ".env.example",
})

_LANGUAGE_BY_EXTENSION: dict[str, str] = {
    "ts": "TypeScript",
    "tsx": "TypeScript",
    "js": "JavaScript",
    "jsx": "JavaScript",
    "py": "Python",
    "java": "Java",
    "cpp": "C++",
    "c": "C",
    "cs": "C#",
    "go": "Go",
    "rs": "Rust",
    "rb": "Ruby",
    "php": "PHP",
    "swift": "Swift",
    "kt": "Kotlin",
    "scala": "Scala",
    "clj": "Clojure",
    "sh": "Shell",
    "bash": "Shell",
    "zsh": "Shell",
    "yaml": "YAML",
    "yml": "YAML",
    "json": "JSON",
    "toml": "TOML",
    "xml": "XML",
    "html": "HTML",
    "css": "CSS",
}


def is_code_file(path: str) -> bool:
    """분석 대상 소스 코드 확장자인지 확인한다."""
    return path.lower().endswith(_CODE_EXTENSIONS)


def is_config_file(path: str) -> bool:
    """기술 스택 탐지용 매니페스트/설정 파일인지 확인한다."""
    return PurePosixPath(path).name.lower() in _CONFIG_FILE_NAMES


def detect_language(path: str) -> str:
    """파일 확장자에서 언어 이름을 반환한다. 미인식 확장자는 "Unknown"."""
    name = PurePosixPath(path).name
    if "." not in name:
        return "Unknown"
    ext = name.rsplit(".", 1)[-1].lower()
    return _LANGUAGE_BY_EXTENSION.get(ext, "Unknown")


# ──────────────────────────────────────────────────────────────
# 보안 규칙
# ──────────────────────────────────────────────────────────────

_SECRET_ASSIGNMENT = re.compile(
    r"(password|secret|api[_-]?key|token|private[_-]?key)\s*[=:]\s*['\"][^'\"]{8,}['\"]",
    re.IGNORECASE,
)
_SECRET_KEYWORD = re.compile(r"(password|secret|api[_-]?key|token|private[_-]?key)", re.IGNORECASE)
# 환경변수 접근자, 설정 객체, 예제/테스트 값은 하드코딩으로 보지 않는다
_SECRET_EXCLUSIONS = re.compile(
    r"process\.env|os\.environ|getenv\s*\(|config|\.env|example|sample|test|TODO|FIXME|XXX",
    re.IGNORECASE,
)

_QUERY_CALL = re.compile(r"\b(query|execute|executemany|exec|raw)\s*\(", re.IGNORECASE)
# Python의 exec()는 쿼리가 아니라 동적 코드 실행
_PY_QUERY_CALL = re.compile(r"\b(query|execute|executemany|raw)\s*\(", re.IGNORECASE)
# 템플릿 보간, 문자열 연결, f-string, % 포맷, .format()
_QUERY_INTERPOLATION = re.compile(
    r"\$\{|['\"]\s*\+|\+\s*['\"]|\bf['\"]|['\"]\s*%\s*[\w(]|\.format\s*\(",
)
_ORM_CALLS = re.compile(
    r"\.(find|findOne|create|update|delete|save)\s*\(|\bORM\b|Sequelize|TypeORM|Prisma",
)

_DYNAMIC_EVAL = re.compile(r"\beval\s*\(|\bnew\s+Function\s*\(")
_PY_DYNAMIC_EXEC = re.compile(r"\bexec\s*\(")

_INSECURE_RANDOM = re.compile(
    r"\bMath\.random\s*\(|\brandom\.(random|randint|randrange|choice|choices|getrandbits)\s*\(",
)
_SECURITY_CONTEXT_PATH = re.compile(r"(token|session|password|secret|crypto|auth)", re.IGNORECASE)

_WEAK_HASH = re.compile(
    r"\b(md5|sha1)\s*\(|createHash\(\s*['\"](md5|sha1)['\"]|hashlib\.new\(\s*['\"](md5|sha1)['\"]",
    re.IGNORECASE,
)
_HASH_CONTEXT_PATH = re.compile(r"(hash|password|digest|crypto)", re.IGNORECASE)

# ──────────────────────────────────────────────────────────────
# 코드 품질 규칙
# ──────────────────────────────────────────────────────────────

_TODO_MARKER = re.compile(r"\b(TODO|FIXME|HACK|XXX|BUG)\b[\s:]+[A-Za-z]{5,}", re.IGNORECASE)
_TODO_BODY = re.compile(r"\b(TODO|FIXME|HACK|XXX|BUG)\b[\s:]+([^\n]{10,})", re.IGNORECASE)
_COMMENT_MARKER = re.compile(r"//|/\*|#")
_TODO_EXCLUDED_PATH = re.compile(r"test|spec|example", re.IGNORECASE)

_JS_DEBUG_PRINT = re.compile(r"\bconsole\.(log|debug)\s*\(", re.IGNORECASE)
_PY_DEBUG_PRINT = re.compile(r"^\s*p?print\s*\(")
_TEST_PATH = re.compile(r"test|spec", re.IGNORECASE)

_EMPTY_CATCH_INLINE = re.compile(r"catch\s*(\([^)]*\))?\s*\{\s*\}", re.IGNORECASE)
_CATCH_OPENING = re.compile(r"\bcatch\b[^{]*\{\s*$")
_EXCEPT_OPENING = re.compile(r"^\s*except\b.*:\s*$")

_DEPRECATED_REACT = re.compile(
    r"(componentWillMount|componentWillReceiveProps|componentWillUpdate)", re.IGNORECASE
)
_JS_PATH = re.compile(r"\.(jsx?|tsx?)$", re.IGNORECASE)
_VAR_DECLARATION = re.compile(r"\bvar\s+\w+")
_LOOSE_EQUALITY = re.compile(r"(?<![=!<>])(==|!=)(?!=)")

# ──────────────────────────────────────────────────────────────
# 복잡도 (순환 복잡도 근사치)
# ──────────────────────────────────────────────────────────────

_C_FAMILY_COMPLEXITY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bif\s*\("),
    re.compile(r"\belse\s*\{"),
    re.compile(r"\bfor\s*\("),
    re.compile(r"\bwhile\s*\("),
    re.compile(r"\bswitch\s*\("),
    re.compile(r"\bcase\s+"),
    re.compile(r"\bcatch\s*\("),
    re.compile(r"\bawait\s+"),
    re.compile(r"\btry\s*\{"),
)

_PYTHON_COMPLEXITY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^\s*(el)?if\b.*:\s*(#.*)?$", re.MULTILINE),
    re.compile(r"^\s*else\s*:", re.MULTILINE),
    re.compile(r"^\s*(async\s+)?for\b.*:\s*(#.*)?$", re.MULTILINE),
    re.compile(r"^\s*while\b.*:\s*(#.*)?$", re.MULTILINE),
    re.compile(r"^\s*match\b.*:\s*(#.*)?$", re.MULTILINE),
    re.compile(r"^\s*case\b.*:\s*(#.*)?$", re.MULTILINE),
    re.compile(r"^\s*except\b.*:\s*(#.*)?$", re.MULTILINE),
    re.compile(r"\bawait\s+"),
    re.compile(r"^\s*try\s*:", re.MULTILINE),
)


@dataclass
class DetectionOutcome:
    """단일 파일 탐지 결과"""

    security: list[SecurityFinding] = field(default_factory=list)
    best_practices: list[BestPracticeFinding] = field(default_factory=list)
    complexity: int = 1


def _is_comment(stripped: str) -> bool:
    return stripped.startswith(("//", "*", "#", "/*"))


def _snippet(line: str) -> str:
    return line.strip()[:SNIPPET_MAX_LENGTH]


def calculate_complexity(content: str, language: str) -> int:
    """제어 흐름 구문 수로 복잡도를 근사한다 (기본값 1).

    정확한 순환 복잡도가 아니라 정규식 매칭 횟수의 합이다.
    """
    patterns = (
        _PYTHON_COMPLEXITY_PATTERNS if language == "Python" else _C_FAMILY_COMPLEXITY_PATTERNS
    )
    complexity = 1
    for pattern in patterns:
        complexity += len(pattern.findall(content))
    return complexity


def calculate_quality_score(
    security_issues: int,
    best_practice_issues: int,
    avg_complexity: float,
) -> int:
    """코드 품질 점수 (0 ~ 100).

    보안 이슈 1건당 -5, 품질 이슈 1건당 -1, 평균 복잡도 10 초과분 1당 -2.
    """
    score = 100.0
    score -= security_issues * 5
    score -= best_practice_issues * 1
    if avg_complexity > 10:
        score -= (avg_complexity - 10) * 2
    return max(0, min(100, round(score)))


class PatternDetector:
    """정규식 기반 1차 탐지기.

    detect()는 결정적이다. 같은 파일 내용이면 항상 같은 결과를 반환한다.
    """

    def detect(self, file: SourceFile) -> DetectionOutcome:
        """파일 하나를 검사하여 보안/품질 이슈와 복잡도를 반환한다."""
        lines = file.content.split("\n")
        return DetectionOutcome(
            security=self.check_security(file, lines),
            best_practices=self.check_best_practices(file, lines),
            complexity=calculate_complexity(file.content, file.language),
        )

    def check_security(self, file: SourceFile, lines: list[str]) -> list[SecurityFinding]:
        """보안 규칙을 라인 단위로 적용한다."""
        findings: list[SecurityFinding] = []
        security_path = bool(_SECURITY_CONTEXT_PATH.search(file.path))
        hash_path = bool(_HASH_CONTEXT_PATH.search(file.path))
        python = file.language == "Python"
        query_pattern = _PY_QUERY_CALL if python else _QUERY_CALL

        for index, line in enumerate(lines):
            line_num = index + 1
            stripped = line.strip()
            if _is_comment(stripped):
                continue

            # 하드코딩된 비밀값
            if _SECRET_ASSIGNMENT.search(line) and not _SECRET_EXCLUSIONS.search(line):
                keyword = _SECRET_KEYWORD.search(line)
                findings.append(SecurityFinding(
                    file=file.path,
                    line=line_num,
                    severity="high",
                    message=f"Hardcoded {keyword.group(1) if keyword else 'secret'} detected",
                    recommendation=(
                        "Use environment variables or a secrets manager (AWS Secrets Manager, "
                        "HashiCorp Vault). Keep real values out of version control and document "
                        "required keys in .env.example."
                    ),
                    code_snippet=_snippet(line),
                ))

            # SQL Injection: ORM 메서드 호출은 제외
            query_call = query_pattern.search(line)
            if (
                query_call
                and _QUERY_INTERPOLATION.search(line[query_call.end():])
                and not _ORM_CALLS.search(line)
            ):
                findings.append(SecurityFinding(
                    file=file.path,
                    line=line_num,
                    severity="high",
                    message="SQL injection risk: String interpolation in database query",
                    recommendation=(
                        'Use parameterized queries: db.query("SELECT * FROM users WHERE id = ?", '
                        "[userId]). For ORMs, use built-in methods that handle parameterization."
                    ),
                    code_snippet=_snippet(line),
                ))

            # eval / new Function
            if _DYNAMIC_EVAL.search(line):
                findings.append(SecurityFinding(
                    file=file.path,
                    line=line_num,
                    severity="high",
                    message="eval() usage detected - critical security vulnerability",
                    recommendation=(
                        "Replace eval() with safe alternatives: JSON.parse()/json.loads() for data, "
                        "ast.literal_eval() for Python literals, or a proper parser library."
                    ),
                    code_snippet=_snippet(line),
                ))

            # Python exec()
            if python and _PY_DYNAMIC_EXEC.search(line):
                findings.append(SecurityFinding(
                    file=file.path,
                    line=line_num,
                    severity="high",
                    message="exec() usage detected - critical security vulnerability",
                    recommendation=(
                        "Avoid exec() on dynamic input. Dispatch to known functions through a "
                        "mapping, or use ast.literal_eval() for Python literals."
                    ),
                    code_snippet=_snippet(line),
                ))

            # 보안 컨텍스트의 비암호학적 난수
            if security_path and _INSECURE_RANDOM.search(line):
                findings.append(SecurityFinding(
                    file=file.path,
                    line=line_num,
                    severity="medium",
                    message="Non-cryptographic random number generator in security-sensitive code",
                    recommendation=(
                        "Use crypto.getRandomValues()/crypto.randomBytes() (JavaScript) or the "
                        "secrets module (Python). Math.random() and random are predictable."
                    ),
                    code_snippet=_snippet(line),
                ))

            # 취약한 해시 알고리즘
            if hash_path and _WEAK_HASH.search(line):
                findings.append(SecurityFinding(
                    file=file.path,
                    line=line_num,
                    severity="medium",
                    message="Deprecated hash algorithm (MD5/SHA1) detected",
                    recommendation=(
                        "Use SHA-256 or SHA-3 for general hashing. For passwords use bcrypt, "
                        "argon2 or scrypt. Never use MD5 or SHA1 for security purposes."
                    ),
                    code_snippet=_snippet(line),
                ))

        return findings

    def check_best_practices(
        self,
        file: SourceFile,
        lines: list[str],
    ) -> list[BestPracticeFinding]:
        """코드 품질 규칙을 라인 단위로 적용한다."""
        findings: list[BestPracticeFinding] = []
        is_test_file = bool(_TEST_PATH.search(file.path))
        todo_excluded = bool(_TODO_EXCLUDED_PATH.search(file.path))
        is_js_file = bool(_JS_PATH.search(file.path))
        is_python_file = file.path.lower().endswith(".py")

        for index, line in enumerate(lines):
            line_num = index + 1
            stripped = line.strip()
            comment = _is_comment(stripped)

            # 긴 라인
            if len(line) > LONG_LINE_THRESHOLD and not comment:
                findings.append(BestPracticeFinding(
                    file=file.path,
                    line=line_num,
                    message=f"Line exceeds {LONG_LINE_THRESHOLD} characters ({len(line)} chars)",
                    recommendation=(
                        "Break into multiple lines or extract to a variable. Long lines hurt "
                        "readability and code review."
                    ),
                    code_snippet=line[:LONG_LINE_THRESHOLD] + "...",
                ))

            # TODO/FIXME 등, 설명이 있는 마커만
            if (
                not todo_excluded
                and _TODO_MARKER.search(line)
                and _COMMENT_MARKER.search(line)
            ):
                match = _TODO_BODY.search(line)
                if match:
                    body = match.group(2).strip()
                    suffix = "..." if len(body) > 60 else ""
                    findings.append(BestPracticeFinding(
                        file=file.path,
                        line=line_num,
                        message=f"{match.group(1)} found: {body[:60]}{suffix}",
                        recommendation=(
                            "Create an issue to track this and reference it in the comment "
                            "(e.g., TODO #123)."
                        ),
                        code_snippet=_snippet(line),
                    ))

            # 디버그 출력
            if not is_test_file and not comment and (
                _JS_DEBUG_PRINT.search(line)
                or (is_python_file and _PY_DEBUG_PRINT.search(line))
            ):
                findings.append(BestPracticeFinding(
                    file=file.path,
                    line=line_num,
                    message="Debug print statement in production code",
                    recommendation=(
                        "Use a logging library (logging, Winston, Pino) with log levels and "
                        "disable DEBUG output in production."
                    ),
                    code_snippet=_snippet(line),
                ))

            # 빈 예외 처리 블록
            if not comment and self._is_empty_handler(lines, index):
                findings.append(BestPracticeFinding(
                    file=file.path,
                    line=line_num,
                    message="Empty exception handler - errors are silently swallowed",
                    recommendation=(
                        "Log the error with context, report it to monitoring, or re-raise it. "
                        "Silent failures make debugging impossible."
                    ),
                    code_snippet=_snippet(line),
                ))

            if not is_js_file or comment:
                continue

            # 폐기된 React 생명주기 메서드
            if _DEPRECATED_REACT.search(line):
                findings.append(BestPracticeFinding(
                    file=file.path,
                    line=line_num,
                    message="Deprecated React lifecycle method",
                    recommendation=(
                        "Use useEffect() for side effects, getDerivedStateFromProps() for derived "
                        "state, or getSnapshotBeforeUpdate() for snapshots."
                    ),
                    code_snippet=_snippet(line),
                ))

            # var 선언
            if _VAR_DECLARATION.search(line):
                findings.append(BestPracticeFinding(
                    file=file.path,
                    line=line_num,
                    message="var declaration used instead of let/const",
                    recommendation=(
                        "Use const by default and let when reassignment is needed. var is "
                        "function-scoped and hoisted."
                    ),
                    code_snippet=_snippet(line),
                ))

            # 느슨한 동등 비교
            if _LOOSE_EQUALITY.search(line):
                findings.append(BestPracticeFinding(
                    file=file.path,
                    line=line_num,
                    message="Loose equality (==) instead of strict equality (===)",
                    recommendation=(
                        "Use === and !== to avoid type coercion bugs (ESLint rule: eqeqeq)."
                    ),
                    code_snippet=_snippet(line),
                ))

        return findings

    @staticmethod
    def _is_empty_handler(lines: list[str], index: int) -> bool:
        """catch/except 블록이 비어 있는지 확인한다.

        - 같은 라인에서 닫히는 경우: catch (e) {}
        - 다음 비어 있지 않은 라인이 블록을 닫는 경우: '}' 또는 'pass'
        """
        line = lines[index]
        if _EMPTY_CATCH_INLINE.search(line):
            return True

        js_opening = bool(_CATCH_OPENING.search(line))
        py_opening = bool(_EXCEPT_OPENING.match(line))
        if not js_opening and not py_opening:
            return False

        for following in lines[index + 1:]:
            candidate = following.strip()
            if not candidate:
                continue
            if js_opening:
                return candidate.startswith("}")
            return candidate == "pass"
        return False
