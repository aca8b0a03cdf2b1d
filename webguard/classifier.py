"""
File context classification.

classify(path, content) derives the security-relevant facts about a file that
rules use to tune confidence: its role in the application (API handler,
middleware, component, ...), which risk vocabularies appear in it, whether it
handles sensitive data, whether it is reachable from the browser, and which
auth libraries and environment variables it references.

Classification is pure: the same (path, content) always gives the same
FileContextInfo, and results are memoised by path and content digest.
"""

from __future__ import annotations

import hashlib
import re
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath


class FileRole(str, Enum):
    API_HANDLER = "api-handler"
    MIDDLEWARE = "middleware"
    CONFIGURATION = "configuration"
    ENVIRONMENT = "environment"
    TEST = "test"
    COMPONENT = "component"
    UTILITY = "utility"
    UNKNOWN = "unknown"


class RiskContext(str, Enum):
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    DATA_PROCESSING = "data-processing"
    EXTERNAL_COMMUNICATION = "external-communication"
    CONFIGURATION = "configuration"
    CLIENT_SIDE = "client-side"
    SERVER_SIDE = "server-side"
    NONE = "none"


@dataclass(frozen=True)
class FileContextInfo:
    role: FileRole
    risk_contexts: frozenset[RiskContext]
    handles_sensitive_data: bool
    is_client_side: bool
    has_network_access: bool
    auth_libraries: tuple[str, ...] = ()
    env_variables: tuple[str, ...] = ()

    @property
    def is_test(self) -> bool:
        return self.role == FileRole.TEST

    @property
    def is_auth_sensitive(self) -> bool:
        return bool(self.risk_contexts & {RiskContext.AUTHENTICATION, RiskContext.AUTHORIZATION})


CONFIG_FILES = frozenset(
    {
        "next.config.js",
        "next.config.ts",
        "next.config.mjs",
        "tailwind.config.js",
        "tailwind.config.ts",
        "postcss.config.js",
        "webpack.config.js",
        "webpack.config.ts",
        "vite.config.js",
        "vite.config.ts",
        "rollup.config.js",
        "tsconfig.json",
        "package.json",
        ".eslintrc.js",
        ".eslintrc.json",
        "babel.config.js",
        "jest.config.js",
        "jest.config.ts",
        "vitest.config.ts",
    }
)

MIDDLEWARE_FILES = frozenset({"middleware.ts", "middleware.js"})
UTILITY_DIRS = ("/utils/", "/lib/", "/helpers/")
SERVER_ONLY_ROLES = frozenset({FileRole.API_HANDLER, FileRole.MIDDLEWARE, FileRole.CONFIGURATION, FileRole.ENVIRONMENT})

_TEST_NAME = re.compile(r"\.(test|spec)\.(ts|tsx|js|jsx|mjs|cjs)$")
_TEST_DIRS = ("__tests__", "__mocks__", "/test/", "/tests/")

_REACT_IMPORT = re.compile(r"""from\s+['"]react['"]|require\(\s*['"]react['"]\s*\)""")
_MARKUP = re.compile(r"<[A-Za-z][\w.]*[\s/>]")
_COMPONENT_EXTENSIONS = (".jsx", ".tsx")

_RISK_PATTERNS: dict[RiskContext, re.Pattern[str]] = {
    RiskContext.AUTHENTICATION: re.compile(r"login|logout|signin|signout|authenticate|session|cookie|token|jwt", re.I),
    RiskContext.AUTHORIZATION: re.compile(r"authorize|permission|role|access|acl|rbac|guard|protect", re.I),
    RiskContext.DATA_PROCESSING: re.compile(
        r"JSON\.parse|JSON\.stringify|serialize|deserialize|validate|sanitize|transform", re.I
    ),
    RiskContext.EXTERNAL_COMMUNICATION: re.compile(r"fetch|axios|http|api|request|webhook|graphql|rest", re.I),
    RiskContext.CONFIGURATION: re.compile(r"config|settings|environment|env|dotenv", re.I),
    RiskContext.CLIENT_SIDE: re.compile(
        r"window\.|document\.|localStorage|sessionStorage|location\.|navigator\.", re.I
    ),
    RiskContext.SERVER_SIDE: re.compile(r"process\.|require\(|import.*node:|fs\.|path\.|os\.", re.I),
}

_SENSITIVE_DATA = re.compile(
    r"password|secret|token|api[_-]?key|private[_-]?key|credit[_-]?card|ssn|social[_-]?security"
    r"|personal[_-]?data|pii|encrypt|decrypt|hash|bcrypt|jwt",
    re.I,
)

_NETWORK = re.compile(
    r"fetch\s*\(|axios\.|http\.|https\.|XMLHttpRequest|websocket|socket\.io|request\s*\(|got\s*\(|superagent|node-fetch",
    re.I,
)

AUTH_LIBRARIES: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("next-auth", re.compile(r"next-auth", re.I)),
    ("auth0", re.compile(r"@auth0", re.I)),
    ("clerk", re.compile(r"clerk", re.I)),
    ("passport", re.compile(r"passport", re.I)),
    ("jsonwebtoken", re.compile(r"jsonwebtoken", re.I)),
    ("jwt-decode", re.compile(r"jwt-decode", re.I)),
    ("bcrypt", re.compile(r"bcrypt", re.I)),
    ("argon2", re.compile(r"argon2", re.I)),
    ("scrypt", re.compile(r"scrypt", re.I)),
    ("firebase-auth", re.compile(r"firebase.*auth", re.I)),
    ("supabase-auth", re.compile(r"supabase.*auth", re.I)),
)

_ENV_VARIABLE = re.compile(r"(?:process\.env|import\.meta\.env)\.(\w+)")


def _normalize(path: str) -> str:
    return "/" + path.replace("\\", "/").lstrip("/")


def is_test_path(path: str) -> bool:
    normalized = _normalize(path)
    return bool(_TEST_NAME.search(normalized)) or any(d in normalized for d in _TEST_DIRS)


def is_config_file(path: str) -> bool:
    return PurePosixPath(_normalize(path)).name in CONFIG_FILES


def _is_component(path: str, content: str) -> bool:
    if not _MARKUP.search(content):
        return False
    return bool(_REACT_IMPORT.search(content)) or path.lower().endswith(_COMPONENT_EXTENSIONS)


def determine_role(path: str, content: str) -> FileRole:
    """First matching role wins; see FileRole for the order."""
    normalized = _normalize(path)
    name = PurePosixPath(normalized).name

    if "/api/" in normalized:
        return FileRole.API_HANDLER
    if name in MIDDLEWARE_FILES or "/middleware/" in normalized:
        return FileRole.MIDDLEWARE
    if is_config_file(normalized):
        return FileRole.CONFIGURATION
    if name.startswith(".env"):
        return FileRole.ENVIRONMENT
    if is_test_path(normalized):
        return FileRole.TEST
    if _is_component(normalized, content):
        return FileRole.COMPONENT
    if any(d in normalized for d in UTILITY_DIRS):
        return FileRole.UTILITY
    return FileRole.UNKNOWN


def identify_risk_contexts(content: str, role: FileRole) -> frozenset[RiskContext]:
    contexts = {ctx for ctx, pattern in _RISK_PATTERNS.items() if pattern.search(content)}
    if role == FileRole.CONFIGURATION:
        contexts.add(RiskContext.CONFIGURATION)
    return frozenset(contexts) if contexts else frozenset({RiskContext.NONE})


def is_client_side_file(path: str, role: FileRole) -> bool:
    """
    Whether code in the file can end up in the browser.

    Server-only roles and /server/ paths are never client-side; everything
    else (components, pages, app, public, unknown files) is treated as
    reachable.
    """
    normalized = _normalize(path)
    if role in SERVER_ONLY_ROLES or "/server/" in normalized:
        return False
    return True


def extract_auth_libraries(content: str) -> tuple[str, ...]:
    return tuple(name for name, pattern in AUTH_LIBRARIES if pattern.search(content))


def extract_env_variables(content: str) -> tuple[str, ...]:
    """Distinct environment variable names in order of first access."""
    return tuple(dict.fromkeys(_ENV_VARIABLE.findall(content)))


_CACHE_SIZE = 4096
_cache: OrderedDict[tuple[str, str], FileContextInfo] = OrderedDict()
_cache_lock = threading.Lock()


def _digest(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8", errors="surrogatepass")).hexdigest()


def classify(path: str, content: str) -> FileContextInfo:
    """
    Classify one file, memoised on (path, content digest).

    The cache holds at most _CACHE_SIZE entries, least recently used first out,
    and keeps only the digest of each file, never its text.
    """
    key = (path, _digest(content))
    with _cache_lock:
        info = _cache.get(key)
        if info is not None:
            _cache.move_to_end(key)
            return info
    info = _classify(path, content)
    with _cache_lock:
        _cache[key] = info
        _cache.move_to_end(key)
        while len(_cache) > _CACHE_SIZE:
            _cache.popitem(last=False)
    return info


def clear_cache() -> None:
    with _cache_lock:
        _cache.clear()


def _classify(path: str, content: str) -> FileContextInfo:
    role = determine_role(path, content)
    return FileContextInfo(
        role=role,
        risk_contexts=identify_risk_contexts(content, role),
        handles_sensitive_data=bool(_SENSITIVE_DATA.search(content)),
        is_client_side=is_client_side_file(path, role),
        has_network_access=bool(_NETWORK.search(content)),
        auth_libraries=extract_auth_libraries(content),
        env_variables=extract_env_variables(content),
    )
