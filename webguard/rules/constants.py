# Keyword tables shared by several rules (sensitive names, test/gating markers, sanitizers).

from __future__ import annotations

import re

JS_EXTENSIONS = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs")

# Path segments of dependency, build, VCS and coverage output
EXCLUDED_PATH_SEGMENTS = frozenset(
    {
        "node_modules",
        "bower_components",
        "dist",
        "build",
        "out",
        ".next",
        ".nuxt",
        ".output",
        ".git",
        ".svn",
        ".hg",
        "coverage",
        ".nyc_output",
        ".cache",
    }
)

# Test framework calls; the lookbehind keeps `/re/.test(` and `submit(` from matching
TEST_CONTEXT = re.compile(
    r"(?<![\w.$])(?:describe|it|test|expect|beforeEach|afterEach|beforeAll|afterAll|suite)\s*\("
    r"|(?<![\w.$])(?:jest|vi|vitest|jasmine|sinon|cypress|cy)\.",
)

DEVELOPMENT_GATES = (
    re.compile(r"process\.env\.NODE_ENV\s*===?\s*[\"']development[\"']"),
    re.compile(r"process\.env\.NODE_ENV\s*!==?\s*[\"']production[\"']"),
    re.compile(r"NODE_ENV\s*===?\s*['\"]development['\"]"),
    re.compile(r"\bisDevelopment\b", re.I),
    re.compile(r"\bisDevMode\b", re.I),
    re.compile(r"\bisDev\s*&&"),
    re.compile(r"\bif\s*\(\s*(?:isDev|isDebug|debugMode)\s*[)&|]"),
    re.compile(r"__DEV__"),
    re.compile(r"import\.meta\.env\.DEV\b"),
    re.compile(r"import\.meta\.env\.MODE\s*===?\s*['\"]development['\"]"),
)

SENSITIVE_VARIABLE_NAMES = (
    "password",
    "passwd",
    "pwd",
    "passphrase",
    "secret",
    "token",
    "jwt",
    "access_token",
    "refresh_token",
    "auth",
    "session_token",
    "api_key",
    "apikey",
    "private_key",
    "privatekey",
    "client_secret",
    "webhook_secret",
    "encryption_key",
    "signing_key",
    "database_url",
    "db_url",
    "connection_string",
    "db_password",
)

# Sensitive names to look for in logged values
CONSOLE_SENSITIVE_KEYWORDS = (
    "password",
    "passwd",
    "pwd",
    "secret",
    "token",
    "auth",
    "api_key",
    "apikey",
    "private_key",
    "privatekey",
    "jwt",
    "session",
    "cookie",
    "credit_card",
    "creditcard",
    "ssn",
    "confidential",
)

EXPLICIT_SENSITIVE_KEYWORDS = ("password", "secret", "private_key", "privatekey", "ssn", "credit_card", "creditcard")

PLACEHOLDER_PATTERNS = (
    re.compile(r"^(your|my|test|example|demo|sample)", re.I),
    re.compile(r"^(xxx+|yyy+|zzz+)", re.I),
    re.compile(r"^(123+|abc+)", re.I),
    re.compile(r"placeholder", re.I),
    re.compile(r"example", re.I),
    re.compile(r"^<.*>$"),
    re.compile(r"^\[.*\]$"),
    re.compile(r"^\{.*\}$"),
    re.compile(r"^(TODO|FIXME|CHANGE|REPLACE)", re.I),
    re.compile(r"^(enter|insert|add|put).*here", re.I),
    re.compile(r"^(api|secret|token|key).*(here|value|goes)", re.I),
    re.compile(r"^\*+$"),
)

SANITIZATION_LIBRARIES = ("DOMPurify", "dompurify", "sanitize-html", "isomorphic-dompurify", "xss", "js-xss")

SANITIZATION_CALLS = (
    re.compile(r"DOMPurify\.(sanitize|clean)", re.I),
    re.compile(r"\bsanitize(?:Html|HTML)?\s*\("),
    re.compile(r"\bpurify\s*\("),
    re.compile(r"\bxss\s*\("),
    re.compile(r"\b(?:escapeHtml|htmlEscape|encodeHTML|htmlEncode)\s*\("),
)

# Substrings of names that indicate a security-relevant random value
SECURITY_CONTEXTS = (
    "token",
    "uuid",
    "guid",
    "nonce",
    "salt",
    "challenge",
    "csrf",
    "xsrf",
    "session",
    "auth",
    "password",
    "secret",
    "passphrase",
    "otp",
    "verification",
    "key",
    "encrypt",
    "hash",
    "hmac",
    "signature",
    "crypto",
    "cipher",
    "captcha",
)

# Names where Math.random() is expected (layout, animation, demo data)
UI_VISUAL_CONTEXTS = (
    "position",
    "layout",
    "coordinate",
    "width",
    "height",
    "offset",
    "margin",
    "padding",
    "animation",
    "transition",
    "duration",
    "delay",
    "opacity",
    "color",
    "jitter",
    "particle",
    "skeleton",
    "placeholder",
    "demo",
    "mock",
    "sample",
    "chart",
    "graph",
)

SECURE_RANDOM_ALTERNATIVES = (
    "crypto.randomBytes",
    "crypto.randomInt",
    "crypto.randomUUID",
    "crypto.getRandomValues",
    "nanoid",
    "uuid",
)

SERVER_ONLY_ENV_VARS = frozenset(
    {
        "DATABASE_URL",
        "DB_HOST",
        "DB_PASSWORD",
        "DB_USER",
        "MONGODB_URI",
        "POSTGRES_URL",
        "MYSQL_PASSWORD",
        "REDIS_URL",
        "REDIS_PASSWORD",
        "SECRET_KEY",
        "JWT_SECRET",
        "SESSION_SECRET",
        "ENCRYPTION_KEY",
        "PRIVATE_KEY",
        "API_SECRET",
        "WEBHOOK_SECRET",
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_SESSION_TOKEN",
        "GITHUB_SECRET",
        "GOOGLE_CLIENT_SECRET",
        "NEXTAUTH_SECRET",
        "CLERK_SECRET_KEY",
        "FIREBASE_PRIVATE_KEY",
        "SMTP_PASSWORD",
        "SENDGRID_API_KEY",
    }
)

CLIENT_SAFE_ENV_PREFIXES = (
    "NEXT_PUBLIC_",
    "PUBLIC_",
    "REACT_APP_",
    "VITE_",
    "EXPO_PUBLIC_",
    "NUXT_PUBLIC_",
    "GATSBY_",
    "VUE_APP_",
    "FEATURE_",
    "ENABLE_",
    "DISABLE_",
)

CLIENT_SAFE_ENV_VARS = frozenset({"NODE_ENV", "APP_NAME", "APP_VERSION", "BUILD_ID", "COMMIT_SHA"})

ENV_SENSITIVE_KEYWORDS = ("SECRET", "PASSWORD", "KEY", "TOKEN", "PRIVATE", "CREDENTIAL", "AUTH", "WEBHOOK")

CONSOLE_METHODS = frozenset(
    {
        "log",
        "info",
        "warn",
        "error",
        "debug",
        "trace",
        "dir",
        "table",
    }
)

DEBUG_CONSOLE_METHODS = frozenset(
    {
        "debug",
        "trace",
        "group",
        "groupCollapsed",
        "groupEnd",
        "time",
        "timeEnd",
        "timeLog",
        "profile",
        "profileEnd",
        "count",
        "countReset",
        "table",
        "dir",
        "dirxml",
    }
)

DEBUG_VARIABLE_NAMES = frozenset({"debug", "DEBUG", "isDebug", "debugMode", "isDev", "devMode", "DEV_MODE", "DEBUG_MODE"})

SQL_LIBRARIES = (
    "mysql",
    "mysql2",
    "pg",
    "postgres",
    "sqlite3",
    "better-sqlite3",
    "sequelize",
    "typeorm",
    "knex",
    "drizzle-orm",
)

SQL_KEYWORDS = (
    "SELECT",
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "CREATE",
    "ALTER",
    "UNION",
    "WHERE",
    "ORDER BY",
    "GROUP BY",
    "HAVING",
    "JOIN",
    "FROM",
    "INTO",
    "VALUES",
    "LIMIT",
)

SQL_EXECUTION_METHODS = frozenset(
    {"query", "execute", "exec", "run", "all", "get", "prepare", "raw", "sql", "$queryRawUnsafe", "$executeRawUnsafe"}
)

DATABASE_OBJECT_HINTS = ("pool", "db", "connection", "conn", "client", "database", "knex", "sequelize", "prisma")

# Expressions that carry request data into a query
SQL_INPUT_SOURCES = ("req.", "request.", "params", "query", "body", "searchParams", "formData", "input")


def name_matches(name: str, keywords: tuple[str, ...]) -> bool:
    """True if any keyword is a substring of name, ignoring case and `_`/`-` separators."""
    lowered = name.lower()
    collapsed = lowered.replace("_", "").replace("-", "")
    for keyword in keywords:
        if keyword in lowered or keyword.replace("_", "") in collapsed:
            return True
    return False


def is_placeholder_value(value: str) -> bool:
    return any(p.search(value) for p in PLACEHOLDER_PATTERNS)


def is_environment_gated(text: str) -> bool:
    return any(p.search(text) for p in DEVELOPMENT_GATES)


def is_test_context(text: str) -> bool:
    return bool(TEST_CONTEXT.search(text))
