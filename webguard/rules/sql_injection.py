# SQL injection: queries built from template literals or string concatenation and sent to a database.

from __future__ import annotations

import re
from typing import Optional

from tree_sitter import Node as TSNode

from webguard.corpus import SourceFile
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.patterns import CompositePattern, PatternDefinition, PatternMatch, RegexPattern
from webguard.rules.base import Rule
from webguard.rules.constants import (
    DATABASE_OBJECT_HINTS,
    JS_EXTENSIONS,
    SQL_EXECUTION_METHODS,
    SQL_INPUT_SOURCES,
    SQL_KEYWORDS,
    SQL_LIBRARIES,
    name_matches,
)
from webguard.syntax import (
    NodeKind,
    call_arguments,
    call_name,
    callee,
    find_nodes_by_kind,
    get_node_text,
    has_substitution,
)


def _statement(body: str) -> str:
    """Regex for the start of a data statement; `body` is the character class allowed in between."""
    return (
        r"(?:SELECT\b" + body + r"*?\bFROM|INSERT\s+INTO|UPDATE\s+[\w.\"`]+\s+SET|DELETE\s+FROM)\b"
    )


SQL_STATEMENT = re.compile(_statement(r"[\s\S]"), re.IGNORECASE)

RAW_SQL_METHODS = frozenset({"query", "execute", "exec", "raw", "sql", "$queryRawUnsafe", "$executeRawUnsafe"})
_IDENTIFIER_CALLEES = frozenset({"query", "execute", "sql", "raw"})
_DIRECT_INPUT = ("req.", "request.", "query", "params", "body")
_EXECUTION_WITH_SQL = re.compile(
    r"(?:query|execute|exec|sql)\s*\([^)]*(?:" + "|".join(re.escape(k) for k in SQL_KEYWORDS) + ")",
    re.IGNORECASE,
)
_DB_CALL = re.compile(r"\b(?:pool|db|connection|client)\.query\s*\(")


def _sql(id: str, name: str, description: str, pattern, severity: Severity, confidence: Confidence) -> PatternDefinition:
    return PatternDefinition(
        id=id,
        name=name,
        description=description,
        pattern=pattern,
        vulnerability_type=VulnerabilityType.SQL_INJECTION,
        severity=severity,
        confidence=confidence,
        file_extensions=JS_EXTENSIONS,
    )


SQL_PATTERNS = (
    _sql(
        "sql-template-literal",
        "SQL template literal with variables",
        "SQL query built with a template literal containing ${...}; potential SQL injection",
        RegexPattern(r"`(?=[^`]*\$\{)[^`]*?" + _statement(r"[^`]") + r"[^`]*`", flags=re.IGNORECASE),
        Severity.CRITICAL,
        Confidence.HIGH,
    ),
    _sql(
        "sql-string-concatenation",
        "SQL string concatenation",
        "SQL query built with string concatenation; potential SQL injection",
        RegexPattern(r"(['\"])[^'\"]*?" + _statement(r"[^'\"]") + r"[^'\"]*\1\s*\+", flags=re.IGNORECASE),
        Severity.CRITICAL,
        Confidence.HIGH,
    ),
    _sql(
        "raw-sql-with-variables",
        "Raw SQL execution with variables",
        "Raw SQL execution with dynamic content; verify the query is parameterised",
        CompositePattern(
            required=(
                RegexPattern(
                    r"\b(?:query|execute|exec|raw|sql)\s*\(\s*[^)]*\$\{|\b(?:query|execute|exec|raw|sql)\s*\(\s*[^)]*\+",
                    flags=re.IGNORECASE,
                ),
            ),
            excluded=(
                RegexPattern(r"\b(?:escape|escapeId|format)\s*\(|sqlstring|SqlString\.", flags=re.IGNORECASE),
            ),
            context_lines=2,
        ),
        Severity.HIGH,
        Confidence.MEDIUM,
    ),
)


def detect_sql_libraries(content: str) -> list[str]:
    """SQL client libraries imported or required by the file."""
    found = []
    for lib in SQL_LIBRARIES:
        quoted = re.escape(lib)
        if re.search(r"from\s+['\"]" + quoted + r"(?:/[^'\"]*)?['\"]|require\(\s*['\"]" + quoted + r"['\"]\s*\)", content):
            found.append(lib)
    return found


def has_sql_content(content: str) -> bool:
    return bool(_EXECUTION_WITH_SQL.search(content) or _DB_CALL.search(content))


def _input_sources(expressions: list[str]) -> list[str]:
    sources = []
    for text in expressions:
        lowered = text.lower()
        if any(source.lower() in lowered for source in SQL_INPUT_SOURCES):
            sources.append(text)
    return sources


class SqlInjectionRule(Rule):
    """Dynamic SQL reaching query(), execute(), raw() and friends on a database handle."""

    id = "sql-injection"
    name = "SQL injection"
    vulnerability_type = VulnerabilityType.SQL_INJECTION
    default_severity = Severity.CRITICAL
    patterns = SQL_PATTERNS

    def is_relevant_content(self, source_file: SourceFile) -> bool:
        return bool(detect_sql_libraries(source_file.content)) or has_sql_content(source_file.content)

    def validate_match(self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile) -> bool:
        # execution calls are reported from the tree when the file parsed
        if definition.id == "raw-sql-with-variables" and source_file.tree is not None:
            return False
        return super().validate_match(definition, match, source_file)

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        libraries = detect_sql_libraries(source_file.content)
        findings: list[Finding] = []
        for node in find_nodes_by_kind(source_file.root_node, NodeKind.CALL_EXPRESSION):
            finding = self._check_call(source_file, node, libraries)
            if finding is not None:
                findings.append(finding)
        return findings

    def _is_execution_call(self, node: TSNode, method: Optional[str], source: bytes) -> bool:
        if method not in SQL_EXECUTION_METHODS:
            return False
        fn = callee(node)
        if fn is None:
            return False
        if fn.type == NodeKind.IDENTIFIER.value:
            return method in _IDENTIFIER_CALLEES
        if fn.type == NodeKind.MEMBER_EXPRESSION.value:
            obj = fn.child_by_field_name("object")
            return obj is not None and name_matches(get_node_text(obj, source), DATABASE_OBJECT_HINTS)
        return False

    def _dynamic_parts(self, node: TSNode, source: bytes) -> Optional[list[str]]:
        """
        Interpolated expressions of a dynamically built SQL statement, or None if
        `node` is not one (plain string, parameter array, query without SQL).
        """
        text = get_node_text(node, source)
        if not SQL_STATEMENT.search(text):
            return None
        if has_substitution(node):
            return [
                get_node_text(child.named_children[0], source)
                for child in node.named_children
                if child.type == NodeKind.TEMPLATE_SUBSTITUTION.value and child.named_children
            ]
        if node.type == NodeKind.BINARY_EXPRESSION.value:
            operator = node.child_by_field_name("operator")
            if operator is None or get_node_text(operator, source) != "+":
                return None
            parts: list[str] = []
            stack = [node]
            while stack:
                current = stack.pop()
                if current.type == NodeKind.BINARY_EXPRESSION.value:
                    stack.extend(c for c in (current.child_by_field_name("left"), current.child_by_field_name("right")) if c is not None)
                elif current.type not in (NodeKind.STRING.value, NodeKind.TEMPLATE_STRING.value):
                    parts.append(get_node_text(current, source))
            return parts if parts else None
        return None

    def _check_call(self, source_file: SourceFile, node: TSNode, libraries: list[str]) -> Optional[Finding]:
        source = source_file.source
        method = call_name(node, source)
        if not self._is_execution_call(node, method, source):
            return None
        args = call_arguments(node)
        if not args:
            return None
        query = args[0]
        parts = self._dynamic_parts(query, source)
        if parts is None:
            return None

        sources = _input_sources(parts)
        direct = any(marker in s.lower() for s in sources for marker in _DIRECT_INPUT)
        if sources:
            description = f"SQL passed to {method}() is built from user input: {', '.join(sources)}"
        else:
            description = f"SQL passed to {method}() is built dynamically; use parameterised queries"
        return self.finding_from_node(
            source_file,
            query,
            description,
            severity=Severity.CRITICAL if method in RAW_SQL_METHODS else Severity.HIGH,
            confidence=Confidence.HIGH if direct else Confidence.MEDIUM,
            metadata={
                "method": method,
                "user_input_sources": sources,
                "construction": "template-literal" if query.type == NodeKind.TEMPLATE_STRING.value else "concatenation",
                "sql_libraries": libraries,
            },
        )
