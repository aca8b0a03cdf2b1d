# Debug code left in production: debugger statements, hardcoded debug flags, console debug helpers.

from __future__ import annotations

from typing import Any, Optional

from tree_sitter import Node as TSNode

from webguard.corpus import SourceFile
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.patterns import PatternDefinition, PatternMatch, RegexPattern, TreePattern
from webguard.rules.base import Rule, is_gated_node
from webguard.rules.constants import DEBUG_CONSOLE_METHODS, DEBUG_VARIABLE_NAMES, JS_EXTENSIONS
from webguard.syntax import NodeKind, assignment_target, call_name, callee, get_node_text, iter_nodes

_DEBUG_NAMES = "|".join(sorted(DEBUG_VARIABLE_NAMES, key=len, reverse=True))
_CONSOLE_DEBUG = "|".join(sorted(DEBUG_CONSOLE_METHODS, key=len, reverse=True))
_DEBUG_TYPES = {
    "debugger-statement": "debugger-statement",
    "debug-flag-true": "debug-variable",
    "console-debug-methods": "console-debug",
}


def _debug(id: str, name: str, description: str, pattern, severity: Severity, confidence: Confidence) -> PatternDefinition:
    return PatternDefinition(
        id=id,
        name=name,
        description=description,
        pattern=pattern,
        vulnerability_type=VulnerabilityType.DEBUG_CODE,
        severity=severity,
        confidence=confidence,
        file_extensions=JS_EXTENSIONS,
    )


DEBUG_PATTERNS = (
    _debug(
        "debugger-statement",
        "debugger statement",
        "debugger statement found; remove it before deploying",
        TreePattern(NodeKind.DEBUGGER_STATEMENT.value),
        Severity.HIGH,
        Confidence.HIGH,
    ),
    _debug(
        "debugger-statement",
        "debugger statement",
        "debugger statement found; remove it before deploying",
        RegexPattern(r"\bdebugger\b\s*;?"),
        Severity.HIGH,
        Confidence.HIGH,
    ),
    _debug(
        "debug-flag-true",
        "Debug flag set to true",
        "Debug flag hardcoded to true; debug behaviour may reach production",
        RegexPattern(r"\b(?:" + _DEBUG_NAMES + r")\s*[:=]\s*true\b"),
        Severity.MEDIUM,
        Confidence.MEDIUM,
    ),
    _debug(
        "console-debug-methods",
        "Console debug methods",
        "Console debug helper left in code; remove it or gate it behind a development check",
        RegexPattern(r"\bconsole\.(?:" + _CONSOLE_DEBUG + r")\b"),
        Severity.MEDIUM,
        Confidence.MEDIUM,
    ),
)


class DebugCodeRule(Rule):
    id = "debug-code"
    name = "Debug code"
    vulnerability_type = VulnerabilityType.DEBUG_CODE
    default_severity = Severity.MEDIUM
    patterns = DEBUG_PATTERNS
    suppress_gated_code = True

    def validate_match(self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile) -> bool:
        # the text form only stands in for the tree pattern on unparsed files
        if isinstance(definition.pattern, RegexPattern) and definition.id == "debugger-statement":
            if source_file.tree is not None:
                return False
        return super().validate_match(definition, match, source_file)

    def match_metadata(self, definition: PatternDefinition, match: PatternMatch) -> dict[str, Any]:
        return {"debug_type": _DEBUG_TYPES.get(definition.id, definition.id)}

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        findings: list[Finding] = []
        for node in iter_nodes(source_file.root_node):
            if node.type == NodeKind.TRUE.value:
                finding = self._check_debug_flag(source_file, node)
            elif node.type == NodeKind.CALL_EXPRESSION.value:
                finding = self._check_console_debug(source_file, node)
            else:
                continue
            if finding is not None:
                findings.append(finding)
        return findings

    def _check_debug_flag(self, source_file: SourceFile, node: TSNode) -> Optional[Finding]:
        target = assignment_target(node, source_file.source)
        if target is None or target[0] not in DEBUG_VARIABLE_NAMES:
            return None
        if is_gated_node(node, source_file):
            return None
        name, binding = target
        parent = node.parent
        anchor = parent
        if parent.type == NodeKind.ASSIGNMENT_EXPRESSION.value:
            left = parent.child_by_field_name("left")
            if left is not None and left.type == NodeKind.MEMBER_EXPRESSION.value:
                anchor = left.child_by_field_name("property") or left
        return self.finding_from_node(
            source_file,
            anchor,
            f"Debug flag '{name}' hardcoded to true; debug behaviour may reach production",
            confidence=Confidence.MEDIUM,
            metadata={"debug_type": "debug-variable", "variable_name": name, "binding": binding},
        )

    def _check_console_debug(self, source_file: SourceFile, node: TSNode) -> Optional[Finding]:
        fn = callee(node)
        if fn is None or fn.type != NodeKind.MEMBER_EXPRESSION.value:
            return None
        obj = fn.child_by_field_name("object")
        method = call_name(node, source_file.source)
        if obj is None or get_node_text(obj, source_file.source) != "console" or method not in DEBUG_CONSOLE_METHODS:
            return None
        if is_gated_node(node, source_file):
            return None
        return self.finding_from_node(
            source_file,
            node,
            f"console.{method}() left in code; remove it or gate it behind a development check",
            confidence=Confidence.MEDIUM,
            metadata={"debug_type": "console-debug", "console_method": method},
        )
