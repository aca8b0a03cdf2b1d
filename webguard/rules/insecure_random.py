# Insecure randomness: Math.random() and Date.now() arithmetic used for tokens, ids and secrets.

from __future__ import annotations

import re
from typing import Any, Optional

from tree_sitter import Node as TSNode

from webguard.classifier import FileContextInfo, RiskContext
from webguard.corpus import SourceFile
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.patterns import PatternDefinition, PatternMatch, RegexPattern
from webguard.rules.base import Rule
from webguard.rules.constants import (
    JS_EXTENSIONS,
    SECURE_RANDOM_ALTERNATIVES,
    SECURITY_CONTEXTS,
    UI_VISUAL_CONTEXTS,
    name_matches,
)
from webguard.syntax import (
    FUNCTION_KINDS,
    NodeKind,
    assignment_target,
    callee,
    enclosing_function_name,
    find_nodes_by_kind,
    get_node_context,
    get_node_text,
)

RANDOM_PATTERNS = (
    PatternDefinition(
        id="math-random-security",
        name="Math.random() in security context",
        description="Math.random() is not cryptographically secure; use crypto.getRandomValues() or crypto.randomBytes()",
        pattern=RegexPattern(r"\bMath\.random\s*\(\s*\)"),
        vulnerability_type=VulnerabilityType.INSECURE_RANDOM,
        severity=Severity.HIGH,
        confidence=Confidence.MEDIUM,
        file_extensions=JS_EXTENSIONS,
    ),
    PatternDefinition(
        id="date-now-random",
        name="Date.now() used as randomness",
        description="Date.now() arithmetic is predictable and must not be used as a random source",
        pattern=RegexPattern(r"\bDate\.now\s*\(\s*\)\s*%"),
        vulnerability_type=VulnerabilityType.INSECURE_RANDOM,
        severity=Severity.HIGH,
        confidence=Confidence.MEDIUM,
        file_extensions=JS_EXTENSIONS,
    ),
)

SECURITY_CONTEXT_LINES = 5

_SECURITY_WORDS = re.compile("|".join(re.escape(k) for k in SECURITY_CONTEXTS if k != "key") + r"|\w+key\b|\bkey\w+", re.I)
_UI_WORDS = re.compile("|".join(re.escape(k) for k in UI_VISUAL_CONTEXTS), re.I)

# ancestors that end the search for the name a value is bound to
_SCOPE_KINDS = frozenset({k.value for k in FUNCTION_KINDS} | {"statement_block", "program", "class_body"})
_BINDING_KINDS = frozenset(
    {NodeKind.VARIABLE_DECLARATOR.value, NodeKind.PAIR.value, NodeKind.ASSIGNMENT_EXPRESSION.value}
)


def is_security_context(text: str) -> bool:
    """Security vocabulary nearby and no sign of layout/animation/demo usage."""
    return bool(_SECURITY_WORDS.search(text)) and not _UI_WORDS.search(text)


def is_security_name(name: str) -> bool:
    return name_matches(name, SECURITY_CONTEXTS) and not name_matches(name, UI_VISUAL_CONTEXTS)


def bound_name(node: TSNode, source: bytes) -> Optional[str]:
    """
    Name of the variable or property an expression ends up in.

    `const token = Math.random().toString(36)` -> "token"; walks up through
    the surrounding expression but not out of the enclosing block.
    """
    current = node
    while current.parent is not None:
        parent = current.parent
        if parent.type in _BINDING_KINDS:
            target = assignment_target(current, source)
            return target[0] if target else None
        if parent.type in _SCOPE_KINDS:
            return None
        current = parent
    return None


def detect_secure_random(content: str) -> list[str]:
    return [alt for alt in SECURE_RANDOM_ALTERNATIVES if alt in content]


def _is_member_call(node: TSNode, source: bytes, obj_name: str, method: str) -> bool:
    fn = callee(node)
    if fn is None or fn.type != NodeKind.MEMBER_EXPRESSION.value:
        return False
    obj = fn.child_by_field_name("object")
    prop = fn.child_by_field_name("property")
    return (
        obj is not None
        and prop is not None
        and get_node_text(obj, source) == obj_name
        and get_node_text(prop, source) == method
    )


class InsecureRandomRule(Rule):
    id = "insecure-random"
    name = "Insecure randomness"
    vulnerability_type = VulnerabilityType.INSECURE_RANDOM
    default_severity = Severity.HIGH
    patterns = RANDOM_PATTERNS

    def validate_match(self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile) -> bool:
        if not super().validate_match(definition, match, source_file):
            return False
        if definition.id == "math-random-security":
            return is_security_context(match.context)
        return True

    def match_metadata(self, definition: PatternDefinition, match: PatternMatch) -> dict[str, Any]:
        return {"secure_alternatives": list(SECURE_RANDOM_ALTERNATIVES)}

    def adjust_confidence(self, finding: Finding, source_file: SourceFile, file_context: FileContextInfo) -> Confidence:
        if finding.metadata.get("detection_method") != "pattern":
            return finding.confidence
        if file_context.handles_sensitive_data or RiskContext.AUTHENTICATION in file_context.risk_contexts:
            return Confidence.HIGH
        return finding.confidence

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        source = source_file.source
        alternatives = detect_secure_random(source_file.content)
        findings: list[Finding] = []
        for call in find_nodes_by_kind(source_file.root_node, NodeKind.CALL_EXPRESSION):
            if _is_member_call(call, source, "Math", "random"):
                finding = self._check_math_random(source_file, call, alternatives)
            elif _is_member_call(call, source, "Date", "now"):
                finding = self._check_date_now(source_file, call)
            else:
                continue
            if finding is not None:
                findings.append(finding)
        return findings

    def _check_math_random(self, source_file: SourceFile, call: TSNode, alternatives: list[str]) -> Optional[Finding]:
        source = source_file.source
        variable_name = bound_name(call, source)
        function_name = enclosing_function_name(call, source)

        if variable_name and is_security_name(variable_name):
            description = f"Math.random() used for security-sensitive value '{variable_name}'; use a cryptographically secure generator"
            confidence, context_type = Confidence.HIGH, "variable-assignment"
        elif function_name and is_security_name(function_name):
            description = f"Math.random() used in security-related function '{function_name}'; use a cryptographically secure generator"
            confidence, context_type = Confidence.HIGH, "function-context"
        elif is_security_context(get_node_context(call, source_file.content, SECURITY_CONTEXT_LINES)):
            description = "Math.random() used in a security context; use a cryptographically secure generator"
            confidence, context_type = Confidence.MEDIUM, "contextual"
        else:
            return None

        return self.finding_from_node(
            source_file,
            call,
            description,
            confidence=confidence,
            metadata={
                "security_context": context_type,
                "variable_name": variable_name or function_name,
                "has_secure_alternatives": bool(alternatives),
                "secure_alternatives": list(SECURE_RANDOM_ALTERNATIVES),
            },
        )

    def _check_date_now(self, source_file: SourceFile, call: TSNode) -> Optional[Finding]:
        parent = call.parent
        if parent is None or parent.type != NodeKind.BINARY_EXPRESSION.value:
            return None
        operator = parent.child_by_field_name("operator")
        left = parent.child_by_field_name("left")
        if operator is None or get_node_text(operator, source_file.source) != "%" or left != call:
            return None
        return self.finding_from_node(
            source_file,
            parent,
            "Date.now() used for randomness; it is predictable and insecure for security purposes",
            confidence=Confidence.MEDIUM,
            metadata={
                "randomness_method": "date-based",
                "secure_alternatives": list(SECURE_RANDOM_ALTERNATIVES),
            },
        )
