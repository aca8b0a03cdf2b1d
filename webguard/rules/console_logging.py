# Sensitive data written to the console: passwords, tokens, secrets and keys passed to console.*().

from __future__ import annotations

import re
from typing import Optional

from tree_sitter import Node as TSNode

from webguard.corpus import SourceFile
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.patterns import PatternDefinition, PatternMatch, RegexPattern
from webguard.rules.base import Rule, is_gated_node
from webguard.rules.constants import (
    CONSOLE_METHODS,
    CONSOLE_SENSITIVE_KEYWORDS,
    EXPLICIT_SENSITIVE_KEYWORDS,
    JS_EXTENSIONS,
    name_matches,
)
from webguard.syntax import NodeKind, call_arguments, call_name, callee, get_node_text, iter_nodes


def _console(id: str, subject: str, keyword: str, confidence: Confidence) -> PatternDefinition:
    return PatternDefinition(
        id=id,
        name=f"Console logging {subject}",
        description=f"Console logging of {subject} detected; sensitive data must not be logged",
        pattern=RegexPattern(r"\bconsole\.(?:log|warn|error|info|debug)\s*\([^)]*" + keyword + r"[^)]*\)", flags=re.IGNORECASE),
        vulnerability_type=VulnerabilityType.CONSOLE_LOGGING,
        severity=Severity.CRITICAL,
        confidence=confidence,
        file_extensions=JS_EXTENSIONS,
    )


CONSOLE_PATTERNS = (
    _console("console-log-password", "password", "password", Confidence.HIGH),
    _console("console-log-token", "token", "token", Confidence.HIGH),
    _console("console-log-secret", "secret", "secret", Confidence.HIGH),
    _console("console-log-key", "key", r"\b(?:api_?key|private_?key|encryption_?key)\b", Confidence.MEDIUM),
)

_QUOTED = re.compile(r"'(?:[^'\\\n]|\\.)*'|\"(?:[^\"\\\n]|\\.)*\"")
_KEYWORDS = {
    "console-log-password": re.compile(r"password", re.I),
    "console-log-token": re.compile(r"token", re.I),
    "console-log-secret": re.compile(r"secret", re.I),
    "console-log-key": re.compile(r"\b(?:api_?key|private_?key|encryption_?key)\b", re.I),
}


def is_sensitive_name(name: str) -> bool:
    return name_matches(name, CONSOLE_SENSITIVE_KEYWORDS)


def is_explicitly_sensitive(name: str) -> bool:
    return name_matches(name, EXPLICIT_SENSITIVE_KEYWORDS)


def sensitive_names(node: TSNode, source: bytes) -> list[str]:
    """
    Sensitive identifiers an argument expression exposes.

    Looks at bare identifiers, the property of member accesses, object literal
    keys (including shorthand) and template substitutions.
    """
    kind = node.type
    if kind == NodeKind.IDENTIFIER.value:
        name = get_node_text(node, source)
        return [name] if is_sensitive_name(name) else []
    if kind == NodeKind.MEMBER_EXPRESSION.value:
        prop = node.child_by_field_name("property")
        name = get_node_text(prop, source) if prop is not None else ""
        return [name] if name and is_sensitive_name(name) else []
    if kind == NodeKind.OBJECT.value:
        names = []
        for child in node.named_children:
            if child.type == NodeKind.PAIR.value:
                key = child.child_by_field_name("key")
                name = get_node_text(key, source).strip("'\"") if key is not None else ""
            elif child.type == NodeKind.SHORTHAND_PROPERTY_IDENTIFIER.value:
                name = get_node_text(child, source)
            else:
                continue
            if is_sensitive_name(name):
                names.append(name)
        return names
    if kind == NodeKind.TEMPLATE_STRING.value:
        names = []
        for child in node.named_children:
            if child.type == NodeKind.TEMPLATE_SUBSTITUTION.value and child.named_children:
                names.extend(sensitive_names(child.named_children[0], source))
        return names
    return []


class ConsoleLoggingRule(Rule):
    """Console calls whose arguments carry credentials or personal data."""

    id = "console-logging"
    name = "Sensitive console logging"
    vulnerability_type = VulnerabilityType.CONSOLE_LOGGING
    default_severity = Severity.MEDIUM
    patterns = CONSOLE_PATTERNS
    suppress_gated_code = True

    def validate_match(self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile) -> bool:
        if not super().validate_match(definition, match, source_file):
            return False
        # a keyword that only appears inside a plain message string is not data
        keyword = _KEYWORDS.get(definition.id)
        if keyword is None:
            return True
        return bool(keyword.search(_QUOTED.sub("''", match.text)))

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        findings: list[Finding] = []
        for node in iter_nodes(source_file.root_node):
            if node.type != NodeKind.CALL_EXPRESSION.value:
                continue
            finding = self._check_console_call(source_file, node)
            if finding is not None:
                findings.append(finding)
        return findings

    def _check_console_call(self, source_file: SourceFile, node: TSNode) -> Optional[Finding]:
        source = source_file.source
        fn = callee(node)
        if fn is None or fn.type != NodeKind.MEMBER_EXPRESSION.value:
            return None
        obj = fn.child_by_field_name("object")
        method = call_name(node, source)
        if obj is None or get_node_text(obj, source) != "console" or method not in CONSOLE_METHODS:
            return None

        names: list[str] = []
        for arg in call_arguments(node):
            names.extend(sensitive_names(arg, source))
        if not names:
            return None
        if is_gated_node(node, source_file):
            return None

        explicit = any(is_explicitly_sensitive(n) for n in names)
        return self.finding_from_node(
            source_file,
            node,
            f"console.{method}() logs potentially sensitive data: {', '.join(dict.fromkeys(names))}",
            severity=Severity.CRITICAL if explicit else Severity.HIGH,
            confidence=Confidence.HIGH if explicit else Confidence.MEDIUM,
            metadata={"console_method": method, "sensitive_variables": list(dict.fromkeys(names))},
        )
