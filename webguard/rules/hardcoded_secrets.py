# Hardcoded secrets detection: provider keys, tokens, connection strings and passwords in source

from __future__ import annotations

import re
from typing import Any, Optional

from tree_sitter import Node as TSNode

from webguard.corpus import SourceFile
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.patterns import (
    PatternDefinition,
    PatternMatch,
    RegexPattern,
    is_potential_secret,
    shannon_entropy,
)
from webguard.rules.base import Rule
from webguard.rules.constants import JS_EXTENSIONS, SENSITIVE_VARIABLE_NAMES, is_placeholder_value, name_matches
from webguard.syntax import NodeKind, assignment_target, iter_nodes, string_value

PASSWORD_NAMES = ("password", "passwd", "pwd", "passphrase")

_PASSWORD_KEY = r"[\"']?\b\w*(?:password|passwd|pwd)\w*[\"']?"


def _secret(id: str, name: str, description: str, expression: str, confidence: Confidence, **thresholds: Any) -> PatternDefinition:
    return PatternDefinition(
        id=id,
        name=name,
        description=description,
        pattern=RegexPattern(expression, flags=thresholds.pop("flags", 0)),
        vulnerability_type=VulnerabilityType.HARDCODED_SECRET,
        severity=Severity.CRITICAL,
        confidence=confidence,
        file_extensions=JS_EXTENSIONS,
        **thresholds,
    )


SECRET_PATTERNS = (
    _secret(
        "aws-access-key",
        "AWS Access Key",
        "Hardcoded AWS access key detected",
        r"\bAKIA[0-9A-Z]{16}\b",
        Confidence.HIGH,
        min_length=20,
    ),
    _secret(
        "aws-secret-key",
        "AWS Secret Key",
        "Hardcoded AWS secret access key detected",
        r"(?<![A-Za-z0-9/+=])[A-Za-z0-9/+=]{40}(?![A-Za-z0-9/+=])",
        Confidence.MEDIUM,
        min_entropy=5.0,
        min_length=40,
        max_length=40,
    ),
    _secret(
        "github-token",
        "GitHub Token",
        "Hardcoded GitHub personal access token detected",
        r"\bghp_[a-zA-Z0-9]{36}\b",
        Confidence.HIGH,
    ),
    _secret(
        "api-key-generic",
        "Generic API Key",
        "Hardcoded API key detected",
        r"(?:api[_-]?key|apikey|\bkey)[\"']?\s*[:=]\s*[\"'`]([a-zA-Z0-9\-_]{20,})[\"'`]",
        Confidence.MEDIUM,
        flags=re.IGNORECASE,
        min_entropy=4.0,
        min_length=20,
    ),
    _secret(
        "database-url",
        "Database Connection String",
        "Hardcoded database connection string detected",
        r"(?:mongodb(?:\+srv)?|mysql|postgres|postgresql|redis)://[^\s'\"`]+",
        Confidence.HIGH,
        flags=re.IGNORECASE,
    ),
    _secret(
        "jwt-secret",
        "JWT Secret",
        "Hardcoded JWT secret detected",
        r"(?:jwt[_-]?secret|jwtsecret)[\"']?\s*[:=]\s*[\"'`]([a-zA-Z0-9\-_+=/]{16,})[\"'`]",
        Confidence.HIGH,
        flags=re.IGNORECASE,
        min_entropy=4.0,
        min_length=16,
    ),
    _secret(
        "private-key",
        "Private Key",
        "Hardcoded private key detected",
        r"-----BEGIN\s+(?:RSA\s+|EC\s+|OPENSSH\s+)?PRIVATE\s+KEY-----",
        Confidence.HIGH,
        flags=re.IGNORECASE,
    ),
    _secret(
        "password-hardcoded",
        "Hardcoded Password",
        "Hardcoded password detected",
        _PASSWORD_KEY + r"\s*[:=]\s*[\"'`](?![^\"'`]*\$\{)([a-zA-Z0-9\-_!@#$%^&*()+=]{8,})[\"'`]",
        Confidence.MEDIUM,
        flags=re.IGNORECASE,
        min_entropy=3.0,
        min_length=8,
    ),
)

# kinds whose string value can be bound to a name
_BINDING_KINDS = frozenset(
    {NodeKind.VARIABLE_DECLARATOR.value, NodeKind.PAIR.value, NodeKind.ASSIGNMENT_EXPRESSION.value}
)


def _anchor(binding: TSNode) -> TSNode:
    """Node a binding finding is reported at: the binding itself, or the assigned property."""
    if binding.type == NodeKind.ASSIGNMENT_EXPRESSION.value:
        left = binding.child_by_field_name("left")
        if left is not None and left.type == NodeKind.MEMBER_EXPRESSION.value:
            prop = left.child_by_field_name("property")
            if prop is not None:
                return prop
        if left is not None:
            return left
    return binding


class HardcodedSecretsRule(Rule):
    """
    Credentials committed to source.

    Text patterns catch well-known token shapes anywhere in the file. The tree
    pass catches string literals bound to sensitive names (`const password =
    "..."`, `{ apiKey: "..." }`, `config.secret = "..."`) even when the value
    has no recognisable shape.
    """

    id = "hardcoded-secrets"
    name = "Hardcoded secrets"
    vulnerability_type = VulnerabilityType.HARDCODED_SECRET
    default_severity = Severity.CRITICAL
    patterns = SECRET_PATTERNS

    def validate_match(self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile) -> bool:
        if not super().validate_match(definition, match, source_file):
            return False
        value = match.value
        if is_placeholder_value(value):
            return False
        if definition.min_entropy is not None and shannon_entropy(value) < definition.min_entropy:
            return False
        if definition.min_length is not None and len(value) < definition.min_length:
            return False
        if definition.max_length is not None and len(value) > definition.max_length:
            return False
        return True

    def match_metadata(self, definition: PatternDefinition, match: PatternMatch) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "entropy": round(shannon_entropy(match.value), 3),
            "length": len(match.value),
        }
        if definition.id == "password-hardcoded":
            metadata["sensitive_variable_name"] = True
        return metadata

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        findings: list[Finding] = []
        source = source_file.source
        for node in iter_nodes(source_file.root_node):
            if node.type not in (NodeKind.STRING.value, NodeKind.TEMPLATE_STRING.value):
                continue
            parent = node.parent
            if parent is None or parent.type not in _BINDING_KINDS:
                continue
            # only the value side of a pair/assignment, never the key or target
            if node.type == NodeKind.STRING.value and parent.child_by_field_name("key") == node:
                continue
            finding = self._check_binding(source_file, node, parent)
            if finding is not None:
                findings.append(finding)
        return findings

    def _check_binding(self, source_file: SourceFile, node: TSNode, binding: TSNode) -> Optional[Finding]:
        value = string_value(node, source_file.source)
        if not value:
            return None
        target = assignment_target(node, source_file.source)
        if target is None:
            return None
        variable_name, binding_kind = target
        if not name_matches(variable_name, SENSITIVE_VARIABLE_NAMES):
            return None
        if is_placeholder_value(value):
            return None

        is_password = name_matches(variable_name, PASSWORD_NAMES)
        if is_password:
            if len(value) < 4:
                return None
        elif not is_potential_secret(value, 4.0, 16):
            return None

        kind = "password" if is_password else "secret"
        return self.finding_from_node(
            source_file,
            _anchor(binding),
            f"Hardcoded {kind} assigned to sensitive name '{variable_name}'",
            confidence=Confidence.MEDIUM,
            metadata={
                "sensitive_variable_name": True,
                "variable_name": variable_name,
                "binding": binding_kind,
                "entropy": round(shannon_entropy(value), 3),
                "length": len(value),
            },
        )
