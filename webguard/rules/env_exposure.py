# Environment exposure: server-only process.env variables read from code that ships to the browser.

from __future__ import annotations

import re
from typing import Optional

from tree_sitter import Node as TSNode

from webguard.classifier import FileRole, classify
from webguard.corpus import SourceFile
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.patterns import PatternDefinition, PatternMatch, RegexPattern
from webguard.rules.base import Rule
from webguard.rules.constants import (
    CLIENT_SAFE_ENV_PREFIXES,
    CLIENT_SAFE_ENV_VARS,
    ENV_SENSITIVE_KEYWORDS,
    JS_EXTENSIONS,
    SERVER_ONLY_ENV_VARS,
)
from webguard.syntax import NodeKind, find_nodes_by_kind, get_node_text

ENV_PATTERNS = (
    PatternDefinition(
        id="server-env-in-client",
        name="Server environment variable in client code",
        description="Server-only environment variable accessed in client code; it is undefined in the browser or leaks into the bundle",
        pattern=RegexPattern(r"\bprocess\.env\.(" + "|".join(sorted(SERVER_ONLY_ENV_VARS)) + r")\b"),
        vulnerability_type=VulnerabilityType.ENVIRONMENT_EXPOSURE,
        severity=Severity.HIGH,
        confidence=Confidence.HIGH,
        file_extensions=JS_EXTENSIONS,
    ),
    PatternDefinition(
        id="process-env-access",
        name="Environment variable access in client code",
        description="Environment variable accessed in client code; verify it is safe to expose",
        pattern=RegexPattern(r"\bprocess\.env\.(\w+)"),
        vulnerability_type=VulnerabilityType.ENVIRONMENT_EXPOSURE,
        severity=Severity.HIGH,
        confidence=Confidence.MEDIUM,
        file_extensions=JS_EXTENSIONS,
    ),
)

_SENSITIVE_ENV_NAME = re.compile("|".join(ENV_SENSITIVE_KEYWORDS), re.I)


def is_client_safe_env_var(name: str) -> bool:
    return name in CLIENT_SAFE_ENV_VARS or name.startswith(CLIENT_SAFE_ENV_PREFIXES)


def is_server_only_env_var(name: str) -> bool:
    return name in SERVER_ONLY_ENV_VARS


def assess_env_variable(name: str) -> Optional[tuple[str, Confidence, bool]]:
    """
    Risk of reading `name` in client code as (description, confidence, server_only).

    None for variables that are public by convention (NEXT_PUBLIC_*, NODE_ENV, ...).
    """
    if is_client_safe_env_var(name):
        return None
    if is_server_only_env_var(name):
        return (
            f"Server-only environment variable '{name}' accessed in client code; it is undefined in the browser or leaks into the bundle",
            Confidence.HIGH,
            True,
        )
    if _SENSITIVE_ENV_NAME.search(name):
        return (
            f"Potentially sensitive environment variable '{name}' accessed in client code; verify it is safe to expose",
            Confidence.MEDIUM,
            False,
        )
    return (
        f"Environment variable '{name}' accessed in client code; verify it is safe to expose",
        Confidence.LOW,
        False,
    )


class EnvExposureRule(Rule):
    id = "env-exposure"
    name = "Environment variable exposure"
    vulnerability_type = VulnerabilityType.ENVIRONMENT_EXPOSURE
    default_severity = Severity.HIGH
    patterns = ENV_PATTERNS

    def is_relevant_content(self, source_file: SourceFile) -> bool:
        if "process.env" not in source_file.content:
            return False
        file_context = classify(source_file.path, source_file.content)
        return file_context.is_client_side and file_context.role not in (FileRole.API_HANDLER, FileRole.MIDDLEWARE)

    def validate_match(self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile) -> bool:
        if not super().validate_match(definition, match, source_file):
            return False
        return not is_client_safe_env_var(match.value)

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        findings: list[Finding] = []
        for node in find_nodes_by_kind(source_file.root_node, NodeKind.MEMBER_EXPRESSION):
            finding = self._check_env_access(source_file, node)
            if finding is not None:
                findings.append(finding)
        return findings

    def _check_env_access(self, source_file: SourceFile, node: TSNode) -> Optional[Finding]:
        obj = node.child_by_field_name("object")
        prop = node.child_by_field_name("property")
        if obj is None or prop is None or get_node_text(obj, source_file.source) != "process.env":
            return None
        name = get_node_text(prop, source_file.source)
        risk = assess_env_variable(name)
        if risk is None:
            return None
        description, confidence, server_only = risk
        return self.finding_from_node(
            source_file,
            node,
            description,
            confidence=confidence,
            metadata={
                "env_variable": name,
                "is_server_only": server_only,
                "suggestion": "Move the access to server-side code, or use a public prefix (NEXT_PUBLIC_) if the value is safe to expose",
            },
        )
