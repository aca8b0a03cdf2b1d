# Security headers: Next.js configuration that leaves out, or weakens, the standard browser hardening headers.

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Optional

from tree_sitter import Node as TSNode

from webguard.classifier import MIDDLEWARE_FILES
from webguard.corpus import Corpus, SourceFile
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.rules.base import Rule
from webguard.syntax import (
    NodeKind,
    call_arguments,
    find_nodes_by_kind,
    get_node_text,
    iter_nodes,
    string_value,
)


@dataclass(frozen=True)
class HeaderRequirement:
    name: str
    description: str
    recommended: str
    severity: Severity
    accepted: tuple[str, ...] = ()


SECURITY_HEADERS = (
    HeaderRequirement(
        "Content-Security-Policy",
        "Prevents XSS and other injection attacks",
        "default-src 'self'",
        Severity.HIGH,
    ),
    HeaderRequirement(
        "Strict-Transport-Security",
        "Enforces HTTPS connections",
        "max-age=31536000; includeSubDomains",
        Severity.HIGH,
    ),
    HeaderRequirement(
        "X-Frame-Options",
        "Prevents clickjacking by controlling frame embedding",
        "DENY",
        Severity.MEDIUM,
        ("DENY", "SAMEORIGIN"),
    ),
    HeaderRequirement(
        "X-Content-Type-Options",
        "Prevents MIME type sniffing",
        "nosniff",
        Severity.MEDIUM,
        ("nosniff",),
    ),
    HeaderRequirement(
        "Referrer-Policy",
        "Controls the referrer information sent with requests",
        "strict-origin-when-cross-origin",
        Severity.MEDIUM,
        ("strict-origin-when-cross-origin", "no-referrer", "same-origin", "strict-origin"),
    ),
    HeaderRequirement(
        "X-XSS-Protection",
        "Controls the XSS filter of older browsers",
        "1; mode=block",
        Severity.LOW,
        ("1; mode=block", "0"),
    ),
    HeaderRequirement(
        "Permissions-Policy",
        "Controls browser feature permissions",
        "camera=(), microphone=(), geolocation=()",
        Severity.LOW,
    ),
)

_BY_NAME = {h.name.lower(): h for h in SECURITY_HEADERS}
_NEXT_CONFIG = re.compile(r"(^|/)next\.config\.(js|mjs|cjs|ts)$")
_UNSAFE_CSP = re.compile(r"'unsafe-(?:inline|eval)'|(?:^|\s)\*(?=\s|;|$)")
_MAX_AGE = re.compile(r"max-age\s*=\s*(\d+)", re.I)
ONE_YEAR = 31536000
_WRAPPERS = frozenset(
    {NodeKind.PARENTHESIZED_EXPRESSION.value, NodeKind.AS_EXPRESSION.value, NodeKind.SATISFIES_EXPRESSION.value}
)


def is_next_config(path: str) -> bool:
    return bool(_NEXT_CONFIG.search(path.replace("\\", "/")))


def is_secure_header_value(name: str, value: str) -> bool:
    """
    Whether a configured header value gives the protection the header is for.

    CSP fails on 'unsafe-inline', 'unsafe-eval' or a bare `*` source; HSTS
    needs a max-age of at least a year; headers with a fixed vocabulary must
    use one of the accepted values.
    """
    key = name.lower()
    value = value.strip()
    if key == "content-security-policy":
        return not _UNSAFE_CSP.search(value)
    if key == "strict-transport-security":
        found = _MAX_AGE.search(value)
        return found is not None and int(found.group(1)) >= ONE_YEAR
    requirement = _BY_NAME.get(key)
    if requirement is None or not requirement.accepted:
        return True
    return value.lower() in {v.lower() for v in requirement.accepted}


def headers_named_in(content: str) -> set[str]:
    """Lower-cased security header names that appear as string literals in `content`."""
    named = set()
    for header in SECURITY_HEADERS:
        if re.search(r"['\"`]" + re.escape(header.name) + r"['\"`]", content, re.I):
            named.add(header.name.lower())
    return named


def missing_summary(missing: list[HeaderRequirement]) -> tuple[str, Severity]:
    """Description and severity of one finding covering every missing header."""
    names = ", ".join(h.name for h in missing)
    severity = Severity.MEDIUM if any(h.severity == Severity.HIGH for h in missing) else Severity.LOW
    return f"Missing security headers in Next.js configuration: {names}", severity


def _properties(obj: TSNode, source: bytes) -> dict[str, TSNode]:
    """Key -> value node for the pairs of an object literal (methods map to themselves)."""
    props: dict[str, TSNode] = {}
    for child in obj.named_children:
        if child.type == NodeKind.PAIR.value:
            key = child.child_by_field_name("key")
            value = child.child_by_field_name("value")
            if key is None or value is None:
                continue
            name = string_value(key, source) if key.type == NodeKind.STRING.value else get_node_text(key, source)
            if name is not None:
                props[name] = value
        elif child.type == NodeKind.METHOD_DEFINITION.value:
            name_node = child.child_by_field_name("name")
            if name_node is not None:
                props[get_node_text(name_node, source)] = child
    return props


def configured_headers(root: TSNode, source: bytes) -> list[tuple[str, Optional[str], TSNode]]:
    """
    Every `{ key: "<header>", value: ... }` object in the file as (name, value, node).

    value is None when it is not a static string (built at runtime).
    """
    found = []
    for node in find_nodes_by_kind(root, NodeKind.OBJECT):
        props = _properties(node, source)
        key, value = props.get("key"), props.get("value")
        if key is None or value is None:
            continue
        name = string_value(key, source)
        if name:
            found.append((name, string_value(value, source), node))
    return found


class SecurityHeadersRule(Rule):
    """Checks next.config.* for the security headers a Next.js app should send."""

    id = "security-headers"
    name = "Missing security headers"
    vulnerability_type = VulnerabilityType.MISSING_SECURITY_HEADERS
    default_severity = Severity.MEDIUM

    def filter_relevant_files(self, paths: list[str], include_tests: bool = False) -> list[str]:
        return [p for p in super().filter_relevant_files(paths, include_tests) if is_next_config(p)]

    def detect(self, corpus: Corpus, config: Any = None) -> list[Finding]:
        """Config findings, minus headers that middleware sets on every response."""
        findings = super().detect(corpus, config)
        covered = self.middleware_headers(corpus)
        if not covered:
            return findings
        kept = []
        for finding in findings:
            if finding.metadata.get("header_type") != "missing":
                kept.append(finding)
                continue
            missing = [_BY_NAME[n.lower()] for n in finding.metadata["missing_headers"] if n.lower() not in covered]
            if not missing:
                continue
            description, severity = missing_summary(missing)
            kept.append(
                finding.model_copy(
                    update={
                        "description": description,
                        "severity": severity,
                        "metadata": {**finding.metadata, "missing_headers": [h.name for h in missing]},
                    }
                )
            )
        return kept

    def middleware_headers(self, corpus: Corpus) -> set[str]:
        covered: set[str] = set()
        for path in super().filter_relevant_files(corpus.file_paths):
            if PurePosixPath(path.replace("\\", "/")).name not in MIDDLEWARE_FILES:
                continue
            content = corpus.get_content(path)
            if content:
                covered |= headers_named_in(content)
        return covered

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        root = source_file.root_node
        source = source_file.source
        findings: list[Finding] = []

        configured: dict[str, Optional[str]] = {}
        for name, value, node in configured_headers(root, source):
            configured[name.lower()] = value
            requirement = _BY_NAME.get(name.lower())
            if requirement is None or value is None or is_secure_header_value(name, value):
                continue
            findings.append(
                self.finding_from_node(
                    source_file,
                    node,
                    f"Insecure {requirement.name} header value '{value}'; recommended: '{requirement.recommended}'",
                    severity=requirement.severity,
                    confidence=Confidence.HIGH,
                    metadata={
                        "header_type": "insecure",
                        "header_name": requirement.name,
                        "current_value": value,
                        "recommended_value": requirement.recommended,
                    },
                )
            )

        missing = [h for h in SECURITY_HEADERS if h.name.lower() not in configured]
        anchor = self._anchor(root, source)
        if missing and anchor is not None:
            description, severity = missing_summary(missing)
            findings.append(
                self.finding_from_node(
                    source_file,
                    anchor,
                    description,
                    severity=severity,
                    confidence=Confidence.MEDIUM,
                    metadata={
                        "header_type": "missing",
                        "missing_headers": [h.name for h in missing],
                        "recommended_values": {h.name: h.recommended for h in missing},
                    },
                )
            )
        return findings

    # --- locating the exported config ----------------------------------------

    def _anchor(self, root: TSNode, source: bytes) -> Optional[TSNode]:
        """The `headers` key when the config has one, else the export, else the first statement."""
        export = self._export(root, source)
        if export is not None:
            target, value = export
            config = self._resolve_object(root, value, source)
            if config is not None:
                headers = _properties(config, source).get("headers")
                if headers is not None and headers.type == NodeKind.METHOD_DEFINITION.value:
                    return headers.child_by_field_name("name")
                if headers is not None:
                    return headers.parent.child_by_field_name("key")
            return target
        return root.named_children[0] if root.named_children else None

    def _export(self, root: TSNode, source: bytes) -> Optional[tuple[TSNode, TSNode]]:
        """(node to report at, exported expression) for `module.exports =` or `export default`."""
        for node in iter_nodes(root):
            if node.type == NodeKind.ASSIGNMENT_EXPRESSION.value:
                left = node.child_by_field_name("left")
                right = node.child_by_field_name("right")
                if left is not None and right is not None and get_node_text(left, source) == "module.exports":
                    return left, right
            elif node.type == NodeKind.EXPORT_STATEMENT.value:
                value = node.child_by_field_name("value")
                if value is not None and node.children:
                    return node.children[0], value
        return None

    def _resolve_object(self, root: TSNode, node: Optional[TSNode], source: bytes) -> Optional[TSNode]:
        """Follow identifiers, wrapper calls (withX(config)) and TS casts to the config object."""
        for _ in range(8):
            if node is None:
                return None
            if node.type == NodeKind.OBJECT.value:
                return node
            if node.type in _WRAPPERS:
                node = node.named_children[0] if node.named_children else None
            elif node.type == NodeKind.IDENTIFIER.value:
                node = self._declared_value(root, get_node_text(node, source), source)
            elif node.type == NodeKind.CALL_EXPRESSION.value:
                args = call_arguments(node)
                node = args[0] if args else None
            else:
                return None
        return None

    def _declared_value(self, root: TSNode, name: str, source: bytes) -> Optional[TSNode]:
        for declarator in find_nodes_by_kind(root, NodeKind.VARIABLE_DECLARATOR):
            target = declarator.child_by_field_name("name")
            if target is not None and get_node_text(target, source) == name:
                return declarator.child_by_field_name("value")
        return None
