# Unsafe HTML injection: dangerouslySetInnerHTML, innerHTML/outerHTML assignment, document.write().

from __future__ import annotations

import re
from typing import Optional

from tree_sitter import Node as TSNode

from webguard.classifier import FileContextInfo
from webguard.corpus import SourceFile
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.patterns import PatternDefinition, PatternMatch, RegexPattern
from webguard.rules.base import Rule
from webguard.rules.constants import JS_EXTENSIONS, SANITIZATION_CALLS, SANITIZATION_LIBRARIES
from webguard.syntax import NodeKind, call_name, callee, get_node_context, get_node_text, iter_nodes


def _html(id: str, name: str, description: str, expression: str, confidence: Confidence) -> PatternDefinition:
    return PatternDefinition(
        id=id,
        name=name,
        description=description,
        pattern=RegexPattern(expression),
        vulnerability_type=VulnerabilityType.UNSAFE_HTML,
        severity=Severity.HIGH,
        confidence=confidence,
        file_extensions=JS_EXTENSIONS,
    )


HTML_PATTERNS = (
    _html(
        "dangerously-set-inner-html",
        "dangerouslySetInnerHTML usage",
        "dangerouslySetInnerHTML renders raw HTML; unsanitised input leads to XSS",
        r"\bdangerouslySetInnerHTML\s*[:=]",
        Confidence.HIGH,
    ),
    _html(
        "innerhtml-assignment",
        "innerHTML assignment",
        "Assignment to innerHTML; unsanitised input leads to XSS",
        r"(?<=\.)innerHTML\s*=(?!=)",
        Confidence.MEDIUM,
    ),
    _html(
        "outerhtml-assignment",
        "outerHTML assignment",
        "Assignment to outerHTML; unsanitised input leads to XSS",
        r"(?<=\.)outerHTML\s*=(?!=)",
        Confidence.MEDIUM,
    ),
    _html(
        "document-write",
        "document.write usage",
        "document.write() injects raw HTML into the page",
        r"\bdocument\.write\s*\(",
        Confidence.HIGH,
    ),
    _html(
        "document-writeln",
        "document.writeln usage",
        "document.writeln() injects raw HTML into the page",
        r"\bdocument\.writeln\s*\(",
        Confidence.HIGH,
    ),
)

HTML_PROPERTIES = frozenset({"innerHTML", "outerHTML"})
WRITE_METHODS = frozenset({"write", "writeln"})

CSS_HINTS = ("css", "color", "theme", "chart", "--color-", "rgb(", "rgba(", "hsl(", "hsla(", "px", "rem")
_DYNAMIC_CSS_HINTS = ("entries", "map", "join", "theme")
_EMPTY_STRING = re.compile(rb"\s*(['\"`])\1\s*(?:;|$)", re.M)


def detect_sanitization_libraries(content: str) -> list[str]:
    return [lib for lib in SANITIZATION_LIBRARIES if lib in content]


def is_sanitized(context: str, libraries: list[str]) -> bool:
    """True if the window calls a sanitizer (DOMPurify.sanitize, sanitizeHtml(), escapeHtml(), ...)."""
    for lib in libraries:
        if lib in context and (".sanitize" in context or ".clean" in context):
            return True
    return any(p.search(context) for p in SANITIZATION_CALLS)


def is_safe_css(context: str, code: str) -> bool:
    """dangerouslySetInnerHTML building a <style> block from theme/chart data."""
    lowered_context = context.lower()
    lowered_code = code.lower()
    if "style" not in lowered_context:
        return False
    if not any(hint in lowered_code or hint in lowered_context for hint in CSS_HINTS):
        return False
    return any(hint in lowered_code for hint in _DYNAMIC_CSS_HINTS)


class UnsafeHTMLRule(Rule):
    id = "unsafe-html"
    name = "Unsafe HTML injection"
    vulnerability_type = VulnerabilityType.UNSAFE_HTML
    default_severity = Severity.HIGH
    patterns = HTML_PATTERNS

    def validate_match(self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile) -> bool:
        if not super().validate_match(definition, match, source_file):
            return False
        # el.innerHTML = "" only clears the element
        if definition.id.endswith("html-assignment") and _EMPTY_STRING.match(source_file.source, match.end):
            return False
        return not is_sanitized(match.context, detect_sanitization_libraries(source_file.content))

    def adjust_confidence(self, finding: Finding, source_file: SourceFile, file_context: FileContextInfo) -> Confidence:
        if "has_sanitization" in finding.metadata:
            return finding.confidence
        if detect_sanitization_libraries(source_file.content):
            return finding.confidence.lowered()
        return finding.confidence

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        libraries = detect_sanitization_libraries(source_file.content)
        findings: list[Finding] = []
        for node in iter_nodes(source_file.root_node):
            if node.type == NodeKind.JSX_ATTRIBUTE.value:
                finding = self._check_jsx_attribute(source_file, node, libraries)
            elif node.type == NodeKind.ASSIGNMENT_EXPRESSION.value:
                finding = self._check_assignment(source_file, node, libraries)
            elif node.type == NodeKind.CALL_EXPRESSION.value:
                finding = self._check_document_write(source_file, node)
            else:
                continue
            if finding is not None:
                findings.append(finding)
        return findings

    def _check_jsx_attribute(self, source_file: SourceFile, node: TSNode, libraries: list[str]) -> Optional[Finding]:
        name = node.named_children[0] if node.named_children else None
        if name is None or get_node_text(name, source_file.source) != "dangerouslySetInnerHTML":
            return None

        element = node.parent
        while element is not None and element.type not in (
            NodeKind.JSX_ELEMENT.value,
            NodeKind.JSX_SELF_CLOSING_ELEMENT.value,
        ):
            element = element.parent
        context = get_node_context(element or node, source_file.content)
        code = get_node_text(node, source_file.source)
        element_type = "self-closing" if element is not None and element.type == NodeKind.JSX_SELF_CLOSING_ELEMENT.value else "element"

        if is_safe_css(context, code):
            return self.finding_from_node(
                source_file,
                node,
                "dangerouslySetInnerHTML used for CSS generation; verify the content is built from trusted values",
                severity=Severity.MEDIUM,
                confidence=Confidence.MEDIUM,
                metadata={
                    "has_sanitization": False,
                    "sanitization_libraries": libraries,
                    "jsx_element_type": element_type,
                    "is_safe_css": True,
                },
            )

        sanitized = is_sanitized(context, libraries)
        return self.finding_from_node(
            source_file,
            node,
            "dangerouslySetInnerHTML used with apparent sanitization; verify the implementation"
            if sanitized
            else "dangerouslySetInnerHTML used without apparent sanitization; potential XSS",
            confidence=Confidence.MEDIUM if sanitized else Confidence.HIGH,
            metadata={
                "has_sanitization": sanitized,
                "sanitization_libraries": libraries,
                "jsx_element_type": element_type,
            },
        )

    def _check_assignment(self, source_file: SourceFile, node: TSNode, libraries: list[str]) -> Optional[Finding]:
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or left.type != NodeKind.MEMBER_EXPRESSION.value:
            return None
        prop = left.child_by_field_name("property")
        if prop is None:
            return None
        property_name = get_node_text(prop, source_file.source)
        if property_name not in HTML_PROPERTIES:
            return None
        if right is not None and get_node_text(right, source_file.source) in ('""', "''", "``"):
            return None

        sanitized = is_sanitized(get_node_context(node, source_file.content), libraries)
        return self.finding_from_node(
            source_file,
            prop,
            f"{property_name} assigned {'sanitised' if sanitized else 'unsanitised'} content; potential XSS",
            confidence=Confidence.LOW if sanitized else Confidence.MEDIUM,
            metadata={
                "property": property_name,
                "has_sanitization": sanitized,
                "sanitization_libraries": libraries,
            },
        )

    def _check_document_write(self, source_file: SourceFile, node: TSNode) -> Optional[Finding]:
        fn = callee(node)
        if fn is None or fn.type != NodeKind.MEMBER_EXPRESSION.value:
            return None
        obj = fn.child_by_field_name("object")
        method = call_name(node, source_file.source)
        if obj is None or get_node_text(obj, source_file.source) != "document" or method not in WRITE_METHODS:
            return None
        return self.finding_from_node(
            source_file,
            node,
            f"document.{method}() injects raw HTML into the page",
            confidence=Confidence.HIGH,
            metadata={"method": method},
        )
