# Rule interface: the shared detect() pipeline every rule set runs, plus the confidence policy.
# Concrete rules (dangerous_eval, hardcoded_secrets, ...) declare PatternDefinitions and
# optionally override analyze_tree() for checks that need the syntax tree.

from __future__ import annotations

import logging
import re
from abc import ABC
from pathlib import PurePosixPath
from typing import Any, Optional

from tree_sitter import Node as TSNode

from webguard.classifier import FileContextInfo, classify, is_test_path
from webguard.corpus import Corpus, SourceFile
from webguard.errors import DetectorError
from webguard.findings.models import Confidence, Finding, FindingContext, Location, Severity, VulnerabilityType
from webguard.patterns import (
    DEFAULT_CONTEXT_LINES,
    LineIndex,
    PatternDefinition,
    PatternMatch,
    TreePattern,
    apply_pattern,
    char_column,
)
from webguard.rules.constants import EXCLUDED_PATH_SEGMENTS, JS_EXTENSIONS, is_environment_gated, is_test_context
from webguard.syntax import (
    NodeKind,
    enclosing_function_name,
    find_tree_matches,
    get_node_context,
    get_node_end_location,
    get_node_location,
    get_node_text,
    is_inside_kind,
)

logger = logging.getLogger(__name__)

_COMPONENT_STEM = re.compile(r"^[A-Z][A-Za-z0-9]*$")
_FUNCTION_HINTS = (
    re.compile(r"function\s+(\w+)"),
    re.compile(r"const\s+(\w+)\s*=\s*(?:async\s*)?(?:\([^)]*\)|\w+)\s*=>"),
    re.compile(r"(\w+)\s*:\s*(?:async\s*)?function"),
)


def apply_context_confidence(confidence: Confidence, file_context: FileContextInfo) -> Confidence:
    """
    Generic adjustment applied to every finding after rule-specific tuning.

    A test file lowers confidence one step; an authentication or
    authorization risk context raises it one step. Both saturate.
    """
    if file_context.is_test:
        confidence = confidence.lowered()
    if file_context.is_auth_sensitive:
        confidence = confidence.raised()
    return confidence


def component_name(path: str) -> Optional[str]:
    """File stem when it follows the PascalCase component convention (Button.tsx -> Button)."""
    stem = PurePosixPath(path).name.split(".")[0]
    return stem if _COMPONENT_STEM.match(stem) else None


def is_comment_node(node: TSNode) -> bool:
    return node.type == NodeKind.COMMENT.value or is_inside_kind(node, {NodeKind.COMMENT})


def is_comment_line(text: str, match: PatternMatch) -> bool:
    """
    Line heuristic for unparsed files: the match sits on a comment line or
    after `//` on its line.
    """
    lines = text.split("\n")
    if match.line > len(lines):
        return False
    line = lines[match.line - 1]
    stripped = line.lstrip()
    if stripped.startswith(("//", "/*", "*")):
        return True
    prefix = line[: max(0, char_column(line, match.column) - 1)]
    return bool(re.search(r"(^|\s)//", prefix))


_GATE_FIELDS = {
    NodeKind.IF_STATEMENT.value: "condition",
    NodeKind.TERNARY_EXPRESSION.value: "condition",
    NodeKind.BINARY_EXPRESSION.value: "left",
}


def is_gated_node(node: TSNode, source_file: SourceFile) -> bool:
    """
    True if the node only runs behind a development check.

    Looks at enclosing `if (...)`, ternary and `cond && ...` conditions, then
    at the node's context window.
    """
    current = node.parent
    while current is not None:
        field_name = _GATE_FIELDS.get(current.type)
        if field_name is not None:
            condition = current.child_by_field_name(field_name)
            if condition is not None and condition != node and is_environment_gated(
                get_node_text(condition, source_file.source)
            ):
                return True
        current = current.parent
    return is_environment_gated(get_node_context(node, source_file.content))


class Rule(ABC):
    """
    Base class for all rule sets.

    Subclasses set:
    - id, name: rule identifier ("dangerous-eval") and display name
    - vulnerability_type, default_severity
    - patterns: tuple of PatternDefinition (text and tree patterns)
    - file_extensions: extensions the rule looks at
    - include_tests: analyse test files too (off by default)
    - suppress_gated_code: drop matches inside development-only conditionals

    detect() runs the whole pipeline; the hooks below customise it.
    """

    id: str
    name: str
    vulnerability_type: VulnerabilityType
    default_severity: Severity
    patterns: tuple[PatternDefinition, ...] = ()
    file_extensions: tuple[str, ...] = JS_EXTENSIONS
    include_tests: bool = False
    suppress_gated_code: bool = False

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"

    # --- pipeline ----------------------------------------------------------

    def detect(self, corpus: Corpus, config: Any = None) -> list[Finding]:
        """
        Analyse every relevant file in the corpus and return this rule's findings.

        Findings with the same id (same file, position and type) are reported once.
        A file whose analysis raises DetectorError is logged and contributes no
        findings; the remaining files are still analysed.
        """
        context_lines = getattr(config, "context_lines", DEFAULT_CONTEXT_LINES)
        include_tests = self.include_tests or bool(getattr(config, "include_tests", False))
        max_matches = getattr(config, "max_matches", None)

        findings: list[Finding] = []
        seen: set[str] = set()
        for path in self.filter_relevant_files(corpus.file_paths, include_tests):
            source_file = corpus.get_file(path)
            if source_file is None:
                self.logger.debug("Skipping %s for rule %s: no content", path, self.id)
                continue
            try:
                file_findings = self.analyze_file(source_file, context_lines, max_matches)
            except DetectorError as e:
                self.logger.error("Rule %s failed on %s: %s", self.id, path, e.message)
                continue
            for finding in file_findings:
                if finding.id in seen:
                    continue
                seen.add(finding.id)
                findings.append(finding)
        return findings

    def filter_relevant_files(self, paths: list[str], include_tests: bool = False) -> list[str]:
        """Keep paths with a handled extension outside dependency/build/VCS/coverage directories."""
        relevant = []
        for path in paths:
            posix = PurePosixPath(path.replace("\\", "/"))
            if posix.suffix.lower() not in self.file_extensions:
                continue
            if EXCLUDED_PATH_SEGMENTS.intersection(posix.parts[:-1]):
                continue
            if not include_tests and is_test_path(path):
                continue
            relevant.append(path)
        return relevant

    def analyze_file(
        self,
        source_file: SourceFile,
        context_lines: int = DEFAULT_CONTEXT_LINES,
        max_matches: Optional[int] = None,
    ) -> list[Finding]:
        """
        Run tree analysis and patterns on one file, then tune and validate the results.

        max_matches caps the raw matches kept per pattern definition.
        """
        if not self.is_relevant_content(source_file):
            return []

        candidates: list[Finding] = []
        if source_file.tree is not None:
            try:
                candidates.extend(self.analyze_tree(source_file))
            except DetectorError:
                raise
            except Exception as e:
                raise DetectorError(
                    f"Tree analysis failed: {e}", rule_id=self.id, path=source_file.path
                ) from e

        index = LineIndex(source_file.content)
        for definition in self.patterns:
            matches = self.find_pattern_matches(definition, source_file, index, context_lines)
            if max_matches is not None:
                matches = matches[:max_matches]
            for match in matches:
                if not self.validate_match(definition, match, source_file):
                    continue
                candidates.append(self.finding_from_match(definition, match, source_file))

        file_context = classify(source_file.path, source_file.content)
        accepted: list[Finding] = []
        for finding in candidates:
            confidence = self.adjust_confidence(finding, source_file, file_context)
            confidence = apply_context_confidence(confidence, file_context)
            if confidence != finding.confidence:
                finding = finding.model_copy(update={"confidence": confidence})
            if self.validate_finding(finding, source_file):
                accepted.append(finding)
        return accepted

    def find_pattern_matches(
        self,
        definition: PatternDefinition,
        source_file: SourceFile,
        index: LineIndex,
        context_lines: int = DEFAULT_CONTEXT_LINES,
    ) -> list[PatternMatch]:
        if isinstance(definition.pattern, TreePattern):
            if source_file.tree is None or not definition.applies_to(source_file.path):
                return []
            return find_tree_matches(source_file.tree.root_node, source_file.source, definition.pattern, context_lines)
        return apply_pattern(definition, source_file.content, source_file.path, context_lines, index)

    # --- hooks -------------------------------------------------------------

    def is_relevant_content(self, source_file: SourceFile) -> bool:
        return True

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        """Structural checks over source_file.tree; override in subclasses."""
        return []

    def validate_match(self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile) -> bool:
        """
        Veto a raw pattern match. Rejections are expected negatives, not errors.

        Default: reject matches inside comments (decided by the syntax tree
        when the file is parsed, by a line heuristic otherwise) and in
        test-framework context, and, when suppress_gated_code is set, code
        inside a development-only gate.
        """
        node = self.node_at(source_file, match)
        if node is not None:
            if is_comment_node(node):
                return False
        elif is_comment_line(source_file.content, match):
            return False
        if is_test_context(match.context):
            return False
        if self.suppress_gated_code:
            if is_environment_gated(match.context):
                return False
            if node is not None and is_gated_node(node, source_file):
                return False
        return True

    def adjust_confidence(
        self, finding: Finding, source_file: SourceFile, file_context: FileContextInfo
    ) -> Confidence:
        """Rule-specific confidence tuning, run before the generic policy."""
        return finding.confidence

    def match_metadata(self, definition: PatternDefinition, match: PatternMatch) -> dict[str, Any]:
        return {}

    def validate_finding(self, finding: Finding, source_file: SourceFile) -> bool:
        """Structural check: non-empty description, a real position in the file and a code snippet."""
        if not finding.description.strip():
            return False
        loc = finding.location
        if loc.line < 1 or loc.column < 1 or loc.line > source_file.line_count:
            return False
        return bool(finding.context.code.strip())

    # --- finding construction ---------------------------------------------

    def create_finding(
        self,
        source_file: SourceFile,
        location: Location,
        code: str,
        description: str,
        *,
        severity: Optional[Severity] = None,
        confidence: Confidence = Confidence.HIGH,
        surrounding: Optional[str] = None,
        function_name: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Finding:
        return Finding(
            id=Finding.make_id(source_file.path, location.line, location.column, self.vulnerability_type),
            type=self.vulnerability_type,
            severity=severity or self.default_severity,
            confidence=confidence,
            description=description,
            file_path=source_file.path,
            location=location,
            context=FindingContext(
                code=code,
                surrounding=surrounding,
                function_name=function_name,
                component_name=component_name(source_file.path),
            ),
            metadata=metadata or {},
        )

    def finding_from_node(
        self,
        source_file: SourceFile,
        node: TSNode,
        description: str,
        *,
        severity: Optional[Severity] = None,
        confidence: Confidence = Confidence.HIGH,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Finding:
        """Finding located at a syntax node, with the node's text and context window."""
        line, column = get_node_location(node)
        end_line, end_column = get_node_end_location(node)
        code = get_node_text(node, source_file.source)
        return self.create_finding(
            source_file,
            Location(
                line=line,
                column=column,
                end_line=end_line,
                end_column=end_column,
                start_offset=node.start_byte,
                end_offset=node.end_byte,
            ),
            code,
            description,
            severity=severity,
            confidence=confidence,
            surrounding=get_node_context(node, source_file.content),
            function_name=enclosing_function_name(node, source_file.source),
            metadata={"detection_method": "tree-analysis", **(metadata or {})},
        )

    def finding_from_match(
        self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile
    ) -> Finding:
        metadata: dict[str, Any] = {
            "pattern_id": definition.id,
            "detection_method": "pattern",
        }
        groups = [g for g in match.groups if g is not None]
        if groups:
            metadata["matched_groups"] = groups
        metadata.update(self.match_metadata(definition, match))
        return self.create_finding(
            source_file,
            Location(
                line=match.line,
                column=match.column,
                end_line=match.end_line,
                end_column=match.end_column,
                start_offset=match.start,
                end_offset=match.end,
            ),
            match.text,
            definition.description,
            severity=definition.severity,
            confidence=definition.confidence,
            surrounding=match.context,
            function_name=self.function_name_at(source_file, match),
            metadata=metadata,
        )

    def node_at(self, source_file: SourceFile, match: PatternMatch) -> Optional[TSNode]:
        """Smallest syntax node at the start of a match, or None for unparsed files."""
        root = source_file.root_node
        if root is None:
            return None
        return root.descendant_for_byte_range(match.start, match.start)

    def function_name_at(self, source_file: SourceFile, match: PatternMatch) -> Optional[str]:
        """Enclosing function of a match: from the tree when parsed, else a text heuristic."""
        if source_file.root_node is not None:
            node = self.node_at(source_file, match)
            return enclosing_function_name(node, source_file.source) if node is not None else None
        for hint in _FUNCTION_HINTS:
            found = hint.search(match.context)
            if found:
                return found.group(1)
        return None
