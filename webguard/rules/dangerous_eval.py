# Dynamic code execution: eval(), new Function(), string-argument timers and execScript().

from __future__ import annotations

from typing import Optional

from tree_sitter import Node as TSNode

from webguard.corpus import SourceFile
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.patterns import PatternDefinition, PatternMatch, RegexPattern, char_column
from webguard.rules.base import Rule
from webguard.rules.constants import JS_EXTENSIONS
from webguard.syntax import (
    NodeKind,
    call_arguments,
    call_name,
    callee_is_identifier,
    iter_nodes,
)


def _definition(id: str, name: str, description: str, expression: str, confidence: Confidence) -> PatternDefinition:
    return PatternDefinition(
        id=id,
        name=name,
        description=description,
        pattern=RegexPattern(expression),
        vulnerability_type=VulnerabilityType.DANGEROUS_EVAL,
        severity=Severity.CRITICAL,
        confidence=confidence,
        file_extensions=JS_EXTENSIONS,
    )


EVAL_PATTERNS = (
    _definition(
        "direct-eval",
        "Direct eval() usage",
        "Direct use of eval() detected; this can lead to code injection",
        r"\beval\s*\(",
        Confidence.HIGH,
    ),
    _definition(
        "function-constructor",
        "Function constructor usage",
        "Use of the Function() constructor detected; this can lead to code injection",
        r"\bnew\s+Function\s*\(",
        Confidence.HIGH,
    ),
    _definition(
        "settimeout-string",
        "setTimeout with string argument",
        "setTimeout() with a string argument evaluates code; pass a function instead",
        r"\bsetTimeout\s*\(\s*['\"`]",
        Confidence.MEDIUM,
    ),
    _definition(
        "setinterval-string",
        "setInterval with string argument",
        "setInterval() with a string argument evaluates code; pass a function instead",
        r"\bsetInterval\s*\(\s*['\"`]",
        Confidence.MEDIUM,
    ),
    _definition(
        "execscript",
        "execScript usage",
        "execScript() usage detected; it is deprecated and executes arbitrary code",
        r"\bexecScript\s*\(",
        Confidence.HIGH,
    ),
)

_STRING_KINDS = frozenset({NodeKind.STRING.value, NodeKind.TEMPLATE_STRING.value})
_TIMER_FUNCTIONS = frozenset({"setTimeout", "setInterval"})
_EVAL_FUNCTIONS = frozenset({"eval", "execScript"})


def argument_type(node: Optional[TSNode]) -> str:
    """Coarse label for the first argument: none, string-literal, template-literal, variable, expression."""
    if node is None:
        return "none"
    if node.type == NodeKind.STRING.value:
        return "string-literal"
    if node.type == NodeKind.TEMPLATE_STRING.value:
        return "template-literal"
    if node.type == NodeKind.IDENTIFIER.value:
        return "variable"
    return "expression"


def _inside_string_literal(line: str, column: int) -> bool:
    """Odd number of quote characters before the column means we are inside a string."""
    prefix = line[: column - 1]
    for quote in ("'", '"', "`"):
        if prefix.count(quote) % 2 == 1:
            return True
    return False


class DangerousEvalRule(Rule):
    """Flags code paths that turn strings into executable code."""

    id = "dangerous-eval"
    name = "Dangerous eval usage"
    vulnerability_type = VulnerabilityType.DANGEROUS_EVAL
    default_severity = Severity.CRITICAL
    patterns = EVAL_PATTERNS

    def validate_match(self, definition: PatternDefinition, match: PatternMatch, source_file: SourceFile) -> bool:
        if not super().validate_match(definition, match, source_file):
            return False
        line = source_file.content.split("\n")[match.line - 1]
        return not _inside_string_literal(line, char_column(line, match.column))

    def analyze_tree(self, source_file: SourceFile) -> list[Finding]:
        findings: list[Finding] = []
        root = source_file.root_node
        source = source_file.source

        for node in iter_nodes(root):
            if node.type == NodeKind.CALL_EXPRESSION.value and callee_is_identifier(node):
                finding = self._check_call(source_file, node, call_name(node, source))
            elif node.type == NodeKind.NEW_EXPRESSION.value:
                finding = self._check_new(source_file, node, call_name(node, source))
            else:
                continue
            if finding is not None:
                findings.append(finding)
        return findings

    def _check_call(self, source_file: SourceFile, node: TSNode, name: Optional[str]) -> Optional[Finding]:
        args = call_arguments(node)
        first = args[0] if args else None

        if name in _EVAL_FUNCTIONS:
            description = (
                "Direct eval() call detected; this allows arbitrary code execution"
                if name == "eval"
                else "execScript() usage detected; it is deprecated and executes arbitrary code"
            )
            return self.finding_from_node(
                source_file,
                node,
                description,
                confidence=Confidence.HIGH,
                metadata={"function_name": name, "argument_type": argument_type(first)},
            )

        if name in _TIMER_FUNCTIONS and first is not None and first.type in _STRING_KINDS:
            return self.finding_from_node(
                source_file,
                node,
                f"{name}() with a string argument evaluates code; pass a function instead",
                confidence=Confidence.MEDIUM,
                metadata={"function_name": name, "argument_type": "string"},
            )
        return None

    def _check_new(self, source_file: SourceFile, node: TSNode, name: Optional[str]) -> Optional[Finding]:
        if name != "Function" or not callee_is_identifier(node):
            return None
        args = call_arguments(node)
        return self.finding_from_node(
            source_file,
            node,
            "Function constructor detected; this compiles strings into executable code",
            confidence=Confidence.HIGH,
            metadata={"function_name": "Function", "argument_type": argument_type(args[-1] if args else None)},
        )


__all__ = ["DangerousEvalRule", "EVAL_PATTERNS", "argument_type"]
