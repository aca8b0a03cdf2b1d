"""
Declarative detection patterns and the text pattern matcher.

A rule describes what it looks for as data: a PatternDefinition wrapping one
DetectionPattern variant. This module evaluates the text variants against a
file's content and returns located matches with a context window:

- RegexPattern: capped number of regex matches (first match only when the
  pattern is not global).
- LiteralPattern: escaped literal text, optionally case-insensitive and
  restricted to whole words.
- CompositePattern: matches of the required sub-patterns whose surrounding
  window does not contain any excluded sub-pattern ("flag X unless Y is
  nearby").
- TreePattern: evaluated by webguard.syntax against the parsed tree; the text
  matcher returns no matches for it.

Typical usage:
    from webguard.patterns import RegexPattern, find_matches

    matches = find_matches(RegexPattern(r"\\beval\\s*\\("), content)
    for m in matches:
        print(m.line, m.column, m.text)

Offsets and columns count UTF-8 bytes, the unit tree-sitter uses, so text
matches and syntax nodes at the same spot report the same position.

A malformed pattern never aborts a scan: the error is logged and the pattern
contributes zero matches for that file.
"""

from __future__ import annotations

import logging
import math
import re
from bisect import bisect_right
from collections import Counter
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Callable, Optional, Union

from webguard.errors import PatternError
from webguard.findings.models import Confidence, Severity, VulnerabilityType

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_LINES = 3
MAX_MATCHES_PER_PATTERN = 1000


@dataclass(frozen=True)
class RegexPattern:
    """Regular expression; `global_match=False` keeps only the first occurrence."""

    expression: str
    flags: int = 0
    global_match: bool = True
    max_matches: int = MAX_MATCHES_PER_PATTERN


@dataclass(frozen=True)
class LiteralPattern:
    value: str
    case_sensitive: bool = False
    whole_word: bool = False


@dataclass(frozen=True)
class TreeConditions:
    """
    Extra constraints for a TreePattern node.

    parent_kind: the node's direct parent must be of this kind.
    has_child_kind: at least one direct child must be of this kind.
    field_text: mapping of tree-sitter field name -> exact source text.
    predicate: callable(node, source_bytes) -> bool for anything else.
    """

    parent_kind: Optional[str] = None
    has_child_kind: Optional[str] = None
    field_text: tuple[tuple[str, str], ...] = ()
    predicate: Optional[Callable[[Any, bytes], bool]] = None


@dataclass(frozen=True)
class TreePattern:
    node_kind: str
    conditions: Optional[TreeConditions] = None


@dataclass(frozen=True)
class CompositePattern:
    required: tuple[Union[RegexPattern, LiteralPattern], ...]
    excluded: tuple[Union[RegexPattern, LiteralPattern], ...] = ()
    context_lines: int = DEFAULT_CONTEXT_LINES


DetectionPattern = Union[RegexPattern, LiteralPattern, TreePattern, CompositePattern]


@dataclass(frozen=True)
class PatternDefinition:
    """
    Immutable rule descriptor, created once as static configuration.

    min_entropy / min_length / max_length are optional thresholds that secret
    rules check against the matched value.
    """

    id: str
    name: str
    description: str
    pattern: DetectionPattern
    vulnerability_type: VulnerabilityType
    severity: Severity
    confidence: Confidence
    file_extensions: tuple[str, ...] = ()
    enabled: bool = True
    min_entropy: Optional[float] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None

    def applies_to(self, path: str) -> bool:
        """True if the definition is enabled and the file extension is accepted."""
        if not self.enabled:
            return False
        if not self.file_extensions:
            return True
        return PurePosixPath(path.replace("\\", "/")).suffix.lower() in self.file_extensions


@dataclass
class PatternMatch:
    """
    A located occurrence of a pattern: byte offsets, 1-based line/column,
    groups and context. end_line/end_column locate the exclusive end.
    """

    text: str
    start: int
    end: int
    line: int
    column: int
    groups: tuple[Optional[str], ...] = ()
    context: str = ""
    end_line: int = 0
    end_column: int = 0

    @property
    def value(self) -> str:
        """The first non-empty captured group, or the whole match."""
        for group in self.groups:
            if group:
                return group
        return self.text


@dataclass
class LineIndex:
    """
    Precomputed line-start offsets for O(log n) offset -> (line, column).

    Takes character offsets into `text` (what `re` reports) and answers in
    UTF-8 bytes. Built once per text; all matches in the same text share it.
    """

    text: str
    starts: list[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.starts = [0]
        for i, ch in enumerate(self.text):
            if ch == "\n":
                self.starts.append(i + 1)
        self.lines = self.text.split("\n")
        self.ascii = self.text.isascii()
        self.byte_starts: list[int] = []
        pos = 0
        for line in self.lines:
            self.byte_starts.append(pos)
            pos += (len(line) if self.ascii else len(line.encode("utf-8"))) + 1

    def _split(self, offset: int) -> tuple[int, int]:
        line_idx = bisect_right(self.starts, offset) - 1
        col = offset - self.starts[line_idx]
        if not self.ascii:
            col = len(self.lines[line_idx][:col].encode("utf-8"))
        return line_idx, col

    def location(self, offset: int) -> tuple[int, int]:
        """1-based (line, byte column) of a character offset."""
        line_idx, col = self._split(offset)
        return line_idx + 1, col + 1

    def byte_offset(self, offset: int) -> int:
        if self.ascii:
            return offset
        line_idx, col = self._split(offset)
        return self.byte_starts[line_idx] + col

    def window(self, line: int, lines: int = DEFAULT_CONTEXT_LINES) -> str:
        idx = line - 1
        start = max(0, idx - lines)
        end = min(len(self.lines) - 1, idx + lines)
        return "\n".join(self.lines[start : end + 1])


def context_window(text: str, line: int, lines: int = DEFAULT_CONTEXT_LINES) -> str:
    """Return the ± `lines` lines around 1-based `line` of `text`."""
    all_lines = text.split("\n")
    idx = line - 1
    start = max(0, idx - lines)
    end = min(len(all_lines) - 1, idx + lines)
    return "\n".join(all_lines[start : end + 1])


def char_column(line: str, column: int) -> int:
    """Convert a 1-based byte column on `line` to a 1-based character column."""
    if line.isascii():
        return column
    return len(line.encode("utf-8")[: column - 1].decode("utf-8", errors="ignore")) + 1


def compile_regex(pattern: RegexPattern, pattern_id: str | None = None) -> re.Pattern[str]:
    """Compile a RegexPattern, raising PatternError for invalid expressions."""
    try:
        return _compile_cached(pattern.expression, pattern.flags)
    except re.error as e:
        raise PatternError(f"Invalid regular expression: {e}", pattern_id=pattern_id) from e


_COMPILED: dict[tuple[str, int], re.Pattern[str]] = {}


def _compile_cached(expression: str, flags: int) -> re.Pattern[str]:
    key = (expression, flags)
    compiled = _COMPILED.get(key)
    if compiled is None:
        compiled = re.compile(expression, flags)
        _COMPILED[key] = compiled
    return compiled


def _collect(
    compiled: re.Pattern[str], text: str, index: LineIndex, context_lines: int, limit: int
) -> list[PatternMatch]:
    matches: list[PatternMatch] = []
    for m in compiled.finditer(text):
        if len(matches) >= limit:
            break
        line, col = index.location(m.start())
        end_line, end_col = index.location(m.end())
        matches.append(
            PatternMatch(
                text=m.group(0),
                start=index.byte_offset(m.start()),
                end=index.byte_offset(m.end()),
                line=line,
                column=col,
                groups=m.groups(),
                context=index.window(line, context_lines),
                end_line=end_line,
                end_column=end_col,
            )
        )
    return matches


def _find_regex(pattern: RegexPattern, text: str, index: LineIndex, context_lines: int) -> list[PatternMatch]:
    compiled = compile_regex(pattern)
    limit = 1 if not pattern.global_match else max(0, pattern.max_matches)
    return _collect(compiled, text, index, context_lines, limit)


def _find_literal(pattern: LiteralPattern, text: str, index: LineIndex, context_lines: int) -> list[PatternMatch]:
    if not pattern.value:
        return []
    expression = re.escape(pattern.value)
    if pattern.whole_word:
        expression = rf"(?<!\w){expression}(?!\w)"
    compiled = _compile_cached(expression, 0 if pattern.case_sensitive else re.IGNORECASE)
    return _collect(compiled, text, index, context_lines, MAX_MATCHES_PER_PATTERN)


def _find_composite(pattern: CompositePattern, text: str, index: LineIndex) -> list[PatternMatch]:
    required: list[PatternMatch] = []
    for sub in pattern.required:
        required.extend(_find_text(sub, text, index, pattern.context_lines))

    kept: list[PatternMatch] = []
    for match in required:
        window = index.window(match.line, pattern.context_lines)
        if any(_find_text(ex, window, LineIndex(window), 0) for ex in pattern.excluded):
            continue
        match.context = window
        kept.append(match)
    return kept


def _find_text(pattern: DetectionPattern, text: str, index: LineIndex, context_lines: int) -> list[PatternMatch]:
    if isinstance(pattern, RegexPattern):
        return _find_regex(pattern, text, index, context_lines)
    if isinstance(pattern, LiteralPattern):
        return _find_literal(pattern, text, index, context_lines)
    if isinstance(pattern, CompositePattern):
        return _find_composite(pattern, text, index)
    # TreePattern needs a syntax tree; see webguard.syntax.find_tree_matches
    return []


def find_matches(
    pattern: DetectionPattern,
    text: str,
    context_lines: int = DEFAULT_CONTEXT_LINES,
    pattern_id: str | None = None,
    index: LineIndex | None = None,
) -> list[PatternMatch]:
    """
    Find all matches of a text pattern in `text`.

    Args:
        pattern: Any DetectionPattern variant (TreePattern yields no matches here).
        text: Content to search.
        context_lines: Size of the ± context window attached to each match.
        pattern_id: Used only to label log messages.
        index: Optional precomputed LineIndex for `text`.

    Returns:
        Matches in document order per sub-pattern. An invalid pattern is logged
        and yields [].
    """
    if index is None:
        index = LineIndex(text)
    try:
        return _find_text(pattern, text, index, context_lines)
    except PatternError as e:
        logger.warning("Skipping pattern %s: %s", pattern_id or "<anonymous>", e)
        return []


def apply_pattern(
    definition: PatternDefinition,
    text: str,
    path: str,
    context_lines: int = DEFAULT_CONTEXT_LINES,
    index: LineIndex | None = None,
) -> list[PatternMatch]:
    """Run a PatternDefinition against one file's text, honouring enabled/extension filters."""
    if not definition.applies_to(path):
        return []
    return find_matches(definition.pattern, text, context_lines, pattern_id=definition.id, index=index)


def shannon_entropy(value: str) -> float:
    """Shannon entropy in bits per character: -sum(p * log2 p) over character frequencies."""
    if not value:
        return 0.0
    n = len(value)
    entropy = 0.0
    for count in Counter(value).values():
        p = count / n
        entropy -= p * math.log2(p)
    return entropy


_HAS_DIGIT = re.compile(r"\d")
_HAS_LETTER = re.compile(r"[a-zA-Z]")
_HAS_SPECIAL = re.compile(r"[^a-zA-Z0-9]")


def is_potential_secret(value: str, min_entropy: float = 4.5, min_length: int = 16) -> bool:
    """
    Heuristic for token-like strings: long enough, high entropy, and either
    mixes digits with letters or contains punctuation.
    """
    if len(value) < min_length:
        return False
    if shannon_entropy(value) < min_entropy:
        return False
    has_digits = bool(_HAS_DIGIT.search(value))
    has_letters = bool(_HAS_LETTER.search(value))
    return (has_digits and has_letters) or bool(_HAS_SPECIAL.search(value))
