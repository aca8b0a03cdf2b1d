"""Tests for the shared rule pipeline, confidence policy and finding model."""

import pytest

from webguard.classifier import FileContextInfo, FileRole, RiskContext
from webguard.corpus import Corpus, source_file_from_text
from webguard.errors import DetectorError
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.patterns import PatternDefinition, RegexPattern
from webguard.rules.base import (
    Rule,
    apply_context_confidence,
    component_name,
    is_gated_node,
)
from webguard.syntax import NodeKind, find_nodes_by_kind


class EvalTextRule(Rule):
    id = "eval-text"
    name = "eval (text only)"
    vulnerability_type = VulnerabilityType.DANGEROUS_EVAL
    default_severity = Severity.CRITICAL
    file_extensions = (".js",)
    patterns = (
        PatternDefinition(
            id="eval",
            name="eval",
            description="eval() call",
            pattern=RegexPattern(r"\beval\s*\("),
            vulnerability_type=VulnerabilityType.DANGEROUS_EVAL,
            severity=Severity.CRITICAL,
            confidence=Confidence.MEDIUM,
            file_extensions=(".js",),
        ),
    )


class GatedEvalRule(EvalTextRule):
    suppress_gated_code = True


class BrokenTreeRule(EvalTextRule):
    def analyze_tree(self, source_file):
        if "bad" in source_file.path:
            raise RuntimeError("boom")
        return []


def _context(role=FileRole.UNKNOWN, contexts=(RiskContext.NONE,)):
    return FileContextInfo(
        role=role,
        risk_contexts=frozenset(contexts),
        handles_sensitive_data=False,
        is_client_side=True,
        has_network_access=False,
    )


def _run_rule(rule, files, config=None):
    corpus = Corpus([source_file_from_text(path, content) for path, content in files.items()])
    return rule.detect(corpus, config)


def test_confidence_saturates():
    """Raising high stays high; lowering low stays low."""
    c = Confidence.LOW
    for _ in range(5):
        c = c.lowered()
    assert c is Confidence.LOW
    c = Confidence.HIGH
    for _ in range(5):
        c = c.raised()
    assert c is Confidence.HIGH
    assert Confidence.MEDIUM.raised() is Confidence.HIGH
    assert Confidence.MEDIUM.lowered() is Confidence.LOW


def test_severity_and_confidence_order():
    """Ranks give the explicit ordering."""
    assert Severity.LOW.rank < Severity.MEDIUM.rank < Severity.HIGH.rank < Severity.CRITICAL.rank
    assert Confidence.LOW.rank < Confidence.MEDIUM.rank < Confidence.HIGH.rank


def test_context_confidence_policy():
    """Test files lower one step; auth/authz contexts raise one step."""
    assert apply_context_confidence(Confidence.MEDIUM, _context()) is Confidence.MEDIUM
    assert apply_context_confidence(Confidence.MEDIUM, _context(role=FileRole.TEST)) is Confidence.LOW
    assert apply_context_confidence(Confidence.MEDIUM, _context(contexts=[RiskContext.AUTHENTICATION])) is Confidence.HIGH
    assert apply_context_confidence(Confidence.HIGH, _context(contexts=[RiskContext.AUTHORIZATION])) is Confidence.HIGH
    both = _context(role=FileRole.TEST, contexts=[RiskContext.AUTHENTICATION])
    assert apply_context_confidence(Confidence.LOW, both) is Confidence.MEDIUM


def test_finding_id_is_content_derived():
    """Same (path, line, column, type) gives the same id; any change gives another."""
    a = Finding.make_id("src/a.js", 5, 1, VulnerabilityType.DANGEROUS_EVAL)
    assert a == Finding.make_id("src/a.js", 5, 1, "dangerous-eval")
    assert len(a) == 16
    assert a != Finding.make_id("src/a.js", 5, 2, VulnerabilityType.DANGEROUS_EVAL)
    assert a != Finding.make_id("src/a.js", 5, 1, VulnerabilityType.UNSAFE_HTML)


def test_component_name():
    """PascalCase stems are component names."""
    assert component_name("components/UserCard.tsx") == "UserCard"
    assert component_name("lib/format.ts") is None


def test_pattern_finding_fields():
    """Pattern findings carry location, snippet, pattern id and function name."""
    findings = _run_rule(EvalTextRule(), {"src/run.js": "\nfunction run(code) {\n  return eval(code);\n}\n"})
    assert len(findings) == 1
    f = findings[0]
    assert (f.location.line, f.location.column) == (3, 10)
    assert f.context.code == "eval("
    assert f.context.function_name == "run"
    assert f.metadata["pattern_id"] == "eval"
    assert f.metadata["detection_method"] == "pattern"
    assert f.confidence is Confidence.MEDIUM
    assert (f.location.end_line, f.location.end_column) == (3, 15)
    assert (f.location.start_offset, f.location.end_offset) == (31, 36)


def test_block_comment_continuation_rejected():
    """The syntax tree vetoes matches on the inner lines of a block comment."""
    content = "/*\n   eval(a) is unsafe\n*/\nrun()\n"
    assert _run_rule(EvalTextRule(), {"src/a.js": content}) == []


def test_comments_and_test_context_rejected():
    """Matches in comments or test-framework context are not findings."""
    files = {
        "src/a.js": "// eval(x) is bad\n/* eval(y) */\nconst z = 1; // eval(z)\n",
        "src/b.js": "describe('x', () => {\n  it('runs', () => { eval(code) })\n})\n",
    }
    assert _run_rule(EvalTextRule(), files) == []


def test_test_files_skipped_unless_included():
    """Test paths are filtered unless include_tests is set."""

    class Cfg:
        include_tests = True

    files = {"src/__tests__/run.js": "eval(x)\n"}
    assert _run_rule(EvalTextRule(), files) == []
    included = _run_rule(EvalTextRule(), files, Cfg())
    assert len(included) == 1
    assert included[0].confidence is Confidence.LOW


def test_excluded_directories_and_extensions():
    """Dependency and build directories and other extensions are skipped."""
    rule = EvalTextRule()
    paths = ["node_modules/x/a.js", "dist/a.js", "src/a.ts", "src/a.js", ".next/a.js"]
    assert rule.filter_relevant_files(paths) == ["src/a.js"]


def test_missing_content_is_skipped():
    """A path the corpus lists without content is skipped, not an error."""
    corpus = Corpus([source_file_from_text("src/a.js", "eval(x)\n")], file_paths=["src/a.js", "src/gone.js"])
    assert len(EvalTextRule().detect(corpus)) == 1


def test_findings_deduplicated_within_rule():
    """Two candidates at the same position collapse into one finding."""

    class TwiceRule(EvalTextRule):
        patterns = EvalTextRule.patterns * 2

    assert len(_run_rule(TwiceRule(), {"src/a.js": "eval(x)\n"})) == 1


def test_tree_failure_raises_detector_error():
    """An exception inside analyze_tree surfaces as DetectorError with rule and path."""
    with pytest.raises(DetectorError) as excinfo:
        BrokenTreeRule().analyze_file(source_file_from_text("src/bad.js", "eval(x)\n"))
    assert excinfo.value.rule_id == "eval-text"
    assert excinfo.value.path == "src/bad.js"


def test_failing_file_does_not_stop_the_rule(caplog):
    """A file whose analysis fails is logged and skipped; other files are still analysed."""
    findings = _run_rule(BrokenTreeRule(), {"src/bad.js": "eval(x)\n", "src/good.js": "eval(y)\n"})
    assert [f.file_path for f in findings] == ["src/good.js"]
    assert "Rule eval-text failed on src/bad.js" in caplog.text


def test_gated_code_suppressed_for_gating_rules():
    """Rules that opt in drop matches inside development-only conditionals."""
    content = (
        "if (process.env.NODE_ENV === 'development') {\n"
        "  eval(x)\n"
        "}\n"
        "\n"
        "\n"
        "\n"
        "\n"
        "eval(y)\n"
    )
    plain = _run_rule(EvalTextRule(), {"src/a.js": content})
    gated = _run_rule(GatedEvalRule(), {"src/a.js": content})
    assert [f.location.line for f in plain] == [2, 8]
    assert [f.location.line for f in gated] == [8]


def test_is_gated_node_structural():
    """Ternary and && conditions count as gates; the ungated branch does not."""
    sf = source_file_from_text(
        "src/a.js",
        "const a = __DEV__ ? debugPanel() : null;\n"
        + "\n" * 8
        + "const b = import.meta.env.DEV && debugPanel();\n"
        + "\n" * 8
        + "const c = debugPanel();\n",
    )
    calls = find_nodes_by_kind(sf.root_node, NodeKind.CALL_EXPRESSION)
    assert [is_gated_node(c, sf) for c in calls] == [True, True, False]


def test_validate_finding_drops_invalid_positions():
    """A finding pointing outside the file or with no description is dropped."""
    rule = EvalTextRule()
    sf = source_file_from_text("src/a.js", "eval(x)\n")
    finding = _run_rule(rule, {"src/a.js": "eval(x)\n"})[0]
    assert rule.validate_finding(finding, sf)
    assert not rule.validate_finding(finding.model_copy(update={"description": "  "}), sf)
    moved = finding.model_copy(update={"location": finding.location.model_copy(update={"line": 99})})
    assert not rule.validate_finding(moved, sf)
