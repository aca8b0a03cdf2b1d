"""Unit tests for the console_logging rule."""

from webguard.corpus import Corpus, source_file_from_text
from webguard.findings.models import Confidence, Severity, VulnerabilityType
from webguard.parser import parse_source
from webguard.rules.console_logging import ConsoleLoggingRule, sensitive_names
from webguard.syntax import NodeKind, call_arguments, find_nodes_by_kind


def _run_rule(content: str, path: str = "src/form.js", parse: bool = True) -> list:
    """Build a one-file corpus, run ConsoleLoggingRule, return findings."""
    corpus = Corpus([source_file_from_text(path, content, parse=parse)])
    return ConsoleLoggingRule().detect(corpus)


def test_harmless_logging():
    """Messages that only mention a keyword inside a string are not data."""
    source = "console.log('password reset email sent');\nconsole.log(count);\n"
    assert _run_rule(source) == []


def test_logging_password():
    """Logging a password variable is critical with high confidence."""
    findings = _run_rule("console.log(password);\n")
    assert len(findings) == 1
    f = findings[0]
    assert f.type == VulnerabilityType.CONSOLE_LOGGING
    assert f.severity == Severity.CRITICAL
    assert f.confidence == Confidence.HIGH
    assert f.metadata["sensitive_variables"] == ["password"]
    assert f.metadata["console_method"] == "log"
    assert (f.location.line, f.location.column) == (1, 1)


def test_shorthand_object_property():
    """Shorthand properties of a logged object are inspected."""
    findings = _run_rule("console.info({ email, apiKey });\n")
    assert len(findings) == 1
    assert findings[0].severity == Severity.HIGH
    assert findings[0].confidence == Confidence.MEDIUM
    assert findings[0].metadata["sensitive_variables"] == ["apiKey"]


def test_template_substitution():
    """Values interpolated into a logged template are inspected."""
    findings = _run_rule("console.warn(`value is ${clientSecret}`);\n")
    assert len(findings) == 1
    assert findings[0].severity == Severity.CRITICAL
    assert findings[0].metadata["sensitive_variables"] == ["clientSecret"]


def test_gated_logging_suppressed():
    """Logging behind a non-production check is not reported."""
    source = "if (process.env.NODE_ENV !== 'production') {\n  console.log(password);\n}\n"
    assert _run_rule(source) == []


def test_pattern_fallback_without_tree():
    """Unparsed files use the keyword patterns; string-only keywords are stripped first."""
    findings = _run_rule('console.log("token:", authToken);\n', parse=False)
    assert len(findings) == 1
    assert findings[0].metadata["pattern_id"] == "console-log-token"
    assert findings[0].confidence == Confidence.HIGH


def test_sensitive_names_from_member_access():
    """Only the accessed property counts for member expressions."""
    text = "console.log(user.passwd, tokenStore.size);\n"
    source = text.encode("utf-8")
    tree = parse_source(text, "index.js")
    call = find_nodes_by_kind(tree.root_node, NodeKind.CALL_EXPRESSION)[0]
    names = [n for arg in call_arguments(call) for n in sensitive_names(arg, source)]
    assert names == ["passwd"]
