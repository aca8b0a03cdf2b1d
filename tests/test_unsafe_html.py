"""Unit tests for the unsafe_html rule."""

from webguard.corpus import Corpus, source_file_from_text
from webguard.findings.models import Confidence, Severity, VulnerabilityType
from webguard.rules.unsafe_html import UnsafeHTMLRule, is_safe_css, is_sanitized


def _run_rule(content: str, path: str = "src/render.js", parse: bool = True) -> list:
    """Build a one-file corpus, run UnsafeHTMLRule, return findings."""
    corpus = Corpus([source_file_from_text(path, content, parse=parse)])
    return UnsafeHTMLRule().detect(corpus)


def test_no_html_sinks():
    """textContent and innerHTML comparisons are not sinks."""
    source = "el.textContent = html;\nif (a.innerHTML == b) { show(); }\n"
    assert _run_rule(source) == []


def test_innerhtml_assignment():
    """el.innerHTML = value is reported once at the property."""
    findings = _run_rule("element.innerHTML = userInput;\n")
    assert len(findings) == 1
    f = findings[0]
    assert f.type == VulnerabilityType.UNSAFE_HTML
    assert f.severity == Severity.HIGH
    assert f.confidence == Confidence.MEDIUM
    assert f.metadata["property"] == "innerHTML"
    assert f.metadata["has_sanitization"] is False
    assert (f.location.line, f.location.column) == (1, 9)


def test_clearing_innerhtml_ignored():
    """Assigning an empty string only clears the element."""
    assert _run_rule('el.innerHTML = "";\nel.outerHTML = \'\';\n') == []


def test_sanitized_assignment_low_confidence():
    """DOMPurify.sanitize() around the value drops confidence to low."""
    source = "import DOMPurify from 'dompurify';\nel.innerHTML = DOMPurify.sanitize(html);\n"
    findings = _run_rule(source)
    assert len(findings) == 1
    assert findings[0].confidence == Confidence.LOW
    assert findings[0].metadata["has_sanitization"] is True
    assert findings[0].metadata["sanitization_libraries"] == ["DOMPurify", "dompurify"]


def test_dangerously_set_inner_html():
    """dangerouslySetInnerHTML without sanitization is high confidence."""
    source = (
        "export function Post({ html }) {\n"
        "  return <div dangerouslySetInnerHTML={{ __html: html }} />;\n"
        "}\n"
    )
    findings = _run_rule(source, path="components/Post.jsx")
    assert len(findings) == 1
    f = findings[0]
    assert f.confidence == Confidence.HIGH
    assert f.metadata["jsx_element_type"] == "self-closing"
    assert (f.location.line, f.location.column) == (2, 15)
    assert f.context.component_name == "Post"


def test_css_generation_reported_as_medium():
    """A <style> block built from theme data is downgraded, not dropped."""
    source = (
        "export function ThemeStyles({ theme }) {\n"
        "  return <style dangerouslySetInnerHTML={{ __html: buildCss(theme) }} />;\n"
        "}\n"
    )
    findings = _run_rule(source, path="components/ThemeStyles.jsx")
    assert len(findings) == 1
    assert findings[0].severity == Severity.MEDIUM
    assert findings[0].confidence == Confidence.MEDIUM
    assert findings[0].metadata["is_safe_css"] is True


def test_document_write():
    """document.write() is reported at the call."""
    findings = _run_rule("document.write(location.hash);\n")
    assert len(findings) == 1
    assert findings[0].confidence == Confidence.HIGH
    assert findings[0].metadata["method"] == "write"
    assert findings[0].location.column == 1


def test_pattern_fallback_without_tree():
    """Unparsed files are covered by the assignment patterns."""
    findings = _run_rule("el.outerHTML = html;\n", parse=False)
    assert len(findings) == 1
    assert findings[0].metadata["pattern_id"] == "outerhtml-assignment"
    assert findings[0].confidence == Confidence.MEDIUM


def test_sanitizer_elsewhere_in_file_lowers_pattern_confidence():
    """An imported sanitizer outside the match window lowers pattern findings one step."""
    source = "import DOMPurify from 'dompurify';\n" + "\n" * 5 + "el.innerHTML = html;\n"
    findings = _run_rule(source, parse=False)
    assert len(findings) == 1
    assert findings[0].location.line == 7
    assert findings[0].confidence == Confidence.LOW


def test_helpers():
    """Sanitizer and CSS heuristics."""
    assert is_sanitized("el.innerHTML = escapeHtml(x)", [])
    assert is_sanitized("DOMPurify.sanitize(x)", ["DOMPurify"])
    assert not is_sanitized("el.innerHTML = x", ["DOMPurify"])
    assert is_safe_css("<style>", "dangerouslySetInnerHTML={{ __html: Object.entries(theme) }}")
    assert not is_safe_css("<div>", "dangerouslySetInnerHTML={{ __html: theme }}")
