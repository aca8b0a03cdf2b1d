"""Tests for the orchestrator: rule registry, merging, metrics, failure isolation and cancellation."""

import threading

import pytest

from webguard.config import Config, default_registry, get_default_config, get_enabled_rules
from webguard.corpus import Corpus, source_file_from_text
from webguard.errors import WebGuardError
from webguard.findings.models import Confidence, Severity, VulnerabilityType
from webguard.orchestrator import (
    Orchestrator,
    RuleRegistry,
    ScanReport,
    compute_metrics,
    merge_findings,
)
from webguard.rules.base import Rule
from webguard.rules.dangerous_eval import DangerousEvalRule
from webguard.rules.debug_code import DebugCodeRule

FILES = {
    "src/app.js": "eval(userInput);\n",
    "src/render.js": "element.innerHTML = userInput;\n",
    "src/store.js": "const DEBUG = true;\n",
    "src/clean.js": "export const add = (a, b) => a + b;\n",
}


class ExplodingRule(Rule):
    id = "exploding"
    name = "Always fails"
    vulnerability_type = VulnerabilityType.DEBUG_CODE
    default_severity = Severity.LOW

    def detect(self, corpus, config=None):
        raise RuntimeError("boom")


def _corpus(files=None) -> Corpus:
    files = FILES if files is None else files
    return Corpus([source_file_from_text(path, content) for path, content in files.items()])


def _run(config=None, rules=None, cancel_event=None) -> ScanReport:
    config = config or get_default_config()
    rules = config.rules if rules is None else rules
    return Orchestrator(rules, config).run(_corpus(), cancel_event)


def test_findings_sorted_by_path_then_position():
    """All rules' findings are merged and ordered by (path, line, column, type)."""
    report = _run()
    assert [(f.file_path, f.type) for f in report.findings] == [
        ("src/app.js", VulnerabilityType.DANGEROUS_EVAL),
        ("src/render.js", VulnerabilityType.UNSAFE_HTML),
        ("src/store.js", VulnerabilityType.DEBUG_CODE),
    ]
    assert not report.failed_rules
    assert not report.cancelled
    assert report.has_blocking_findings


def test_metrics_and_score():
    """Severity counts, file counts, risk and score follow the merged findings."""
    metrics = _run().metrics
    assert metrics.total_files == 4
    assert metrics.vulnerable_files == 3
    assert metrics.clean_files == 1
    assert metrics.findings_by_severity == {"critical": 1, "high": 1, "medium": 1, "low": 0}
    assert metrics.overall_risk == "critical"
    assert metrics.security_score == 100 - (10 + 5 + 2)


def test_empty_scan_metrics():
    """No findings: full score and no risk."""
    metrics = compute_metrics([], 2)
    assert metrics.security_score == 100
    assert metrics.overall_risk == "none"
    assert metrics.most_common_type is None
    assert metrics.clean_files == 2


def test_min_confidence_filter():
    """Findings under the configured confidence are dropped from the report."""
    config = get_default_config()
    config.min_confidence = Confidence.HIGH
    report = _run(config)
    assert [f.type for f in report.findings] == [VulnerabilityType.DANGEROUS_EVAL]


def test_scan_is_idempotent():
    """Two scans of the same corpus give the same finding ids in the same order."""
    first = [f.id for f in _run().findings]
    second = [f.id for f in _run().findings]
    assert first == second


def test_thread_pool_gives_same_result():
    """Running rules concurrently does not change the merged findings."""
    config = get_default_config()
    sequential = [f.id for f in _run(config).findings]
    config.max_workers = 4
    assert [f.id for f in _run(config).findings] == sequential


def test_failing_rule_is_isolated(caplog):
    """A rule that raises is logged and listed; the other rules' findings survive."""
    report = _run(rules=[ExplodingRule(), DangerousEvalRule()])
    assert report.failed_rules == ["exploding"]
    assert [f.type for f in report.findings] == [VulnerabilityType.DANGEROUS_EVAL]
    assert "Rule exploding failed" in caplog.text


def test_cancelled_scan(caplog):
    """A set cancel event skips the remaining rules and marks the report."""
    event = threading.Event()
    event.set()
    report = _run(cancel_event=event)
    assert report.cancelled
    assert report.findings == []
    assert "Scan cancelled" in caplog.text


def test_merge_findings_deduplicates():
    """The same finding from two batches is kept once."""
    findings = DangerousEvalRule().detect(_corpus())
    merged = merge_findings([findings, findings])
    assert [f.id for f in merged] == [f.id for f in findings]


def test_non_blocking_report():
    """Only medium findings: no blocking findings."""
    report = _run(rules=[DebugCodeRule()])
    assert len(report.findings) == 1
    assert not report.has_blocking_findings


def test_project_rollups():
    """API files with findings count as vulnerable routes; eval counts against dependencies."""
    corpus = _corpus({"pages/api/run.js": "export default function handler(req, res) {\n  eval(req.body.code);\n}\n"})
    report = Orchestrator(default_registry()).run(corpus)
    assert report.project.api_route_security.vulnerable_routes == 1
    assert report.project.dependency_security.vulnerable_dependencies == 1
    assert report.project.configuration_security.env_vars_secure


class TestRegistry:
    def test_default_registry_has_every_rule(self):
        assert default_registry().ids == [
            "hardcoded-secrets",
            "dangerous-eval",
            "unsafe-html",
            "console-logging",
            "sql-injection",
            "insecure-random",
            "env-exposure",
            "debug-code",
            "security-headers",
        ]

    def test_duplicate_registration_rejected(self):
        registry = RuleRegistry([DangerousEvalRule()])
        with pytest.raises(WebGuardError):
            registry.register(DangerousEvalRule())

    def test_select(self):
        registry = default_registry()
        selected = registry.select(["debug-code", "dangerous-eval"])
        assert selected.ids == ["debug-code", "dangerous-eval"]
        assert len(registry) == 9

    def test_unknown_rule_id(self):
        with pytest.raises(WebGuardError) as excinfo:
            get_enabled_rules(get_default_config(), only=["no-such-rule"])
        assert "no-such-rule" in excinfo.value.message

    def test_empty_config(self):
        config = Config()
        assert len(get_enabled_rules(config)) == 0


class FailingTreeRule(DangerousEvalRule):
    id = "failing-tree"

    def analyze_tree(self, source_file):
        raise RuntimeError("boom")


def test_rule_failing_on_every_file_contributes_nothing():
    """Per-file failures leave the rule with no findings; the other rules are unaffected."""
    report = _run(rules=[FailingTreeRule(), DebugCodeRule()])
    assert [f.type for f in report.findings] == [VulnerabilityType.DEBUG_CODE]
    assert report.failed_rules == []
