# Orchestration of a scan: run every registered rule over the corpus, merge, and summarise.

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, Iterator, Optional, Sequence

from pydantic import BaseModel, Field

from webguard.corpus import Corpus
from webguard.errors import WebGuardError
from webguard.findings.models import Confidence, Finding, Severity, VulnerabilityType
from webguard.rules.base import Rule

logger = logging.getLogger(__name__)

SEVERITY_WEIGHTS = {
    Severity.CRITICAL: 10,
    Severity.HIGH: 5,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class RuleRegistry:
    """Ordered set of rule instances keyed by rule id."""

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: dict[str, Rule] = {}
        for rule in rules:
            self.register(rule)

    def register(self, rule: Rule) -> None:
        if rule.id in self._rules:
            raise WebGuardError(f"Rule {rule.id} is already registered", {"rule_id": rule.id})
        self._rules[rule.id] = rule

    def get(self, rule_id: str) -> Optional[Rule]:
        return self._rules.get(rule_id)

    def select(self, rule_ids: Iterable[str]) -> "RuleRegistry":
        """Registry restricted to `rule_ids`; unknown ids raise WebGuardError."""
        wanted = list(dict.fromkeys(rule_ids))
        unknown = [rid for rid in wanted if rid not in self._rules]
        if unknown:
            raise WebGuardError(
                f"Unknown rule id(s): {', '.join(unknown)}",
                {"known": sorted(self._rules)},
            )
        return RuleRegistry(self._rules[rid] for rid in wanted)

    @property
    def ids(self) -> list[str]:
        return list(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)


class ScanMetrics(BaseModel):
    total_files: int = 0
    vulnerable_files: int = 0
    clean_files: int = 0
    findings_by_severity: dict[str, int] = Field(default_factory=dict)
    most_common_type: Optional[VulnerabilityType] = None
    overall_risk: str = "none"
    security_score: int = 100


class ApiRouteSecurity(BaseModel):
    total_routes: int = 0
    vulnerable_routes: int = 0
    authenticated_routes: int = 0
    validated_routes: int = 0


class ConfigurationSecurity(BaseModel):
    security_headers_configured: bool = True
    env_vars_secure: bool = True
    missing_configurations: list[str] = Field(default_factory=list)


class DependencySecurity(BaseModel):
    total_dependencies: int = 0
    vulnerable_dependencies: int = 0
    outdated_dependencies: int = 0


class ProjectAnalysis(BaseModel):
    api_route_security: ApiRouteSecurity = Field(default_factory=ApiRouteSecurity)
    configuration_security: ConfigurationSecurity = Field(default_factory=ConfigurationSecurity)
    dependency_security: DependencySecurity = Field(default_factory=DependencySecurity)


class ScanReport(BaseModel):
    """Merged result of one scan."""

    findings: list[Finding] = Field(default_factory=list)
    metrics: ScanMetrics = Field(default_factory=ScanMetrics)
    project: ProjectAnalysis = Field(default_factory=ProjectAnalysis)
    failed_rules: list[str] = Field(default_factory=list)
    cancelled: bool = False
    duration: float = 0.0

    @property
    def has_blocking_findings(self) -> bool:
        """True if any finding is critical or high severity."""
        return any(f.severity in (Severity.CRITICAL, Severity.HIGH) for f in self.findings)


def finding_sort_key(finding: Finding) -> tuple[str, int, int, str]:
    return (finding.file_path, finding.location.line, finding.location.column, finding.type.value)


def merge_findings(batches: Iterable[Iterable[Finding]], min_confidence: Confidence = Confidence.LOW) -> list[Finding]:
    """
    Concatenate rule outputs, drop findings under `min_confidence` and
    duplicate ids, and sort by (path, line, column, type).
    """
    merged: dict[str, Finding] = {}
    for batch in batches:
        for finding in batch:
            if finding.confidence.rank < min_confidence.rank:
                continue
            merged.setdefault(finding.id, finding)
    return sorted(merged.values(), key=finding_sort_key)


def compute_metrics(findings: Sequence[Finding], total_files: int) -> ScanMetrics:
    by_severity = {s.value: 0 for s in reversed(list(Severity))}
    for finding in findings:
        by_severity[finding.severity.value] += 1

    vulnerable = len({f.file_path for f in findings})
    type_counts = Counter(f.type for f in findings)
    most_common = type_counts.most_common(1)[0][0] if type_counts else None

    overall_risk = "none"
    if findings:
        overall_risk = max((f.severity for f in findings), key=lambda s: s.rank).value

    penalty = sum(SEVERITY_WEIGHTS[f.severity] for f in findings)
    return ScanMetrics(
        total_files=total_files,
        vulnerable_files=vulnerable,
        clean_files=max(0, total_files - vulnerable),
        findings_by_severity=by_severity,
        most_common_type=most_common,
        overall_risk=overall_risk,
        security_score=max(0, 100 - penalty),
    )


def _is_api_path(path: str) -> bool:
    return "/api/" in "/" + path.replace("\\", "/")


def analyze_project(findings: Sequence[Finding], corpus: Corpus) -> ProjectAnalysis:
    """
    Project-level rollups, computed by re-filtering the merged findings on
    file path and type, plus the corpus's route and dependency inventory.
    """
    routes = corpus.metadata.api_routes
    api_files = {f.file_path for f in findings if _is_api_path(f.file_path)}

    config_findings = [
        f
        for f in findings
        if f.type in (VulnerabilityType.MISSING_SECURITY_HEADERS, VulnerabilityType.ENVIRONMENT_EXPOSURE)
    ]

    return ProjectAnalysis(
        api_route_security=ApiRouteSecurity(
            total_routes=len(routes),
            vulnerable_routes=len(api_files),
            authenticated_routes=sum(1 for r in routes if r.has_authentication),
            validated_routes=sum(1 for r in routes if r.has_validation),
        ),
        configuration_security=ConfigurationSecurity(
            security_headers_configured=not any(
                f.type == VulnerabilityType.MISSING_SECURITY_HEADERS for f in config_findings
            ),
            env_vars_secure=not any(f.type == VulnerabilityType.ENVIRONMENT_EXPOSURE for f in config_findings),
            missing_configurations=list(dict.fromkeys(f.description for f in config_findings)),
        ),
        dependency_security=DependencySecurity(
            total_dependencies=len(corpus.metadata.dependencies),
            vulnerable_dependencies=sum(
                1
                for f in findings
                if f.type in (VulnerabilityType.INSECURE_RANDOM, VulnerabilityType.DANGEROUS_EVAL)
            ),
        ),
    )


class Orchestrator:
    """
    Runs a set of rules over a corpus and merges their findings.

    A rule that raises is logged with its id and contributes nothing; the
    other rules still run. Cancellation is checked between rules: a rule
    already running on a file is never interrupted.
    """

    def __init__(
        self,
        rules: Iterable[Rule] | RuleRegistry,
        config: Any = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.registry = rules if isinstance(rules, RuleRegistry) else RuleRegistry(rules)
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    def run(self, corpus: Corpus, cancel_event: Optional[threading.Event] = None) -> ScanReport:
        started = time.perf_counter()
        rules = list(self.registry)
        max_workers = getattr(self.config, "max_workers", None)
        min_confidence = getattr(self.config, "min_confidence", Confidence.LOW)

        self.logger.info("Running %d rule(s) over %d file(s)", len(rules), len(corpus))
        if max_workers and max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(pool.map(lambda r: self._run_rule(r, corpus, cancel_event), rules))
        else:
            outcomes = [self._run_rule(rule, corpus, cancel_event) for rule in rules]

        failed = [rule.id for rule, outcome in zip(rules, outcomes) if outcome is _FAILED]
        skipped = [rule.id for rule, outcome in zip(rules, outcomes) if outcome is _SKIPPED]
        batches = [outcome for outcome in outcomes if isinstance(outcome, list)]
        if skipped:
            self.logger.warning("Scan cancelled; %d rule(s) not run: %s", len(skipped), ", ".join(skipped))

        findings = merge_findings(batches, min_confidence)
        report = ScanReport(
            findings=findings,
            metrics=compute_metrics(findings, len(corpus)),
            project=analyze_project(findings, corpus),
            failed_rules=failed,
            cancelled=bool(skipped),
            duration=time.perf_counter() - started,
        )
        self.logger.info(
            "Scan finished: %d finding(s), %d failed rule(s), %.2fs",
            len(findings),
            len(failed),
            report.duration,
        )
        return report

    def _run_rule(self, rule: Rule, corpus: Corpus, cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            return _SKIPPED
        try:
            findings = rule.detect(corpus, self.config)
        except Exception as e:
            self.logger.exception("Rule %s failed: %s", rule.id, e)
            return _FAILED
        self.logger.debug("Rule %s produced %d finding(s)", rule.id, len(findings))
        return findings


_FAILED = object()
_SKIPPED = object()
