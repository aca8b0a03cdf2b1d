# Rich console output: findings grouped by file, a files summary and the scan metrics.

from __future__ import annotations

from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from webguard.findings.models import Finding, Severity, VulnerabilityType
from webguard.orchestrator import ScanReport

# Remediation hints per finding type (shown with --verbose)
REMEDIATIONS: dict[VulnerabilityType, str] = {
    VulnerabilityType.DANGEROUS_EVAL: (
        "Avoid eval(), new Function() and string timers; use JSON.parse for data "
        "and pass functions, not strings, to setTimeout/setInterval."
    ),
    VulnerabilityType.HARDCODED_SECRET: (
        "Move the value to an environment variable or secret manager and rotate "
        "any credential that was committed."
    ),
    VulnerabilityType.UNSAFE_HTML: (
        "Render text instead of HTML, or sanitize with DOMPurify.sanitize() before "
        "dangerouslySetInnerHTML / innerHTML."
    ),
    VulnerabilityType.SQL_INJECTION: (
        "Use parameterized queries or the query builder's bindings instead of "
        "string concatenation or template literals."
    ),
    VulnerabilityType.INSECURE_RANDOM: (
        "Use crypto.getRandomValues(), crypto.randomUUID() or crypto.randomBytes() "
        "for tokens, ids and secrets."
    ),
    VulnerabilityType.ENVIRONMENT_EXPOSURE: (
        "Read server-only variables in API routes or server components; only "
        "NEXT_PUBLIC_ variables reach the browser."
    ),
    VulnerabilityType.DEBUG_CODE: (
        "Remove debugger statements and debug flags, or gate them behind "
        "process.env.NODE_ENV === 'development'."
    ),
    VulnerabilityType.CONSOLE_LOGGING: (
        "Do not log credentials or personal data; redact the value or log an identifier instead."
    ),
    VulnerabilityType.MISSING_SECURITY_HEADERS: (
        "Configure Content-Security-Policy, X-Frame-Options and Strict-Transport-Security."
    ),
}

SEVERITY_STYLE = {
    "critical": "bold white on red",
    "high": "bold red",
    "medium": "bold yellow",
    "low": "bold dim",
}

CONFIDENCE_STYLE = {
    "high": "bold",
    "medium": "",
    "low": "dim",
}

DEFAULT_SEVERITY_STYLE = "bold white"


def _severity_style(severity: str) -> str:
    return SEVERITY_STYLE.get(severity.lower(), DEFAULT_SEVERITY_STYLE)


def get_remediation(finding: Finding) -> Optional[str]:
    return REMEDIATIONS.get(finding.type)


def print_report(
    report: ScanReport,
    analyzed_files: Sequence[str] | None = None,
    verbose: bool = False,
    console: Console | None = None,
) -> None:
    """
    Print a scan report.

    Groups findings by file, colors by severity and shows the code each
    finding points at. With verbose, adds remediation hints per finding
    type. If analyzed_files is given, adds a file-by-file summary table.
    """
    console = console or Console()
    findings = report.findings

    if not findings and not analyzed_files:
        console.print(
            Panel(
                "[green]No issues found.[/green]",
                title="WebGuard Analysis",
                border_style="green",
                box=box.ROUNDED,
            )
        )
        _print_metrics(report, console)
        return

    by_file: dict[str, list[Finding]] = {}
    for f in findings:
        by_file.setdefault(f.file_path, []).append(f)

    for path in sorted(by_file):
        _print_file_findings(path, by_file[path], verbose, console)

    if analyzed_files:
        _print_file_summary_table(findings, analyzed_files, console)

    _print_metrics(report, console)


def _print_file_findings(path: str, file_findings: list[Finding], verbose: bool, console: Console) -> None:
    file_findings = sorted(file_findings, key=lambda x: (x.location.line, x.location.column))

    console.print()
    console.print(
        Panel(
            Text(path, style="bold cyan"),
            box=box.SIMPLE_HEAD,
            border_style="blue",
            padding=(0, 1),
        )
    )

    table = Table(
        show_header=True,
        header_style="bold magenta",
        box=box.SIMPLE,
        padding=(0, 1),
        expand=False,
    )
    table.add_column("Line", justify="right", style="dim", width=5)
    table.add_column("Col", justify="right", style="dim", width=4)
    table.add_column("Severity", width=10)
    table.add_column("Confidence", width=10)
    table.add_column("Type", width=22)
    table.add_column("Description", style="white")

    for f in file_findings:
        loc = f.location
        table.add_row(
            str(loc.line),
            str(loc.column),
            Text(f.severity.value.upper(), style=_severity_style(f.severity.value)),
            Text(f.confidence.value, style=CONFIDENCE_STYLE.get(f.confidence.value, "")),
            Text(f"[{f.type.value}]", style="dim"),
            Text(f.description),
        )
    console.print(table)

    for f in file_findings:
        snippet = f.context.code.strip().splitlines()
        if snippet:
            suffix = " ..." if len(snippet) > 1 else ""
            console.print(Text.assemble((f"  {f.location.line:>4} | ", "dim"), snippet[0] + suffix))
    console.print()

    if verbose:
        seen: set[VulnerabilityType] = set()
        for f in file_findings:
            if f.type in seen:
                continue
            seen.add(f.type)
            remediation = get_remediation(f)
            if remediation:
                console.print(Text.assemble(("  [Fix] ", "dim"), (f"[{f.type.value}] ", "bold"), remediation))
        if seen:
            console.print()


def _print_file_summary_table(
    findings: Sequence[Finding],
    analyzed_files: Sequence[str],
    console: Console,
) -> None:
    """Print a table of files with findings followed by clean files."""
    by_path: dict[str, int] = {}
    for f in findings:
        by_path[f.file_path] = by_path.get(f.file_path, 0) + 1

    table = Table(
        title="Files Summary",
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        padding=(0, 1),
    )
    table.add_column("File", style="white")
    table.add_column("Status", width=10)
    table.add_column("Findings", justify="right", width=8)

    for path in sorted(p for p in analyzed_files if p in by_path):
        table.add_row(Text(path), Text("VULNERABLE", style="bold red"), str(by_path[path]))
    for path in sorted(p for p in analyzed_files if p not in by_path):
        table.add_row(Text(path), Text("OK", style="bold green"), "0")

    console.print()
    console.print(Panel(table, border_style="cyan", box=box.ROUNDED))


def _print_metrics(report: ScanReport, console: Console) -> None:
    """Print the severity counts, score and project rollups."""
    metrics = report.metrics
    total = len(report.findings)

    parts = [f"[bold]{total} finding{'s' if total != 1 else ''}[/bold]"]
    for severity in (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW):
        count = metrics.findings_by_severity.get(severity.value, 0)
        if count:
            parts.append(f"[{_severity_style(severity.value)}]{count} {severity.value}[/]")

    lines = [
        " | ".join(parts),
        f"Files: {metrics.total_files} analyzed, {metrics.vulnerable_files} vulnerable, {metrics.clean_files} clean",
        f"Security score: [bold]{metrics.security_score}[/bold]/100   Overall risk: {metrics.overall_risk}",
    ]
    if metrics.most_common_type is not None:
        lines.append(f"Most common: {metrics.most_common_type.value}")

    routes = report.project.api_route_security
    if routes.total_routes:
        lines.append(
            f"API routes: {routes.total_routes} total, {routes.vulnerable_routes} with findings, "
            f"{routes.authenticated_routes} authenticated, {routes.validated_routes} validated"
        )
    if report.failed_rules:
        lines.append(f"[red]Failed rules: {', '.join(report.failed_rules)}[/red]")
    if report.cancelled:
        lines.append("[yellow]Scan cancelled before all rules ran[/yellow]")

    console.print()
    console.print(
        Panel(
            "\n".join(lines),
            title="Summary",
            border_style="yellow" if total > 0 else "green",
            box=box.ROUNDED,
        )
    )
