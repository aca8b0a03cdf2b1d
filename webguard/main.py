"""
Typer CLI entry point.

- Accepts a source file or a project directory
- Loads the corpus (directories: recursive discovery, package.json, API routes)
- Runs the enabled rules through the Orchestrator
- Prints a Rich report; exits with code 1 when a critical or high finding is reported
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from webguard.config import Config, get_default_config, get_enabled_rules
from webguard.corpus import Corpus, create_source_file, load_corpus
from webguard.errors import WebGuardError
from webguard.findings.models import Confidence
from webguard.log import setup_logging
from webguard.orchestrator import Orchestrator
from webguard.reporting.console import print_report
from webguard.traversal import is_source_file

logger = logging.getLogger(__name__)

app = typer.Typer(help="WebGuard - security analysis for JavaScript and TypeScript web projects.")


def _load_target(target: Path, config: Config) -> Corpus:
    """
    Resolve a target path into a corpus.

    - A source file: a single-file corpus
    - A directory: every web source file under it, plus project metadata
    - Otherwise: BadParameter
    """
    if target.is_file():
        if not is_source_file(target):
            raise typer.BadParameter(f"Not a JavaScript/TypeScript source file: {target}")
        source_file = create_source_file(target, target.parent)
        return Corpus([source_file] if source_file is not None else [])

    if target.is_dir():
        corpus = load_corpus(target, ignore_dirs=config.exclude_dirs)
        if not len(corpus):
            logger.warning("No source files found under %s", target)
        return corpus

    raise typer.BadParameter(f"Target path is neither a file nor a directory: {target}")


@app.command()
def analyze(
    target: Path = typer.Argument(
        ...,
        exists=True,
        readable=True,
        resolve_path=True,
        help="Source file or project directory to analyze.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging and remediation hints."),
    min_confidence: Confidence = typer.Option(
        Confidence.LOW, "--min-confidence", case_sensitive=False, help="Drop findings below this confidence."
    ),
    include_tests: bool = typer.Option(False, "--include-tests", help="Analyze test files too."),
    rule: Optional[List[str]] = typer.Option(
        None, "--rule", "-r", help="Run only this rule id (repeatable)."
    ),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Run rules on a thread pool."),
) -> None:
    """
    Analyze a single source file or every web source file under a directory.

    Uses the rules registered in config.get_default_config().
    """
    setup_logging(verbose)

    config = get_default_config()
    config.min_confidence = min_confidence
    config.include_tests = include_tests
    config.max_workers = workers

    try:
        rules = get_enabled_rules(config, only=rule)
    except WebGuardError as e:
        raise typer.BadParameter(e.message, param_hint="--rule") from e
    if not len(rules):
        typer.echo("No rules are enabled in the current configuration.")
        raise typer.Exit(code=1)

    corpus = _load_target(target, config)
    report = Orchestrator(rules, config).run(corpus)
    print_report(report, analyzed_files=corpus.file_paths, verbose=verbose)

    if report.has_blocking_findings:
        raise typer.Exit(code=1)


def main() -> None:
    """Entry point for the `webguard` script and `python -m webguard.main`."""
    app()


if __name__ == "__main__":
    main()
