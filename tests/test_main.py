"""Tests for the webguard CLI, driven through Typer's CliRunner."""

import logging

import pytest
from typer.testing import CliRunner

from webguard.main import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def reset_webguard_logger():
    """setup_logging() detaches the package logger from the root; undo that for later tests."""
    yield
    logger = logging.getLogger("webguard")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def project(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.js").write_text("eval(userInput);\n")
    (tmp_path / "src" / "util.js").write_text("export const add = (a, b) => a + b;\n")
    return tmp_path


def test_blocking_findings_exit_code(project):
    """A critical finding makes the scan exit with code 1."""
    result = runner.invoke(app, [str(project)])
    assert result.exit_code == 1
    assert "src/app.js" in result.output
    assert "Security score" in result.output


def test_clean_project_exits_zero(tmp_path):
    """No blocking findings: exit code 0."""
    (tmp_path / "util.js").write_text("export const add = (a, b) => a + b;\n")
    result = runner.invoke(app, [str(tmp_path)])
    assert result.exit_code == 0


def test_single_file_target(project):
    """A single source file can be analysed on its own."""
    result = runner.invoke(app, [str(project / "src" / "util.js")])
    assert result.exit_code == 0


def test_rule_selection(project):
    """--rule restricts the scan; the eval finding disappears without its rule."""
    result = runner.invoke(app, [str(project), "--rule", "debug-code"])
    assert result.exit_code == 0


def test_unknown_rule_is_usage_error(project):
    """An unknown rule id is reported as a bad parameter."""
    result = runner.invoke(app, [str(project), "--rule", "no-such-rule"])
    assert result.exit_code == 2


def test_min_confidence_option(project):
    """--min-confidence accepts the confidence names in any case."""
    result = runner.invoke(app, [str(project), "--min-confidence", "HIGH"])
    assert result.exit_code == 1
