"""
Scan configuration: which rules are enabled and how a scan is tuned.

get_default_config() registers every implemented rule. The CLI in main.py
builds on it and overrides fields from its flags.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from webguard.findings.models import Confidence
from webguard.orchestrator import RuleRegistry
from webguard.patterns import DEFAULT_CONTEXT_LINES
from webguard.rules.console_logging import ConsoleLoggingRule
from webguard.rules.dangerous_eval import DangerousEvalRule
from webguard.rules.debug_code import DebugCodeRule
from webguard.rules.env_exposure import EnvExposureRule
from webguard.rules.hardcoded_secrets import HardcodedSecretsRule
from webguard.rules.insecure_random import InsecureRandomRule
from webguard.rules.security_headers import SecurityHeadersRule
from webguard.rules.sql_injection import SqlInjectionRule
from webguard.rules.unsafe_html import UnsafeHTMLRule
from webguard.traversal import DEFAULT_IGNORE_DIRS


@dataclass
class Config:
    """
    Scan configuration.

    - rules: registry of the rules to run
    - context_lines: lines of source kept around each match
    - max_matches: cap on matches per global pattern and file
    - include_tests: analyse test files as well
    - min_confidence: findings below this confidence are dropped from the report
    - exclude_dirs: directory names skipped when loading a project
    - max_workers: run rules on a thread pool of this size (None: sequential)
    """

    rules: RuleRegistry = field(default_factory=RuleRegistry)
    context_lines: int = DEFAULT_CONTEXT_LINES
    max_matches: int = 1000
    include_tests: bool = False
    min_confidence: Confidence = Confidence.LOW
    exclude_dirs: set[str] = field(default_factory=lambda: set(DEFAULT_IGNORE_DIRS))
    max_workers: Optional[int] = None


def default_registry() -> RuleRegistry:
    """A fresh registry holding one instance of every implemented rule."""
    return RuleRegistry(
        [
            HardcodedSecretsRule(),
            DangerousEvalRule(),
            UnsafeHTMLRule(),
            ConsoleLoggingRule(),
            SqlInjectionRule(),
            InsecureRandomRule(),
            EnvExposureRule(),
            DebugCodeRule(),
            SecurityHeadersRule(),
        ]
    )


def get_default_config() -> Config:
    return Config(rules=default_registry())


def get_enabled_rules(config: Config | None = None, only: Iterable[str] | None = None) -> RuleRegistry:
    """
    Rules to run for `config` (or the default config).

    `only` restricts the result to the given rule ids; an unknown id raises
    WebGuardError.
    """
    if config is None:
        config = get_default_config()
    only = list(only or ())
    if only:
        return config.rules.select(only)
    return config.rules
