# Exception hierarchy: pattern and detector failures that the engine isolates instead of crashing.

from __future__ import annotations


class WebGuardError(Exception):
    """
    Base exception for all WebGuard errors.

    Attributes:
        message: Human-readable error message.
        context: Extra key/value details (rule id, file path, pattern id).
    """

    def __init__(self, message: str, context: dict | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class PatternError(WebGuardError):
    """Raised when a declarative pattern cannot be compiled or evaluated."""

    def __init__(self, message: str, pattern_id: str | None = None, context: dict | None = None) -> None:
        ctx = context or {}
        if pattern_id:
            ctx["pattern"] = pattern_id
        super().__init__(message, ctx)
        self.pattern_id = pattern_id


class DetectorError(WebGuardError):
    """
    Raised when a rule fails while analysing a file.

    Rule.detect() catches it per file, logs it with the rule id and path and
    continues with the remaining files.
    """

    def __init__(
        self,
        message: str,
        rule_id: str | None = None,
        path: str | None = None,
        context: dict | None = None,
    ) -> None:
        ctx = context or {}
        if rule_id:
            ctx["rule"] = rule_id
        if path:
            ctx["path"] = path
        super().__init__(message, ctx)
        self.rule_id = rule_id
        self.path = path
