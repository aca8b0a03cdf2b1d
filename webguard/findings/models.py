# Pydantic data models for security findings: Finding, Location, Severity, Confidence.

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """Impact of a finding if it is a true instance."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


class Confidence(str, Enum):
    """
    Ordinal certainty that a match is a real instance: low < medium < high.

    raised()/lowered() move one step and saturate at the ends.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_ORDER.index(self)

    def raised(self) -> "Confidence":
        return _CONFIDENCE_ORDER[min(len(_CONFIDENCE_ORDER) - 1, self.rank + 1)]

    def lowered(self) -> "Confidence":
        return _CONFIDENCE_ORDER[max(0, self.rank - 1)]


_CONFIDENCE_ORDER = [Confidence.LOW, Confidence.MEDIUM, Confidence.HIGH]


class VulnerabilityType(str, Enum):
    DANGEROUS_EVAL = "dangerous-eval"
    HARDCODED_SECRET = "hardcoded-secret"
    UNSAFE_HTML = "unsafe-html"
    SQL_INJECTION = "sql-injection"
    INSECURE_RANDOM = "insecure-random"
    ENVIRONMENT_EXPOSURE = "environment-exposure"
    DEBUG_CODE = "debug-code"
    CONSOLE_LOGGING = "console-logging"
    MISSING_SECURITY_HEADERS = "missing-security-headers"


class Location(BaseModel):
    """Where in the source a finding was reported (1-based line/column; columns and offsets count UTF-8 bytes)."""

    line: int = Field(..., ge=1, description="1-based line number")
    column: int = Field(..., ge=1, description="1-based column number")
    end_line: Optional[int] = Field(None, ge=1)
    end_column: Optional[int] = Field(None, ge=1)
    start_offset: Optional[int] = Field(None, ge=0)
    end_offset: Optional[int] = Field(None, ge=0)


class FindingContext(BaseModel):
    """Code snippet and surroundings shown alongside a finding."""

    code: str
    surrounding: Optional[str] = None
    function_name: Optional[str] = None
    component_name: Optional[str] = None


class Finding(BaseModel):
    """A single candidate weakness reported by a rule (e.g. eval() at line 5)."""

    id: str
    type: VulnerabilityType
    severity: Severity
    confidence: Confidence
    description: str
    file_path: str
    location: Location
    context: FindingContext
    metadata: dict[str, Any] = Field(default_factory=dict)
    detected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @staticmethod
    def make_id(file_path: str, line: int, column: int, vulnerability_type: VulnerabilityType | str) -> str:
        """
        Content-derived identifier: identical (file, location, type) always
        yields the same id, so repeated scans can be compared and de-duplicated.
        """
        kind = vulnerability_type.value if isinstance(vulnerability_type, VulnerabilityType) else vulnerability_type
        raw = f"{file_path}:{line}:{column}:{kind}"
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
