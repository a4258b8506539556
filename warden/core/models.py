"""Data models for Warden findings and run statistics."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from warden.core.exceptions import ConfigurationError


class Severity(Enum):
    """Severity of a finding, ordered from least to most severe."""

    INFORMATIONAL = "informational"
    WARNING = "warning"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def sarif_level(self) -> str:
        return _SARIF_LEVELS[self]

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        """Parse a severity name, raising ConfigurationError for unknown names."""
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(s.value for s in cls)
            raise ConfigurationError(
                f"Unknown severity '{value}' (expected one of: {names})"
            ) from None


_SEVERITY_RANK = {
    Severity.INFORMATIONAL: 0,
    Severity.WARNING: 1,
    Severity.ERROR: 2,
}

_SARIF_LEVELS = {
    Severity.INFORMATIONAL: "note",
    Severity.WARNING: "warning",
    Severity.ERROR: "error",
}


@dataclass(frozen=True)
class Span:
    """A line/column range inside a source unit (1-based)."""

    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def __str__(self) -> str:
        return f"{self.start_line}:{self.start_column}"


@dataclass(frozen=True)
class Finding:
    """A reported rule violation."""

    rule_id: str
    severity: Severity
    path: Path
    span: Span
    message: str

    @property
    def line(self) -> int:
        return self.span.start_line

    @property
    def column(self) -> int:
        return self.span.start_column

    def sort_key(self) -> tuple[str, int, int, str]:
        return (str(self.path), self.span.start_line, self.span.start_column, self.rule_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable record."""
        return {
            "rule_id": self.rule_id,
            "severity": self.severity.value,
            "message": self.message,
            "file": self.path.as_posix(),
            "start_line": self.span.start_line,
            "start_column": self.span.start_column,
            "end_line": self.span.end_line,
            "end_column": self.span.end_column,
        }

    def __str__(self) -> str:
        return f"{self.path.as_posix()}:{self.span}: [{self.rule_id}] {self.message}"


class AnalysisStats:
    """Statistics from an analysis run."""

    def __init__(self) -> None:
        self.files: int = 0
        self.findings: int = 0
        self.suppressed: int = 0
        self.skipped: int = 0
        self.errors: list[str] = []
        self.diagnostics: list[str] = []

    def __repr__(self) -> str:
        return (
            f"AnalysisStats(files={self.files}, findings={self.findings}, "
            f"suppressed={self.suppressed}, skipped={self.skipped}, "
            f"errors={len(self.errors)}, diagnostics={len(self.diagnostics)})"
        )


@dataclass
class AnalysisReport:
    """Findings of a run together with its statistics."""

    findings: list[Finding] = field(default_factory=list)
    stats: AnalysisStats = field(default_factory=AnalysisStats)
