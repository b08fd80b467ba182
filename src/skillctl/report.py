from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Issue:
    severity: Severity
    message: str
    path: Path | None = None

    def __str__(self) -> str:
        if self.path is not None:
            return f"[{self.severity.value}] {self.message} ({self.path})"
        return f"[{self.severity.value}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "path": str(self.path) if self.path is not None else None,
        }


@dataclass(frozen=True)
class ExternalScanResult:
    tool: str
    severity: Severity
    output: str

    def to_dict(self) -> dict[str, Any]:
        return {"tool": self.tool, "severity": self.severity.value, "output": self.output}


@dataclass
class Report:
    """Ordered issues from one validation or scan pass."""

    issues: list[Issue] = field(default_factory=list)

    def add(self, severity: Severity, message: str, path: Path | None = None) -> Issue:
        issue = Issue(severity=severity, message=message, path=path)
        self.issues.append(issue)
        return issue

    def error(self, message: str, path: Path | None = None) -> Issue:
        return self.add(Severity.ERROR, message, path)

    def warning(self, message: str, path: Path | None = None) -> Issue:
        return self.add(Severity.WARNING, message, path)

    def info(self, message: str, path: Path | None = None) -> Issue:
        return self.add(Severity.INFO, message, path)

    def has_errors(self) -> bool:
        return any(issue.severity is Severity.ERROR for issue in self.issues)

    @property
    def warnings(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.severity is Severity.WARNING]

    def to_dict(self) -> dict[str, Any]:
        return {"ok": not self.has_errors(), "issues": [issue.to_dict() for issue in self.issues]}


@dataclass
class ScanReport(Report):
    external: list[ExternalScanResult] = field(default_factory=list)

    def has_errors(self) -> bool:
        if super().has_errors():
            return True
        return any(result.severity is Severity.ERROR for result in self.external)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["external"] = [result.to_dict() for result in self.external]
        return data
