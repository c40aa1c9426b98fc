"""
Diagnostics for queryrunner.

Configuration problems are reported as located diagnostics instead of
exceptions, so a single pass over a document reports every problem.

Design Principle:
    Diagnostics are data. They are accumulated in order, returned next to
    partial results, and only turned into an exception (DiagnosticsError)
    at the boundary where an operation has to fail.

Usage:
    diags = Diagnostics()
    diags.append(
        Diagnostic.error(
            "Invalid description",
            "description is not string",
            subject=attr.expr.range,
        )
    )
    if diags.has_errors():
        print(DiagnosticTextWriter(document.files).format(diags))
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class Severity(Enum):
    """Diagnostic severity. Only errors block execution."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class SourceRange:
    """
    A span of configuration source text.

    Lines and columns are 1-indexed; end_column is exclusive.
    """

    filename: str
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    @classmethod
    def point(cls, filename: str, line: int = 1, column: int = 1) -> SourceRange:
        return cls(filename, line, column, line, column)

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return f"{self.filename}:{self.start_line},{self.start_column}-{self.end_column}"
        return (
            f"{self.filename}:{self.start_line},{self.start_column}"
            f"-{self.end_line},{self.end_column}"
        )


@dataclass(frozen=True)
class Diagnostic:
    """A single located error or warning."""

    severity: Severity
    summary: str
    detail: str = ""
    subject: SourceRange | None = None

    @classmethod
    def error(cls, summary: str, detail: str = "", subject: SourceRange | None = None) -> Diagnostic:
        return cls(Severity.ERROR, summary, detail, subject)

    @classmethod
    def warning(
        cls, summary: str, detail: str = "", subject: SourceRange | None = None
    ) -> Diagnostic:
        return cls(Severity.WARNING, summary, detail, subject)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def __str__(self) -> str:
        prefix = f"{self.subject}: " if self.subject else ""
        if self.detail:
            return f"{prefix}{self.summary}; {self.detail}"
        return f"{prefix}{self.summary}"


class Diagnostics(list):
    """Ordered list of Diagnostic values."""

    def has_errors(self) -> bool:
        return any(d.is_error for d in self)

    def errors(self) -> Diagnostics:
        return Diagnostics(d for d in self if d.is_error)

    def warnings(self) -> Diagnostics:
        return Diagnostics(d for d in self if not d.is_error)

    def __str__(self) -> str:
        errors = self.errors()
        if not errors:
            return "no errors"
        if len(errors) == 1:
            return str(errors[0])
        return f"{errors[0]}, and {len(errors) - 1} other diagnostic(s)"


class DiagnosticTextWriter:
    """
    Renders diagnostics as human-readable text with source context.

    Args:
        files: Source text by filename, used to print the offending line
        width: Maximum width of the quoted source line
    """

    def __init__(self, files: Mapping[str, str] | None = None, width: int = 400):
        self._lines = {name: src.splitlines() for name, src in (files or {}).items()}
        self._width = width

    def format_one(self, diag: Diagnostic) -> str:
        label = "Error" if diag.is_error else "Warning"
        parts = [f"{label}: {diag.summary}", ""]

        subject = diag.subject
        if subject is not None:
            parts.append(f"  on {subject.filename} line {subject.start_line}:")
            lines = self._lines.get(subject.filename)
            if lines and 0 < subject.start_line <= len(lines):
                source_line = lines[subject.start_line - 1][: self._width]
                parts.append(f"{subject.start_line:>4}: {source_line}")
            parts.append("")

        if diag.detail:
            parts.append(diag.detail)
        return "\n".join(parts).rstrip() + "\n"

    def format(self, diagnostics: Iterable[Diagnostic]) -> str:
        return "\n".join(self.format_one(d) for d in diagnostics)


__all__ = [
    "Diagnostic",
    "DiagnosticTextWriter",
    "Diagnostics",
    "Severity",
    "SourceRange",
]
