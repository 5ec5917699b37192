"""Exceptions raised by framecast. Validation problems are findings, not exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from framecast.models import IntegrityReport, Span


class ArtifactSyntaxError(ValueError):
    """Raised when artifact source text cannot be parsed."""

    def __init__(self, message: str, span: Span):
        super().__init__(f"{message} at {span.label()}")
        self.reason = message
        self.span = span


class RecoveryExhaustedError(RuntimeError):
    """Raised when project recovery runs out of attempts with entries still missing."""

    def __init__(self, report: IntegrityReport):
        missing = ", ".join(report.missing) or "<none>"
        super().__init__(
            f"Project {report.project_dir} still incomplete after {report.attempts} attempt(s); missing: {missing}"
        )
        self.report = report


class ProjectLockError(RuntimeError):
    """Raised when another writer holds the recovery lock for a project."""


class TypeCheckError(RuntimeError):
    """Raised by a type-check oracle that could not produce a verdict."""
