"""
Custom exceptions and error handling for the revenue reporting pipeline.

Provides:
- Typed exception hierarchy for different failure modes
- Error context preservation for debugging
- Data quality tracking for per-record defects (which are never fatal)
"""

from dataclasses import dataclass, field
from typing import Any


class RevenueReportError(Exception):
    """Base exception for all revenue reporting errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


# =============================================================================
# Configuration Errors (fatal, raised before any output is written)
# =============================================================================


class ConfigurationError(RevenueReportError):
    """Base class for run configuration errors."""

    pass


class MissingParameterError(ConfigurationError):
    """A required report parameter (e.g. report date) is missing or unusable."""

    pass


class MissingTableError(ConfigurationError):
    """A required lookup table (membership, exclusions) was not supplied."""

    pass


class MissingColumnError(ConfigurationError):
    """A source table lacks a column required to build deal records."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(RevenueReportError):
    """Base class for pipeline-related errors."""

    pass


class ReportBuildError(PipelineError):
    """Error while assembling a report table."""

    pass


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(RevenueReportError):
    """Base class for storage client errors."""

    pass


class StorageConnectionError(StorageError):
    """Failed to connect to the report database."""

    pass


class StorageQueryError(StorageError):
    """Error executing a query against the report database."""

    pass


# =============================================================================
# Data Quality Tracking
# =============================================================================


@dataclass(frozen=True)
class RecordDefect:
    """A non-fatal problem found on a single source record."""

    deal_id: str | None
    source: str | None
    field: str
    issue: str


@dataclass
class DataQualityReport:
    """
    Collects per-record data defects for a run.

    Unparseable dates, unparseable amounts and missing identifiers each have
    a documented fallback, so processing continues; the defects are kept here
    so the run can still be audited.
    """

    defects: list[RecordDefect] = field(default_factory=list)

    def add(
        self,
        field: str,
        issue: str,
        deal_id: str | None = None,
        source: str | None = None,
    ) -> None:
        """Record a defect."""
        self.defects.append(
            RecordDefect(deal_id=deal_id, source=source, field=field, issue=issue)
        )

    def extend(self, other: 'DataQualityReport') -> None:
        self.defects.extend(other.defects)

    @property
    def defect_count(self) -> int:
        return len(self.defects)

    @property
    def is_clean(self) -> bool:
        return not self.defects

    def count_by_field(self) -> dict[str, int]:
        """Number of defects per field name, in first-seen order."""
        counts: dict[str, int] = {}
        for defect in self.defects:
            counts[defect.field] = counts.get(defect.field, 0) + 1
        return counts

    def for_field(self, field: str) -> list[RecordDefect]:
        return [d for d in self.defects if d.field == field]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'defect_count': self.defect_count,
            'by_field': self.count_by_field(),
            'defects': [
                {
                    'deal_id': d.deal_id,
                    'source': d.source,
                    'field': d.field,
                    'issue': d.issue,
                }
                for d in self.defects
            ],
        }


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_storage_error(exc: Exception, context: dict[str, Any] | None = None) -> StorageError:
    """
    Wrap a database driver exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed StorageError subclass
    """
    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if 'connection' in error_str or 'connect' in error_str or 'timeout' in error_str:
        return StorageConnectionError(
            f"Database connection failed: {exc}",
            context=ctx,
        )
    return StorageQueryError(
        f"Database query error: {exc}",
        context=ctx,
    )
