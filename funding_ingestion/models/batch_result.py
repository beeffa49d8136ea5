"""Result containers for batch storage runs.

``BatchResult`` is immutable: each batch produces one instance after its
fan-out has settled, and the running total is a new instance built by
concatenation (``total + batch``).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class FailedOpportunity:
    """A single opportunity that could not be stored."""

    title: Optional[str]
    id: Optional[str]
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "id": self.id, "error": self.error}


@dataclass(frozen=True)
class BatchResult:
    """Per-batch (or pipeline-wide) storage outcomes."""

    new_opportunities: tuple[dict, ...] = ()
    updated_opportunities: tuple[dict, ...] = ()
    ignored_opportunities: tuple[dict, ...] = ()
    duplicates_found: tuple[dict, ...] = ()
    failed_opportunities: tuple[FailedOpportunity, ...] = ()

    def __add__(self, other: BatchResult) -> BatchResult:
        if not isinstance(other, BatchResult):
            return NotImplemented
        return BatchResult(
            new_opportunities=self.new_opportunities + other.new_opportunities,
            updated_opportunities=self.updated_opportunities + other.updated_opportunities,
            ignored_opportunities=self.ignored_opportunities + other.ignored_opportunities,
            duplicates_found=self.duplicates_found + other.duplicates_found,
            failed_opportunities=self.failed_opportunities + other.failed_opportunities,
        )

    def to_dict(self) -> dict[str, list]:
        return {
            "newOpportunities": list(self.new_opportunities),
            "updatedOpportunities": list(self.updated_opportunities),
            "ignoredOpportunities": list(self.ignored_opportunities),
            "duplicatesFound": list(self.duplicates_found),
            "failedOpportunities": [f.to_dict() for f in self.failed_opportunities],
        }


@dataclass(frozen=True)
class BatchMetrics:
    """Counts derived from a BatchResult."""

    total_processed: int = 0
    new_opportunities: int = 0
    updated_opportunities: int = 0
    ignored_opportunities: int = 0
    duplicates_found: int = 0
    failed_opportunities: int = 0
    execution_time: int = 1
    error: bool = False
    error_message: Optional[str] = None

    @classmethod
    def from_results(
        cls,
        total_processed: int,
        results: BatchResult,
        execution_time: int,
    ) -> BatchMetrics:
        return cls(
            total_processed=total_processed,
            new_opportunities=len(results.new_opportunities),
            updated_opportunities=len(results.updated_opportunities),
            ignored_opportunities=len(results.ignored_opportunities),
            duplicates_found=len(results.duplicates_found),
            failed_opportunities=len(results.failed_opportunities),
            execution_time=execution_time,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "totalProcessed": self.total_processed,
            "newOpportunities": self.new_opportunities,
            "updatedOpportunities": self.updated_opportunities,
            "ignoredOpportunities": self.ignored_opportunities,
            "duplicatesFound": self.duplicates_found,
            "failedOpportunities": self.failed_opportunities,
            "executionTime": self.execution_time,
        }
        if self.error:
            data["error"] = True
            data["errorMessage"] = self.error_message
        return data


@dataclass(frozen=True)
class StorageResult:
    """Return value of the storage entry point."""

    results: BatchResult = field(default_factory=BatchResult)
    metrics: BatchMetrics = field(default_factory=BatchMetrics)
    execution_time: int = 1

    @property
    def is_error(self) -> bool:
        return self.metrics.error

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": self.results.to_dict(),
            "metrics": self.metrics.to_dict(),
            "executionTime": self.execution_time,
        }
