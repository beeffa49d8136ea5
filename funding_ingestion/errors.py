"""Exception taxonomy for the storage pipeline.

Per-item errors (``StorageError`` and subclasses) are captured into
``failed_opportunities``. ``GeographicResolutionError`` is logged only.
``ValidationError`` propagates to the caller, and
``FatalInfrastructureError`` is turned into an error-flagged result by the
orchestrator.
"""

from typing import Optional


class IngestionError(Exception):
    """Base class for all pipeline errors."""
    pass


class ValidationError(IngestionError, ValueError):
    """Malformed call arguments, raised before any I/O."""
    pass


class StorageError(IngestionError):
    """A single storage operation failed (query rejected, bad data, etc.)."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class ConflictError(StorageError):
    """Uniqueness constraint violation on insert."""
    pass


class FundingSourceResolutionError(StorageError):
    """Funding source lookup or creation failed for an opportunity."""
    pass


class GeographicResolutionError(IngestionError):
    """State eligibility or coverage-area linking failed."""
    pass


class FatalInfrastructureError(IngestionError):
    """The storage backend itself cannot be reached."""
    pass
