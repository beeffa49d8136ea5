"""Batch storage pipeline for normalized funding opportunities."""

from .errors import (
    ConflictError,
    FatalInfrastructureError,
    FundingSourceResolutionError,
    GeographicResolutionError,
    IngestionError,
    StorageError,
    ValidationError,
)
from .storage import StorageAgent, store_opportunities

__all__ = [
    "ConflictError",
    "FatalInfrastructureError",
    "FundingSourceResolutionError",
    "GeographicResolutionError",
    "IngestionError",
    "StorageError",
    "ValidationError",
    "StorageAgent",
    "store_opportunities",
]
