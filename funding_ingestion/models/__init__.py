"""Shared models for the storage pipeline."""

from .opportunity import FundingSourceInfo, Opportunity, OpportunityScoring, SourceRef
from .batch_result import BatchMetrics, BatchResult, FailedOpportunity, StorageResult

__all__ = [
    "Opportunity",
    "OpportunityScoring",
    "FundingSourceInfo",
    "SourceRef",
    "BatchResult",
    "BatchMetrics",
    "FailedOpportunity",
    "StorageResult",
]
