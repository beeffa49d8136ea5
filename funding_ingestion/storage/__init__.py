"""Opportunity persistence: sanitizing, funding sources, duplicates, orchestration."""

from .duplicates import DuplicateResolver, natural_key_conflict
from .funding_sources import FundingSourceResolver, categorize_source_type
from .orchestrator import StorageAgent, iter_batches, store_opportunities, validate_inputs
from .sanitizer import prepare_for_insert, prepare_for_update

__all__ = [
    "DuplicateResolver",
    "natural_key_conflict",
    "FundingSourceResolver",
    "categorize_source_type",
    "StorageAgent",
    "iter_batches",
    "store_opportunities",
    "validate_inputs",
    "prepare_for_insert",
    "prepare_for_update",
]
