"""Natural-key lookup of an already-stored opportunity."""

import logging
from typing import Optional

from ..database.base import Row, StorageClient
from ..models import Opportunity
from .sanitizer import sanitize_title

logger = logging.getLogger(__name__)

OPPORTUNITIES_TABLE = "funding_opportunities"

# Short titles ("Grant", "RFP 2024") collide across unrelated opportunities.
MIN_TITLE_MATCH_LENGTH = 10


def natural_key_conflict(opportunity: Opportunity) -> str:
    """``on_conflict`` columns for upserting this opportunity."""
    if opportunity.id and opportunity.id.strip():
        return "opportunity_id,api_source_id"
    return "title,api_source_id"


class DuplicateResolver:
    """Finds the stored row for an opportunity by id, then by title."""

    def __init__(self, storage: StorageClient) -> None:
        self.storage = storage

    async def find_existing(
        self,
        opportunity: Opportunity,
        source_id: str,
        min_title_length: int = MIN_TITLE_MATCH_LENGTH,
    ) -> Optional[Row]:
        """Stored row by external id, else by title.

        After an insert conflict the row is known to exist, so callers pass
        ``min_title_length=1`` to allow short titles.
        """
        existing = await self.find_by_opportunity_id(opportunity.id, source_id)
        if existing is not None:
            return existing
        return await self.find_by_title(opportunity.title, source_id, min_title_length)

    async def find_by_opportunity_id(self, opportunity_id: Optional[str], source_id: str) -> Optional[Row]:
        if not opportunity_id or not opportunity_id.strip():
            return None
        existing = await self.storage.select_one(
            OPPORTUNITIES_TABLE,
            "*",
            eq={"opportunity_id": opportunity_id.strip(), "api_source_id": source_id},
        )
        if existing is not None:
            logger.debug("duplicate_found_by_id opportunity_id=%s", opportunity_id)
        return existing

    async def find_by_title(
        self,
        title: Optional[str],
        source_id: str,
        min_length: int = MIN_TITLE_MATCH_LENGTH,
    ) -> Optional[Row]:
        if not title or len(title.strip()) < max(1, min_length):
            return None
        existing = await self.storage.select_one(
            OPPORTUNITIES_TABLE,
            "*",
            eq={"title": sanitize_title(title), "api_source_id": source_id},
        )
        if existing is not None:
            logger.debug("duplicate_found_by_title title=%r", title)
        return existing
