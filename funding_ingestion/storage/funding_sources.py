"""Get-or-create for ``funding_sources`` rows.

Creation is compare-and-swap: two concurrent opportunities naming the same
new source both attempt the insert, the loser gets a ``ConflictError`` and
re-fetches the winner's row. Callers never see a duplicate source.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from ..database.base import Row, StorageClient
from ..errors import ConflictError, FundingSourceResolutionError, StorageError
from ..models import FundingSourceInfo, Opportunity, SourceRef

logger = logging.getLogger(__name__)

FUNDING_SOURCES_TABLE = "funding_sources"

# Checked in order; state before federal so "State Department of ..." stays State.
_TYPE_PATTERNS = (
    ("State", ("state", "california", "texas", "new york", "florida")),
    ("Federal", ("federal", "u.s.", "united states", "epa", "doe", "usda", "treasury")),
    ("County", ("county",)),
    ("Municipality", ("city", "municipal", "municipality")),
    ("Foundation", ("foundation", "fund", "trust")),
    ("Utility", ("utility", "utilities", "electric", "gas")),
)

_TYPE_REGEXES = tuple(
    (category, tuple(re.compile(r"(?<!\w)" + re.escape(p) + r"(?!\w)") for p in patterns))
    for category, patterns in _TYPE_PATTERNS
)


def categorize_source_type(source_type: Optional[str], name: str) -> str:
    """Provided type when meaningful, else a category from name patterns."""
    if source_type and source_type.strip().lower() != "unknown":
        return source_type.strip()

    lowered = name.lower()
    for category, patterns in _TYPE_REGEXES:
        if any(p.search(lowered) for p in patterns):
            return category
    return "Other"


class FundingSourceResolver:
    """Resolves an opportunity's funding source to a ``funding_sources.id``."""

    def __init__(self, storage: StorageClient) -> None:
        self.storage = storage

    async def resolve(self, opportunity: Opportunity, source: SourceRef) -> Optional[str]:
        """Return the funding source id, creating the row if needed.

        Returns None (with a warning) when the opportunity names no source.

        Raises:
            FundingSourceResolutionError: If lookup or creation fails
        """
        name = opportunity.funding_source_name
        if not name:
            logger.warning("funding_source_missing title=%r", opportunity.title)
            return None

        info = opportunity.funding_source or FundingSourceInfo()
        organization = (info.organization or "").strip() or None

        existing = await self.find_by_name(name, organization)
        if existing is not None:
            return await self.update_if_needed(existing, info, source)
        return await self.create(name, organization, info, source)

    async def find_by_name(self, name: str, organization: Optional[str] = None) -> Optional[Row]:
        eq: dict[str, Any] = {"name": name}
        if organization:
            eq["organization"] = organization
        try:
            return await self.storage.select_one(FUNDING_SOURCES_TABLE, "*", eq=eq)
        except StorageError as exc:
            raise FundingSourceResolutionError(
                f"Funding source lookup failed for {name!r}: {exc}", code=exc.code
            ) from exc

    async def update_if_needed(self, existing: Row, info: FundingSourceInfo, source: SourceRef) -> str:
        """Fill in contact details the stored row lacks. Failures are logged only."""
        updates: dict[str, Any] = {}
        if info.contact_email and not existing.get("contact_email"):
            updates["contact_email"] = info.contact_email
        if info.contact_phone and not existing.get("contact_phone"):
            updates["contact_phone"] = info.contact_phone
        website = info.website or source.website
        if website and not existing.get("website"):
            updates["website"] = website

        if updates:
            updates["updated_at"] = datetime.now(timezone.utc).isoformat()
            try:
                await self.storage.update(FUNDING_SOURCES_TABLE, updates, eq={"id": existing["id"]})
                logger.info(
                    "funding_source_updated id=%s fields=%s",
                    existing["id"],
                    ",".join(k for k in updates if k != "updated_at"),
                )
            except StorageError as exc:
                logger.error("funding_source_update_failed id=%s error=%s", existing["id"], exc)
        return existing["id"]

    async def create(
        self,
        name: str,
        organization: Optional[str],
        info: FundingSourceInfo,
        source: SourceRef,
    ) -> str:
        now = datetime.now(timezone.utc).isoformat()
        record = {
            "name": name,
            "organization": organization,
            "type": categorize_source_type(info.type or source.type, name),
            "website": info.website or source.website,
            "contact_email": info.contact_email,
            "contact_phone": info.contact_phone,
            "description": info.description or f"Funding opportunities from {name}",
            "created_at": now,
            "updated_at": now,
        }
        try:
            inserted = await self.storage.insert(FUNDING_SOURCES_TABLE, record)
        except ConflictError:
            existing = await self.find_by_name(name, organization)
            if existing is None:
                raise FundingSourceResolutionError(
                    f"Funding source {name!r} conflicted on insert but could not be re-fetched"
                )
            logger.info("funding_source_conflict_resolved name=%r id=%s", name, existing["id"])
            return existing["id"]
        except StorageError as exc:
            raise FundingSourceResolutionError(
                f"Failed to create funding source {name!r}: {exc}", code=exc.code
            ) from exc

        logger.info("funding_source_created name=%r id=%s", name, inserted["id"])
        return inserted["id"]
