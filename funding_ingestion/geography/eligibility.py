"""State eligibility junction-table maintenance.

Invariant: a national opportunity has zero ``opportunity_state_eligibility``
rows; a non-national opportunity with at least one resolvable location has
at least one.

``update_eligibility`` is delete-then-insert and not atomic: a reader that
queries between the two steps sees an empty eligibility set.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ..database.base import Row, StorageClient
from ..errors import GeographicResolutionError, StorageError
from ..models import Opportunity
from .parser import LocationParser, get_default_parser

logger = logging.getLogger(__name__)

STATES_TABLE = "states"
ELIGIBILITY_TABLE = "opportunity_state_eligibility"
OPPORTUNITIES_TABLE = "funding_opportunities"


@dataclass(frozen=True)
class EligibilityOutcome:
    """What process_eligibility wrote for one opportunity."""

    state_count: int
    is_national: bool
    state_codes: tuple[str, ...] = ()


@dataclass(frozen=True)
class EligibilityValidation:
    is_valid: bool
    error: Optional[str] = None
    state_count: int = 0
    is_national: bool = False
    states: tuple[Row, ...] = field(default=(), repr=False)


class StateEligibilityProcessor:
    """Parses eligible locations and maintains state eligibility rows."""

    def __init__(self, storage: StorageClient, parser: Optional[LocationParser] = None) -> None:
        self.storage = storage
        self.parser = parser or get_default_parser()

    def parse_locations_to_state_codes(self, locations: Any) -> list[str]:
        return self.parser.parse_locations(locations)

    async def process_eligibility(
        self,
        opportunity_id: str,
        opportunity: Optional[Opportunity],
    ) -> EligibilityOutcome:
        """Create eligibility rows for a freshly stored opportunity."""
        if opportunity is None:
            logger.warning("eligibility_skipped opportunity_id=%s reason=no_data", opportunity_id)
            return EligibilityOutcome(state_count=0, is_national=False)

        if opportunity.is_national:
            logger.info("eligibility_national opportunity_id=%s", opportunity_id)
            return EligibilityOutcome(state_count=0, is_national=True)

        state_codes = self.parse_locations_to_state_codes(opportunity.eligible_locations)
        if not state_codes:
            logger.warning(
                "eligibility_no_states opportunity_id=%s locations=%r",
                opportunity_id,
                opportunity.eligible_locations,
            )
            return EligibilityOutcome(state_count=0, is_national=False)

        created = await self.create_eligibility_records(opportunity_id, state_codes)
        logger.info(
            "eligibility_created opportunity_id=%s states=%s rows=%d",
            opportunity_id,
            ",".join(state_codes),
            created,
        )
        return EligibilityOutcome(
            state_count=created,
            is_national=False,
            state_codes=tuple(state_codes),
        )

    async def update_eligibility(
        self,
        opportunity_id: str,
        opportunity: Optional[Opportunity],
    ) -> EligibilityOutcome:
        """Clear then recreate eligibility rows for an existing opportunity."""
        await self.clear_existing_eligibility(opportunity_id)
        return await self.process_eligibility(opportunity_id, opportunity)

    async def create_eligibility_records(self, opportunity_id: str, state_codes: list[str]) -> int:
        """Insert one junction row per resolvable state code.

        Returns:
            Number of rows written (0 when no code maps to a state row).
        """
        if not state_codes:
            return 0

        try:
            states = await self.storage.select(
                STATES_TABLE, "id, code", in_={"code": list(state_codes)}
            )
        except StorageError as exc:
            raise GeographicResolutionError(f"State lookup failed: {exc}") from exc

        if not states:
            logger.warning("eligibility_states_missing codes=%s", ",".join(state_codes))
            return 0

        now = datetime.now(timezone.utc).isoformat()
        seen: set[Any] = set()
        records = []
        for state in states:
            if state["id"] in seen:
                continue
            seen.add(state["id"])
            records.append({
                "opportunity_id": opportunity_id,
                "state_id": state["id"],
                "created_at": now,
            })

        try:
            await self.storage.insert_many(ELIGIBILITY_TABLE, records)
        except StorageError as exc:
            raise GeographicResolutionError(
                f"Failed to create eligibility records for {opportunity_id}: {exc}"
            ) from exc
        return len(records)

    async def clear_existing_eligibility(self, opportunity_id: str) -> None:
        try:
            await self.storage.delete(ELIGIBILITY_TABLE, eq={"opportunity_id": opportunity_id})
        except StorageError as exc:
            raise GeographicResolutionError(
                f"Failed to clear eligibility for {opportunity_id}: {exc}"
            ) from exc
        logger.info("eligibility_cleared opportunity_id=%s", opportunity_id)

    async def get_eligible_states(self, opportunity_id: str) -> list[Row]:
        """State rows (id, code, name) linked to an opportunity."""
        links = await self.storage.select(
            ELIGIBILITY_TABLE, "state_id", eq={"opportunity_id": opportunity_id}
        )
        state_ids = sorted({link["state_id"] for link in links})
        if not state_ids:
            return []
        return await self.storage.select(STATES_TABLE, "id, code, name", in_={"id": state_ids})

    async def validate_eligibility(self, opportunity_id: str) -> EligibilityValidation:
        """Check the national / non-national invariant for a stored opportunity."""
        opportunity = await self.storage.select_one(
            OPPORTUNITIES_TABLE, "id, is_national, title", eq={"id": opportunity_id}
        )
        if not opportunity:
            return EligibilityValidation(is_valid=False, error="Opportunity not found")

        is_national = bool(opportunity.get("is_national"))
        states = await self.get_eligible_states(opportunity_id)

        if is_national and states:
            return EligibilityValidation(
                is_valid=False,
                error="National opportunity should not have state eligibility records",
                state_count=len(states),
                is_national=True,
                states=tuple(states),
            )
        if not is_national and not states:
            return EligibilityValidation(
                is_valid=False,
                error="Non-national opportunity should have at least one eligible state",
                state_count=0,
                is_national=False,
            )
        return EligibilityValidation(
            is_valid=True,
            state_count=len(states),
            is_national=is_national,
            states=tuple(states),
        )
