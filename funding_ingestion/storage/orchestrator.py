"""Batch storage orchestrator.

Stores a list of normalized opportunities for one API source. Batches run
one after another; the items of a batch run concurrently and all of them
settle before the batch's outcomes are reduced into a ``BatchResult``.

Failure scoping:
    - per-item errors land in ``failed_opportunities``; siblings continue
    - geography (eligibility, coverage) errors are logged and never fail an item
    - ``ValidationError`` on the arguments is raised before any I/O
    - ``FatalInfrastructureError`` stops remaining batches and yields an
      error-flagged result
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

import pydantic

from ..config import Config, load_config
from ..database import StorageClient, SupabaseStorageClient
from ..errors import (
    ConflictError,
    FatalInfrastructureError,
    GeographicResolutionError,
    IngestionError,
    StorageError,
    ValidationError,
)
from ..geography import CoverageAreaLinker, LocationParser, StateEligibilityProcessor, load_region_mappings
from ..models import (
    BatchMetrics,
    BatchResult,
    FailedOpportunity,
    Opportunity,
    SourceRef,
    StorageResult,
)
from ..optimization.change_detector import ChangeDetector
from .duplicates import DuplicateResolver, natural_key_conflict
from .funding_sources import FundingSourceResolver
from .sanitizer import prepare_for_insert, prepare_for_update

logger = logging.getLogger(__name__)

OPPORTUNITIES_TABLE = "funding_opportunities"
AGENT_EXECUTIONS_TABLE = "agent_executions"
AGENT_TYPE = "storage_v2"
DEFAULT_BATCH_SIZE = 5


@dataclass(frozen=True)
class _ItemOutcome:
    kind: str  # new | updated | ignored | failed
    record: Optional[dict] = None
    duplicate: Optional[dict] = None
    failure: Optional[FailedOpportunity] = None


def iter_batches(items: Sequence[Any], size: int) -> Iterator[Sequence[Any]]:
    """Consecutive slices of at most ``size`` items, in input order."""
    if size < 1:
        raise ValidationError(f"batch size must be >= 1, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


def validate_inputs(opportunities: Any, source: Any) -> tuple[list, SourceRef]:
    """Check call arguments before any I/O.

    Raises:
        ValidationError: If opportunities isn't a list or source has no id
    """
    if not isinstance(opportunities, (list, tuple)):
        raise ValidationError("Opportunities must be a list")
    if isinstance(source, SourceRef):
        return list(opportunities), source
    if not isinstance(source, dict) or not source.get("id"):
        raise ValidationError("Source must have an id")
    try:
        return list(opportunities), SourceRef.model_validate(source)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"Invalid source: {exc}") from exc


def _identify(raw: Any) -> tuple[Optional[str], Optional[str]]:
    if isinstance(raw, Opportunity):
        return raw.title, raw.id
    if isinstance(raw, dict):
        raw_id = raw.get("id")
        return raw.get("title"), None if raw_id is None else str(raw_id)
    return None, None


def _summary(row: dict) -> dict:
    return {
        "id": row.get("id"),
        "opportunity_id": row.get("opportunity_id"),
        "title": row.get("title"),
    }


def _elapsed_ms(start: float) -> int:
    return max(1, int((time.monotonic() - start) * 1000))


class StorageAgent:
    """Stores opportunities through an injected StorageClient."""

    def __init__(
        self,
        storage: StorageClient,
        batch_size: Optional[int] = None,
        funding_sources: Optional[FundingSourceResolver] = None,
        duplicates: Optional[DuplicateResolver] = None,
        eligibility: Optional[StateEligibilityProcessor] = None,
        coverage: Optional[CoverageAreaLinker] = None,
        change_detector: Optional[ChangeDetector] = None,
        link_coverage_areas: bool = True,
    ) -> None:
        self.storage = storage
        self.batch_size = batch_size or DEFAULT_BATCH_SIZE
        if self.batch_size < 1:
            raise ValidationError(f"batch size must be >= 1, got {self.batch_size}")
        self.funding_sources = funding_sources or FundingSourceResolver(storage)
        self.duplicates = duplicates or DuplicateResolver(storage)
        self.eligibility = eligibility or StateEligibilityProcessor(storage)
        self.coverage = coverage or CoverageAreaLinker(storage, self.eligibility.parser)
        self.change_detector = change_detector or ChangeDetector()
        self.link_coverage_areas = link_coverage_areas

    @classmethod
    def from_config(cls, storage: StorageClient, config: Config) -> "StorageAgent":
        parser = LocationParser(load_region_mappings(config.region_mappings_path))
        return cls(
            storage,
            batch_size=config.storage_batch_size,
            eligibility=StateEligibilityProcessor(storage, parser),
            coverage=CoverageAreaLinker(storage, parser),
            link_coverage_areas=config.link_coverage_areas,
        )

    async def store(
        self,
        opportunities: Sequence[Any],
        source: Any,
        force_full_processing: bool = False,
    ) -> StorageResult:
        """Store a list of opportunities for one source.

        Args:
            opportunities: Opportunity models or camelCase/snake_case dicts.
            source: SourceRef or dict with at least an ``id``.
            force_full_processing: Upsert on the natural key instead of insert.

        Returns:
            StorageResult with per-outcome lists and metrics.

        Raises:
            ValidationError: If the arguments are malformed.
        """
        items, source_ref = validate_inputs(opportunities, source)
        start = time.monotonic()
        mode = "upsert" if force_full_processing else "insert"
        logger.info(
            "store_start source=%s count=%d batch_size=%d mode=%s",
            source_ref.id,
            len(items),
            self.batch_size,
            mode,
        )

        total = BatchResult()
        try:
            batches = list(iter_batches(items, self.batch_size))
            for index, batch in enumerate(batches, start=1):
                logger.info("batch_start source=%s batch=%d/%d size=%d",
                            source_ref.id, index, len(batches), len(batch))
                total = total + await self._process_batch(batch, source_ref, force_full_processing)
        except FatalInfrastructureError as exc:
            execution_time = _elapsed_ms(start)
            logger.error(
                "store_complete source=%s result=failure error=%s duration_ms=%d",
                source_ref.id,
                exc,
                execution_time,
            )
            result = StorageResult(
                results=BatchResult(),
                metrics=BatchMetrics(
                    execution_time=execution_time,
                    error=True,
                    error_message=str(exc),
                ),
                execution_time=execution_time,
            )
            await self._record_execution(source_ref, len(items), None, execution_time, exc)
            return result

        execution_time = _elapsed_ms(start)
        metrics = BatchMetrics.from_results(len(items), total, execution_time)
        result = StorageResult(results=total, metrics=metrics, execution_time=execution_time)
        logger.info(
            "store_complete source=%s new=%d updated=%d ignored=%d failed=%d duration_ms=%d",
            source_ref.id,
            metrics.new_opportunities,
            metrics.updated_opportunities,
            metrics.ignored_opportunities,
            metrics.failed_opportunities,
            execution_time,
        )
        await self._record_execution(source_ref, len(items), result, execution_time)
        return result

    # ------------------------------------------------------------------
    # Batch processing
    # ------------------------------------------------------------------

    async def _process_batch(
        self,
        batch: Sequence[Any],
        source: SourceRef,
        force_full_processing: bool,
    ) -> BatchResult:
        """Run a batch concurrently, then reduce its outcomes."""
        settled = await asyncio.gather(
            *(self._store_item(raw, source, force_full_processing) for raw in batch),
            return_exceptions=True,
        )

        for outcome in settled:
            if isinstance(outcome, FatalInfrastructureError):
                raise outcome
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome

        new, updated, ignored, duplicates, failed = [], [], [], [], []
        for raw, outcome in zip(batch, settled):
            if isinstance(outcome, Exception):
                title, item_id = _identify(raw)
                logger.error("item_failed id=%s title=%r error=%s", item_id, title, outcome,
                             exc_info=outcome)
                failed.append(FailedOpportunity(title=title, id=item_id, error=str(outcome)))
                continue
            if outcome.duplicate is not None:
                duplicates.append(outcome.duplicate)
            if outcome.kind == "new":
                new.append(outcome.record)
            elif outcome.kind == "updated":
                updated.append(outcome.record)
            elif outcome.kind == "ignored":
                ignored.append(outcome.record)
            else:
                failed.append(outcome.failure)

        return BatchResult(
            new_opportunities=tuple(new),
            updated_opportunities=tuple(updated),
            ignored_opportunities=tuple(ignored),
            duplicates_found=tuple(duplicates),
            failed_opportunities=tuple(failed),
        )

    async def _store_item(self, raw: Any, source: SourceRef, force_full_processing: bool) -> _ItemOutcome:
        title, item_id = _identify(raw)
        try:
            opportunity = raw if isinstance(raw, Opportunity) else Opportunity.model_validate(raw)
        except pydantic.ValidationError as exc:
            return _failed(title, item_id, f"Invalid opportunity: {exc.error_count()} validation error(s)")

        try:
            funding_source_id = await self.funding_sources.resolve(opportunity, source)
            row = prepare_for_insert(opportunity, source.id, funding_source_id)

            if force_full_processing:
                stored = await self.storage.upsert(
                    OPPORTUNITIES_TABLE, row, on_conflict=natural_key_conflict(opportunity)
                )
                logger.info("opportunity_upserted id=%s title=%r", stored.get("id"), opportunity.title)
                await self._link_geography(stored, opportunity, replace=True)
                return _ItemOutcome(kind="new", record=stored)

            try:
                stored = await self.storage.insert(OPPORTUNITIES_TABLE, row)
            except ConflictError:
                return await self._handle_duplicate(opportunity, source, funding_source_id)
        except (StorageError, ValidationError) as exc:
            logger.error("item_failed id=%s title=%r error=%s", item_id, title, exc)
            return _failed(title, item_id, str(exc))

        logger.info("opportunity_created id=%s title=%r", stored.get("id"), opportunity.title)
        await self._link_geography(stored, opportunity, replace=False)
        return _ItemOutcome(kind="new", record=stored)

    async def _handle_duplicate(
        self,
        opportunity: Opportunity,
        source: SourceRef,
        funding_source_id: Optional[str],
    ) -> _ItemOutcome:
        """Insert conflicted: update the stored row only on a material change."""
        existing = await self.duplicates.find_existing(opportunity, source.id, min_title_length=1)
        if existing is None:
            raise StorageError(
                f"Insert conflicted but no existing row found for {opportunity.title!r}"
            )

        duplicate = _summary(existing)
        incoming = prepare_for_update(opportunity, funding_source_id)
        if not self.change_detector.is_material_change(existing, incoming):
            logger.info("opportunity_ignored id=%s reason=no_material_change", existing.get("id"))
            return _ItemOutcome(kind="ignored", record=duplicate, duplicate=duplicate)

        changes = self.change_detector.describe_changes(existing, incoming)
        rows = await self.storage.update(OPPORTUNITIES_TABLE, incoming, eq={"id": existing["id"]})
        stored = rows[0] if rows else {**existing, **incoming}
        logger.info(
            "opportunity_updated id=%s fields=%s",
            existing["id"],
            ",".join(sorted(changes)),
        )
        await self._link_geography(stored, opportunity, replace=True)
        return _ItemOutcome(kind="updated", record=stored, duplicate=duplicate)

    async def _link_geography(self, stored: dict, opportunity: Opportunity, replace: bool) -> None:
        """Eligibility and coverage rows for a stored opportunity; never raises per-item."""
        opportunity_id = stored.get("id")
        if not opportunity_id:
            logger.warning("geography_skipped title=%r reason=no_row_id", opportunity.title)
            return

        try:
            if replace:
                await self.eligibility.update_eligibility(opportunity_id, opportunity)
            else:
                await self.eligibility.process_eligibility(opportunity_id, opportunity)
        except FatalInfrastructureError:
            raise
        except Exception as exc:
            logger.warning("eligibility_failed opportunity_id=%s error=%s", opportunity_id, exc,
                           exc_info=not isinstance(exc, (GeographicResolutionError, StorageError)))

        if not self.link_coverage_areas or not opportunity.eligible_locations:
            return
        try:
            await self.coverage.link_opportunity(opportunity_id, opportunity.eligible_locations)
        except FatalInfrastructureError:
            raise
        except Exception as exc:
            logger.warning("coverage_failed opportunity_id=%s error=%s", opportunity_id, exc,
                           exc_info=not isinstance(exc, (GeographicResolutionError, StorageError)))

    async def _record_execution(
        self,
        source: SourceRef,
        count: int,
        result: Optional[StorageResult],
        execution_time: int,
        error: Optional[Exception] = None,
    ) -> None:
        """Best-effort ``agent_executions`` row; failures are logged only."""
        record = {
            "agent_type": AGENT_TYPE,
            "input": {"source": {"id": source.id, "name": source.name}, "opportunityCount": count},
            "output": result.metrics.to_dict() if result is not None else None,
            "execution_time": execution_time,
            "token_usage": None,
            "error": str(error) if error is not None else None,
        }
        try:
            await self.storage.insert(AGENT_EXECUTIONS_TABLE, record)
        except IngestionError as exc:
            logger.error("agent_execution_log_failed source=%s error=%s", source.id, exc)


def _failed(title: Optional[str], item_id: Optional[str], error: str) -> _ItemOutcome:
    return _ItemOutcome(kind="failed", failure=FailedOpportunity(title=title, id=item_id, error=error))


async def store_opportunities(
    opportunities: Sequence[Any],
    source: Any,
    storage_client: Optional[StorageClient] = None,
    force_full_processing: bool = False,
) -> StorageResult:
    """Store opportunities, building a Supabase client from config if none is given.

    A client built here is connected for the call and closed afterwards.
    """
    validate_inputs(opportunities, source)
    if storage_client is not None:
        agent = StorageAgent(storage_client)
        return await agent.store(opportunities, source, force_full_processing)

    config = load_config()
    async with SupabaseStorageClient.from_config(config) as client:
        agent = StorageAgent.from_config(client, config)
        return await agent.store(opportunities, source, force_full_processing)
