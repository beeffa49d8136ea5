"""Coverage-area linking for opportunity locations.

Matches location strings to ``coverage_areas`` rows (exact name, the single
national area, then fuzzy name/code similarity) and records matches in
``opportunity_coverage_areas``. Linking is best-effort: unmatched locations
are reported, not raised.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Optional

from ..database.base import Row, StorageClient
from ..errors import ConflictError, GeographicResolutionError, StorageError
from .parser import LocationParser, get_default_parser

logger = logging.getLogger(__name__)

COVERAGE_TABLE = "coverage_areas"
LINK_TABLE = "opportunity_coverage_areas"

MIN_CONFIDENCE = 0.7

_UTILITY_RE = re.compile(r"utility|power|electric|energy|water|gas|district|edison")
_UTILITY_SUFFIX_RE = re.compile(r"(territory|service area|customers)$")
_UTILITY_ACRONYM_RE = re.compile(r"pg&?e|sce|sdg&?e|smud|ladwp", re.IGNORECASE)
_PREFIX_RE = re.compile(r"^(the|city of|county of)\s+")
_SUFFIX_RE = re.compile(r"\s+(territory|service area|service territory|customers|area)$")


def normalize_location(text: Optional[str]) -> str:
    """Lower-case and strip filler words so names compare cleanly."""
    if not text:
        return ""
    normalized = text.lower().strip()
    normalized = _PREFIX_RE.sub("", normalized)
    normalized = _SUFFIX_RE.sub("", normalized)
    normalized = normalized.replace("&", "and")
    normalized = re.sub(r"[.,]", "", normalized)
    return re.sub(r"\s+", " ", normalized).strip()


def similarity(a: str, b: str) -> float:
    """0-1 similarity of two location names after normalization."""
    left, right = normalize_location(a), normalize_location(b)
    if not left and not right:
        return 1.0
    return SequenceMatcher(None, left, right).ratio()


@dataclass(frozen=True)
class CoverageMatch:
    coverage_area_id: str
    name: str
    kind: str
    confidence: float
    match_type: str
    original_text: str
    code: Optional[str] = None


@dataclass(frozen=True)
class CoverageLinkResult:
    opportunity_id: str
    linked_count: int = 0
    matches: tuple[CoverageMatch, ...] = ()
    unmatched: tuple[str, ...] = ()
    errors: tuple[str, ...] = field(default=())

    @property
    def success(self) -> bool:
        return not self.errors


class CoverageAreaLinker:
    """Links opportunities to coverage areas by location text."""

    def __init__(self, storage: StorageClient, parser: Optional[LocationParser] = None) -> None:
        self.storage = storage
        self.parser = parser or get_default_parser()

    def detect_location_type(self, text: str) -> str:
        normalized = normalize_location(text)
        if self.parser.is_national_location(normalized):
            return "national"
        if (
            _UTILITY_RE.search(normalized)
            or _UTILITY_SUFFIX_RE.search(text.lower().strip())
            or _UTILITY_ACRONYM_RE.search(text)
        ):
            return "utility"
        lowered = text.lower()
        if "county" in lowered:
            return "county"
        if re.search(r"\b(city|municipality|town)\b", lowered):
            return "city"
        return "state"

    async def match_location(self, location_text: str) -> Optional[CoverageMatch]:
        """Best coverage area for one location string, or None."""
        if not location_text or not isinstance(location_text, str):
            return None

        kind = self.detect_location_type(location_text)
        try:
            exact = await self.storage.select(
                COVERAGE_TABLE, "*", eq={"kind": kind}, ilike={"name": location_text.strip()}
            )
            if exact:
                return _to_match(exact[0], 1.0, "exact", location_text)

            if kind == "national":
                national = await self.storage.select(
                    COVERAGE_TABLE, "*", eq={"kind": "national"}, limit=1
                )
                if national:
                    return _to_match(national[0], 0.95, "national", location_text)

            candidates = await self.storage.select(COVERAGE_TABLE, "*", eq={"kind": kind})
        except StorageError as exc:
            raise GeographicResolutionError(
                f"Coverage lookup failed for {location_text!r}: {exc}"
            ) from exc

        best: Optional[Row] = None
        best_score = 0.0
        for candidate in candidates:
            score = similarity(location_text, candidate.get("name") or "")
            if candidate.get("code"):
                score = max(score, similarity(location_text, candidate["code"]))
            if score > best_score:
                best, best_score = candidate, score

        if best is not None and best_score >= MIN_CONFIDENCE:
            match_type = "exact" if best_score == 1.0 else "fuzzy"
            return _to_match(best, best_score, match_type, location_text)
        return None

    async def link_opportunity(self, opportunity_id: str, location_texts: list) -> CoverageLinkResult:
        """Match every location and insert the junction rows for matches."""
        if not opportunity_id:
            raise GeographicResolutionError("opportunity_id is required for coverage linking")

        matches: list[CoverageMatch] = []
        unmatched: list[str] = []
        for text in location_texts or []:
            if not isinstance(text, str) or not text.strip():
                continue
            match = await self.match_location(text)
            if match is None:
                unmatched.append(text)
            elif all(m.coverage_area_id != match.coverage_area_id for m in matches):
                matches.append(match)

        linked = 0
        errors: list[str] = []
        for match in matches:
            try:
                await self.storage.insert(LINK_TABLE, {
                    "opportunity_id": opportunity_id,
                    "coverage_area_id": match.coverage_area_id,
                })
                linked += 1
            except ConflictError:
                linked += 1
            except StorageError as exc:
                errors.append(str(exc))

        logger.info(
            "coverage_linked opportunity_id=%s linked=%d unmatched=%d errors=%d",
            opportunity_id,
            linked,
            len(unmatched),
            len(errors),
        )
        return CoverageLinkResult(
            opportunity_id=opportunity_id,
            linked_count=linked,
            matches=tuple(matches),
            unmatched=tuple(unmatched),
            errors=tuple(errors),
        )


def _to_match(row: Row, confidence: float, match_type: str, text: str) -> CoverageMatch:
    return CoverageMatch(
        coverage_area_id=row["id"],
        name=row.get("name", ""),
        kind=row.get("kind", ""),
        code=row.get("code"),
        confidence=confidence,
        match_type=match_type,
        original_text=text,
    )
