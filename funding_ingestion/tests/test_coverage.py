"""Tests for geography.coverage (CoverageAreaLinker)."""

import pytest

from funding_ingestion.errors import GeographicResolutionError, StorageError
from funding_ingestion.geography.coverage import (
    LINK_TABLE,
    CoverageAreaLinker,
    normalize_location,
    similarity,
)


class TestHelpers:
    def test_normalize_strips_filler(self):
        assert normalize_location("The City of Portland") == "city of portland"
        assert normalize_location("PG&E service area") == "pgande"
        assert normalize_location(None) == ""

    def test_similarity_bounds(self):
        assert similarity("Oregon", "oregon") == 1.0
        assert similarity("Oregon", "Texas") < 0.7


class TestDetectLocationType:
    @pytest.mark.parametrize("text,kind", [
        ("Nationwide", "national"),
        ("PG&E territory", "utility"),
        ("Sacramento Municipal Utility District", "utility"),
        ("Multnomah County", "county"),
        ("City of Portland", "city"),
        ("Oregon", "state"),
    ])
    def test_kinds(self, storage, text, kind):
        assert CoverageAreaLinker(storage).detect_location_type(text) == kind


class TestMatchLocation:
    @pytest.mark.asyncio
    async def test_exact_name_match(self, seeded_storage):
        match = await CoverageAreaLinker(seeded_storage).match_location("oregon")

        assert match.coverage_area_id == "ca-or"
        assert match.match_type == "exact"
        assert match.confidence == 1.0

    @pytest.mark.asyncio
    async def test_national_falls_back_to_single_national_area(self, seeded_storage):
        match = await CoverageAreaLinker(seeded_storage).match_location("Nationwide")

        assert match.coverage_area_id == "ca-us"
        assert match.match_type == "national"
        assert match.confidence == 0.95

    @pytest.mark.asyncio
    async def test_fuzzy_match_above_threshold(self, seeded_storage):
        match = await CoverageAreaLinker(seeded_storage).match_location("Multnomah County area")

        assert match.coverage_area_id == "ca-mult"
        assert match.confidence >= 0.7

    @pytest.mark.asyncio
    async def test_no_match(self, seeded_storage):
        assert await CoverageAreaLinker(seeded_storage).match_location("Atlantis") is None

    @pytest.mark.asyncio
    async def test_lookup_failure_raises(self, seeded_storage):
        seeded_storage.fail("coverage_areas", "select", StorageError("boom"))

        with pytest.raises(GeographicResolutionError):
            await CoverageAreaLinker(seeded_storage).match_location("Oregon")


class TestLinkOpportunity:
    @pytest.mark.asyncio
    async def test_links_matches_and_reports_unmatched(self, seeded_storage):
        result = await CoverageAreaLinker(seeded_storage).link_opportunity(
            "opp-1", ["Oregon", "California", "Oregon", "Atlantis", None]
        )

        assert result.success
        assert result.linked_count == 2
        assert result.unmatched == ("Atlantis",)
        linked = sorted(r["coverage_area_id"] for r in seeded_storage.rows(LINK_TABLE))
        assert linked == ["ca-ca", "ca-or"]

    @pytest.mark.asyncio
    async def test_existing_link_counts_as_linked(self, seeded_storage):
        linker = CoverageAreaLinker(seeded_storage)
        await linker.link_opportunity("opp-1", ["Oregon"])

        result = await linker.link_opportunity("opp-1", ["Oregon"])

        assert result.linked_count == 1
        assert len(seeded_storage.rows(LINK_TABLE)) == 1

    @pytest.mark.asyncio
    async def test_insert_errors_collected(self, seeded_storage):
        seeded_storage.fail(LINK_TABLE, "insert", StorageError("boom"))

        result = await CoverageAreaLinker(seeded_storage).link_opportunity("opp-1", ["Oregon"])

        assert not result.success
        assert result.linked_count == 0
        assert result.errors == ("boom",)

    @pytest.mark.asyncio
    async def test_requires_opportunity_id(self, seeded_storage):
        with pytest.raises(GeographicResolutionError):
            await CoverageAreaLinker(seeded_storage).link_opportunity("", ["Oregon"])
