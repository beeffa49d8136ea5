"""Tests for storage.funding_sources (FundingSourceResolver)."""

import asyncio

import pytest

from funding_ingestion.errors import FundingSourceResolutionError, StorageError
from funding_ingestion.models import Opportunity, SourceRef
from funding_ingestion.storage.funding_sources import (
    FUNDING_SOURCES_TABLE,
    FundingSourceResolver,
    categorize_source_type,
)


def _opportunity(name="Oregon Department of Energy", **source_fields):
    return Opportunity(title="Heat Pump Rebates", funding_source={"name": name, **source_fields})


class TestCategorizeSourceType:
    @pytest.mark.parametrize("name,expected", [
        ("State Department of Energy", "State"),
        ("California Energy Commission", "State"),
        ("U.S. Department of Energy", "Federal"),
        ("Multnomah County", "County"),
        ("City of Portland", "Municipality"),
        ("Bullitt Foundation", "Foundation"),
        ("Portland General Electric", "Utility"),
        ("Acme Corp", "Other"),
        ("Oregon Department of Energy", "Other"),
        ("EPA Region 9", "Federal"),
        ("Municipality of Anchorage", "Municipality"),
        ("Las Vegas Valley Water District", "Other"),
        ("Tax Refund Office", "Other"),
        ("Northeast Electricity Alliance", "Other"),
    ])
    def test_name_patterns(self, name, expected):
        assert categorize_source_type(None, name) == expected

    def test_provided_type_wins(self):
        assert categorize_source_type("Federal", "Bullitt Foundation") == "Federal"
        assert categorize_source_type("unknown", "Bullitt Foundation") == "Foundation"


class TestResolve:
    @pytest.mark.asyncio
    async def test_no_name_returns_none(self, storage, source):
        resolver = FundingSourceResolver(storage)

        assert await resolver.resolve(Opportunity(title="t"), source) is None
        assert storage.calls == []

    @pytest.mark.asyncio
    async def test_creates_new_source(self, storage, source):
        resolver = FundingSourceResolver(storage)

        source_id = await resolver.resolve(_opportunity(contact_email="info@oregon.gov"), source)

        rows = storage.rows(FUNDING_SOURCES_TABLE)
        assert len(rows) == 1
        assert rows[0]["id"] == source_id
        assert rows[0]["type"] == "federal"  # taken from the API source
        assert rows[0]["contact_email"] == "info@oregon.gov"
        assert rows[0]["description"] == "Funding opportunities from Oregon Department of Energy"

    @pytest.mark.asyncio
    async def test_reuses_existing_and_fills_missing_contact(self, storage, source):
        storage.seed(FUNDING_SOURCES_TABLE, [
            {"id": "fs-1", "name": "Oregon Department of Energy", "organization": None,
             "website": "https://oregon.gov/energy", "contact_email": None},
        ])
        resolver = FundingSourceResolver(storage)

        source_id = await resolver.resolve(
            _opportunity(contact_email="info@oregon.gov", website="https://other.example"), source
        )

        row = storage.rows(FUNDING_SOURCES_TABLE)[0]
        assert source_id == "fs-1"
        assert row["contact_email"] == "info@oregon.gov"
        assert row["website"] == "https://oregon.gov/energy"
        assert len(storage.rows(FUNDING_SOURCES_TABLE)) == 1

    @pytest.mark.asyncio
    async def test_organization_distinguishes_sources(self, storage, source):
        storage.seed(FUNDING_SOURCES_TABLE, [
            {"id": "fs-1", "name": "Office of Energy", "organization": "State of Oregon"},
        ])
        resolver = FundingSourceResolver(storage)

        source_id = await resolver.resolve(
            _opportunity(name="Office of Energy", organization="State of Texas"), source
        )

        assert source_id != "fs-1"
        assert len(storage.rows(FUNDING_SOURCES_TABLE)) == 2

    @pytest.mark.asyncio
    async def test_concurrent_creation_yields_one_row(self, storage, source):
        resolver = FundingSourceResolver(storage)

        ids = await asyncio.gather(*(resolver.resolve(_opportunity(), source) for _ in range(5)))

        assert len(set(ids)) == 1
        assert len(storage.rows(FUNDING_SOURCES_TABLE)) == 1

    @pytest.mark.asyncio
    async def test_update_failure_still_returns_id(self, storage, source):
        storage.seed(FUNDING_SOURCES_TABLE, [
            {"id": "fs-1", "name": "Oregon Department of Energy", "organization": None},
        ])
        storage.fail(FUNDING_SOURCES_TABLE, "update", StorageError("boom"))
        resolver = FundingSourceResolver(storage)

        assert await resolver.resolve(_opportunity(contact_phone="555-0100"), source) == "fs-1"

    @pytest.mark.asyncio
    async def test_lookup_failure_raises(self, storage, source):
        storage.fail(FUNDING_SOURCES_TABLE, "select", StorageError("boom"))

        with pytest.raises(FundingSourceResolutionError):
            await FundingSourceResolver(storage).resolve(_opportunity(), source)

    @pytest.mark.asyncio
    async def test_insert_failure_raises(self, storage, source):
        storage.fail(FUNDING_SOURCES_TABLE, "insert", StorageError("boom"))

        with pytest.raises(FundingSourceResolutionError):
            await FundingSourceResolver(storage).resolve(_opportunity(), source)

    @pytest.mark.asyncio
    async def test_source_website_used_when_missing(self, storage):
        resolver = FundingSourceResolver(storage)
        src = SourceRef(id="src-2", website="https://energy.oregon.gov")

        await resolver.resolve(_opportunity(), src)

        row = storage.rows(FUNDING_SOURCES_TABLE)[0]
        assert row["website"] == "https://energy.oregon.gov"
        assert row["type"] == "Other"
