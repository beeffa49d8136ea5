"""Pytest configuration and fixtures."""

import pytest

from funding_ingestion.models import SourceRef

from .fakes import FakeStorageClient, state_rows


@pytest.fixture
def storage():
    """Empty in-memory store."""
    return FakeStorageClient()


@pytest.fixture
def seeded_storage():
    """In-memory store with the states table and a few coverage areas."""
    client = FakeStorageClient()
    client.seed("states", state_rows())
    client.seed("coverage_areas", [
        {"id": "ca-us", "name": "United States", "kind": "national", "code": "US"},
        {"id": "ca-or", "name": "Oregon", "kind": "state", "code": "OR"},
        {"id": "ca-ca", "name": "California", "kind": "state", "code": "CA"},
        {"id": "ca-pge", "name": "Pacific Gas and Electric", "kind": "utility", "code": "PG&E"},
        {"id": "ca-mult", "name": "Multnomah County", "kind": "county", "code": None},
    ])
    return client


@pytest.fixture
def source():
    return SourceRef(id="src-1", name="Grants.gov", type="federal", website="https://grants.gov")


@pytest.fixture
def sample_opportunity_data():
    """Opportunity as emitted by the extraction step (camelCase keys)."""
    return {
        "id": "EPA-2024-001",
        "title": "Clean Energy Infrastructure Grant",
        "description": "Funding for municipal clean energy and building efficiency upgrades.",
        "url": "https://www.epa.gov/grants/clean-energy",
        "status": "Active",
        "fundingType": "grant",
        "minimumAward": 50000,
        "maximumAward": "$1,000,000",
        "totalFundingAvailable": 10000000,
        "openDate": "2024-01-15",
        "closeDate": "2024-06-30T23:59:59Z",
        "eligibleLocations": ["California", "Oregon"],
        "isNational": False,
        "eligibleApplicants": ["Municipal Government", "  ", None],
        "categories": ["Energy"],
        "matchingRequired": "yes",
        "matchingPercentage": 150,
        "scoring": {
            "clientRelevance": 3,
            "projectRelevance": 2.5,
            "fundingAttractiveness": 2,
            "fundingType": 1,
            "overallScore": 8.5,
        },
        "fundingSource": {
            "name": "Environmental Protection Agency",
            "type": "federal",
            "website": "https://www.epa.gov",
            "contactEmail": "grants@epa.gov",
        },
    }
