"""Integration test fixtures."""

import pytest

from funding_ingestion.tests.fakes import FakeStorageClient, state_rows


@pytest.fixture
def pipeline_storage():
    client = FakeStorageClient()
    client.seed("states", state_rows())
    return client


def make_opportunity(
    index: int,
    title: str | None = None,
    locations: list | None = None,
    is_national: bool = False,
    maximum_award: float | None = 250000,
    agency: str = "Oregon Department of Energy",
    **kwargs,
) -> dict:
    """Extraction-step style record (camelCase keys)."""
    return {
        "id": f"OPP-{index:03d}",
        "title": title or f"Community Energy Resilience Grant {index}",
        "description": f"Round {index} funding for community-scale energy resilience projects.",
        "status": "open",
        "maximumAward": maximum_award,
        "openDate": "2024-03-01",
        "closeDate": "2024-09-30",
        "eligibleLocations": ["Oregon"] if locations is None else locations,
        "isNational": is_national,
        "fundingSource": {"name": agency},
        **kwargs,
    }
