"""Tests for database.client (SupabaseStorageClient).

Mocks are used here in tests only (production code uses real Supabase calls).
"""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from postgrest.exceptions import APIError
from tenacity import wait_none

from funding_ingestion.database.client import SupabaseStorageClient
from funding_ingestion.errors import ConflictError, FatalInfrastructureError, StorageError


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _response(data):
    response = MagicMock()
    response.data = data
    return response


@pytest.fixture
def mock_supabase_client():
    """Patch acreate_client so no real network call is made."""
    with patch("funding_ingestion.database.client.acreate_client", new_callable=AsyncMock) as mock_create:
        mock_client = MagicMock()
        mock_client.postgrest.aclose = AsyncMock()
        mock_create.return_value = mock_client
        client = SupabaseStorageClient(url="https://fake.supabase.co", key="fake-key")
        yield client, mock_client, mock_create


@pytest.fixture
def no_backoff():
    with patch.object(SupabaseStorageClient._execute_with_retry.retry, "wait", wait_none()):
        yield


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_connects_and_closes(self, mock_supabase_client):
        client, mock_sb, mock_create = mock_supabase_client

        async with client as connected:
            assert connected is client
            mock_create.assert_awaited_once_with("https://fake.supabase.co", "fake-key")

        mock_sb.postgrest.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_use_before_connect_is_fatal(self, mock_supabase_client):
        client, _, _ = mock_supabase_client

        with pytest.raises(FatalInfrastructureError):
            await client.select("states")

    def test_from_config(self):
        config = MagicMock(supabase_url="https://cfg.supabase.co", supabase_key="cfg-key")
        client = SupabaseStorageClient.from_config(config)
        assert client._url == "https://cfg.supabase.co"
        assert client._key == "cfg-key"


class TestQueries:
    @pytest.mark.asyncio
    async def test_insert_returns_first_row(self, mock_supabase_client):
        client, mock_sb, _ = mock_supabase_client
        mock_sb.table.return_value.insert.return_value.execute = AsyncMock(
            return_value=_response([{"id": "fs-1", "name": "EPA"}])
        )

        await client.connect()
        row = await client.insert("funding_sources", {"name": "EPA"})

        assert row == {"id": "fs-1", "name": "EPA"}
        mock_sb.table.assert_called_with("funding_sources")
        mock_sb.table.return_value.insert.assert_called_once_with({"name": "EPA"})

    @pytest.mark.asyncio
    async def test_upsert_passes_conflict_columns(self, mock_supabase_client):
        client, mock_sb, _ = mock_supabase_client
        mock_sb.table.return_value.upsert.return_value.execute = AsyncMock(
            return_value=_response([{"id": "opp-1"}])
        )

        await client.connect()
        await client.upsert(
            "funding_opportunities",
            {"opportunity_id": "X", "api_source_id": "src"},
            on_conflict="opportunity_id,api_source_id",
        )

        call_args = mock_sb.table.return_value.upsert.call_args
        assert call_args[1]["on_conflict"] == "opportunity_id,api_source_id"
        assert call_args[1]["ignore_duplicates"] is False

    @pytest.mark.asyncio
    async def test_select_applies_filters(self, mock_supabase_client):
        client, mock_sb, _ = mock_supabase_client
        query = MagicMock()
        query.eq.return_value = query
        query.is_.return_value = query
        query.in_.return_value = query
        query.limit.return_value = query
        query.execute = AsyncMock(return_value=_response([{"id": 1, "code": "OR"}]))
        mock_sb.table.return_value.select.return_value = query

        await client.connect()
        rows = await client.select(
            "states",
            "id, code",
            eq={"active": True, "deleted_at": None},
            in_={"code": ["OR", "CA"]},
            limit=10,
        )

        assert rows == [{"id": 1, "code": "OR"}]
        query.eq.assert_called_once_with("active", True)
        query.is_.assert_called_once_with("deleted_at", "null")
        query.in_.assert_called_once_with("code", ["OR", "CA"])
        query.limit.assert_called_once_with(10)

    @pytest.mark.asyncio
    async def test_insert_many_with_no_records_skips_request(self, mock_supabase_client):
        client, mock_sb, _ = mock_supabase_client

        await client.connect()
        assert await client.insert_many("opportunity_state_eligibility", []) == []
        mock_sb.table.assert_not_called()


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_unique_violation_maps_to_conflict(self, mock_supabase_client):
        client, mock_sb, _ = mock_supabase_client
        mock_sb.table.return_value.insert.return_value.execute = AsyncMock(
            side_effect=APIError({"code": "23505", "message": "duplicate key value"})
        )

        await client.connect()
        with pytest.raises(ConflictError) as exc_info:
            await client.insert("funding_sources", {"name": "EPA"})
        assert exc_info.value.code == "23505"

    @pytest.mark.asyncio
    async def test_other_api_errors_map_to_storage_error(self, mock_supabase_client):
        client, mock_sb, _ = mock_supabase_client
        mock_sb.table.return_value.insert.return_value.execute = AsyncMock(
            side_effect=APIError({"code": "23502", "message": "null value in column"})
        )

        await client.connect()
        with pytest.raises(StorageError) as exc_info:
            await client.insert("funding_opportunities", {})
        assert not isinstance(exc_info.value, ConflictError)
        assert exc_info.value.code == "23502"

    @pytest.mark.asyncio
    async def test_transport_errors_retried_then_fatal(self, mock_supabase_client, no_backoff):
        client, mock_sb, _ = mock_supabase_client
        execute = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
        mock_sb.table.return_value.select.return_value.execute = execute

        await client.connect()
        with pytest.raises(FatalInfrastructureError):
            await client.select("states")
        assert execute.await_count == 3

    @pytest.mark.asyncio
    async def test_transient_transport_error_recovers(self, mock_supabase_client, no_backoff):
        client, mock_sb, _ = mock_supabase_client
        execute = AsyncMock(side_effect=[
            httpx.ReadTimeout("timed out"),
            _response([{"id": 1}]),
        ])
        mock_sb.table.return_value.select.return_value.execute = execute

        await client.connect()
        assert await client.select("states") == [{"id": 1}]
        assert execute.await_count == 2
