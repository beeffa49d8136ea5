"""Supabase storage client for the funding pipeline."""

import logging
import os
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..errors import ConflictError, FatalInfrastructureError, StorageError
from .base import Row, StorageClient

logger = logging.getLogger(__name__)

# PostgreSQL unique_violation
UNIQUE_VIOLATION = "23505"


def storage_retry():
    """Retry decorator for transport failures: 3 attempts, exponential backoff."""
    return retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(httpx.TransportError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


class SupabaseStorageClient(StorageClient):
    """StorageClient backed by the supabase-py async client.

    Construct once, ``await connect()`` (or use ``async with``), share across
    concurrent tasks, then ``await close()``.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
    ) -> None:
        """Initialize from explicit args or env vars.

        Args:
            url: Supabase project URL (falls back to SUPABASE_URL env var).
            key: Supabase service key (falls back to SUPABASE_KEY env var).
        """
        self._url = url or os.environ["SUPABASE_URL"]
        self._key = key or os.environ["SUPABASE_KEY"]
        self._client: Optional[AsyncClient] = None

    @classmethod
    def from_config(cls, config) -> "SupabaseStorageClient":
        return cls(url=config.supabase_url, key=config.supabase_key)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if self._client is None:
            self._client = await acreate_client(self._url, self._key)
            logger.info("storage_connect url=%s", self._url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.postgrest.aclose()
            self._client = None
            logger.info("storage_close url=%s", self._url)

    @property
    def client(self) -> AsyncClient:
        if self._client is None:
            raise FatalInfrastructureError("Storage client used before connect()")
        return self._client

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def insert(self, table: str, record: Mapping[str, Any]) -> Row:
        rows = await self._execute(table, "insert", self.client.table(table).insert(dict(record)))
        return rows[0] if rows else {}

    async def insert_many(self, table: str, records: Sequence[Mapping[str, Any]]) -> List[Row]:
        if not records:
            return []
        payload = [dict(r) for r in records]
        return await self._execute(table, "insert", self.client.table(table).insert(payload))

    async def upsert(self, table: str, record: Mapping[str, Any], on_conflict: str) -> Row:
        query = self.client.table(table).upsert(
            dict(record),
            on_conflict=on_conflict,
            ignore_duplicates=False,
        )
        rows = await self._execute(table, "upsert", query)
        return rows[0] if rows else {}

    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Optional[Mapping[str, Any]] = None,
        in_: Optional[Mapping[str, Sequence[Any]]] = None,
        ilike: Optional[Mapping[str, str]] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        query = self.client.table(table).select(columns)
        query = _apply_eq(query, eq)
        for column, values in (in_ or {}).items():
            query = query.in_(column, list(values))
        for column, pattern in (ilike or {}).items():
            query = query.ilike(column, pattern)
        if limit is not None:
            query = query.limit(limit)
        return await self._execute(table, "select", query)

    async def update(self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]) -> List[Row]:
        query = _apply_eq(self.client.table(table).update(dict(values)), eq)
        return await self._execute(table, "update", query)

    async def delete(self, table: str, *, eq: Mapping[str, Any]) -> List[Row]:
        query = _apply_eq(self.client.table(table).delete(), eq)
        return await self._execute(table, "delete", query)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _execute(self, table: str, operation: str, query) -> List[Dict[str, Any]]:
        """Run a query, translating backend failures into pipeline errors."""
        start = time.monotonic()
        try:
            response = await self._execute_with_retry(query)
        except APIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                raise ConflictError(
                    f"Duplicate key on {table}: {exc.message}", code=exc.code
                ) from exc
            raise StorageError(
                f"Failed to {operation} {table}: {exc.message}", code=exc.code
            ) from exc
        except httpx.TransportError as exc:
            duration_ms = (time.monotonic() - start) * 1000
            logger.error(
                "storage_unreachable table=%s operation=%s error=%s duration_ms=%.0f",
                table,
                operation,
                exc,
                duration_ms,
            )
            raise FatalInfrastructureError(f"Storage backend unreachable: {exc}") from exc
        return response.data or []

    @storage_retry()
    async def _execute_with_retry(self, query):
        return await query.execute()


def _apply_eq(query, eq: Optional[Mapping[str, Any]]):
    for column, value in (eq or {}).items():
        if value is None:
            query = query.is_(column, "null")
        else:
            query = query.eq(column, value)
    return query
