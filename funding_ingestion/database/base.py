"""Storage collaborator interface used by the pipeline."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

Row = Dict[str, Any]


class StorageClient(ABC):
    """Abstract async CRUD client over the relational store.

    Implementations must be safe for concurrent use by overlapping tasks.
    ``insert`` raises ``ConflictError`` on uniqueness violations, other query
    failures raise ``StorageError``, and an unreachable backend raises
    ``FatalInfrastructureError``.
    """

    @abstractmethod
    async def insert(self, table: str, record: Mapping[str, Any]) -> Row:
        """Insert one row and return it as stored."""
        pass

    @abstractmethod
    async def insert_many(self, table: str, records: Sequence[Mapping[str, Any]]) -> List[Row]:
        """Insert several rows in one request."""
        pass

    @abstractmethod
    async def upsert(self, table: str, record: Mapping[str, Any], on_conflict: str) -> Row:
        """Insert or overwrite the row matching the ``on_conflict`` columns."""
        pass

    @abstractmethod
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
        """Return rows matching every filter given."""
        pass

    @abstractmethod
    async def update(self, table: str, values: Mapping[str, Any], *, eq: Mapping[str, Any]) -> List[Row]:
        """Update matching rows and return them."""
        pass

    @abstractmethod
    async def delete(self, table: str, *, eq: Mapping[str, Any]) -> List[Row]:
        """Delete matching rows and return them."""
        pass

    async def select_one(self, table: str, columns: str = "*", **filters: Any) -> Optional[Row]:
        """Return the first matching row, or None."""
        rows = await self.select(table, columns, limit=1, **filters)
        return rows[0] if rows else None

    async def connect(self) -> None:
        """Open underlying connections. Default is a no-op."""
        pass

    async def close(self) -> None:
        """Release underlying connections. Default is a no-op."""
        pass

    async def __aenter__(self) -> "StorageClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
