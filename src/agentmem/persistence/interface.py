"""Abstract storage interfaces for agentmem persistence.

Two collaborators back the memory tiers:

- KeyValueStore: a keyed byte store with per-key expiry, holding the
  short-term and working containers and the consolidation marker.
- SemanticStore: a collection-scoped text store with relevance search,
  holding long-term memory.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SemanticRecord(BaseModel):
    """A record returned by a semantic store search."""

    id: str
    content: str
    score: float = 0.0
    distance: Optional[float] = None
    access_count: int = Field(default=0, ge=0)
    accessed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class KeyValueStore(ABC):
    """Keyed store with TTL semantics."""

    async def initialize(self) -> None:
        """Open connections. Optional for backends without any."""

    async def close(self) -> None:
        """Release connections and resources."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Read a value.

        Returns:
            The stored bytes, or None if the key is missing or expired.
        """

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        """Write a value, replacing any previous one.

        Args:
            key: Store key.
            value: Serialized payload.
            ttl_seconds: Expiry in seconds, or None to persist without expiry.
        """

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a key.

        Returns:
            True if the key existed.
        """

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Reset the expiry of an existing key.

        Returns:
            True if the key existed.
        """


class SemanticStore(ABC):
    """Collection-scoped semantic text store.

    A collection that does not exist yet is not an error: searches return no
    records, counts return zero and deletes remove nothing.
    """

    async def initialize(self) -> None:
        """Open connections. Optional for backends without any."""

    async def close(self) -> None:
        """Release connections and resources."""

    @abstractmethod
    async def search(
        self,
        collection_id: str,
        query_text: str,
        top_k: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[SemanticRecord]:
        """Search a collection by text relevance.

        Args:
            collection_id: Collection to search.
            query_text: Free text query. ``"*"`` matches every record.
            top_k: Maximum records to return.
            filters: Metadata equality filters.

        Returns:
            Records ordered by descending score.
        """

    @abstractmethod
    async def insert(
        self,
        collection_id: str,
        record_id: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Insert one record, creating the collection if needed."""

    @abstractmethod
    async def count(self, collection_id: str) -> int:
        """Number of records in a collection."""

    @abstractmethod
    async def delete(self, collection_id: str, record_ids: List[str]) -> int:
        """Delete records by id.

        Returns:
            Number of records removed.
        """

    @abstractmethod
    async def delete_least_accessed(self, collection_id: str, n: int) -> int:
        """Delete the ``n`` least recently accessed records.

        Returns:
            Number of records removed.
        """
