"""In-memory storage backends for agentmem.

Provides simple in-memory implementations of both store interfaces for
testing and development. Data is not persisted.
"""

import re
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

from agentmem.persistence.interface import KeyValueStore, SemanticRecord, SemanticStore


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed keyed store with lazy TTL expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[bytes, Optional[float]]] = {}  # key -> (value, deadline)

    async def close(self) -> None:
        self._data.clear()

    def _live(self, key: str) -> Optional[Tuple[bytes, Optional[float]]]:
        item = self._data.get(key)
        if item is None:
            return None
        deadline = item[1]
        if deadline is not None and self._clock() >= deadline:
            del self._data[key]
            return None
        return item

    async def get(self, key: str) -> Optional[bytes]:
        item = self._live(key)
        return item[0] if item else None

    async def set(self, key: str, value: bytes, ttl_seconds: Optional[int] = None) -> None:
        deadline = self._clock() + ttl_seconds if ttl_seconds else None
        self._data[key] = (value, deadline)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        item = self._live(key)
        if item is None:
            return False
        self._data[key] = (item[0], self._clock() + ttl_seconds)
        return True

    async def ttl(self, key: str) -> Optional[float]:
        """Seconds until expiry, or None for a missing or persistent key."""
        item = self._live(key)
        if item is None or item[1] is None:
            return None
        return item[1] - self._clock()


def _words(text: str) -> FrozenSet[str]:
    return frozenset(re.findall(r"\w+", text.lower()))


class _StoredRecord:
    __slots__ = ("id", "content", "metadata", "words", "access_count", "accessed_at", "seq")

    def __init__(self, record_id: str, content: str, metadata: Dict[str, Any], seq: int):
        self.id = record_id
        self.content = content
        self.metadata = metadata
        self.words = _words(content)
        self.access_count = 0
        self.accessed_at: Optional[datetime] = None
        self.seq = seq


class InMemorySemanticStore(SemanticStore):
    """Semantic store that ranks records by word overlap with the query.

    Each search hit counts as an access, which drives least-accessed pruning.
    """

    def __init__(self) -> None:
        self._collections: Dict[str, Dict[str, _StoredRecord]] = {}
        self._seq = 0

    async def close(self) -> None:
        self._collections.clear()

    async def search(
        self,
        collection_id: str,
        query_text: str,
        top_k: int,
        filters: Optional[Dict[str, Any]] = None,
    ) -> List[SemanticRecord]:
        records = self._collections.get(collection_id)
        if not records or top_k <= 0:
            return []

        match_all = query_text.strip() == "*"
        query = _words(query_text)
        scored: List[Tuple[float, _StoredRecord]] = []
        for record in records.values():
            if filters and any(record.metadata.get(k) != v for k, v in filters.items()):
                continue
            if match_all:
                score = 1.0
            else:
                overlap = len(query & record.words)
                if overlap == 0:
                    continue
                score = overlap / len(query | record.words)
            scored.append((score, record))

        # Most relevant first, newest first among equals
        scored.sort(key=lambda item: (item[0], item[1].seq), reverse=True)

        now = datetime.now(timezone.utc)
        results = []
        for score, record in scored[:top_k]:
            record.access_count += 1
            record.accessed_at = now
            results.append(
                SemanticRecord(
                    id=record.id,
                    content=record.content,
                    score=score,
                    distance=1.0 - score,
                    access_count=record.access_count,
                    accessed_at=record.accessed_at,
                    metadata=dict(record.metadata),
                )
            )
        return results

    async def insert(
        self,
        collection_id: str,
        record_id: str,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._seq += 1
        collection = self._collections.setdefault(collection_id, {})
        collection[record_id] = _StoredRecord(record_id, content, dict(metadata or {}), self._seq)

    async def count(self, collection_id: str) -> int:
        return len(self._collections.get(collection_id, {}))

    async def delete(self, collection_id: str, record_ids: List[str]) -> int:
        collection = self._collections.get(collection_id, {})
        return sum(1 for record_id in record_ids if collection.pop(record_id, None) is not None)

    async def delete_least_accessed(self, collection_id: str, n: int) -> int:
        collection = self._collections.get(collection_id)
        if not collection or n <= 0:
            return 0

        # Never-accessed records go first, then oldest access, then oldest insert
        def access_order(record: _StoredRecord) -> Tuple[float, int]:
            accessed = record.accessed_at.timestamp() if record.accessed_at else 0.0
            return (accessed, record.seq)

        victims = sorted(collection.values(), key=access_order)[:n]
        for record in victims:
            del collection[record.id]
        return len(victims)
