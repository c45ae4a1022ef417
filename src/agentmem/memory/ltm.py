"""Long-Term Memory (LTM) implementation.

Stores durable, agent-scoped knowledge (conversation summaries, extracted
facts and insights) in a semantic store collection named
``memory_<agent_id>``. When long-term memory is disabled in configuration
every operation is a no-op that returns an empty result.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from agentmem.config import MemoryConfig
from agentmem.errors import AgentMemError
from agentmem.logging import get_logger
from agentmem.memory.budget import estimate_tokens
from agentmem.memory.models import ContentType, LongTermMemoryEntry, utcnow
from agentmem.metrics import get_metrics_collector
from agentmem.persistence.interface import SemanticRecord, SemanticStore

logger = get_logger(__name__, component="long_term")
metrics = get_metrics_collector()

TIER = "long_term"
MEMORY_TYPE = "long_term"

# Metadata keys written alongside every record; anything else round-trips
# through LongTermMemoryEntry.metadata.
_RESERVED_METADATA = {
    "agent_id",
    "tenant_id",
    "content_type",
    "source_type",
    "source_id",
    "session_id",
    "memory_type",
    "created_at",
    "token_count",
}


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """Read an ISO 8601 timestamp as an aware UTC datetime.

    Accepts a trailing ``Z`` and treats naive values as UTC. Returns None for
    a missing or unparseable value.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LTM:
    """Long-Term Memory backed by a semantic store.

    Features:
    - Relevance search scoped to one agent
    - Summary and fact storage
    - Count-based pruning of least recently accessed entries
    """

    def __init__(self, store: SemanticStore, config: Optional[MemoryConfig] = None):
        """Initialize LTM.

        Args:
            store: Semantic store holding long-term entries.
            config: Memory configuration.
        """
        self.store = store
        self.config = config or MemoryConfig()

    @property
    def enabled(self) -> bool:
        return self.config.long_term_enabled

    @staticmethod
    def collection_id(agent_id: str) -> str:
        return f"memory_{agent_id}"

    def _tracked(self, operation: str) -> None:
        metrics.increment_memory_operation(tier=TIER, operation=operation)

    def _record_failure(self, operation: str, agent_id: str, error: AgentMemError) -> None:
        metrics.increment_store_error(tier=TIER)
        logger.error("long_term_operation_failed", operation=operation, agent_id=agent_id, error=error.message)

    # ==================== Reads ====================

    async def search_memory(self, agent_id: str, query: str, top_k: int) -> List[LongTermMemoryEntry]:
        """Search this agent's long-term memory.

        Args:
            agent_id: Owning agent.
            query: Free text query; ``"*"`` matches everything.
            top_k: Maximum entries to return.

        Returns:
            Entries ordered by descending relevance.

        Raises:
            SemanticStoreError: If the semantic store fails.
        """
        if not self.enabled:
            return []

        filters = {"agent_id": agent_id, "memory_type": MEMORY_TYPE}
        try:
            records = await self.store.search(self.collection_id(agent_id), query, top_k, filters)
        except AgentMemError as e:
            self._record_failure("search", agent_id, e)
            raise

        self._tracked("search")
        entries = [self._to_entry(agent_id, record) for record in records]
        logger.debug("long_term_searched", agent_id=agent_id, results=len(entries))
        return entries

    async def get_recent_memories(self, agent_id: str, limit: int) -> List[LongTermMemoryEntry]:
        """Get up to ``limit`` entries, newest first."""
        entries = await self.search_memory(agent_id, "*", limit)
        return sorted(entries, key=lambda e: e.created_at, reverse=True)

    async def get_memory_count(self, agent_id: str) -> int:
        if not self.enabled:
            return 0
        try:
            return await self.store.count(self.collection_id(agent_id))
        except AgentMemError as e:
            self._record_failure("count", agent_id, e)
            raise

    # ==================== Writes ====================

    async def store_memory(self, entry: LongTermMemoryEntry) -> LongTermMemoryEntry:
        """Persist one entry, assigning an id and token count when missing.

        Returns:
            The stored entry.
        """
        if not self.enabled:
            return entry

        update: Dict[str, Any] = {}
        if not entry.id:
            update["id"] = str(uuid4())
        if not entry.token_count:
            update["token_count"] = estimate_tokens(entry.content)
        entry = entry.model_copy(update=update)

        metadata: Dict[str, Any] = dict(entry.metadata)
        metadata.update(
            {
                "agent_id": entry.agent_id,
                "tenant_id": entry.tenant_id,
                "content_type": entry.content_type.value,
                "source_type": entry.source_type,
                "source_id": entry.source_id,
                "session_id": entry.session_id,
                "memory_type": MEMORY_TYPE,
                "created_at": entry.created_at.isoformat(),
                "token_count": entry.token_count,
            }
        )

        try:
            await self.store.insert(self.collection_id(entry.agent_id), entry.id, entry.content, metadata)
        except AgentMemError as e:
            self._record_failure("store", entry.agent_id, e)
            raise

        self._tracked("store")
        logger.info(
            "long_term_memory_stored",
            agent_id=entry.agent_id,
            memory_id=entry.id,
            content_type=entry.content_type.value,
            tokens=entry.token_count,
        )
        return entry

    async def store_summary(
        self,
        agent_id: str,
        session_id: str,
        summary: str,
        source_entry_ids: List[str],
        tenant_id: Optional[str] = None,
    ) -> LongTermMemoryEntry:
        """Store a conversation summary produced by consolidation."""
        return await self.store_memory(
            LongTermMemoryEntry(
                agent_id=agent_id,
                tenant_id=tenant_id,
                content_type=ContentType.SUMMARY,
                content=summary,
                source_type="conversation",
                source_id=session_id,
                session_id=session_id,
                metadata={"source_entries": list(source_entry_ids)},
            )
        )

    async def store_fact(
        self,
        agent_id: str,
        fact: str,
        session_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        source_type: str = "conversation",
    ) -> LongTermMemoryEntry:
        """Store a single fact."""
        return await self.store_memory(
            LongTermMemoryEntry(
                agent_id=agent_id,
                tenant_id=tenant_id,
                content_type=ContentType.FACT,
                content=fact,
                source_type=source_type,
                source_id=session_id,
                session_id=session_id,
            )
        )

    async def delete_memory(self, agent_id: str, memory_id: str) -> bool:
        """Delete one entry. Returns True if it existed."""
        if not self.enabled:
            return False
        try:
            deleted = await self.store.delete(self.collection_id(agent_id), [memory_id])
        except AgentMemError as e:
            self._record_failure("delete", agent_id, e)
            raise
        self._tracked("delete")
        return deleted > 0

    async def prune_old_memories(self, agent_id: str, max_entries: Optional[int] = None) -> int:
        """Remove least recently accessed entries beyond ``max_entries``.

        Args:
            agent_id: Owning agent.
            max_entries: Entry ceiling; defaults to the configured maximum.

        Returns:
            Number of entries removed.
        """
        if not self.enabled:
            return 0

        limit = self.config.max_long_term_entries if max_entries is None else max_entries
        count = await self.get_memory_count(agent_id)
        excess = count - limit
        if excess <= 0:
            return 0

        try:
            removed = await self.store.delete_least_accessed(self.collection_id(agent_id), excess)
        except AgentMemError as e:
            self._record_failure("prune", agent_id, e)
            raise

        self._tracked("prune")
        metrics.increment_eviction(tier=TIER, count=removed)
        logger.info("long_term_pruned", agent_id=agent_id, requested=excess, removed=removed)
        return removed

    # ==================== Formatting ====================

    @staticmethod
    def format_for_context(entries: List[LongTermMemoryEntry]) -> str:
        """Render entries as a knowledge block, labelled by content type."""
        if not entries:
            return ""

        parts = ["--- Relevant Knowledge ---\n\n"]
        for entry in entries:
            if entry.content_type == ContentType.SUMMARY:
                parts.append(f"Previous conversation summary:\n{entry.content}\n\n")
            elif entry.content_type == ContentType.FACT:
                parts.append(f"Known fact: {entry.content}\n")
            elif entry.content_type == ContentType.INSIGHT:
                parts.append(f"Insight: {entry.content}\n")
            else:
                parts.append(f"{entry.content}\n")
        parts.append("--- End Knowledge ---\n")
        return "".join(parts)

    # ==================== Helpers ====================

    @staticmethod
    def _to_entry(agent_id: str, record: SemanticRecord) -> LongTermMemoryEntry:
        meta = record.metadata
        try:
            content_type = ContentType(meta.get("content_type", ContentType.FACT.value))
        except ValueError:
            content_type = ContentType.FACT

        created_at = parse_timestamp(meta.get("created_at"))
        if created_at is None:
            if meta.get("created_at") is not None:
                logger.debug("long_term_bad_created_at", memory_id=record.id)
            created_at = utcnow()

        token_count = meta.get("token_count")
        if not isinstance(token_count, int) or token_count < 0:
            token_count = estimate_tokens(record.content)

        return LongTermMemoryEntry(
            id=record.id,
            agent_id=meta.get("agent_id") or agent_id,
            tenant_id=meta.get("tenant_id"),
            content_type=content_type,
            content=record.content,
            source_type=meta.get("source_type"),
            source_id=meta.get("source_id"),
            session_id=meta.get("session_id"),
            token_count=token_count,
            relevance_score=record.score,
            access_count=record.access_count,
            created_at=created_at,
            accessed_at=parse_timestamp(record.accessed_at),
            metadata={k: v for k, v in meta.items() if k not in _RESERVED_METADATA},
        )
