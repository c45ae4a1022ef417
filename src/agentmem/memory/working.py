"""Working memory: cached document context for a session.

Holds the most recent retrieval results for one (session, agent) together
with the set of documents they came from and the query that produced them,
so callers can tell when a new query has drifted far enough to re-retrieve.
"""

from datetime import timedelta
from typing import List, Optional

import pydantic

from agentmem.config import MemoryConfig
from agentmem.errors import MemoryCorruptionError
from agentmem.logging import get_logger
from agentmem.memory.budget import estimate_tokens
from agentmem.memory.models import LoadedDocument, RetrievedChunk, WorkingMemory, utcnow
from agentmem.memory.similarity import QuerySimilarity, WordOverlapSimilarity
from agentmem.metrics import get_metrics_collector
from agentmem.persistence.interface import KeyValueStore

logger = get_logger(__name__, component="working_memory")
metrics = get_metrics_collector()

TIER = "working"


class WorkingMemoryService:
    """Per-session cache of retrieved document chunks."""

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[MemoryConfig] = None,
        similarity: Optional[QuerySimilarity] = None,
    ):
        """Initialize the service.

        Args:
            store: Keyed store holding the working memory containers.
            config: Memory configuration.
            similarity: Query similarity used for staleness checks.
        """
        self.store = store
        self.config = config or MemoryConfig()
        self.similarity = similarity or WordOverlapSimilarity()

    def _key(self, session_id: str, agent_id: str) -> str:
        return f"{self.config.key_prefix}:working:{agent_id}:{session_id}"

    async def get_working_memory(self, session_id: str, agent_id: str) -> WorkingMemory:
        """Load working memory, or a fresh empty container.

        Raises:
            StoreError: If the keyed store fails.
            MemoryCorruptionError: If the stored container cannot be decoded.
        """
        key = self._key(session_id, agent_id)
        raw = await self.store.get(key)
        if raw is None:
            return WorkingMemory(
                session_id=session_id,
                agent_id=agent_id,
                max_tokens=self.config.working_memory_max_tokens,
            )

        try:
            return WorkingMemory.model_validate_json(raw)
        except pydantic.ValidationError as e:
            logger.error("working_memory_corrupt", key=key, error=str(e))
            raise MemoryCorruptionError("Stored working memory is malformed", key=key) from e

    async def _save(self, memory: WorkingMemory) -> None:
        ttl = self.config.working_memory_ttl_seconds
        now = utcnow()
        memory.updated_at = now
        memory.expires_at = now + timedelta(seconds=ttl)
        await self.store.set(
            self._key(memory.session_id, memory.agent_id),
            memory.model_dump_json().encode(),
            ttl,
        )

    async def set_document_context(
        self,
        session_id: str,
        agent_id: str,
        chunks: List[RetrievedChunk],
    ) -> WorkingMemory:
        """Replace the cached chunks.

        Chunks are expected pre-sorted by relevance. When they exceed the
        token ceiling, chunks are kept in input order until the next one
        would overflow; everything from that chunk on is dropped.

        Returns:
            The updated working memory.
        """
        memory = await self.get_working_memory(session_id, agent_id)

        kept: List[RetrievedChunk] = []
        total = 0
        for chunk in chunks:
            tokens = estimate_tokens(chunk.content)
            if total + tokens > memory.max_tokens:
                break
            kept.append(chunk)
            total += tokens

        memory.retrieved_chunks = kept
        memory.total_tokens = total
        await self._save(memory)

        metrics.increment_memory_operation(tier=TIER, operation="set_context")
        metrics.increment_eviction(tier=TIER, count=len(chunks) - len(kept))
        logger.debug(
            "working_context_set",
            session_id=session_id,
            agent_id=agent_id,
            chunks=len(kept),
            dropped=len(chunks) - len(kept),
            total_tokens=total,
        )
        return memory

    async def load_document(self, session_id: str, agent_id: str, doc: LoadedDocument) -> WorkingMemory:
        """Record a document as loaded.

        An already-loaded document is replaced in place. A new document at
        the ceiling evicts the oldest-loaded one.
        """
        memory = await self.get_working_memory(session_id, agent_id)
        if doc.loaded_at is None:
            doc = doc.model_copy(update={"loaded_at": utcnow()})

        for i, existing in enumerate(memory.loaded_documents):
            if existing.document_id == doc.document_id:
                memory.loaded_documents[i] = doc
                break
        else:
            if len(memory.loaded_documents) >= self.config.max_loaded_documents:
                evicted = memory.loaded_documents.pop(0)
                metrics.increment_eviction(tier=TIER)
                logger.debug("working_document_evicted", session_id=session_id, document_id=evicted.document_id)
            memory.loaded_documents.append(doc)

        await self._save(memory)
        metrics.increment_memory_operation(tier=TIER, operation="load_document")
        return memory

    async def unload_document(self, session_id: str, agent_id: str, document_id: str) -> bool:
        """Remove a document and every cached chunk that came from it.

        Returns:
            True if anything was removed.
        """
        memory = await self.get_working_memory(session_id, agent_id)

        documents = [d for d in memory.loaded_documents if d.document_id != document_id]
        chunks = [c for c in memory.retrieved_chunks if c.document_id != document_id]
        if len(documents) == len(memory.loaded_documents) and len(chunks) == len(memory.retrieved_chunks):
            return False

        memory.loaded_documents = documents
        memory.retrieved_chunks = chunks
        memory.total_tokens = sum(estimate_tokens(c.content) for c in chunks)
        await self._save(memory)

        metrics.increment_memory_operation(tier=TIER, operation="unload_document")
        logger.debug("working_document_unloaded", session_id=session_id, document_id=document_id)
        return True

    async def update_last_query(self, session_id: str, agent_id: str, query: str) -> WorkingMemory:
        memory = await self.get_working_memory(session_id, agent_id)
        memory.last_query = query
        memory.last_query_time = utcnow()
        await self._save(memory)
        return memory

    async def is_context_stale(
        self,
        session_id: str,
        agent_id: str,
        new_query: str,
        threshold: float,
    ) -> bool:
        """Whether cached context should be re-retrieved for ``new_query``.

        Stale when nothing has been queried yet, nothing is cached, or the
        new query's similarity to the last one falls below ``threshold``.
        """
        memory = await self.get_working_memory(session_id, agent_id)
        if not memory.last_query or not memory.retrieved_chunks:
            return True
        return self.similarity.similarity(memory.last_query, new_query) < threshold

    async def clear_working_memory(self, session_id: str, agent_id: str) -> bool:
        deleted = await self.store.delete(self._key(session_id, agent_id))
        metrics.increment_memory_operation(tier=TIER, operation="clear")
        logger.info("working_memory_cleared", session_id=session_id, agent_id=agent_id, existed=deleted)
        return deleted

    @staticmethod
    def format_for_context(memory: WorkingMemory) -> str:
        """Render cached chunks grouped under their document names.

        A ``### Document:`` header is emitted each time the source document
        changes between consecutive chunks.
        """
        if not memory.retrieved_chunks:
            return ""

        parts = ["--- Retrieved Document Context ---\n\n"]
        current_doc: Optional[str] = None
        for chunk in memory.retrieved_chunks:
            if chunk.document_id != current_doc:
                if current_doc is not None:
                    parts.append("\n")
                parts.append(f"### Document: {chunk.document_name}\n")
                current_doc = chunk.document_id
            parts.append(f"{chunk.content}\n")
        parts.append("\n--- End Document Context ---\n")
        return "".join(parts)
