"""Short-Term Memory (STM) implementation.

Keeps the recent turns of one (session, agent) conversation in the keyed
store as a single JSON container, bounded by an entry count and a token
ceiling and expiring after a sliding TTL.
"""

from datetime import timedelta
from typing import List, Optional
from uuid import uuid4

import pydantic

from agentmem.config import MemoryConfig
from agentmem.errors import MemoryCorruptionError
from agentmem.logging import get_logger
from agentmem.memory.budget import estimate_tokens
from agentmem.memory.models import MemoryEntry, Role, ShortTermMemory, utcnow
from agentmem.metrics import get_metrics_collector
from agentmem.persistence.interface import KeyValueStore

logger = get_logger(__name__, component="short_term")
metrics = get_metrics_collector()

TIER = "short_term"

_ROLE_LABELS = {
    Role.USER: "User",
    Role.ASSISTANT: "Assistant",
    Role.SYSTEM: "System",
}


class STM:
    """Short-Term Memory for one conversation buffer per (session, agent).

    Features:
    - Lazy creation: reading a missing buffer yields an empty one
    - Oldest-first eviction by entry count, then by tokens
    - Sliding TTL refreshed on every write
    """

    def __init__(self, store: KeyValueStore, config: Optional[MemoryConfig] = None):
        """Initialize STM.

        Args:
            store: Keyed store holding the buffers.
            config: Memory configuration.
        """
        self.store = store
        self.config = config or MemoryConfig()

    def _key(self, session_id: str, agent_id: str) -> str:
        return f"{self.config.key_prefix}:short_term:{agent_id}:{session_id}"

    def _new_memory(self, session_id: str, agent_id: str) -> ShortTermMemory:
        return ShortTermMemory(
            session_id=session_id,
            agent_id=agent_id,
            max_tokens=self.config.short_term_max_tokens,
            max_entries=self.config.short_term_max_entries,
        )

    async def get_conversation(self, session_id: str, agent_id: str) -> ShortTermMemory:
        """Load the conversation buffer, or a fresh empty one.

        Raises:
            StoreError: If the keyed store fails.
            MemoryCorruptionError: If the stored buffer cannot be decoded.
        """
        key = self._key(session_id, agent_id)
        raw = await self.store.get(key)
        if raw is None:
            return self._new_memory(session_id, agent_id)

        try:
            return ShortTermMemory.model_validate_json(raw)
        except pydantic.ValidationError as e:
            logger.error("short_term_memory_corrupt", key=key, error=str(e))
            raise MemoryCorruptionError("Stored short-term memory is malformed", key=key) from e

    async def _save(self, memory: ShortTermMemory) -> None:
        ttl = self.config.short_term_ttl_seconds
        now = utcnow()
        memory.updated_at = now
        memory.expires_at = now + timedelta(seconds=ttl)
        await self.store.set(
            self._key(memory.session_id, memory.agent_id),
            memory.model_dump_json().encode(),
            ttl,
        )

    @staticmethod
    def _evict(memory: ShortTermMemory, max_entries: int, max_tokens: int) -> int:
        """Drop oldest entries until both ceilings hold. Returns the count dropped."""
        evicted = 0
        while len(memory.entries) > max_entries:
            memory.total_tokens -= memory.entries.pop(0).token_count
            evicted += 1
        while memory.total_tokens > max_tokens and memory.entries:
            memory.total_tokens -= memory.entries.pop(0).token_count
            evicted += 1
        if not memory.entries:
            memory.total_tokens = 0
        return evicted

    async def add_message(self, entry: MemoryEntry) -> MemoryEntry:
        """Append a turn to its conversation buffer.

        Assigns an id and timestamp when absent and estimates the token
        count when it is zero.

        Args:
            entry: The turn to record.

        Returns:
            The stored entry.
        """
        update = {}
        if not entry.id:
            update["id"] = str(uuid4())
        if entry.timestamp is None:
            update["timestamp"] = utcnow()
        if not entry.token_count:
            update["token_count"] = estimate_tokens(entry.content)
        entry = entry.model_copy(update=update)

        memory = await self.get_conversation(entry.session_id, entry.agent_id)
        memory.tenant_id = memory.tenant_id or entry.tenant_id
        memory.user_id = memory.user_id or entry.user_id
        memory.entries.append(entry)
        memory.total_tokens += entry.token_count

        evicted = self._evict(memory, memory.max_entries, memory.max_tokens)
        await self._save(memory)

        metrics.increment_memory_operation(tier=TIER, operation="add")
        metrics.increment_eviction(tier=TIER, count=evicted)
        logger.debug(
            "short_term_message_added",
            session_id=entry.session_id,
            agent_id=entry.agent_id,
            entry_id=entry.id,
            tokens=entry.token_count,
            total_tokens=memory.total_tokens,
            evicted=evicted,
        )
        return entry

    async def trim_to_token_limit(self, session_id: str, agent_id: str, max_tokens: int) -> ShortTermMemory:
        """Evict oldest entries until the buffer fits ``max_tokens``.

        The buffer is only written back when something was evicted.

        Returns:
            The (possibly trimmed) buffer.
        """
        memory = await self.get_conversation(session_id, agent_id)
        if memory.total_tokens <= max_tokens:
            return memory

        evicted = self._evict(memory, memory.max_entries, max_tokens)
        await self._save(memory)

        metrics.increment_memory_operation(tier=TIER, operation="trim")
        metrics.increment_eviction(tier=TIER, count=evicted)
        logger.debug(
            "short_term_trimmed",
            session_id=session_id,
            agent_id=agent_id,
            budget=max_tokens,
            evicted=evicted,
            total_tokens=memory.total_tokens,
        )
        return memory

    async def get_recent_messages(self, session_id: str, agent_id: str, limit: int = 0) -> List[MemoryEntry]:
        """Get the last ``limit`` turns, or all of them when limit is not positive."""
        memory = await self.get_conversation(session_id, agent_id)
        if limit <= 0 or limit >= len(memory.entries):
            return list(memory.entries)
        return memory.entries[-limit:]

    async def clear_conversation(self, session_id: str, agent_id: str) -> bool:
        """Delete the buffer. Returns True if one existed."""
        deleted = await self.store.delete(self._key(session_id, agent_id))
        metrics.increment_memory_operation(tier=TIER, operation="clear")
        logger.info("short_term_cleared", session_id=session_id, agent_id=agent_id, existed=deleted)
        return deleted

    async def set_expiration(self, session_id: str, agent_id: str, ttl_seconds: int) -> bool:
        """Reset the buffer's TTL. Returns False if there is no stored buffer."""
        return await self.store.expire(self._key(session_id, agent_id), ttl_seconds)

    @staticmethod
    def format_for_context(memory: ShortTermMemory) -> str:
        """Render the buffer as ``Role: content`` lines, oldest first."""
        lines = []
        for entry in memory.entries:
            lines.append(f"{_ROLE_LABELS[entry.role]}: {entry.content}\n")
        return "".join(lines)
