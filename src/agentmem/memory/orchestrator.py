"""Memory orchestrator: single entry point over the three memory tiers.

The execution layer talks only to MemoryOrchestrator. It records turns,
returns token-budgeted prompt context, refreshes working memory after
retrieval and runs consolidation, either synchronously on request or in the
background after each recorded turn.
"""

from typing import Dict, List, Optional

from agentmem.config import Config, MemoryConfig
from agentmem.errors import AgentMemError, ValidationError
from agentmem.logging import get_logger
from agentmem.memory.budget import TokenBudget, estimate_tokens
from agentmem.memory.consolidation import ConsolidationEngine
from agentmem.memory.ltm import LTM
from agentmem.memory.models import (
    AddMemoryRequest,
    ConsolidationRequest,
    ConsolidationResult,
    GetMemoryRequest,
    LoadedDocument,
    LongTermMemoryEntry,
    MemoryContext,
    MemoryEntry,
    MemoryState,
    MemoryStats,
    MemoryTier,
    RetrievedChunk,
    WorkingMemory,
)
from agentmem.memory.similarity import QuerySimilarity
from agentmem.memory.stm import STM
from agentmem.memory.working import WorkingMemoryService
from agentmem.metrics import get_metrics_collector
from agentmem.persistence.interface import KeyValueStore, SemanticStore
from agentmem.persistence.redis_backend import RedisKeyValueStore
from agentmem.persistence.semantic_client import HTTPSemanticStore
from agentmem.providers.completion_client import CompletionClient, TextCompleter
from agentmem.tasks import BackgroundTaskRunner, ErrorCallback

logger = get_logger(__name__, component="orchestrator")
metrics = get_metrics_collector()


class MemoryOrchestrator:
    """Façade over short-term, working and long-term memory.

    Collaborators are injected; use ``from_config`` to build the production
    Redis, semantic store and completion clients. Clients created by
    ``from_config`` are owned by the orchestrator and closed by ``close()``.

    Example:
        >>> async with MemoryOrchestrator.from_config(config) as memory:
        ...     await memory.add_memory(AddMemoryRequest(...))
        ...     context = await memory.get_formatted_memory(GetMemoryRequest(...), 2000)
    """

    def __init__(
        self,
        kv_store: KeyValueStore,
        semantic_store: SemanticStore,
        completer: TextCompleter,
        config: Optional[MemoryConfig] = None,
        similarity: Optional[QuerySimilarity] = None,
        runner: Optional[BackgroundTaskRunner] = None,
        on_background_error: Optional[ErrorCallback] = None,
    ):
        """Initialize the orchestrator.

        Args:
            kv_store: Keyed store for short-term, working and marker data.
            semantic_store: Semantic store for long-term memory.
            completer: Language model used by consolidation.
            config: Memory configuration.
            similarity: Query similarity for staleness checks.
            runner: Background runner; one is created from config if omitted.
            on_background_error: Error channel for a runner created here.
        """
        self.config = config or MemoryConfig()
        self.kv_store = kv_store
        self.semantic_store = semantic_store
        self.completer = completer

        self.short_term = STM(kv_store, self.config)
        self.working = WorkingMemoryService(kv_store, self.config, similarity)
        self.long_term = LTM(semantic_store, self.config)
        self.consolidation = ConsolidationEngine(
            self.short_term,
            self.long_term,
            kv_store,
            completer,
            self.config,
        )
        self.runner = runner or BackgroundTaskRunner(
            max_concurrency=self.config.background_max_concurrency,
            max_pending=self.config.background_max_pending,
            on_error=on_background_error,
        )
        self._owned: List[object] = []

    @classmethod
    def from_config(cls, config: Config, on_background_error: Optional[ErrorCallback] = None) -> "MemoryOrchestrator":
        """Build an orchestrator with production collaborators.

        Call ``initialize()`` (or use ``async with``) before first use.
        """
        kv_store = RedisKeyValueStore(config.redis)
        semantic_store = HTTPSemanticStore.from_config(config.semantic_store)
        completer = CompletionClient.from_config(config.router)
        orchestrator = cls(
            kv_store,
            semantic_store,
            completer,
            config=config.memory,
            on_background_error=on_background_error,
        )
        orchestrator._owned = [kv_store, semantic_store, completer]
        return orchestrator

    async def initialize(self) -> None:
        await self.kv_store.initialize()
        await self.semantic_store.initialize()
        logger.info("memory_orchestrator_initialized", long_term_enabled=self.config.long_term_enabled)

    async def close(self, timeout: float = 30.0) -> None:
        """Drain background work and close owned clients."""
        await self.runner.shutdown(drain=True, timeout=timeout)
        for client in self._owned:
            await client.close()  # type: ignore[attr-defined]
        self._owned = []
        logger.info("memory_orchestrator_closed")

    async def __aenter__(self) -> "MemoryOrchestrator":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ==================== Reads ====================

    def _selected_tiers(self, request: GetMemoryRequest) -> Dict[MemoryTier, bool]:
        if not request.include_types:
            return {
                MemoryTier.SHORT_TERM: True,
                MemoryTier.WORKING: True,
                MemoryTier.LONG_TERM: self.config.long_term_enabled,
            }
        return {
            MemoryTier.SHORT_TERM: MemoryTier.SHORT_TERM in request.include_types,
            MemoryTier.WORKING: MemoryTier.WORKING in request.include_types,
            MemoryTier.LONG_TERM: (
                MemoryTier.LONG_TERM in request.include_types and self.config.long_term_enabled
            ),
        }

    async def _search_long_term(self, agent_id: str, query: str, top_k: int) -> List[LongTermMemoryEntry]:
        try:
            return await self.long_term.search_memory(agent_id, query, top_k)
        except AgentMemError as e:
            logger.warning("long_term_search_skipped", agent_id=agent_id, error=e.message)
            return []

    async def get_memory_state(self, request: GetMemoryRequest) -> MemoryState:
        """Return the raw contents of the requested tiers.

        Short-term and working tiers need a session id. Long-term needs a
        query; a long-term failure is logged and leaves that tier empty.

        Raises:
            StoreError: If the keyed store fails.
            MemoryCorruptionError: If stored data cannot be decoded.
        """
        tiers = self._selected_tiers(request)
        state = MemoryState()

        if tiers[MemoryTier.SHORT_TERM] and request.session_id:
            state.short_term = await self.short_term.get_conversation(request.session_id, request.agent_id)
            state.total_tokens += state.short_term.total_tokens

        if tiers[MemoryTier.WORKING] and request.session_id:
            state.working = await self.working.get_working_memory(request.session_id, request.agent_id)
            state.total_tokens += state.working.total_tokens

        if tiers[MemoryTier.LONG_TERM] and request.query:
            state.long_term = await self._search_long_term(
                request.agent_id, request.query, self.config.long_term_search_top_k
            )
            state.total_tokens += sum(entry.token_count for entry in state.long_term)

        return state

    async def get_formatted_memory(self, request: GetMemoryRequest, token_budget: int) -> MemoryContext:
        """Render all tiers as prompt text within ``token_budget``.

        The budget is split 50/35/15 across short-term, working and
        long-term memory. Short-term memory is trimmed (and persisted
        trimmed) to its share; working memory is included only when it
        already fits; long-term entries are added by relevance until the
        next would overflow.

        Raises:
            ValidationError: If ``token_budget`` is negative.
            StoreError: If the keyed store fails.
        """
        if token_budget < 0:
            raise ValidationError("Token budget must not be negative", details={"token_budget": token_budget})

        budget = TokenBudget(total=token_budget)
        context = MemoryContext(strategy="priority")

        if request.session_id:
            conversation = await self.short_term.trim_to_token_limit(
                request.session_id, request.agent_id, budget.short_term
            )
            context.formatted_short_term = self.short_term.format_for_context(conversation)
            context.total_tokens += conversation.total_tokens

            working = await self.working.get_working_memory(request.session_id, request.agent_id)
            if working.total_tokens <= budget.working:
                context.formatted_working = self.working.format_for_context(working)
                context.total_tokens += working.total_tokens
            else:
                logger.debug(
                    "working_memory_over_budget",
                    session_id=request.session_id,
                    tokens=working.total_tokens,
                    budget=budget.working,
                )

        if self.config.long_term_enabled and request.query:
            candidates = await self._search_long_term(
                request.agent_id, request.query, self.config.formatted_long_term_top_k
            )
            included: List[LongTermMemoryEntry] = []
            used = 0
            for entry in candidates:
                if used + entry.token_count > budget.long_term:
                    break
                included.append(entry)
                used += entry.token_count
            context.formatted_long_term = self.long_term.format_for_context(included)
            context.total_tokens += used

        context.truncated = context.total_tokens > token_budget
        metrics.record_formatted_memory(context.total_tokens, context.truncated)
        return context

    async def get_memory_stats(self, session_id: str, agent_id: str) -> MemoryStats:
        """Summarize memory usage for a session."""
        conversation = await self.short_term.get_conversation(session_id, agent_id)
        working = await self.working.get_working_memory(session_id, agent_id)
        marker = await self.consolidation.get_marker(session_id, agent_id)

        long_term_entries = 0
        if self.config.long_term_enabled:
            try:
                long_term_entries = await self.long_term.get_memory_count(agent_id)
            except AgentMemError as e:
                logger.warning("long_term_count_skipped", agent_id=agent_id, error=e.message)

        return MemoryStats(
            session_id=session_id,
            agent_id=agent_id,
            short_term_entries=len(conversation.entries),
            short_term_tokens=conversation.total_tokens,
            working_documents=len(working.loaded_documents),
            working_chunks=len(working.retrieved_chunks),
            working_tokens=working.total_tokens,
            long_term_entries=long_term_entries,
            total_consolidations=marker.total_consolidations if marker else 0,
            last_consolidation=marker.last_consolidated_at if marker else None,
        )

    async def needs_document_refresh(self, session_id: str, agent_id: str, new_query: str) -> bool:
        return await self.working.is_context_stale(
            session_id, agent_id, new_query, self.config.auto_refresh_threshold
        )

    # ==================== Writes ====================

    async def add_memory(self, request: AddMemoryRequest) -> MemoryEntry:
        """Record a turn, then check for consolidation in the background.

        The short-term write is awaited; the consolidation check and run are
        not, and their failures never reach the caller.
        """
        entry = await self.short_term.add_message(
            MemoryEntry(
                session_id=request.session_id,
                agent_id=request.agent_id,
                tenant_id=request.tenant_id,
                user_id=request.user_id,
                role=request.role,
                content=request.content,
                token_count=estimate_tokens(request.content),
                metadata=request.metadata,
            )
        )

        if self.config.long_term_enabled:
            consolidation_request = ConsolidationRequest(
                session_id=request.session_id,
                agent_id=request.agent_id,
                tenant_id=request.tenant_id,
                user_id=request.user_id,
                extract_facts=self.config.extract_facts,
            )
            self.runner.submit(
                (request.session_id, request.agent_id),
                lambda: self._background_consolidation(consolidation_request),
            )
        return entry

    async def _background_consolidation(self, request: ConsolidationRequest) -> None:
        if not await self.consolidation.should_consolidate(request.session_id, request.agent_id):
            return
        result = await self.consolidation.consolidate_session(request)
        if result.summaries_created:
            await self.long_term.prune_old_memories(request.agent_id)

    async def update_working_memory(
        self,
        session_id: str,
        agent_id: str,
        chunks: List[RetrievedChunk],
        query: Optional[str] = None,
    ) -> WorkingMemory:
        """Replace cached chunks, recording ``query`` as the one that produced them."""
        memory = await self.working.set_document_context(session_id, agent_id, chunks)
        if query is not None:
            memory = await self.working.update_last_query(session_id, agent_id, query)
        return memory

    async def load_document(self, session_id: str, agent_id: str, document: LoadedDocument) -> WorkingMemory:
        return await self.working.load_document(session_id, agent_id, document)

    async def unload_document(self, session_id: str, agent_id: str, document_id: str) -> bool:
        return await self.working.unload_document(session_id, agent_id, document_id)

    async def consolidate_memory(self, request: ConsolidationRequest) -> ConsolidationResult:
        """Run consolidation now; collaborator errors propagate."""
        return await self.consolidation.consolidate_session(request)

    async def clear_session(self, session_id: str, agent_id: str) -> None:
        """Clear short-term and working memory. Long-term memory is untouched."""
        await self.short_term.clear_conversation(session_id, agent_id)
        await self.working.clear_working_memory(session_id, agent_id)
        logger.info("session_cleared", session_id=session_id, agent_id=agent_id)
