"""Memory consolidation: fold short-term conversation into long-term memory.

A consolidation run summarizes the oldest buffered turns of a session with a
language model, stores the summary (and optionally extracted facts) in
long-term memory, and stamps the session with a consolidation marker so
that the next run waits for the configured interval.
"""

import json
import re
import time
from datetime import timedelta
from typing import List, Optional, Tuple
from uuid import uuid4

import pydantic

from agentmem.config import MemoryConfig
from agentmem.errors import AgentMemError, MemoryCorruptionError, StoreError
from agentmem.logging import get_logger
from agentmem.memory.budget import estimate_tokens
from agentmem.memory.ltm import LTM
from agentmem.memory.models import (
    ConsolidationMarker,
    ConsolidationRequest,
    ConsolidationResult,
    ContentType,
    FactExtractionResult,
    LongTermMemoryEntry,
    MemoryEntry,
    utcnow,
)
from agentmem.memory.stm import STM
from agentmem.metrics import get_metrics_collector
from agentmem.persistence.interface import KeyValueStore
from agentmem.providers.completion_client import ChatMessage, TextCompleter

logger = get_logger(__name__, component="consolidation")
metrics = get_metrics_collector()

SUMMARY_TEMPERATURE = 0.3
FACT_TEMPERATURE = 0.1

SUMMARY_SYSTEM_PROMPT = """You are a memory consolidation assistant. Your task is to create concise summaries of conversations that preserve the key information, decisions, and context.

Requirements:
- Preserve important facts, decisions, and action items
- Maintain the essence of the discussion
- Be concise but comprehensive
- Write in third person narrative
- Focus on what the user was trying to accomplish and what was learned"""

SUMMARY_USER_PROMPT = """Please summarize the following conversation, preserving the key information and context:

{conversation}

Summary (maximum {max_tokens} tokens):"""

FACT_SYSTEM_PROMPT = """You are a fact extraction assistant. Your task is to identify and extract distinct factual statements from conversations.

Requirements:
- Extract concrete facts, preferences, and decisions
- Each fact should be a standalone statement
- Format output as JSON array of fact strings
- Focus on information that would be useful to remember for future conversations
- Exclude opinions, pleasantries, and meta-commentary"""

FACT_USER_PROMPT = """Extract the key facts from this conversation as a JSON array:

{conversation}

Output format: ["fact 1", "fact 2", ...]"""

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")
_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


def format_conversation(entries: List[MemoryEntry]) -> str:
    """Render entries as ``role: content`` lines for prompting."""
    return "".join(f"{entry.role.value}: {entry.content}\n" for entry in entries)


def parse_fact_list(text: str) -> Tuple[List[str], Optional[str]]:
    """Parse a JSON array of fact strings from a model response.

    Tolerates a surrounding markdown code fence or prose around the array.

    Returns:
        (facts, error). ``error`` is None when the response parsed, even if
        it held no facts.
    """
    cleaned = _FENCE.sub("", text.strip())
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        match = _ARRAY.search(cleaned)
        if not match:
            return [], f"response is not JSON: {e.msg}"
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError as inner:
            return [], f"response is not JSON: {inner.msg}"

    if not isinstance(parsed, list):
        return [], f"expected a JSON array, got {type(parsed).__name__}"

    facts = [item.strip() for item in parsed if isinstance(item, str) and item.strip()]
    return facts, None


class ConsolidationEngine:
    """Summarizes short-term memory into long-term memory."""

    def __init__(
        self,
        short_term: STM,
        long_term: LTM,
        store: KeyValueStore,
        completer: TextCompleter,
        config: Optional[MemoryConfig] = None,
    ):
        """Initialize the engine.

        Args:
            short_term: Source of conversation turns.
            long_term: Destination for summaries and facts.
            store: Keyed store holding consolidation markers.
            completer: Language model used for summaries and fact extraction.
            config: Memory configuration.
        """
        self.short_term = short_term
        self.long_term = long_term
        self.store = store
        self.completer = completer
        self.config = config or MemoryConfig()

    def _key(self, session_id: str, agent_id: str) -> str:
        return f"{self.config.key_prefix}:consolidation:{agent_id}:{session_id}"

    async def get_marker(self, session_id: str, agent_id: str) -> Optional[ConsolidationMarker]:
        """Read the consolidation marker of a session, if any."""
        key = self._key(session_id, agent_id)
        raw = await self.store.get(key)
        if raw is None:
            return None
        try:
            return ConsolidationMarker.model_validate_json(raw)
        except pydantic.ValidationError as e:
            logger.error("consolidation_marker_corrupt", key=key, error=str(e))
            raise MemoryCorruptionError("Stored consolidation marker is malformed", key=key) from e

    async def should_consolidate(self, session_id: str, agent_id: str) -> bool:
        """True if the session was never consolidated or the interval has elapsed."""
        marker = await self.get_marker(session_id, agent_id)
        if marker is None:
            return True
        elapsed = utcnow() - marker.last_consolidated_at
        return elapsed > timedelta(seconds=self.config.consolidation_interval_seconds)

    async def consolidate_session(self, request: ConsolidationRequest) -> ConsolidationResult:
        """Summarize a session's buffered turns into long-term memory.

        Without ``force`` the run is skipped (zero entries processed) when
        fewer than two turns are buffered or they hold fewer tokens than the
        configured minimum.

        Raises:
            StoreError: If short-term memory cannot be read.
            CompletionError: If the summary cannot be generated.
            SemanticStoreError: If the summary cannot be stored.
        """
        start = time.monotonic()
        memory = await self.short_term.get_conversation(request.session_id, request.agent_id)

        if not request.force:
            if len(memory.entries) < 2 or memory.total_tokens < self.config.summary_min_tokens:
                metrics.increment_consolidation_run(outcome="skipped")
                logger.debug(
                    "consolidation_skipped",
                    session_id=request.session_id,
                    agent_id=request.agent_id,
                    entries=len(memory.entries),
                    total_tokens=memory.total_tokens,
                )
                return ConsolidationResult()

        entries = memory.entries
        if request.max_entries > 0:
            entries = entries[: request.max_entries]
        if not entries:
            # Nothing to summarize even when forced
            metrics.increment_consolidation_run(outcome="skipped")
            return ConsolidationResult()

        with metrics.track_consolidation():
            try:
                result = await self._consolidate(request, entries, memory.tenant_id)
            except AgentMemError:
                metrics.increment_consolidation_run(outcome="failed")
                raise

        result.duration_ms = int((time.monotonic() - start) * 1000)
        metrics.increment_consolidation_run(outcome="completed")
        metrics.record_tokens_saved(result.tokens_saved)
        logger.info(
            "consolidation_completed",
            session_id=request.session_id,
            agent_id=request.agent_id,
            entries_processed=result.entries_processed,
            facts_extracted=result.facts_extracted,
            tokens_saved=result.tokens_saved,
            duration_ms=result.duration_ms,
        )
        return result

    async def _consolidate(
        self,
        request: ConsolidationRequest,
        entries: List[MemoryEntry],
        stored_tenant_id: Optional[str],
    ) -> ConsolidationResult:
        tenant_id = request.tenant_id or stored_tenant_id

        summary = await self.generate_summary(entries, self.config.summary_max_tokens)
        await self.long_term.store_summary(
            request.agent_id,
            request.session_id,
            summary,
            [entry.id for entry in entries],
            tenant_id=tenant_id,
        )

        facts_stored = 0
        if request.extract_facts:
            extraction = await self.extract_facts(entries)
            for fact in extraction.facts:
                await self.long_term.store_memory(fact.model_copy(update={"tenant_id": tenant_id}))
                facts_stored += 1

        original_tokens = sum(entry.token_count for entry in entries)
        await self._write_marker(request.session_id, request.agent_id)

        return ConsolidationResult(
            entries_processed=len(entries),
            summaries_created=1,
            facts_extracted=facts_stored,
            tokens_consolidated=original_tokens,
            tokens_saved=original_tokens - estimate_tokens(summary),
        )

    async def _write_marker(self, session_id: str, agent_id: str) -> None:
        # The summary is already stored; a marker failure only means the next
        # run may come early.
        try:
            previous = await self.get_marker(session_id, agent_id)
            marker = ConsolidationMarker(
                last_consolidated_at=utcnow(),
                total_consolidations=(previous.total_consolidations if previous else 0) + 1,
            )
            await self.store.set(
                self._key(session_id, agent_id),
                marker.model_dump_json().encode(),
                self.config.consolidation_marker_ttl_seconds,
            )
        except (StoreError, MemoryCorruptionError) as e:
            logger.warning(
                "consolidation_marker_write_failed",
                session_id=session_id,
                agent_id=agent_id,
                error=e.message,
            )

    async def generate_summary(self, entries: List[MemoryEntry], max_tokens: int) -> str:
        """Summarize entries in prose of at most ``max_tokens`` tokens."""
        if not entries:
            return ""

        messages = [
            ChatMessage(role="system", content=SUMMARY_SYSTEM_PROMPT),
            ChatMessage(
                role="user",
                content=SUMMARY_USER_PROMPT.format(
                    conversation=format_conversation(entries),
                    max_tokens=max_tokens,
                ),
            ),
        ]
        try:
            summary = await self.completer.complete(messages, max_tokens, SUMMARY_TEMPERATURE)
        except AgentMemError:
            metrics.increment_completion_request(purpose="summary", status="error")
            raise

        metrics.increment_completion_request(purpose="summary", status="success")
        return summary

    async def extract_facts(self, entries: List[MemoryEntry]) -> FactExtractionResult:
        """Extract standalone facts from entries.

        A response that is not a JSON array of strings yields no facts and a
        ``parse_error``; it never raises.

        Raises:
            CompletionError: If the completion request itself fails.
        """
        if not entries:
            return FactExtractionResult()

        messages = [
            ChatMessage(role="system", content=FACT_SYSTEM_PROMPT),
            ChatMessage(role="user", content=FACT_USER_PROMPT.format(conversation=format_conversation(entries))),
        ]
        try:
            raw = await self.completer.complete(messages, self.config.fact_max_tokens, FACT_TEMPERATURE)
        except AgentMemError:
            metrics.increment_completion_request(purpose="facts", status="error")
            raise
        metrics.increment_completion_request(purpose="facts", status="success")

        texts, error = parse_fact_list(raw)
        if error:
            logger.warning("fact_extraction_unparseable", error=error, response_chars=len(raw))
            return FactExtractionResult(raw_response=raw, parse_error=error)

        first = entries[0]
        facts = [
            LongTermMemoryEntry(
                id=str(uuid4()),
                agent_id=first.agent_id,
                tenant_id=first.tenant_id,
                content_type=ContentType.FACT,
                content=text,
                source_type="conversation",
                source_id=first.session_id,
                session_id=first.session_id,
                token_count=estimate_tokens(text),
            )
            for text in texts
        ]
        return FactExtractionResult(facts=facts, raw_response=raw)
