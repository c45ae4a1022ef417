"""Property-based tests using Hypothesis for agentmem memory tiers.

These tests generate random conversations, chunk lists and queries and
check that tier ceilings and bookkeeping hold for every input.
"""

import asyncio
import json
import os
from typing import Any, List

from hypothesis import given, settings
from hypothesis import strategies as st

from agentmem.config import MemoryConfig
from agentmem.memory.budget import TokenBudget, estimate_tokens
from agentmem.memory.consolidation import parse_fact_list
from agentmem.memory.models import GetMemoryRequest, MemoryEntry, RetrievedChunk, Role
from agentmem.memory.orchestrator import MemoryOrchestrator
from agentmem.memory.similarity import WordOverlapSimilarity
from agentmem.memory.stm import STM
from agentmem.memory.working import WorkingMemoryService
from agentmem.persistence.memory_backend import InMemoryKeyValueStore, InMemorySemanticStore
from tests.mocks.fakes import AGENT_ID, SESSION_ID, ScriptedCompleter


@st.composite
def conversation_turns(draw: Any) -> List[MemoryEntry]:
    """Generate a list of conversation turns."""
    contents = draw(st.lists(st.text(min_size=0, max_size=400), min_size=1, max_size=30))
    roles = draw(st.lists(st.sampled_from(list(Role)), min_size=len(contents), max_size=len(contents)))
    return [
        MemoryEntry(session_id=SESSION_ID, agent_id=AGENT_ID, role=role, content=content)
        for role, content in zip(roles, contents)
    ]


@st.composite
def chunk_lists(draw: Any) -> List[RetrievedChunk]:
    """Generate retrieval results from a few documents."""
    contents = draw(st.lists(st.text(min_size=0, max_size=800), max_size=20))
    return [
        RetrievedChunk(
            id=f"c{i}",
            document_id=f"doc-{draw(st.integers(min_value=0, max_value=3))}",
            document_name="Document",
            content=content,
        )
        for i, content in enumerate(contents)
    ]


class TestShortTermProperties:
    """Property-based tests for short-term memory ceilings."""

    @given(
        conversation_turns(),
        st.integers(min_value=1, max_value=10),
        st.integers(min_value=1, max_value=200),
    )
    def test_ceilings_hold(self, turns: List[MemoryEntry], max_entries: int, max_tokens: int) -> None:
        """Buffers never exceed either ceiling and track tokens exactly."""
        stm = STM(
            InMemoryKeyValueStore(),
            MemoryConfig(short_term_max_entries=max_entries, short_term_max_tokens=max_tokens),
        )

        async def run() -> None:
            for turn in turns:
                await stm.add_message(turn)
            memory = await stm.get_conversation(SESSION_ID, AGENT_ID)

            assert len(memory.entries) <= max_entries
            assert memory.total_tokens <= max_tokens
            assert memory.total_tokens == sum(e.token_count for e in memory.entries)

            # What survives is always the newest suffix of the conversation
            kept = [e.content for e in memory.entries]
            assert kept == [t.content for t in turns][len(turns) - len(kept):]

        asyncio.run(run())

    @given(conversation_turns(), st.integers(min_value=0, max_value=300))
    def test_trim_respects_budget(self, turns: List[MemoryEntry], budget: int) -> None:
        """Trimming always lands within the requested budget."""
        stm = STM(InMemoryKeyValueStore())

        async def run() -> None:
            for turn in turns:
                await stm.add_message(turn)
            memory = await stm.trim_to_token_limit(SESSION_ID, AGENT_ID, budget)

            assert memory.total_tokens <= budget
            assert memory.total_tokens == sum(e.token_count for e in memory.entries)

        asyncio.run(run())


class TestWorkingMemoryProperties:
    """Property-based tests for working memory."""

    @given(chunk_lists(), st.integers(min_value=1, max_value=500))
    def test_context_is_prefix_within_ceiling(self, chunks: List[RetrievedChunk], max_tokens: int) -> None:
        """Kept chunks are an input prefix that fits the ceiling."""
        working = WorkingMemoryService(InMemoryKeyValueStore(), MemoryConfig(working_memory_max_tokens=max_tokens))

        async def run() -> None:
            memory = await working.set_document_context(SESSION_ID, AGENT_ID, chunks)

            assert memory.total_tokens <= max_tokens
            assert [c.id for c in memory.retrieved_chunks] == [c.id for c in chunks[: len(memory.retrieved_chunks)]]
            assert memory.total_tokens == sum(estimate_tokens(c.content) for c in memory.retrieved_chunks)

        asyncio.run(run())


class TestFormattedMemoryProperties:
    """Property-based tests for budgeted formatting."""

    @given(
        conversation_turns(),
        chunk_lists(),
        st.lists(st.text(max_size=300), max_size=8),
        st.integers(min_value=0, max_value=400),
    )
    def test_over_budget_is_flagged(
        self,
        turns: List[MemoryEntry],
        chunks: List[RetrievedChunk],
        facts: List[str],
        budget: int,
    ) -> None:
        """Formatted memory stays within budget or says it is truncated."""

        async def run() -> None:
            orchestrator = MemoryOrchestrator(InMemoryKeyValueStore(), InMemorySemanticStore(), ScriptedCompleter())
            for turn in turns:
                await orchestrator.short_term.add_message(turn)
            await orchestrator.update_working_memory(SESSION_ID, AGENT_ID, chunks)
            for fact in facts:
                await orchestrator.long_term.store_fact(AGENT_ID, "launch " + fact)

            context = await orchestrator.get_formatted_memory(
                GetMemoryRequest(session_id=SESSION_ID, agent_id=AGENT_ID, query="launch"), budget
            )

            assert context.total_tokens <= budget or context.truncated
            assert context.truncated == (context.total_tokens > budget)

        asyncio.run(run())


class TestBudgetProperties:
    """Property-based tests for budget allocation."""

    @given(st.integers(min_value=0, max_value=10**7))
    def test_shares_never_exceed_total(self, total: int) -> None:
        """Tier shares sum to at most the total."""
        budget = TokenBudget(total=total)

        assert budget.short_term + budget.working + budget.long_term <= total
        assert budget.short_term >= budget.working >= budget.long_term >= 0

    @given(st.text(max_size=2000))
    def test_estimate_is_quarter_length(self, text: str) -> None:
        """Token estimates never exceed a quarter of the length."""
        assert estimate_tokens(text) * 4 <= len(text) < (estimate_tokens(text) + 1) * 4


class TestSimilarityProperties:
    """Property-based tests for query similarity."""

    @given(st.text(max_size=200), st.text(max_size=200))
    def test_bounded_and_symmetric(self, a: str, b: str) -> None:
        """Scores stay in [0, 1] and ignore argument order."""
        similarity = WordOverlapSimilarity()
        score = similarity.similarity(a, b)

        assert 0.0 <= score <= 1.0
        assert score == similarity.similarity(b, a)


class TestFactParsingProperties:
    """Property-based tests for fact parsing."""

    @given(st.text(max_size=500))
    def test_never_raises(self, text: str) -> None:
        """Any model output yields facts or an error, never an exception."""
        facts, error = parse_fact_list(text)

        assert all(isinstance(f, str) and f for f in facts)
        if error is not None:
            assert facts == []

    @given(st.lists(st.text(min_size=1, max_size=50).filter(lambda s: s.strip())))
    def test_json_arrays_parse(self, items: List[str]) -> None:
        """Any JSON array of non-blank strings parses back to its stripped items."""
        facts, error = parse_fact_list(json.dumps(items))

        assert error is None
        assert facts == [item.strip() for item in items]


# Configure hypothesis settings for CI/local development
settings.register_profile("ci", max_examples=500, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=None)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "dev"))
