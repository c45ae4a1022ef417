"""Tiered conversational memory.

Short-term memory holds recent turns of a session, working memory caches
retrieved document context, and long-term memory keeps durable agent-scoped
knowledge. The orchestrator ties the tiers together and consolidates
short-term conversation into long-term memory.
"""

from agentmem.memory.budget import TokenBudget, estimate_tokens
from agentmem.memory.consolidation import ConsolidationEngine
from agentmem.memory.ltm import LTM
from agentmem.memory.models import (
    AddMemoryRequest,
    ConsolidationMarker,
    ConsolidationRequest,
    ConsolidationResult,
    ContentType,
    FactExtractionResult,
    GetMemoryRequest,
    LoadedDocument,
    LongTermMemoryEntry,
    MemoryContext,
    MemoryEntry,
    MemoryState,
    MemoryStats,
    MemoryTier,
    RetrievedChunk,
    Role,
    ShortTermMemory,
    WorkingMemory,
)
from agentmem.memory.orchestrator import MemoryOrchestrator
from agentmem.memory.similarity import QuerySimilarity, WordOverlapSimilarity
from agentmem.memory.stm import STM
from agentmem.memory.working import WorkingMemoryService

__all__ = [
    # Models
    "AddMemoryRequest",
    "ConsolidationMarker",
    "ConsolidationRequest",
    "ConsolidationResult",
    "ContentType",
    "FactExtractionResult",
    "GetMemoryRequest",
    "LoadedDocument",
    "LongTermMemoryEntry",
    "MemoryContext",
    "MemoryEntry",
    "MemoryState",
    "MemoryStats",
    "MemoryTier",
    "RetrievedChunk",
    "Role",
    "ShortTermMemory",
    "WorkingMemory",
    # Budget
    "TokenBudget",
    "estimate_tokens",
    # Similarity
    "QuerySimilarity",
    "WordOverlapSimilarity",
    # Tiers
    "STM",
    "WorkingMemoryService",
    "LTM",
    # Consolidation
    "ConsolidationEngine",
    # Orchestrator
    "MemoryOrchestrator",
]
