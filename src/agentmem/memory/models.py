"""Memory system data models.

Defines the containers for the three memory tiers plus the request and
result envelopes exchanged with the orchestrator. All models serialise to
JSON for the keyed store.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Speaker of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ContentType(str, Enum):
    """Kinds of long-term memory entries."""

    FACT = "fact"  # Discrete extracted fact
    SUMMARY = "summary"  # Consolidated conversation summary
    INSIGHT = "insight"  # Derived observation


class MemoryTier(str, Enum):
    """Memory tiers selectable in a GetMemoryRequest."""

    SHORT_TERM = "short_term"
    WORKING = "working"
    LONG_TERM = "long_term"


# ==================== Short-term ====================


class MemoryEntry(BaseModel):
    """A single conversation turn."""

    id: str = Field(default="", description="Assigned on append when empty")
    session_id: str
    agent_id: str
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    role: Role
    content: str
    token_count: int = Field(default=0, ge=0)
    timestamp: Optional[datetime] = Field(default=None, description="Assigned on append when empty")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ShortTermMemory(BaseModel):
    """Bounded, ordered buffer of recent turns for one (session, agent)."""

    session_id: str
    agent_id: str
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    entries: List[MemoryEntry] = Field(default_factory=list)
    total_tokens: int = Field(default=0, ge=0)
    max_tokens: int = Field(ge=1)
    max_entries: int = Field(ge=1)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None


# ==================== Working ====================


class LoadedDocument(BaseModel):
    """A document whose fragments are cached in working memory."""

    document_id: str
    document_name: str
    notebook_id: Optional[str] = None
    chunk_count: int = Field(default=0, ge=0)
    token_count: int = Field(default=0, ge=0)
    loaded_at: Optional[datetime] = None


class RetrievedChunk(BaseModel):
    """A document fragment returned by retrieval."""

    id: str
    document_id: str
    document_name: str
    content: str
    chunk_number: int = Field(default=0, ge=0)
    relevance_score: float = 0.0
    notebook_id: Optional[str] = None
    total_chunks: Optional[int] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WorkingMemory(BaseModel):
    """Cache of retrieved document context for one (session, agent)."""

    session_id: str
    agent_id: str
    loaded_documents: List[LoadedDocument] = Field(default_factory=list)
    retrieved_chunks: List[RetrievedChunk] = Field(default_factory=list)
    total_tokens: int = Field(default=0, ge=0)
    max_tokens: int = Field(ge=1)
    last_query: Optional[str] = None
    last_query_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None


# ==================== Long-term ====================


class LongTermMemoryEntry(BaseModel):
    """A durable, agent-scoped memory stored in the semantic store."""

    id: str = ""
    agent_id: str
    tenant_id: Optional[str] = None
    content_type: ContentType
    content: str
    source_type: Optional[str] = None
    source_id: Optional[str] = None
    session_id: Optional[str] = None
    token_count: int = Field(default=0, ge=0)
    relevance_score: float = 0.0
    access_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    accessed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ==================== Consolidation ====================


class ConsolidationRequest(BaseModel):
    """Request to fold a session's short-term buffer into long-term memory."""

    session_id: str
    agent_id: str
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    force: bool = False
    max_entries: int = Field(default=0, ge=0, description="0 means all entries")
    extract_facts: bool = False


class ConsolidationResult(BaseModel):
    """Outcome of a consolidation run."""

    entries_processed: int = 0
    summaries_created: int = 0
    facts_extracted: int = 0
    tokens_consolidated: int = 0
    tokens_saved: int = 0
    duration_ms: int = 0
    timestamp: datetime = Field(default_factory=utcnow)


class ConsolidationMarker(BaseModel):
    """Value stored under the consolidation key of a session."""

    last_consolidated_at: datetime
    total_consolidations: int = Field(default=0, ge=0)


class FactExtractionResult(BaseModel):
    """Facts parsed from a completion, or the reason none could be parsed."""

    facts: List[LongTermMemoryEntry] = Field(default_factory=list)
    raw_response: str = ""
    parse_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.parse_error is None


# ==================== Orchestrator envelopes ====================


class AddMemoryRequest(BaseModel):
    """A conversation turn to record."""

    session_id: str
    agent_id: str
    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    role: Role
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GetMemoryRequest(BaseModel):
    """Selects tiers to read for a session."""

    session_id: Optional[str] = None
    agent_id: str
    tenant_id: Optional[str] = None
    query: Optional[str] = Field(default=None, description="Drives long-term search")
    include_types: List[MemoryTier] = Field(default_factory=list, description="Empty means defaults")


class MemoryState(BaseModel):
    """Raw contents of the requested tiers."""

    short_term: Optional[ShortTermMemory] = None
    working: Optional[WorkingMemory] = None
    long_term: List[LongTermMemoryEntry] = Field(default_factory=list)
    total_tokens: int = 0
    token_budget: int = 0


class MemoryContext(BaseModel):
    """Tiers rendered as prompt text under a token budget."""

    formatted_short_term: str = ""
    formatted_working: str = ""
    formatted_long_term: str = ""
    total_tokens: int = 0
    truncated: bool = False
    strategy: str = "priority"

    @property
    def text(self) -> str:
        """Non-empty sections joined, long-term knowledge first."""
        sections = [self.formatted_long_term, self.formatted_working, self.formatted_short_term]
        return "\n".join(s for s in sections if s)


class MemoryStats(BaseModel):
    """Per-session memory usage summary."""

    session_id: str
    agent_id: str
    short_term_entries: int = 0
    short_term_tokens: int = 0
    working_documents: int = 0
    working_chunks: int = 0
    working_tokens: int = 0
    long_term_entries: int = 0
    total_consolidations: int = 0
    last_consolidation: Optional[datetime] = None
    last_access: datetime = Field(default_factory=utcnow)
